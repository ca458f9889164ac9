"""Pipeline driver: discover -> ensure CA -> issue -> bundle, then publish."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from opentelemetry import trace

from pki.ca import CAManager, CertificateIssuer
from pki.ca.crypto import load_certificate, verify_issued_by
from pki.domain.descriptors import CADescriptor, DescriptorError, load_ca_descriptor
from pki.domain.layout import CALayout, remove_stale
from pki.domain.models import (
    CertificateAuthority,
    CertificateMaterial,
    KeystoreBundle,
    SecretRecord,
    ServiceProfile,
)
from pki.errors import GenerationFailure, PkiError
from pki.keystore.bundler import KeystoreBundler
from pki.keystore.keytool import Keytool
from pki.metrics import pki_metrics
from pki.publish.secret_publisher import SecretPublisher
from pki.publish.secret_store import SecretStore
from pki.services.credentials import publish_credentials
from pki.services.discovery import discover_profiles
from pki.services.jwt_keys import PRIVATE_KEY_FILE, PUBLIC_KEY_FILE, JwtKeyManager, JwtKeyPair
from shared.config import Settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class BuildResult:
    ca: CertificateAuthority
    profiles: list[ServiceProfile]
    materials: list[CertificateMaterial] = field(default_factory=list)
    bundles: list[KeystoreBundle] = field(default_factory=list)
    jwt_keys: JwtKeyPair | None = None


class Orchestrator:
    """Runs the build and deploy phases strictly in sequence."""

    def __init__(
        self,
        settings: Settings,
        keytool: Keytool | None = None,
        ca_manager: CAManager | None = None,
        jwt_manager: JwtKeyManager | None = None,
    ) -> None:
        self.settings = settings
        self.keytool = keytool or Keytool(settings.KEYTOOL_PATH)
        self.ca_manager = ca_manager or CAManager()
        self.jwt_manager = jwt_manager or JwtKeyManager()

    def build(self, force: bool = False, with_jwt: bool = True) -> BuildResult:
        """Ensure the CA, then issue and bundle every role of every service.

        Each service directory is cleared of generated files before its roles
        are issued, so sibling artifacts always come from the same run.

        Raises:
            ToolNotFound: If keytool is unavailable.
            GenerationFailure: On any CA, issuance or bundling failure.
        """
        with tracer.start_as_current_span("Orchestrator.build") as span:
            span.set_attribute("force", force)
            try:
                self.keytool.check_available()
                ca = self.ca_manager.ensure_ca(
                    self.settings.ca_dir, self._ca_descriptor(), force=force
                )
                profiles = self._discover(self.settings.ENV_NAME)
                result = BuildResult(ca=ca, profiles=profiles)

                issuer = CertificateIssuer(ca)
                bundler = KeystoreBundler(self.settings, self.keytool)
                for profile in profiles:
                    remove_stale(profile.layout.directory)
                    for role in profile.roles:
                        material = issuer.issue(profile, role)
                        self._check_chain(material, ca)
                        result.materials.append(material)
                        result.bundles.append(bundler.bundle(material))

                if with_jwt:
                    result.jwt_keys = self.jwt_manager.ensure_keys(self.settings.JWT_DIR, force)
            except PkiError as e:
                pki_metrics.record_failure(type(e).__name__)
                raise

            span.set_attribute("services", len(profiles))
            logger.info(
                "build_complete",
                extra={
                    "services": [p.name for p in profiles],
                    "certificates": len(result.materials),
                    "ca_storage": ca.storage_type,
                },
            )
            return result

    def deploy(
        self, store: SecretStore, namespace: str | None = None, tls_only: bool = False
    ) -> list[SecretRecord]:
        """Publish every (service, role) secret, then JWT and credential secrets.

        Raises:
            MissingInputFile: If an artifact has not been built.
            PublishFailure: If the store rejects a write.
        """
        namespace = namespace or self.settings.ENV_NAME
        with tracer.start_as_current_span("Orchestrator.deploy") as span:
            span.set_attribute("namespace", namespace)
            span.set_attribute("tls_only", tls_only)
            try:
                ca_file, ca_key = self._ca_files()
                publisher = SecretPublisher(store, self.settings, ca_file, ca_key)
                profiles = self._discover(namespace)

                store.ensure_namespace(namespace)
                records: list[SecretRecord] = []
                for profile in profiles:
                    target = profile.namespace or namespace
                    if target != namespace:
                        store.ensure_namespace(target)
                    for role in profile.roles:
                        records.extend(publisher.publish(None, None, profile, role, target))

                if not tls_only:
                    jwt_dir = self.settings.JWT_DIR
                    keys = JwtKeyPair(
                        jwt_dir / PRIVATE_KEY_FILE, jwt_dir / PUBLIC_KEY_FILE, generated=False
                    )
                    records.append(
                        self.jwt_manager.publish(
                            keys, publisher, namespace, self.settings.CREDENTIALS_APP_NAME
                        )
                    )
                    records.extend(publish_credentials(publisher, self.settings, namespace))
            except PkiError as e:
                pki_metrics.record_failure(type(e).__name__)
                raise

            span.set_attribute("secrets", len(records))
            logger.info(
                "deploy_complete",
                extra={"namespace": namespace, "secrets": [r.name for r in records]},
            )
            return records

    def _ca_descriptor(self) -> CADescriptor:
        path = self.settings.ca_config_path
        try:
            return load_ca_descriptor(path)
        except DescriptorError as e:
            raise GenerationFailure(
                str(e),
                operation=f"load CA descriptor {path}",
                hint=f"python -m json.tool {path}",
            ) from e

    def _discover(self, namespace: str) -> list[ServiceProfile]:
        tls_dir = self.settings.TLS_DIR
        try:
            return discover_profiles(tls_dir, namespace, self.settings.DEFAULT_NAMESPACE)
        except DescriptorError as e:
            raise GenerationFailure(
                str(e),
                operation=f"discover services in {tls_dir}",
                hint=f"ls {tls_dir}/*/cfssl-server-csr.json",
            ) from e

    def _ca_files(self) -> tuple[Path, Path]:
        """CA cert and key to publish; environment overrides win."""
        layout = CALayout(self.settings.ca_dir)
        return (
            self.settings.PATH_TO_CA_FILE or layout.cert,
            self.settings.PATH_TO_CA_KEY or layout.key,
        )

    @staticmethod
    def _check_chain(material: CertificateMaterial, ca: CertificateAuthority) -> None:
        if not verify_issued_by(load_certificate(material.cert_pem), ca.certificate):
            raise GenerationFailure(
                f"{material.cert_path} does not verify against {ca.layout.cert}",
                operation=f"verify {material.role.value} certificate for {material.service}",
                hint=f"openssl verify -CAfile {ca.layout.cert} {material.cert_path}",
            )
