"""Keystore and truststore bundling in PKCS12 and JKS encodings.

The PKCS12 keystore is serialized with cryptography. Truststores and the JKS
conversions go through keytool because Java only trusts certificate entries
carrying its own trusted-key-usage attribute.
"""

import logging
import time
from pathlib import Path

from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from opentelemetry import trace

from pki.ca.crypto import compute_thumbprint, load_certificate, load_private_key
from pki.domain.layout import ServiceLayout
from pki.domain.models import CertificateMaterial, KeystoreBundle
from pki.domain.states import ArtifactKind
from pki.errors import GenerationFailure, PkiError
from pki.keystore.keytool import Keytool
from pki.metrics import pki_metrics
from shared.config import Settings
from shared.security import generate_store_password

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CA_ALIAS = "CARoot"


class KeystoreBundler:
    """Packages issued material into password-protected key and trust stores."""

    def __init__(self, settings: Settings, keytool: Keytool) -> None:
        self.settings = settings
        self.keytool = keytool

    def bundle(self, material: CertificateMaterial) -> KeystoreBundle:
        """Write chain, keystores, truststores and password files for one role.

        The key entry alias is the service name; the CA entry alias is CARoot.
        The same password protects every store of the bundle.

        Raises:
            GenerationFailure: If any store cannot be written or verified.
        """
        with tracer.start_as_current_span("KeystoreBundler.bundle") as span:
            span.set_attribute("service", material.service)
            span.set_attribute("role", material.role.value)
            start_time = time.time()

            layout = ServiceLayout(material.cert_path.parent)
            role = material.role
            alias = material.service
            override = self.settings.keystore_password(role.value)
            password = override or generate_store_password()
            span.set_attribute("password_source", "environment" if override else "generated")

            paths = {kind: layout.path(role, kind) for kind in ArtifactKind}
            for kind in (
                ArtifactKind.KEYSTORE_P12,
                ArtifactKind.TRUSTSTORE_P12,
                ArtifactKind.KEYSTORE_JKS,
                ArtifactKind.TRUSTSTORE_JKS,
            ):
                paths[kind].unlink(missing_ok=True)

            try:
                # 1. chain = leaf ++ CA
                paths[ArtifactKind.CHAIN].write_bytes(material.chain_pem)

                # 2. PKCS12 keystore
                self._write_keystore_p12(material, alias, password, paths[ArtifactKind.KEYSTORE_P12])
                paths[ArtifactKind.PASSWORD].write_text(password + "\n")

                # 3. keystore opens and holds exactly the key entry
                self._verify_keystore_p12(paths[ArtifactKind.KEYSTORE_P12], alias, password)

                ca_fingerprint = compute_thumbprint(material.ca_pem)
                ca_file = paths[ArtifactKind.CHAIN].with_name(f"{role.value}-ca.tmp.pem")
                try:
                    ca_file.write_bytes(material.ca_pem)

                    # 4. PKCS12 truststore with CARoot only
                    truststore_p12 = paths[ArtifactKind.TRUSTSTORE_P12]
                    self.keytool.import_cert(truststore_p12, CA_ALIAS, ca_file, password, "PKCS12")
                    self._verify_truststore(truststore_p12, password, "PKCS12", ca_fingerprint)

                    # 5. JKS keystore: key entry, then CARoot, then the chain as reply
                    keystore_jks = paths[ArtifactKind.KEYSTORE_JKS]
                    self.keytool.import_keystore(
                        paths[ArtifactKind.KEYSTORE_P12], password, keystore_jks, password, alias
                    )
                    paths[ArtifactKind.JKS_PASSWORD].write_text(password + "\n")
                    self.keytool.import_cert(keystore_jks, CA_ALIAS, ca_file, password, "JKS")
                    self.keytool.import_cert(
                        keystore_jks, alias, paths[ArtifactKind.CHAIN], password, "JKS"
                    )

                    truststore_jks = paths[ArtifactKind.TRUSTSTORE_JKS]
                    self.keytool.import_cert(truststore_jks, CA_ALIAS, ca_file, password, "JKS")
                    self._verify_truststore(truststore_jks, password, "JKS", ca_fingerprint)
                finally:
                    ca_file.unlink(missing_ok=True)
            except PkiError:
                raise
            except Exception as e:
                logger.error(
                    "bundle_failed",
                    extra={"service": material.service, "role": role.value, "error": str(e)},
                )
                raise GenerationFailure(
                    f"Failed to bundle {role.value} stores for {material.service}: {e}",
                    operation=f"bundle {role.value} keystores for {material.service}",
                    hint=f"ls -l {layout.directory}",
                ) from e

            duration = time.time() - start_time
            pki_metrics.record_bundle_built(role.value, duration)
            logger.info(
                "bundle_built",
                extra={
                    "service": material.service,
                    "role": role.value,
                    "directory": str(layout.directory),
                    "duration_seconds": duration,
                },
            )

            return KeystoreBundle(
                service=material.service,
                role=role,
                password=password,
                chain_path=paths[ArtifactKind.CHAIN],
                keystore_p12=paths[ArtifactKind.KEYSTORE_P12],
                truststore_p12=paths[ArtifactKind.TRUSTSTORE_P12],
                keystore_jks=paths[ArtifactKind.KEYSTORE_JKS],
                truststore_jks=paths[ArtifactKind.TRUSTSTORE_JKS],
                password_file=paths[ArtifactKind.PASSWORD],
                jks_password_file=paths[ArtifactKind.JKS_PASSWORD],
            )

    def _write_keystore_p12(
        self, material: CertificateMaterial, alias: str, password: str, path: Path
    ) -> None:
        data = pkcs12.serialize_key_and_certificates(
            name=alias.encode("utf-8"),
            key=load_private_key(material.key_pem),
            cert=load_certificate(material.cert_pem),
            cas=[load_certificate(material.ca_pem)],
            encryption_algorithm=BestAvailableEncryption(password.encode("utf-8")),
        )
        path.write_bytes(data)

    def _verify_keystore_p12(self, path: Path, alias: str, password: str) -> None:
        try:
            loaded = pkcs12.load_pkcs12(path.read_bytes(), password.encode("utf-8"))
        except ValueError as e:
            raise GenerationFailure(
                f"Keystore {path} does not open with its recorded password",
                operation=f"verify {path.name}",
                hint=f"keytool -list -v -keystore {path} -storetype PKCS12",
            ) from e

        name = loaded.cert.friendly_name if loaded.cert else None
        if loaded.key is None or name is None or name.decode("utf-8") != alias:
            raise GenerationFailure(
                f"Keystore {path} has no key entry under alias {alias}",
                operation=f"verify {path.name}",
                hint=f"keytool -list -v -keystore {path} -storetype PKCS12",
            )

    def _verify_truststore(
        self, path: Path, password: str, store_type: str, ca_fingerprint: str
    ) -> None:
        entries = self.keytool.list_entries(path, password, store_type)
        if (
            len(entries) != 1
            or entries[0].alias.lower() != CA_ALIAS.lower()
            or not entries[0].is_trusted_cert
        ):
            raise GenerationFailure(
                f"Truststore {path} should hold only {CA_ALIAS}, found "
                f"{[entry.alias for entry in entries]}",
                operation=f"verify {path.name}",
                hint=f"keytool -list -v -keystore {path} -storetype {store_type}",
            )
        if entries[0].sha256 != ca_fingerprint:
            raise GenerationFailure(
                f"Truststore {path} {CA_ALIAS} entry does not match the CA certificate "
                f"(expected SHA256 {ca_fingerprint}, found {entries[0].sha256})",
                operation=f"verify {path.name}",
                hint=f"keytool -list -v -keystore {path} -storetype {store_type}",
            )
