"""Publication of issued material as cluster secrets.

Each publish fully replaces the previous secret of the same name. Every
backing file is checked before the store is touched, so a missing artifact
leaves the existing secret in place.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from opentelemetry import trace

from pki.domain.models import CertificateMaterial, KeystoreBundle, SecretRecord, ServiceProfile
from pki.domain.states import Role
from pki.errors import MissingInputFile, PublishFailure
from pki.metrics import pki_metrics
from pki.publish import conventions
from pki.publish.secret_store import SecretStore
from shared.config import Settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _escape_key(key: str) -> str:
    return key.replace(".", "\\.")


def _first_key(keys: Iterable[str], suffixes: tuple[str, ...]) -> str | None:
    return next((key for key in keys if key.endswith(suffixes)), None)


def remediation_hint(name: str, namespace: str, keys: Iterable[str]) -> str:
    """kubectl/openssl commands to inspect the CA, certificate and key a secret holds."""
    keys = list(keys)
    base = f"kubectl get secret -n {namespace} {name} -o jsonpath="
    checks = [
        ("ca", _first_key(keys, ("-ca.pem", "ca.crt")), "openssl x509 -text"),
        ("crt", _first_key(keys, ("-crt.pem", "server.cert", "tls.crt")), "openssl x509 -text"),
        ("key", _first_key(keys, ("-key.pem", "server.key", "tls.key")), "openssl pkey -text -noout"),
    ]
    lines = [f"kubectl describe secret -n {namespace} {name}"]
    for label, key, command in checks:
        if key is not None:
            lines.append(
                f"- check the {label} with: {base}'{{.data.{_escape_key(key)}}}'"
                f" | base64 -d | {command}"
            )
    return "\n".join(lines)


class SecretPublisher:
    """Writes service, auxiliary and literal secrets to a SecretStore."""

    def __init__(self, store: SecretStore, settings: Settings, ca_file: Path, ca_key: Path) -> None:
        self.store = store
        self.settings = settings
        self.ca_file = ca_file
        self.ca_key = ca_key

    def publish(
        self,
        bundle: KeystoreBundle | None,
        material: CertificateMaterial | None,
        profile: ServiceProfile,
        role: Role,
        namespace: str,
    ) -> list[SecretRecord]:
        """Publish ``tls-<service>-<role>`` plus any convention auxiliaries.

        ``bundle`` and ``material`` are the in-memory results of a build in
        the same run; a standalone deploy passes None and relies on the files.

        Returns:
            The primary record first, then auxiliaries in publication order.

        Raises:
            MissingInputFile: If a backing file is absent; nothing is written.
            PublishFailure: If the store rejects a delete or create.
        """
        name = conventions.secret_name(profile.name, role)
        with tracer.start_as_current_span("SecretPublisher.publish") as span:
            span.set_attribute("secret", name)
            span.set_attribute("namespace", namespace)
            span.set_attribute("convention", profile.convention.value)
            if material is not None:
                span.set_attribute("serial", material.serial_number)

            entries = conventions.data_entries(profile, role, self.ca_file, self.ca_key)
            auxiliaries = conventions.auxiliary_secrets(
                profile, role, namespace, self.ca_file, self.ca_key
            )

            # Check everything before the first delete
            self._check_files(name, entries)
            for aux in auxiliaries:
                self._check_files(aux.name, aux.entries)

            hint = remediation_hint(name, namespace, entries)
            records = []
            for aux in auxiliaries:
                records.append(
                    self.publish_files(
                        aux.name,
                        namespace,
                        aux.entries,
                        labels=aux.labels,
                        annotations=aux.annotations,
                        convention=profile.convention.value,
                        kind="auxiliary",
                        hint=hint,
                    )
                )
            primary = self.publish_files(
                name,
                namespace,
                entries,
                convention=profile.convention.value,
                kind="primary",
                hint=hint,
            )

            logger.info(
                "secret_deployed",
                extra={
                    "service": profile.name,
                    "secret": name,
                    "namespace": namespace,
                    "keys": len(primary.data),
                    "auxiliary": [aux.name for aux in auxiliaries],
                    "password_file": str(bundle.password_file) if bundle else None,
                },
            )
            return [primary, *records]

    def publish_files(
        self,
        name: str,
        namespace: str,
        entries: dict[str, Path],
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
        convention: str = "none",
        kind: str = "files",
        hint: str | None = None,
    ) -> SecretRecord:
        """Publish a secret whose values are file contents."""
        self._check_files(name, entries)
        data = {key: path.read_bytes() for key, path in entries.items()}
        record = SecretRecord(
            name=name,
            namespace=namespace,
            data=data,
            labels=dict(labels or {}),
            annotations=dict(annotations or {}),
        )
        self._write(record, hint)
        pki_metrics.record_secret_published(convention, kind)
        return record

    def publish_literal(
        self, name: str, namespace: str, values: dict[str, str], kind: str = "literal"
    ) -> SecretRecord:
        """Publish a secret from literal string values."""
        record = SecretRecord(
            name=name,
            namespace=namespace,
            data={key: value.encode("utf-8") for key, value in values.items()},
        )
        self._write(record, f"kubectl get secret -n {namespace} {name} -o yaml")
        pki_metrics.record_secret_published("none", kind)
        return record

    def _check_files(self, name: str, entries: dict[str, Path]) -> None:
        missing = sorted(f"{key}={path}" for key, path in entries.items() if not path.is_file())
        if missing:
            raise MissingInputFile(
                f"Secret {name} is missing backing files: {', '.join(missing)}",
                operation=f"collect files for secret {name}",
                hint="run the build command first to generate the artifacts",
            )

    def _write(self, record: SecretRecord, hint: str | None) -> None:
        try:
            if self.settings.SECRET_REPLACE_STRATEGY == "replace":
                self.store.replace(record)
            else:
                self.store.delete(record.name, record.namespace)
                self.store.create(record)
        except PublishFailure as e:
            logger.error(
                "secret_publish_failed",
                extra={"secret": record.name, "namespace": record.namespace, "error": str(e)},
            )
            raise PublishFailure(str(e), operation=e.operation, hint=e.hint or hint) from e
        logger.debug(
            "secret_written",
            extra={"secret": record.name, "namespace": record.namespace, "keys": sorted(record.data)},
        )
