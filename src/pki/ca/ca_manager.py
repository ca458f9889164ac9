"""Root CA lifecycle: reuse the persisted CA or generate a fresh one.

The CA directory holds ``cfssl-ca.json`` (descriptor), ``ca.pem``,
``ca-key.pem`` and ``ca.csr``. An existing CA is never regenerated unless
one of the three artifacts is missing or ``force`` is set, so trust already
distributed to consumers stays valid across runs.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from opentelemetry import trace

from pki.ca.crypto import (
    CryptoError,
    build_csr,
    certificate_to_pem,
    csr_to_pem,
    generate_private_key,
    get_algorithm_name,
    load_certificate,
    load_private_key,
    private_key_to_pem,
)
from pki.domain.descriptors import CADescriptor
from pki.domain.layout import CALayout, remove_stale
from pki.domain.models import CertificateAuthority
from pki.errors import GenerationFailure
from pki.metrics import pki_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _spki(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


class CAManager:
    """Creates or reuses the root certificate authority."""

    # Private key files are owner-only
    KEY_FILE_MODE = 0o600

    def ensure_ca(
        self,
        ca_dir: Path,
        descriptor: CADescriptor,
        validity_days: int | None = None,
        force: bool = False,
    ) -> CertificateAuthority:
        """Load the CA from ``ca_dir`` or generate a new self-signed root.

        Args:
            ca_dir: Directory holding (or receiving) the CA artifacts.
            descriptor: CA subject, key spec and signing policy.
            validity_days: Overrides the descriptor's CA expiry when set.
            force: Regenerate even when a complete CA is present.

        Returns:
            The loaded or generated CertificateAuthority.

        Raises:
            GenerationFailure: If loading or generation fails.
        """
        layout = CALayout(ca_dir)
        with tracer.start_as_current_span("CAManager.ensure_ca") as span:
            span.set_attribute("ca_dir", str(ca_dir))
            span.set_attribute("force", force)

            if not force and layout.is_complete():
                ca = self._load(layout, descriptor)
                span.set_attribute("storage_type", "file")
            else:
                if not force and (layout.cert.exists() or layout.key.exists()):
                    logger.warning(
                        "ca_incomplete_regenerating",
                        extra={"ca_dir": str(ca_dir)},
                    )
                ca = self._generate(
                    layout, descriptor, validity_days or descriptor.validity_days
                )
                span.set_attribute("storage_type", "generated")

            span.set_attribute("algorithm", get_algorithm_name(ca.private_key))
            span.set_attribute("ca_cert_expires", ca.certificate.not_valid_after_utc.isoformat())
            self._log_loaded(ca)
            return ca

    def _load(self, layout: CALayout, descriptor: CADescriptor) -> CertificateAuthority:
        """Load an existing CA without modifying any file."""
        try:
            key_pem = layout.key.read_bytes()
            cert_pem = layout.cert.read_bytes()
            csr_pem = layout.csr.read_bytes()
            private_key = load_private_key(key_pem)
            certificate = load_certificate(cert_pem)
        except (OSError, CryptoError) as e:
            logger.error(
                "ca_load_failed",
                extra={"ca_dir": str(layout.directory), "error": str(e)},
            )
            raise GenerationFailure(
                f"Failed to load CA from {layout.directory}: {e}",
                operation=f"load CA from {layout.directory}",
                hint=f"rm -f {layout.cert} {layout.key} {layout.csr} and re-run build to recreate the CA",
            ) from e

        if _spki(private_key.public_key()) != _spki(certificate.public_key()):
            raise GenerationFailure(
                f"CA key {layout.key} does not match certificate {layout.cert}",
                operation=f"load CA from {layout.directory}",
                hint=f"openssl x509 -noout -pubkey -in {layout.cert}",
            )

        logger.info(
            "ca_reused",
            extra={
                "ca_dir": str(layout.directory),
                "hint": f"to recreate the CA: rm -f {layout.key} {layout.cert} {layout.csr}",
            },
        )
        return CertificateAuthority(
            private_key=private_key,
            certificate=certificate,
            key_pem=key_pem,
            cert_pem=cert_pem,
            csr_pem=csr_pem,
            layout=layout,
            descriptor=descriptor,
            storage_type="file",
        )

    def _generate(
        self, layout: CALayout, descriptor: CADescriptor, validity_days: int
    ) -> CertificateAuthority:
        """Generate a new CA key pair, CSR and self-signed certificate."""
        logger.info(
            "Generating new certificate authority",
            extra={
                "ca_dir": str(layout.directory),
                "algorithm": descriptor.key.algo.value,
                "validity_days": validity_days,
            },
        )
        try:
            layout.directory.mkdir(parents=True, exist_ok=True)
            remove_stale(layout.directory)

            private_key = generate_private_key(descriptor.key)
            subject = issuer = descriptor.x509_name()
            csr = build_csr(private_key, subject, descriptor.hosts)

            now = datetime.now(timezone.utc)
            public_key = private_key.public_key()
            certificate = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(issuer)
                .public_key(public_key)
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + timedelta(days=validity_days))
                .add_extension(
                    x509.BasicConstraints(ca=True, path_length=0),
                    critical=True,
                )
                .add_extension(
                    x509.KeyUsage(
                        digital_signature=True,
                        key_cert_sign=True,
                        crl_sign=True,
                        key_encipherment=False,
                        content_commitment=False,
                        data_encipherment=False,
                        key_agreement=False,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .add_extension(
                    x509.SubjectKeyIdentifier.from_public_key(public_key),
                    critical=False,
                )
                .sign(private_key, hashes.SHA256())
            )

            key_pem = private_key_to_pem(private_key)
            cert_pem = certificate_to_pem(certificate)
            csr_pem = csr_to_pem(csr)

            layout.key.write_bytes(key_pem)
            layout.key.chmod(self.KEY_FILE_MODE)
            layout.cert.write_bytes(cert_pem)
            layout.csr.write_bytes(csr_pem)
        except Exception as e:
            logger.error(
                "ca_generation_failed",
                extra={"ca_dir": str(layout.directory), "error": str(e)},
            )
            raise GenerationFailure(
                f"Failed to generate CA in {layout.directory}: {e}",
                operation=f"generate root CA in {layout.directory}",
                hint=f"check {layout.config} and write access to {layout.directory}",
            ) from e

        pki_metrics.record_ca_generated()
        logger.info(
            "CA key pair saved to file",
            extra={"key_path": str(layout.key), "cert_path": str(layout.cert)},
        )
        return CertificateAuthority(
            private_key=private_key,
            certificate=certificate,
            key_pem=key_pem,
            cert_pem=cert_pem,
            csr_pem=csr_pem,
            layout=layout,
            descriptor=descriptor,
            storage_type="generated",
        )

    def _log_loaded(self, ca: CertificateAuthority) -> None:
        """Log successful CA loading and record metrics."""
        logger.info(
            "ca_key_loaded",
            extra={
                "storage_type": ca.storage_type,
                "algorithm": get_algorithm_name(ca.private_key),
                "ca_cert_expires": ca.certificate.not_valid_after_utc.isoformat(),
            },
        )
        pki_metrics.record_ca_loaded(ca.storage_type)
