"""X.509 leaf certificate issuance for service roles.

Issues server, peer and client certificates signed by the root CA using the
service descriptor's subject and SANs.
"""

import logging
import time
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from opentelemetry import trace

from pki.ca.crypto import (
    build_csr,
    certificate_to_pem,
    compute_thumbprint,
    csr_to_pem,
    generate_private_key,
    private_key_to_pem,
)
from pki.domain.models import CertificateAuthority, CertificateMaterial, ServiceProfile
from pki.domain.states import ArtifactKind, Role
from pki.errors import GenerationFailure
from pki.metrics import pki_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Extended key usage per role
ROLE_USAGES: dict[Role, list[x509.ObjectIdentifier]] = {
    Role.SERVER: [ExtendedKeyUsageOID.SERVER_AUTH],
    Role.CLIENT: [ExtendedKeyUsageOID.CLIENT_AUTH],
    Role.PEER: [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH],
}


class CertificateIssuer:
    """Issues role certificates signed by the CA.

    Certificate attributes:
    - Subject and SANs: from the service's cfssl-server-csr.json
    - Validity: now() to now() + the role's signing profile expiry
    - Key Usage: Digital Signature, Key Encipherment (RSA only)
    - Extended Key Usage: per ROLE_USAGES
    """

    KEY_FILE_MODE = 0o600

    def __init__(self, ca: CertificateAuthority) -> None:
        """Initialize issuer with the CA.

        Args:
            ca: The root CA's key and certificate for signing.
        """
        self._ca = ca

    def issue(self, profile: ServiceProfile, role: Role) -> CertificateMaterial:
        """Issue and persist a certificate for one service role.

        Writes ``<role>.pem``, ``<role>-key.pem`` and ``<role>.csr`` into the
        service directory.

        Args:
            profile: The service being issued for.
            role: server, peer or client.

        Returns:
            CertificateMaterial with PEM data and file locations.

        Raises:
            GenerationFailure: If key generation, signing or writing fails.
        """
        with tracer.start_as_current_span("CertificateIssuer.issue") as span:
            span.set_attribute("service", profile.name)
            span.set_attribute("role", role.value)

            start_time = time.time()
            validity_days = self._ca.descriptor.signing.validity_days(role)
            span.set_attribute("validity_days", validity_days)

            layout = profile.layout
            cert_path = layout.path(role, ArtifactKind.CERT)
            key_path = layout.path(role, ArtifactKind.KEY)
            csr_path = layout.path(role, ArtifactKind.CSR)

            try:
                key = generate_private_key(profile.descriptor.key)
                csr = build_csr(key, profile.descriptor.x509_name(), profile.subject_alt_names)
                certificate = self._sign(csr, role, validity_days)

                serial_str = format(certificate.serial_number, "x")
                span.set_attribute("serial", serial_str)

                cert_pem = certificate_to_pem(certificate)
                key_pem = private_key_to_pem(key)

                layout.directory.mkdir(parents=True, exist_ok=True)
                key_path.write_bytes(key_pem)
                key_path.chmod(self.KEY_FILE_MODE)
                cert_path.write_bytes(cert_pem)
                csr_path.write_bytes(csr_to_pem(csr))

                thumbprint = compute_thumbprint(cert_pem)
            except Exception as e:
                logger.error(
                    "certificate_issue_failed",
                    extra={"service": profile.name, "role": role.value, "error": str(e)},
                )
                raise GenerationFailure(
                    f"Failed to issue {role.value} certificate for {profile.name}: {e}",
                    operation=f"issue {role.value} certificate for {profile.name}",
                    hint=f"check {layout.descriptor} and the CA in {self._ca.layout.directory}",
                ) from e

            duration = time.time() - start_time
            pki_metrics.record_certificate_issued(role.value, duration)

            logger.info(
                "certificate_issued",
                extra={
                    "service": profile.name,
                    "role": role.value,
                    "serial": serial_str,
                    "thumbprint": thumbprint,
                    "not_after": certificate.not_valid_after_utc.isoformat(),
                    "duration_seconds": duration,
                },
            )

            return CertificateMaterial(
                service=profile.name,
                role=role,
                cert_pem=cert_pem,
                key_pem=key_pem,
                ca_pem=self._ca.cert_pem,
                cert_path=cert_path,
                key_path=key_path,
                csr_path=csr_path,
                serial_number=serial_str,
                thumbprint=thumbprint,
            )

    def _sign(
        self, csr: x509.CertificateSigningRequest, role: Role, validity_days: int
    ) -> x509.Certificate:
        """Sign a request with the CA, applying the role's usage policy."""
        now = datetime.now(timezone.utc)
        public_key = csr.public_key()
        is_rsa = isinstance(public_key, rsa.RSAPublicKey)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self._ca.certificate.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=is_rsa,
                    key_cert_sign=False,
                    crl_sign=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage(ROLE_USAGES[role]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(
                    self._ca.certificate.public_key()
                ),
                critical=False,
            )
        )

        try:
            san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            builder = builder.add_extension(san.value, critical=False)
        except x509.ExtensionNotFound:
            pass

        return builder.sign(self._ca.private_key, hashes.SHA256())
