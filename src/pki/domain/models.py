"""Value objects flowing through the certificate pipeline."""

from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from pki.domain.descriptors import CADescriptor, ServiceDescriptor
from pki.domain.layout import CALayout, ServiceLayout
from pki.domain.states import ALL_ROLES, Role, SecretConvention


@dataclass(frozen=True)
class CertificateAuthority:
    """Root CA loaded from or written to a CA directory. Read-only once built."""

    private_key: CertificateIssuerPrivateKeyTypes
    certificate: x509.Certificate
    key_pem: bytes
    cert_pem: bytes
    csr_pem: bytes
    layout: CALayout
    descriptor: CADescriptor
    storage_type: str  # "file" or "generated"

    @property
    def validity_days(self) -> int:
        delta = self.certificate.not_valid_after_utc - self.certificate.not_valid_before_utc
        return delta.days


@dataclass(frozen=True)
class ServiceProfile:
    """A discovered service and how its material is packaged and routed."""

    name: str
    layout: ServiceLayout
    descriptor: ServiceDescriptor
    convention: SecretConvention = SecretConvention.STANDARD
    namespace: str | None = None  # None: use the deploy namespace
    roles: tuple[Role, ...] = ALL_ROLES

    @property
    def subject_alt_names(self) -> list[str]:
        return list(self.descriptor.hosts)


@dataclass(frozen=True)
class CertificateMaterial:
    """Issued certificate and key for one (service, role)."""

    service: str
    role: Role
    cert_pem: bytes
    key_pem: bytes
    ca_pem: bytes
    cert_path: Path
    key_path: Path
    csr_path: Path
    serial_number: str
    thumbprint: str

    @property
    def chain_pem(self) -> bytes:
        """Leaf followed by the CA; there is no intermediate."""
        return self.cert_pem + self.ca_pem


@dataclass(frozen=True)
class KeystoreBundle:
    """Keystores, truststores and password written for one (service, role)."""

    service: str
    role: Role
    password: str
    chain_path: Path
    keystore_p12: Path
    truststore_p12: Path
    keystore_jks: Path
    truststore_jks: Path
    password_file: Path
    jks_password_file: Path


@dataclass
class SecretRecord:
    """A secret as published; replaces any earlier record with the same name."""

    name: str
    namespace: str
    data: dict[str, bytes] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
