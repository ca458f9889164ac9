"""File naming for generated artifacts.

Service directories follow cfssljson's ``-bare <role>`` naming so that files
produced by earlier cfssl/keytool tooling remain interchangeable.
"""

from dataclasses import dataclass
from pathlib import Path

from pki.domain.descriptors import CA_DESCRIPTOR_NAME, SERVICE_DESCRIPTOR_NAME
from pki.domain.states import ArtifactKind, Role

_ROLE_SUFFIXES: dict[ArtifactKind, str] = {
    ArtifactKind.CERT: ".pem",
    ArtifactKind.KEY: "-key.pem",
    ArtifactKind.CSR: ".csr",
    ArtifactKind.CHAIN: "-cert-chain.pem",
    ArtifactKind.KEYSTORE_P12: "-keystore.p12",
    ArtifactKind.TRUSTSTORE_P12: "-truststore.p12",
    ArtifactKind.KEYSTORE_JKS: "-keystore.jks",
    ArtifactKind.TRUSTSTORE_JKS: "-truststore.jks",
    ArtifactKind.PASSWORD: "-keystore-password.txt",
    ArtifactKind.JKS_PASSWORD: "-jks-keystore-password.txt",
}

# Globs removed before a fresh generation in a directory
STALE_PATTERNS = ("*.p12", "*.txt", "*.pem", "*.csr", "*.pkcs12", "*.jks")


@dataclass(frozen=True)
class CALayout:
    """Paths inside the root CA directory."""

    directory: Path

    @property
    def config(self) -> Path:
        return self.directory / CA_DESCRIPTOR_NAME

    @property
    def cert(self) -> Path:
        return self.directory / "ca.pem"

    @property
    def key(self) -> Path:
        return self.directory / "ca-key.pem"

    @property
    def csr(self) -> Path:
        return self.directory / "ca.csr"

    def is_complete(self) -> bool:
        return self.cert.is_file() and self.key.is_file() and self.csr.is_file()


@dataclass(frozen=True)
class ServiceLayout:
    """Paths inside one service directory."""

    directory: Path

    @property
    def descriptor(self) -> Path:
        return self.directory / SERVICE_DESCRIPTOR_NAME

    def path(self, role: Role, kind: ArtifactKind) -> Path:
        return self.directory / f"{role.value}{_ROLE_SUFFIXES[kind]}"


def remove_stale(directory: Path) -> list[Path]:
    """Delete generated artifacts from a directory, keeping descriptors."""
    removed = []
    for pattern in STALE_PATTERNS:
        for path in sorted(directory.glob(pattern)):
            if path.is_file():
                path.unlink()
                removed.append(path)
    return removed
