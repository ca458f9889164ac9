"""Cryptographic utilities shared by the CA and the issuer.

Provides key generation from descriptor key specs, PEM serialization,
signing requests, thumbprints and chain verification.
"""

import hashlib
import ipaddress
import logging

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from pki.domain.descriptors import KeySpec
from pki.domain.states import KeyAlgorithm

logger = logging.getLogger(__name__)

RSA_PUBLIC_EXPONENT = 65537

_EC_CURVES = {
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}


class CryptoError(Exception):
    """Raised when a cryptographic operation fails."""

    pass


def generate_private_key(spec: KeySpec) -> CertificateIssuerPrivateKeyTypes:
    """Generate a private key for an RSA or ECDSA key spec."""
    if spec.algo == KeyAlgorithm.ECDSA:
        curve = _EC_CURVES.get(spec.size, ec.SECP256R1)
        return ec.generate_private_key(curve())
    return rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=spec.size,
    )


def private_key_to_pem(key: CertificateIssuerPrivateKeyTypes) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def certificate_to_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def load_certificate(pem: bytes) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise CryptoError(f"Failed to load certificate: {e}") from e


def load_private_key(pem: bytes) -> CertificateIssuerPrivateKeyTypes:
    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Failed to load private key: {e}") from e
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise CryptoError(f"Unsupported private key type: {type(key).__name__}")
    return key


def subject_alt_names(hosts: list[str]) -> list[x509.GeneralName]:
    """Map descriptor hosts to SAN entries; IP literals become IPAddress."""
    names: list[x509.GeneralName] = []
    for host in hosts:
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return names


def build_csr(
    key: CertificateIssuerPrivateKeyTypes,
    subject: x509.Name,
    hosts: list[str] | None = None,
) -> x509.CertificateSigningRequest:
    """Build and self-sign a PKCS#10 request for the given subject and SANs."""
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    if hosts:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(subject_alt_names(hosts)),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256())


def csr_to_pem(csr: x509.CertificateSigningRequest) -> bytes:
    return csr.public_bytes(serialization.Encoding.PEM)


def compute_thumbprint(cert_pem: bytes) -> str:
    """Compute SHA-256 thumbprint of a certificate.

    Args:
        cert_pem: Certificate in PEM format.

    Returns:
        Lowercase hexadecimal SHA-256 thumbprint.

    Raises:
        CryptoError: If thumbprint computation fails.
    """
    cert = load_certificate(cert_pem)
    der_bytes = cert.public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()


def verify_issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """Check that ``cert`` names ``issuer`` and carries a valid signature from it."""
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature) as e:
        logger.debug("chain_verification_failed", extra={"error": str(e)})
        return False
    return True


def get_algorithm_name(key: CertificateIssuerPrivateKeyTypes) -> str:
    """Get algorithm name from private key."""
    if isinstance(key, rsa.RSAPrivateKey):
        return f"RSA-{key.key_size}"
    elif isinstance(key, ec.EllipticCurvePrivateKey):
        return f"ECDSA-{key.curve.name}"
    return "UNKNOWN"
