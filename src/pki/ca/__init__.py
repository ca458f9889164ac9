"""Certificate Authority module for the PKI pipeline.

This module provides:
- Root CA lifecycle (reuse, generation, storage)
- Per-role X.509 certificate issuance and signing
"""

from pki.ca.ca_manager import CAManager
from pki.ca.certificate_issuer import CertificateIssuer

__all__ = ["CAManager", "CertificateIssuer"]
