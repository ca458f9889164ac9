"""Pydantic schemas for the cfssl-style JSON descriptors on disk.

``cfssl-ca.json`` describes the root CA subject, key and signing profiles.
``cfssl-server-csr.json`` in a service directory describes that service's
subject, SANs and key; its presence marks the directory for processing.
"""

import json
import re
from pathlib import Path
from typing import Annotated

from cryptography import x509
from cryptography.x509.oid import NameOID
from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from pki.domain.states import KeyAlgorithm, Role

CA_DESCRIPTOR_NAME = "cfssl-ca.json"
SERVICE_DESCRIPTOR_NAME = "cfssl-server-csr.json"

DEFAULT_CA_EXPIRY_DAYS = 3650
DEFAULT_LEAF_EXPIRY_DAYS = 365

_EXPIRY_RE = re.compile(r"^(?P<value>\d+)(?P<unit>[hd])$")

_NAME_OIDS = {
    "C": NameOID.COUNTRY_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "L": NameOID.LOCALITY_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
}


class DescriptorError(Exception):
    """Raised when a descriptor file is missing or malformed."""

    pass


def parse_expiry_days(expiry: str) -> int:
    """Convert a cfssl expiry (``8760h`` or ``365d``) to whole days, minimum 1."""
    match = _EXPIRY_RE.match(expiry.strip())
    if not match:
        raise ValueError(f"unsupported expiry format: {expiry!r} (expected e.g. 8760h)")
    value = int(match.group("value"))
    if match.group("unit") == "h":
        return max(1, value // 24)
    return max(1, value)


class KeySpec(BaseModel):
    """Key algorithm and size (RSA bits or ECDSA curve size)."""

    algo: KeyAlgorithm = KeyAlgorithm.RSA
    size: int = 2048

    @field_validator("size")
    @classmethod
    def check_size(cls, v: int, info: ValidationInfo) -> int:
        algo = info.data.get("algo", KeyAlgorithm.RSA)
        if algo == KeyAlgorithm.ECDSA and v not in (256, 384, 521):
            raise ValueError("ecdsa size must be one of 256, 384, 521")
        if algo == KeyAlgorithm.RSA and v < 2048:
            raise ValueError("rsa size must be at least 2048")
        return v


class NameEntry(BaseModel):
    C: str | None = None
    ST: str | None = None
    L: str | None = None
    O: str | None = None  # noqa: E741
    OU: str | None = None


class SubjectDescriptor(BaseModel):
    """Subject fields shared by the CA and service descriptors."""

    CN: str = Field(..., min_length=1)
    hosts: list[str] = Field(default_factory=list)
    key: KeySpec = Field(default_factory=KeySpec)
    names: list[NameEntry] = Field(default_factory=list)

    def x509_name(self) -> x509.Name:
        """Build the X.509 subject, CN first, then each names entry in order."""
        attributes = [x509.NameAttribute(NameOID.COMMON_NAME, self.CN)]
        for entry in self.names:
            for field, oid in _NAME_OIDS.items():
                value = getattr(entry, field)
                if value:
                    attributes.append(x509.NameAttribute(oid, value))
        return x509.Name(attributes)


def _validate_expiry(v: str) -> str:
    parse_expiry_days(v)
    return v


Expiry = Annotated[str, AfterValidator(_validate_expiry)]


class SigningProfile(BaseModel):
    usages: list[str] = Field(default_factory=list)
    expiry: Expiry | None = None


class SigningPolicy(BaseModel):
    default: SigningProfile = Field(default_factory=SigningProfile)
    profiles: dict[str, SigningProfile] = Field(default_factory=dict)

    def validity_days(self, role: Role) -> int:
        """Leaf validity for a role: role profile, then default, then 365 days."""
        profile = self.profiles.get(role.value)
        if profile is not None and profile.expiry:
            return parse_expiry_days(profile.expiry)
        if self.default.expiry:
            return parse_expiry_days(self.default.expiry)
        return DEFAULT_LEAF_EXPIRY_DAYS


class CAParameters(BaseModel):
    expiry: Expiry | None = None


class CADescriptor(SubjectDescriptor):
    """Contents of ``cfssl-ca.json``: CA subject plus signing policy."""

    key: KeySpec = Field(default_factory=lambda: KeySpec(algo=KeyAlgorithm.RSA, size=4096))
    ca: CAParameters = Field(default_factory=CAParameters)
    signing: SigningPolicy = Field(default_factory=SigningPolicy)

    @property
    def validity_days(self) -> int:
        if self.ca.expiry:
            return parse_expiry_days(self.ca.expiry)
        return DEFAULT_CA_EXPIRY_DAYS


class ServiceDescriptor(SubjectDescriptor):
    """Contents of a service's ``cfssl-server-csr.json``."""

    pass


def _load_json(path: Path) -> dict:
    if not path.is_file():
        raise DescriptorError(f"descriptor not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DescriptorError(f"invalid JSON in {path}: {e}") from e


def load_ca_descriptor(path: Path) -> CADescriptor:
    data = _load_json(path)
    try:
        return CADescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorError(f"invalid CA descriptor {path}: {e}") from e


def load_service_descriptor(path: Path) -> ServiceDescriptor:
    data = _load_json(path)
    try:
        return ServiceDescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorError(f"invalid service descriptor {path}: {e}") from e
