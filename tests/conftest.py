"""Shared fixtures: a TLS tree on disk, settings pointing at it, and a keytool stand-in."""

import json
from pathlib import Path

import pytest

from pki.ca.ca_manager import CAManager
from pki.ca.crypto import compute_thumbprint
from pki.domain.descriptors import load_ca_descriptor
from pki.keystore.keytool import KeystoreEntry
from shared.config import Settings

# Small EC keys keep generation fast
CA_DESCRIPTOR = {
    "CN": "Cluster Test Root CA",
    "key": {"algo": "ecdsa", "size": 256},
    "names": [{"C": "US", "ST": "CA", "L": "San Francisco", "O": "Example", "OU": "Platform"}],
    "ca": {"expiry": "87600h"},
    "signing": {
        "default": {"expiry": "8760h"},
        "profiles": {
            "server": {"usages": ["signing", "key encipherment", "server auth"], "expiry": "8760h"},
            "client": {"usages": ["signing", "key encipherment", "client auth"], "expiry": "4380h"},
            "peer": {
                "usages": ["signing", "key encipherment", "server auth", "client auth"],
                "expiry": "8760h",
            },
        },
    },
}


def add_service(tls_dir: Path, name: str, hosts: list[str] | None = None) -> Path:
    """Create a service directory with its cfssl-server-csr.json."""
    directory = tls_dir / name
    directory.mkdir(parents=True, exist_ok=True)
    descriptor = {
        "CN": name,
        "hosts": hosts if hosts is not None else [name, f"{name}.dev.svc.cluster.local", "127.0.0.1"],
        "key": {"algo": "ecdsa", "size": 256},
        "names": [{"C": "US", "O": "Example"}],
    }
    (directory / "cfssl-server-csr.json").write_text(json.dumps(descriptor))
    return directory


class FakeKeytool:
    """Records keytool operations and writes placeholder store files."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.stores: dict[Path, list[KeystoreEntry]] = {}

    def check_available(self) -> str:
        return "/usr/bin/keytool"

    def import_cert(self, keystore, alias, cert_file, password, store_type="PKCS12"):
        self.calls.append(("import_cert", keystore.name, alias, store_type))
        existing = keystore.read_bytes() if keystore.exists() else b""
        if not existing:
            self.stores[keystore] = []
        entries = self.stores.setdefault(keystore, [])
        if not any(entry.alias == alias for entry in entries):
            entries.append(
                KeystoreEntry(
                    alias=alias,
                    entry_type="trustedCertEntry",
                    sha256=compute_thumbprint(cert_file.read_bytes()),
                )
            )
        keystore.write_bytes(existing + cert_file.read_bytes())

    def import_keystore(
        self, source, source_password, dest, dest_password, alias, source_type="PKCS12", dest_type="JKS"
    ):
        self.calls.append(("import_keystore", source.name, dest.name, alias, dest_type))
        dest.write_bytes(source.read_bytes())
        self.stores[dest] = [KeystoreEntry(alias=alias, entry_type="PrivateKeyEntry")]

    def list_entries(self, keystore, password, store_type="PKCS12"):
        self.calls.append(("list_entries", keystore.name, store_type))
        return list(self.stores.get(keystore, []))


@pytest.fixture
def tls_dir(tmp_path) -> Path:
    """TLS directory holding only the CA descriptor."""
    root = tmp_path / "tls"
    (root / "ca").mkdir(parents=True)
    (root / "ca" / "cfssl-ca.json").write_text(json.dumps(CA_DESCRIPTOR))
    return root


@pytest.fixture
def settings(tmp_path, tls_dir) -> Settings:
    return Settings(
        _env_file=None,
        TLS_DIR=tls_dir,
        JWT_DIR=tmp_path / "jwt",
        ENV_NAME="dev",
        PASSWORD_SERVER_KEYSTORE=None,
        PASSWORD_PEER_KEYSTORE=None,
        PASSWORD_CLIENT_KEYSTORE=None,
    )


@pytest.fixture
def ca(settings):
    """A freshly generated CA in the settings' CA directory."""
    return CAManager().ensure_ca(settings.ca_dir, load_ca_descriptor(settings.ca_config_path))


@pytest.fixture
def fake_keytool() -> FakeKeytool:
    return FakeKeytool()
