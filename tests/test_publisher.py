"""Tests for SecretPublisher."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from urllib3.exceptions import MaxRetryError

from pki.domain.descriptors import ServiceDescriptor
from pki.domain.layout import ServiceLayout
from pki.domain.models import ServiceProfile
from pki.domain.states import ALL_ROLES, ArtifactKind, Role
from pki.errors import MissingInputFile, PublishFailure
from pki.publish.conventions import resolve_convention
from pki.publish.secret_publisher import SecretPublisher, remediation_hint
from pki.publish.secret_store import DryRunSecretStore, KubernetesSecretStore


def _built_service(tls_dir: Path, name: str) -> ServiceProfile:
    """A service directory with a placeholder for every role artifact."""
    layout = ServiceLayout(tls_dir / name)
    layout.directory.mkdir(parents=True, exist_ok=True)
    for role in ALL_ROLES:
        for kind in ArtifactKind:
            layout.path(role, kind).write_bytes(f"{name}:{role.value}:{kind.value}".encode())
    return ServiceProfile(
        name=name,
        layout=layout,
        descriptor=ServiceDescriptor(CN=name),
        convention=resolve_convention(name),
    )


@pytest.fixture
def ca_files(tls_dir) -> tuple[Path, Path]:
    ca_file = tls_dir / "ca" / "ca.pem"
    ca_key = tls_dir / "ca" / "ca-key.pem"
    ca_file.write_bytes(b"CA CERT")
    ca_key.write_bytes(b"CA KEY")
    return ca_file, ca_key


@pytest.fixture
def store() -> DryRunSecretStore:
    return DryRunSecretStore()


@pytest.fixture
def publisher(store, settings, ca_files) -> SecretPublisher:
    return SecretPublisher(store, settings, *ca_files)


class TestSecretPublisher:
    """Tests for publishing service secrets."""

    def test_standard_publish_matches_files(self, publisher, store, tls_dir):
        """Test the published bytes equal the artifacts on disk."""
        profile = _built_service(tls_dir, "api-tier")

        records = publisher.publish(None, None, profile, Role.SERVER, "dev")

        assert [r.name for r in records] == ["tls-api-tier-server"]
        data = store.get("tls-api-tier-server", "dev").data
        assert data["api-tier-ca.pem"] == b"CA CERT"
        assert data["api-tier-crt.pem"] == b"api-tier:server:cert"
        assert data["api-tier-key.pem"] == b"api-tier:server:key"
        assert data["caKey"] == b"CA KEY"
        assert data["client-keystore-password"] == b"api-tier:client:password"

    def test_publish_twice_yields_identical_data(self, publisher, store, tls_dir):
        profile = _built_service(tls_dir, "api-tier")

        first = publisher.publish(None, None, profile, Role.CLIENT, "dev")[0]
        second = publisher.publish(None, None, profile, Role.CLIENT, "dev")[0]

        assert first.data == second.data
        assert store.get("tls-api-tier-client", "dev").data == first.data

    def test_broker_server_publishes_auxiliaries(self, publisher, store, tls_dir):
        """Test the broker server secret comes with four labeled CA secrets."""
        profile = _built_service(tls_dir, "message-broker-cluster")

        records = publisher.publish(None, None, profile, Role.SERVER, "dev")

        assert [r.name for r in records] == [
            "tls-message-broker-cluster-server",
            "dev-cluster-ca-cert",
            "dev-cluster-ca",
            "dev-clients-ca-cert",
            "dev-clients-ca",
        ]
        assert len(store.records) == 5
        cluster_ca = store.get("dev-cluster-ca", "dev")
        assert cluster_ca.data == {"ca.key": b"CA KEY"}
        assert cluster_ca.labels == {"strimzi.io/kind": "Kafka", "strimzi.io/cluster": "dev"}
        assert cluster_ca.annotations == {"strimzi.io/ca-key-generation": "0"}
        primary = store.get("tls-message-broker-cluster-server", "dev")
        assert primary.data["keystore.jks"] == b"message-broker-cluster:server:keystore_jks"

    def test_broker_client_publishes_single_secret(self, publisher, store, tls_dir):
        profile = _built_service(tls_dir, "message-broker-cluster")

        records = publisher.publish(None, None, profile, Role.CLIENT, "dev")

        assert [r.name for r in records] == ["tls-message-broker-cluster-client"]
        assert records[0].data["kafka-key.pem"] == b"message-broker-cluster:client:key"

    def test_missing_file_leaves_existing_secret(self, publisher, store, tls_dir):
        """Test a missing artifact raises before the old secret is removed."""
        profile = _built_service(tls_dir, "api-tier")
        publisher.publish(None, None, profile, Role.SERVER, "dev")
        before = store.get("tls-api-tier-server", "dev")
        profile.layout.path(Role.CLIENT, ArtifactKind.KEYSTORE_P12).unlink()

        with pytest.raises(MissingInputFile, match="client-keystore.p12"):
            publisher.publish(None, None, profile, Role.SERVER, "dev")

        assert store.get("tls-api-tier-server", "dev") is before

    def test_replace_strategy_uses_replace(self, settings, ca_files, tls_dir):
        store = MagicMock()
        settings = settings.model_copy(update={"SECRET_REPLACE_STRATEGY": "replace"})
        profile = _built_service(tls_dir, "api-tier")

        SecretPublisher(store, settings, *ca_files).publish(None, None, profile, Role.PEER, "dev")

        store.replace.assert_called_once()
        store.delete.assert_not_called()
        store.create.assert_not_called()

    def test_store_failure_carries_remediation(self, settings, ca_files, tls_dir):
        """Test a failed create names the operation and inspection commands."""
        store = MagicMock()
        store.create.side_effect = PublishFailure(
            "Failed to create secret", operation="create secret dev/tls-api-tier-server"
        )
        profile = _built_service(tls_dir, "api-tier")

        with pytest.raises(PublishFailure) as exc_info:
            SecretPublisher(store, settings, *ca_files).publish(None, None, profile, Role.SERVER, "dev")

        assert exc_info.value.operation == "create secret dev/tls-api-tier-server"
        assert "openssl x509 -text" in exc_info.value.hint
        assert "kubectl get secret -n dev tls-api-tier-server" in exc_info.value.hint

    def test_unreachable_cluster_is_publish_failure(self, settings, ca_files, tls_dir):
        """Test a transport error from the API client reaches the caller as PublishFailure."""
        api = MagicMock()
        api.delete_namespaced_secret.side_effect = MaxRetryError(pool=None, url="/api/v1", reason=None)
        profile = _built_service(tls_dir, "api-tier")
        publisher = SecretPublisher(KubernetesSecretStore(api), settings, *ca_files)

        with pytest.raises(PublishFailure) as exc_info:
            publisher.publish(None, None, profile, Role.SERVER, "dev")

        assert exc_info.value.operation == "delete secret dev/tls-api-tier-server"
        assert exc_info.value.hint == "kubectl cluster-info"
        api.create_namespaced_secret.assert_not_called()

    def test_records_metrics(self, publisher, tls_dir):
        profile = _built_service(tls_dir, "message-broker-cluster")

        with patch("pki.publish.secret_publisher.pki_metrics") as mock_metrics:
            publisher.publish(None, None, profile, Role.SERVER, "dev")

        assert mock_metrics.record_secret_published.call_count == 5
        mock_metrics.record_secret_published.assert_any_call("broker_operator", "primary")
        mock_metrics.record_secret_published.assert_any_call("broker_operator", "auxiliary")


class TestLiteralSecrets:
    """Tests for literal-valued secrets."""

    def test_publish_literal_encodes_values(self, publisher, store):
        record = publisher.publish_literal("dev-api-db-credentials", "dev", {"username": "u", "password": "p"})

        assert record.data == {"username": b"u", "password": b"p"}
        assert store.get("dev-api-db-credentials", "dev") is record


def test_remediation_hint_escapes_dots():
    hint = remediation_hint("tls-api-tier-server", "dev", ["api-tier-ca.pem", "api-tier-crt.pem", "api-tier-key.pem"])

    assert "{.data.api-tier-ca\\.pem}" in hint
    assert "{.data.api-tier-crt\\.pem}" in hint
    assert "openssl pkey" in hint


def test_remediation_hint_follows_container_keys(settings, ca_files, tls_dir):
    """Test the hint names server.cert/server.key when those replace the crt/key entries."""
    store = MagicMock()
    store.create.side_effect = PublishFailure("Failed to create secret", operation="create secret dev/tls-admin-ui-peer")
    profile = _built_service(tls_dir, "admin-ui")

    with pytest.raises(PublishFailure) as exc_info:
        SecretPublisher(store, settings, *ca_files).publish(None, None, profile, Role.PEER, "dev")

    hint = exc_info.value.hint
    assert "{.data.server\\.cert}" in hint
    assert "{.data.server\\.key}" in hint
    assert "admin-ui-crt" not in hint
