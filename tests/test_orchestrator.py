"""End-to-end tests for the build and deploy pipeline."""

from unittest.mock import patch

import pytest

from conftest import add_service
from pki.ca.crypto import load_certificate, verify_issued_by
from pki.domain.layout import CALayout
from pki.errors import GenerationFailure, MissingInputFile, ToolNotFound
from pki.publish.secret_store import DryRunSecretStore
from pki.services.orchestrator import Orchestrator


class TestBuild:
    """Tests for Orchestrator.build."""

    def test_build_issues_every_role_of_every_service(self, settings, tls_dir, fake_keytool):
        """Test each service gets verified server, peer and client material."""
        add_service(tls_dir, "api-tier")
        add_service(tls_dir, "database")

        result = Orchestrator(settings, keytool=fake_keytool).build()

        assert [p.name for p in result.profiles] == ["api-tier", "database"]
        assert [(m.service, m.role.value) for m in result.materials] == [
            ("api-tier", "server"),
            ("api-tier", "peer"),
            ("api-tier", "client"),
            ("database", "server"),
            ("database", "peer"),
            ("database", "client"),
        ]
        for material in result.materials:
            assert verify_issued_by(load_certificate(material.cert_pem), result.ca.certificate)
        assert len(result.bundles) == 6
        assert result.jwt_keys is not None and result.jwt_keys.generated

    def test_rebuild_keeps_ca_without_force(self, settings, tls_dir, fake_keytool):
        """Test a second build reuses ca.pem and ca-key.pem byte for byte."""
        add_service(tls_dir, "api-tier")
        layout = CALayout(settings.ca_dir)
        Orchestrator(settings, keytool=fake_keytool).build()
        cert_before, key_before = layout.cert.read_bytes(), layout.key.read_bytes()

        result = Orchestrator(settings, keytool=fake_keytool).build()

        assert result.ca.storage_type == "file"
        assert layout.cert.read_bytes() == cert_before
        assert layout.key.read_bytes() == key_before

    def test_rebuild_with_force_replaces_ca(self, settings, tls_dir, fake_keytool):
        add_service(tls_dir, "api-tier")
        layout = CALayout(settings.ca_dir)
        Orchestrator(settings, keytool=fake_keytool).build()
        cert_before, key_before = layout.cert.read_bytes(), layout.key.read_bytes()

        result = Orchestrator(settings, keytool=fake_keytool).build(force=True)

        assert result.ca.storage_type == "generated"
        assert layout.cert.read_bytes() != cert_before
        assert layout.key.read_bytes() != key_before
        # Leaves are re-issued by the new CA
        material = result.materials[0]
        assert verify_issued_by(load_certificate(material.cert_pem), result.ca.certificate)

    def test_stale_artifacts_are_removed(self, settings, tls_dir, fake_keytool):
        directory = add_service(tls_dir, "api-tier")
        (directory / "leftover.pkcs12").write_text("old")

        Orchestrator(settings, keytool=fake_keytool).build()

        assert not (directory / "leftover.pkcs12").exists()
        assert (directory / "cfssl-server-csr.json").exists()

    def test_missing_keytool_fails_before_any_work(self, settings, tls_dir, fake_keytool):
        """Test ToolNotFound is raised upfront and counted as a failure."""
        add_service(tls_dir, "api-tier")

        def unavailable():
            raise ToolNotFound("keytool not found", operation="locate keytool")

        fake_keytool.check_available = unavailable

        with patch("pki.services.orchestrator.pki_metrics") as mock_metrics:
            with pytest.raises(ToolNotFound):
                Orchestrator(settings, keytool=fake_keytool).build()

        assert not CALayout(settings.ca_dir).cert.exists()
        mock_metrics.record_failure.assert_called_once_with("ToolNotFound")

    def test_missing_ca_descriptor_is_generation_failure(self, settings, tls_dir, fake_keytool):
        (tls_dir / "ca" / "cfssl-ca.json").unlink()

        with pytest.raises(GenerationFailure) as exc_info:
            Orchestrator(settings, keytool=fake_keytool).build()

        assert "cfssl-ca.json" in exc_info.value.operation


class TestDeploy:
    """Tests for Orchestrator.deploy."""

    def test_api_tier_scenario(self, settings, tls_dir, fake_keytool):
        """Test a fresh build of api-tier deploys exactly three secrets matching disk."""
        directory = add_service(tls_dir, "api-tier")
        orchestrator = Orchestrator(settings, keytool=fake_keytool)
        orchestrator.build()
        store = DryRunSecretStore()

        records = orchestrator.deploy(store, namespace="dev", tls_only=True)

        assert sorted(r.name for r in records) == [
            "tls-api-tier-client",
            "tls-api-tier-peer",
            "tls-api-tier-server",
        ]
        ca_pem = CALayout(settings.ca_dir).cert.read_bytes()
        for role in ("server", "peer", "client"):
            data = store.get(f"tls-api-tier-{role}", "dev").data
            assert data["api-tier-ca.pem"] == ca_pem
            assert data["api-tier-crt.pem"] == (directory / f"{role}.pem").read_bytes()
            assert data["api-tier-key.pem"] == (directory / f"{role}-key.pem").read_bytes()
        assert "dev" in store.namespaces

    def test_full_deploy_adds_jwt_and_credentials(self, settings, tls_dir, fake_keytool):
        add_service(tls_dir, "api-tier")
        orchestrator = Orchestrator(settings, keytool=fake_keytool)
        orchestrator.build()
        store = DryRunSecretStore()

        records = orchestrator.deploy(store)

        names = [r.name for r in records]
        assert names[3:] == [
            "dev-api-jwt-keys",
            "dev-api-db-credentials",
            "dev-postgres-db-credentials",
            "dev-api-s3-credentials",
        ]

    def test_deploy_is_idempotent(self, settings, tls_dir, fake_keytool):
        """Test deploying twice converges to the same secret data."""
        add_service(tls_dir, "message-broker-cluster")
        orchestrator = Orchestrator(settings, keytool=fake_keytool)
        orchestrator.build()
        store = DryRunSecretStore()

        first = {r.name: r.data for r in orchestrator.deploy(store, tls_only=True)}
        second = {r.name: r.data for r in orchestrator.deploy(store, tls_only=True)}

        assert first == second
        # server + 4 auxiliaries + peer + client
        assert len(store.records) == 7

    def test_unrouted_service_goes_to_default_namespace(self, settings, tls_dir, fake_keytool):
        add_service(tls_dir, "custom-svc")
        orchestrator = Orchestrator(settings, keytool=fake_keytool)
        orchestrator.build()
        store = DryRunSecretStore()

        records = orchestrator.deploy(store, namespace="dev", tls_only=True)

        assert {r.namespace for r in records} == {"default"}
        assert store.namespaces == {"dev", "default"}

    def test_ca_override_files_are_published(self, settings, tls_dir, tmp_path, fake_keytool):
        """Test PATH_TO_CA_FILE and PATH_TO_CA_KEY replace the CA directory files."""
        add_service(tls_dir, "api-tier")
        Orchestrator(settings, keytool=fake_keytool).build()
        ca_file = tmp_path / "external-ca.pem"
        ca_key = tmp_path / "external-ca-key.pem"
        ca_file.write_bytes(b"EXTERNAL CA")
        ca_key.write_bytes(b"EXTERNAL KEY")
        settings = settings.model_copy(update={"PATH_TO_CA_FILE": ca_file, "PATH_TO_CA_KEY": ca_key})
        store = DryRunSecretStore()

        Orchestrator(settings, keytool=fake_keytool).deploy(store, tls_only=True)

        data = store.get("tls-api-tier-server", "dev").data
        assert data["caCert"] == b"EXTERNAL CA"
        assert data["caKey"] == b"EXTERNAL KEY"

    def test_deploy_before_build_raises_missing_input(self, settings, tls_dir, fake_keytool):
        add_service(tls_dir, "api-tier")
        store = DryRunSecretStore()

        with pytest.raises(MissingInputFile):
            Orchestrator(settings, keytool=fake_keytool).deploy(store, tls_only=True)

        assert store.records == {}
