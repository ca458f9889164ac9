"""Secret store backends: the Kubernetes API and an in-memory dry run."""

import base64
import logging
from typing import Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config import ConfigException

from pki.domain.models import SecretRecord
from pki.errors import PublishFailure, ToolNotFound
from shared.config import Settings

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    """Where secret records are written. Failures raise PublishFailure."""

    def delete(self, name: str, namespace: str) -> bool: ...

    def create(self, record: SecretRecord) -> None: ...

    def replace(self, record: SecretRecord) -> None: ...

    def ensure_namespace(self, namespace: str) -> bool: ...


# Raised by the HTTP layer when the API server cannot be reached
_TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


def _unreachable(operation: str, error: Exception) -> PublishFailure:
    return PublishFailure(
        f"Kubernetes API unreachable during {operation}: {error}",
        operation=operation,
        hint="kubectl cluster-info",
    )


def _to_v1_secret(record: SecretRecord) -> client.V1Secret:
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        type="Opaque",
        metadata=client.V1ObjectMeta(
            name=record.name,
            namespace=record.namespace,
            labels=record.labels or None,
            annotations=record.annotations or None,
        ),
        data={key: base64.b64encode(value).decode("ascii") for key, value in record.data.items()},
    )


class KubernetesSecretStore:
    """Writes Opaque secrets through the CoreV1 API."""

    def __init__(self, api: client.CoreV1Api) -> None:
        self.api = api

    @classmethod
    def from_settings(cls, settings: Settings) -> "KubernetesSecretStore":
        """Load cluster credentials (in-cluster or kubeconfig) and build a store.

        Raises:
            ToolNotFound: If no usable cluster configuration is available.
        """
        try:
            if settings.KUBE_IN_CLUSTER:
                config.load_incluster_config()
            else:
                config.load_kube_config(
                    config_file=settings.KUBECONFIG, context=settings.KUBE_CONTEXT
                )
        except (ConfigException, OSError) as e:
            raise ToolNotFound(
                f"Kubernetes configuration could not be loaded: {e}",
                operation="load cluster configuration",
                hint="kubectl config current-context",
            ) from e
        logger.info(
            "kubernetes_config_loaded",
            extra={"in_cluster": settings.KUBE_IN_CLUSTER, "context": settings.KUBE_CONTEXT},
        )
        return cls(client.CoreV1Api())

    def delete(self, name: str, namespace: str) -> bool:
        """Delete a secret; a missing secret is not an error."""
        try:
            self.api.delete_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise PublishFailure(
                f"Failed to delete secret {namespace}/{name}: {e.reason}",
                operation=f"delete secret {namespace}/{name}",
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise _unreachable(f"delete secret {namespace}/{name}", e) from e
        logger.debug("secret_deleted", extra={"secret": name, "namespace": namespace})
        return True

    def create(self, record: SecretRecord) -> None:
        try:
            self.api.create_namespaced_secret(namespace=record.namespace, body=_to_v1_secret(record))
        except ApiException as e:
            raise PublishFailure(
                f"Failed to create secret {record.namespace}/{record.name}: {e.reason}",
                operation=f"create secret {record.namespace}/{record.name}",
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise _unreachable(f"create secret {record.namespace}/{record.name}", e) from e

    def replace(self, record: SecretRecord) -> None:
        """Full replace (PUT); creates the secret when it does not exist yet."""
        try:
            self.api.replace_namespaced_secret(
                name=record.name, namespace=record.namespace, body=_to_v1_secret(record)
            )
        except ApiException as e:
            if e.status == 404:
                self.create(record)
                return
            raise PublishFailure(
                f"Failed to replace secret {record.namespace}/{record.name}: {e.reason}",
                operation=f"replace secret {record.namespace}/{record.name}",
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise _unreachable(f"replace secret {record.namespace}/{record.name}", e) from e

    def ensure_namespace(self, namespace: str) -> bool:
        """Create the namespace if absent. Returns True when it was created."""
        try:
            self.api.read_namespace(name=namespace)
            return False
        except ApiException as e:
            if e.status != 404:
                raise PublishFailure(
                    f"Failed to read namespace {namespace}: {e.reason}",
                    operation=f"read namespace {namespace}",
                    hint="kubectl get namespaces",
                ) from e
        except _TRANSPORT_ERRORS as e:
            raise _unreachable(f"read namespace {namespace}", e) from e

        try:
            self.api.create_namespace(
                body=client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace))
            )
        except ApiException as e:
            # Created concurrently
            if e.status == 409:
                return False
            raise PublishFailure(
                f"Failed to create namespace {namespace}: {e.reason}",
                operation=f"create namespace {namespace}",
                hint="kubectl get namespaces",
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise _unreachable(f"create namespace {namespace}", e) from e
        logger.info("namespace_created", extra={"namespace": namespace})
        return True


class DryRunSecretStore:
    """Keeps records in memory and logs what would be written."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], SecretRecord] = {}
        self.namespaces: set[str] = set()

    def get(self, name: str, namespace: str) -> SecretRecord | None:
        return self.records.get((namespace, name))

    def delete(self, name: str, namespace: str) -> bool:
        return self.records.pop((namespace, name), None) is not None

    def create(self, record: SecretRecord) -> None:
        key = (record.namespace, record.name)
        if key in self.records:
            raise PublishFailure(
                f"Secret {record.namespace}/{record.name} already exists",
                operation=f"create secret {record.namespace}/{record.name}",
            )
        self.records[key] = record
        logger.info(
            "dry_run_secret",
            extra={
                "secret": record.name,
                "namespace": record.namespace,
                "keys": sorted(record.data),
                "labels": record.labels,
                "annotations": record.annotations,
            },
        )

    def replace(self, record: SecretRecord) -> None:
        self.records.pop((record.namespace, record.name), None)
        self.create(record)

    def ensure_namespace(self, namespace: str) -> bool:
        if namespace in self.namespaces:
            return False
        self.namespaces.add(namespace)
        logger.info("dry_run_namespace", extra={"namespace": namespace})
        return True
