"""Secret naming and packaging conventions per service and role.

Well-known services publish into the deploy namespace; anything else falls
back to the default namespace with the STANDARD convention.
"""

from dataclasses import dataclass
from pathlib import Path

from pki.domain.models import ServiceProfile
from pki.domain.states import ArtifactKind, Role, SecretConvention

STRIMZI_LABELS = ("strimzi.io/kind", "strimzi.io/cluster")
CA_CERT_GENERATION = "strimzi.io/ca-cert-generation"
CA_KEY_GENERATION = "strimzi.io/ca-key-generation"

# service name -> convention; membership means "publish into the deploy namespace"
ROUTING: dict[str, SecretConvention] = {
    "api-tier": SecretConvention.STANDARD,
    "control-plane": SecretConvention.STANDARD,
    "message-broker-cluster": SecretConvention.BROKER_OPERATOR,
    "admin-ui": SecretConvention.CONTAINER_KEYS,
    "database": SecretConvention.STANDARD,
    "proxy": SecretConvention.STANDARD,
    "schema-registry": SecretConvention.STANDARD,
    "coordination-service": SecretConvention.STANDARD,
    # directory names used by earlier deployments
    "api": SecretConvention.STANDARD,
    "control-center": SecretConvention.STANDARD,
    "kafka-cluster-0": SecretConvention.BROKER_OPERATOR,
    "pgadmin": SecretConvention.CONTAINER_KEYS,
    "postgres": SecretConvention.STANDARD,
    "rest-proxy": SecretConvention.STANDARD,
    "zookeeper": SecretConvention.STANDARD,
}


@dataclass(frozen=True)
class AuxiliarySecret:
    """An extra secret published alongside a service secret."""

    name: str
    entries: dict[str, Path]
    labels: dict[str, str]
    annotations: dict[str, str]


def resolve_convention(service: str) -> SecretConvention:
    return ROUTING.get(service, SecretConvention.STANDARD)


def resolve_namespace(service: str, deploy_namespace: str, default_namespace: str) -> str:
    """Deploy namespace for routed services, the default namespace otherwise."""
    return deploy_namespace if service in ROUTING else default_namespace


def secret_name(service: str, role: Role) -> str:
    return f"tls-{service}-{role.value}"


def data_entries(
    profile: ServiceProfile, role: Role, ca_file: Path, ca_key: Path
) -> dict[str, Path]:
    """Secret data key -> backing file for one (service, role).

    Every value must exist on disk before the secret is written.
    """
    layout = profile.layout
    name = profile.name
    cert = layout.path(role, ArtifactKind.CERT)
    key = layout.path(role, ArtifactKind.KEY)

    entries = {
        f"{name}-ca.pem": ca_file,
        f"{name}-crt.pem": cert,
        f"{name}-key.pem": key,
        "caCert": ca_file,
        "caKey": ca_key,
    }
    for shared_role in (Role.SERVER, Role.CLIENT):
        prefix = shared_role.value
        entries[f"{prefix}-keystore.p12"] = layout.path(shared_role, ArtifactKind.KEYSTORE_P12)
        entries[f"{prefix}-truststore.p12"] = layout.path(shared_role, ArtifactKind.TRUSTSTORE_P12)
        entries[f"{prefix}-cert-chain.pem"] = layout.path(shared_role, ArtifactKind.CHAIN)
        entries[f"{prefix}-keystore-password"] = layout.path(shared_role, ArtifactKind.PASSWORD)

    match (profile.convention, role):
        case (SecretConvention.CONTAINER_KEYS, _):
            del entries[f"{name}-crt.pem"]
            del entries[f"{name}-key.pem"]
            # The container image reads the server pair whatever the role
            entries["server.cert"] = layout.path(Role.SERVER, ArtifactKind.CERT)
            entries["server.key"] = layout.path(Role.SERVER, ArtifactKind.KEY)
        case (SecretConvention.BROKER_OPERATOR, Role.SERVER):
            entries.update(
                {
                    "keystore.jks": layout.path(role, ArtifactKind.KEYSTORE_JKS),
                    "truststore.jks": layout.path(role, ArtifactKind.TRUSTSTORE_JKS),
                    "password": layout.path(role, ArtifactKind.PASSWORD),
                    "ca.crt": ca_file,
                    "tls.crt": cert,
                    "tls.key": key,
                    **_role_pairs(profile, (Role.CLIENT, Role.PEER, Role.SERVER)),
                }
            )
        case (SecretConvention.BROKER_OPERATOR, Role.CLIENT):
            entries.update(
                {
                    "ca.crt": ca_file,
                    "tls.crt": cert,
                    "tls.key": key,
                    **_role_pairs(profile, (Role.CLIENT, Role.PEER)),
                    "kafka-ca.pem": ca_file,
                    "kafka-crt.pem": cert,
                    "kafka-key.pem": key,
                }
            )
    return entries


def _role_pairs(profile: ServiceProfile, roles: tuple[Role, ...]) -> dict[str, Path]:
    """``clientCert``/``clientKey`` style entries for the given roles."""
    pairs = {}
    for role in roles:
        pairs[f"{role.value}Cert"] = profile.layout.path(role, ArtifactKind.CERT)
        pairs[f"{role.value}Key"] = profile.layout.path(role, ArtifactKind.KEY)
    return pairs


def auxiliary_secrets(
    profile: ServiceProfile, role: Role, namespace: str, ca_file: Path, ca_key: Path
) -> list[AuxiliarySecret]:
    """Strimzi cluster and clients CA secrets, published with the broker server secret."""
    if profile.convention != SecretConvention.BROKER_OPERATOR or role != Role.SERVER:
        return []

    labels = {STRIMZI_LABELS[0]: "Kafka", STRIMZI_LABELS[1]: namespace}
    secrets = []
    for scope in ("cluster", "clients"):
        secrets.append(
            AuxiliarySecret(
                name=f"{namespace}-{scope}-ca-cert",
                entries={"ca.crt": ca_file},
                labels=dict(labels),
                annotations={CA_CERT_GENERATION: "0"},
            )
        )
        secrets.append(
            AuxiliarySecret(
                name=f"{namespace}-{scope}-ca",
                entries={"ca.key": ca_key},
                labels=dict(labels),
                annotations={CA_KEY_GENERATION: "0"},
            )
        )
    return secrets
