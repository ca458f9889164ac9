from enum import StrEnum


class Role(StrEnum):
    """Certificate usage category; decides EKU and the secret's consumer."""

    SERVER = "server"
    PEER = "peer"
    CLIENT = "client"


ALL_ROLES: tuple[Role, ...] = (Role.SERVER, Role.PEER, Role.CLIENT)


class SecretConvention(StrEnum):
    """Packaging scheme applied when a service's secrets are published."""

    STANDARD = "standard"
    CONTAINER_KEYS = "container_keys"  # pgAdmin style server.cert/server.key
    BROKER_OPERATOR = "broker_operator"  # Strimzi CA secret layout


class KeyAlgorithm(StrEnum):
    RSA = "rsa"
    ECDSA = "ecdsa"


class ArtifactKind(StrEnum):
    """Per-role files written to a service directory."""

    CERT = "cert"
    KEY = "key"
    CSR = "csr"
    CHAIN = "chain"
    KEYSTORE_P12 = "keystore_p12"
    TRUSTSTORE_P12 = "truststore_p12"
    KEYSTORE_JKS = "keystore_jks"
    TRUSTSTORE_JKS = "truststore_jks"
    PASSWORD = "password"
    JKS_PASSWORD = "jks_password"
