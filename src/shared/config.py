from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    # Application
    APP_NAME: str = "cluster-pki"
    LOG_LEVEL: str = "INFO"
    OTEL_CONSOLE_EXPORT: bool = False

    # Build layout
    TLS_DIR: Path = Path("./tls")
    CA_CONFIG_PATH: Optional[Path] = None  # defaults to <TLS_DIR>/ca/cfssl-ca.json
    JWT_DIR: Path = Path("./jwt")
    KEYTOOL_PATH: str = "keytool"

    # Keystore passwords - rolled on every build unless set
    PASSWORD_SERVER_KEYSTORE: Optional[str] = None
    PASSWORD_PEER_KEYSTORE: Optional[str] = None
    PASSWORD_CLIENT_KEYSTORE: Optional[str] = None

    # Deploy
    ENV_NAME: str = "default"
    DEFAULT_NAMESPACE: str = "default"
    PATH_TO_CA_FILE: Optional[Path] = None
    PATH_TO_CA_KEY: Optional[Path] = None
    SECRET_REPLACE_STRATEGY: Literal["recreate", "replace"] = "recreate"

    # Kubernetes client
    KUBECONFIG: Optional[str] = None
    KUBE_CONTEXT: Optional[str] = None
    KUBE_IN_CLUSTER: bool = False

    # Credential secrets for the api tier
    CREDENTIALS_APP_NAME: str = "api"
    DB_API_USERNAME: str = "datawriter"
    DB_API_PASSWORD: str = "123321"  # noqa: S105
    DB_POSTGRES_USERNAME: str = "postgres"
    DB_POSTGRES_PASSWORD: str = "postgres"  # noqa: S105
    S3_ACCESS_KEY: str = "ACCESS_KEY_HERE"
    S3_SECRET_KEY: str = "SECRET_KEY_HERE"  # noqa: S105

    @property
    def ca_config_path(self) -> Path:
        """CA descriptor location, falling back to the conventional ca/ directory."""
        if self.CA_CONFIG_PATH is not None:
            return self.CA_CONFIG_PATH
        return self.TLS_DIR / "ca" / "cfssl-ca.json"

    @property
    def ca_dir(self) -> Path:
        return self.ca_config_path.parent

    def keystore_password(self, role: str) -> str | None:
        """Externally supplied keystore password for a role, if any."""
        return getattr(self, f"PASSWORD_{role.upper()}_KEYSTORE", None) or None
