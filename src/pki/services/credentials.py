"""Credential secrets consumed by the API tier and the database."""

import logging

from pki.domain.models import SecretRecord
from pki.publish.secret_publisher import SecretPublisher
from shared.config import Settings
from shared.security import mask_secret

logger = logging.getLogger(__name__)


def credential_values(settings: Settings, namespace: str) -> dict[str, dict[str, str]]:
    """Secret name -> literal entries, named after the deploy namespace."""
    app = settings.CREDENTIALS_APP_NAME
    return {
        f"{namespace}-{app}-db-credentials": {
            "username": settings.DB_API_USERNAME,
            "password": settings.DB_API_PASSWORD,
        },
        f"{namespace}-postgres-db-credentials": {
            "username": settings.DB_POSTGRES_USERNAME,
            "password": settings.DB_POSTGRES_PASSWORD,
        },
        f"{namespace}-{app}-s3-credentials": {
            "access-key": settings.S3_ACCESS_KEY,
            "secret-key": settings.S3_SECRET_KEY,
        },
    }


def publish_credentials(
    publisher: SecretPublisher, settings: Settings, namespace: str
) -> list[SecretRecord]:
    """
    Publish the database and object-storage credential secrets.

    Values come from settings (DB_API_*, DB_POSTGRES_*, S3_*), so each deploy
    overwrites the secrets with whatever the environment currently provides.

    Returns:
        The published records in creation order
    """
    records = []
    for name, values in credential_values(settings, namespace).items():
        records.append(publisher.publish_literal(name, namespace, values, kind="credentials"))
        logger.info(
            "credentials_deployed",
            extra={
                "secret": name,
                "namespace": namespace,
                "keys": sorted(values),
                "masked": {k: mask_secret(v) for k, v in values.items() if k != "username"},
            },
        )
    return records
