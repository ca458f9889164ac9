"""Service discovery from the TLS directory."""

import logging
from pathlib import Path

from pki.domain.descriptors import SERVICE_DESCRIPTOR_NAME, load_service_descriptor
from pki.domain.layout import ServiceLayout
from pki.domain.models import ServiceProfile
from pki.publish.conventions import resolve_convention, resolve_namespace

logger = logging.getLogger(__name__)


def discover_profiles(
    tls_dir: Path, deploy_namespace: str, default_namespace: str = "default"
) -> list[ServiceProfile]:
    """Every direct subdirectory holding a service descriptor, sorted by name.

    Raises:
        DescriptorError: If a service descriptor cannot be parsed.
    """
    if not tls_dir.is_dir():
        logger.warning("tls_dir_missing", extra={"tls_dir": str(tls_dir)})
        return []

    profiles = []
    for directory in sorted(p for p in tls_dir.iterdir() if p.is_dir()):
        descriptor_path = directory / SERVICE_DESCRIPTOR_NAME
        if not descriptor_path.is_file():
            logger.debug("service_dir_skipped", extra={"directory": str(directory)})
            continue

        name = directory.name
        profiles.append(
            ServiceProfile(
                name=name,
                layout=ServiceLayout(directory),
                descriptor=load_service_descriptor(descriptor_path),
                convention=resolve_convention(name),
                namespace=resolve_namespace(name, deploy_namespace, default_namespace),
            )
        )

    logger.info(
        "services_discovered",
        extra={"tls_dir": str(tls_dir), "services": [p.name for p in profiles]},
    )
    return profiles
