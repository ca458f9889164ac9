"""cluster-pki command line: ``build`` TLS assets and ``deploy`` them as secrets."""

import argparse
import sys
from pathlib import Path

from opentelemetry import trace
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from pki.errors import PkiError
from pki.publish.secret_store import DryRunSecretStore, KubernetesSecretStore, SecretStore
from pki.services.orchestrator import Orchestrator
from shared.config import Settings
from shared.logging import logger, setup_logging
from shared.metrics import setup_metrics


# Setup OpenTelemetry Tracing
def setup_tracing(settings: Settings) -> TracerProvider:
    resource = Resource.create({"service.name": settings.APP_NAME})
    provider = TracerProvider(resource=resource)

    if settings.OTEL_CONSOLE_EXPORT:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    return provider


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cluster-pki",
        description="Create a private CA, issue service certificates and publish them as secrets.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="create the CA and per-service TLS assets")
    build.add_argument(
        "-f", "--force", action="store_true", help="regenerate the CA and JWT keys"
    )
    build.add_argument("-c", "--ca-config", type=Path, help="path to cfssl-ca.json")
    build.add_argument("-o", "--output-dir", type=Path, help="TLS directory with service subdirectories")
    build.add_argument("--jwt-dir", type=Path, help="directory for the JWT signing keys")
    build.set_defaults(handler=run_build)

    deploy = subparsers.add_parser("deploy", help="publish built assets as cluster secrets")
    deploy.add_argument("-e", "--namespace", help="target namespace (default: ENV_NAME)")
    deploy.add_argument("--ca-file", type=Path, help="CA certificate to publish")
    deploy.add_argument("--ca-key", type=Path, help="CA private key to publish")
    deploy.add_argument("-o", "--output-dir", type=Path, help="TLS directory with service subdirectories")
    deploy.add_argument("--jwt-dir", type=Path, help="directory holding the JWT signing keys")
    deploy.add_argument(
        "--tls-only", action="store_true", help="skip the JWT and credential secrets"
    )
    deploy.add_argument(
        "--dry-run", action="store_true", help="log the secrets instead of writing them"
    )
    deploy.set_defaults(handler=run_deploy)
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Copy settings with any values given on the command line."""
    flags = {
        "output_dir": "TLS_DIR",
        "ca_config": "CA_CONFIG_PATH",
        "jwt_dir": "JWT_DIR",
        "namespace": "ENV_NAME",
        "ca_file": "PATH_TO_CA_FILE",
        "ca_key": "PATH_TO_CA_KEY",
    }
    update = {
        setting: getattr(args, flag)
        for flag, setting in flags.items()
        if getattr(args, flag, None) is not None
    }
    return settings.model_copy(update=update) if update else settings


def run_build(settings: Settings, args: argparse.Namespace) -> None:
    result = Orchestrator(settings).build(force=args.force)
    print(f"CA ({result.ca.storage_type}): {result.ca.layout.cert}")
    for bundle in result.bundles:
        print(f"  {bundle.service}/{bundle.role.value}: {bundle.keystore_p12.parent}")
    if result.jwt_keys is not None:
        print(f"JWT keys: {result.jwt_keys.public_key_path.parent}")


def run_deploy(settings: Settings, args: argparse.Namespace) -> None:
    store: SecretStore
    if args.dry_run:
        store = DryRunSecretStore()
    else:
        store = KubernetesSecretStore.from_settings(settings)

    records = Orchestrator(settings).deploy(store, tls_only=args.tls_only)
    for record in records:
        print(f"  {record.namespace}/{record.name}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(Settings(), args)

    setup_logging(settings)
    setup_tracing(settings)
    setup_metrics(settings.APP_NAME, settings.OTEL_CONSOLE_EXPORT)
    LoggingInstrumentor().instrument(set_logging_format=True)

    try:
        args.handler(settings, args)
    except PkiError as e:
        logger.error("command_failed", extra={"command": args.command, "error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        if e.operation:
            print(f"failed operation: {e.operation}", file=sys.stderr)
        if e.hint:
            print(f"verify manually with:\n{e.hint}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
