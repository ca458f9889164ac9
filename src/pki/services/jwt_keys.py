"""JWT signing key pair for the API tier."""

import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from opentelemetry import trace

from pki.ca.crypto import CryptoError, load_private_key, private_key_to_pem
from pki.domain.models import SecretRecord
from pki.errors import GenerationFailure
from pki.publish.secret_publisher import SecretPublisher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PRIVATE_KEY_FILE = "private-key-pkcs8.pem"
PUBLIC_KEY_FILE = "public-key.pem"


@dataclass(frozen=True)
class JwtKeyPair:
    private_key_path: Path
    public_key_path: Path
    generated: bool


def jwt_secret_name(namespace: str, app_name: str = "api") -> str:
    return f"{namespace}-{app_name}-jwt-keys"


class JwtKeyManager:
    """ECDSA P-256 signing keys: PKCS8 private key and SPKI public key."""

    KEY_FILE_MODE = 0o600

    def ensure_keys(self, jwt_dir: Path, force: bool = False) -> JwtKeyPair:
        """Reuse the key pair in ``jwt_dir`` or generate a new one.

        Raises:
            GenerationFailure: If existing keys are unreadable or writing fails.
        """
        private_path = jwt_dir / PRIVATE_KEY_FILE
        public_path = jwt_dir / PUBLIC_KEY_FILE

        with tracer.start_as_current_span("JwtKeyManager.ensure_keys") as span:
            span.set_attribute("jwt_dir", str(jwt_dir))
            if not force and private_path.is_file() and public_path.is_file():
                self._check_existing(private_path)
                logger.info("jwt_keys_reused", extra={"jwt_dir": str(jwt_dir)})
                span.set_attribute("generated", False)
                return JwtKeyPair(private_path, public_path, generated=False)

            try:
                jwt_dir.mkdir(parents=True, exist_ok=True)
                key = ec.generate_private_key(ec.SECP256R1())
                private_path.write_bytes(private_key_to_pem(key))
                private_path.chmod(self.KEY_FILE_MODE)
                public_path.write_bytes(
                    key.public_key().public_bytes(
                        serialization.Encoding.PEM,
                        serialization.PublicFormat.SubjectPublicKeyInfo,
                    )
                )
            except OSError as e:
                raise GenerationFailure(
                    f"Failed to write JWT keys to {jwt_dir}: {e}",
                    operation=f"generate JWT signing keys in {jwt_dir}",
                    hint=f"ls -l {jwt_dir}",
                ) from e

            logger.info("jwt_keys_generated", extra={"jwt_dir": str(jwt_dir), "curve": "P-256"})
            span.set_attribute("generated", True)
            return JwtKeyPair(private_path, public_path, generated=True)

    def _check_existing(self, private_path: Path) -> None:
        try:
            key = load_private_key(private_path.read_bytes())
        except (OSError, CryptoError) as e:
            raise GenerationFailure(
                f"Unreadable JWT private key {private_path}: {e}",
                operation=f"load JWT signing key {private_path}",
                hint=f"openssl pkey -in {private_path} -noout -text",
            ) from e
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise GenerationFailure(
                f"JWT private key {private_path} is not an EC key",
                operation=f"load JWT signing key {private_path}",
                hint=f"rm {private_path} and re-run to regenerate",
            )

    def publish(
        self, keys: JwtKeyPair, publisher: SecretPublisher, namespace: str, app_name: str = "api"
    ) -> SecretRecord:
        """Publish as ``<namespace>-<app>-jwt-keys``."""
        return publisher.publish_files(
            jwt_secret_name(namespace, app_name),
            namespace,
            {"private-key.pem": keys.private_key_path, "public-key.pem": keys.public_key_path},
            kind="jwt",
        )
