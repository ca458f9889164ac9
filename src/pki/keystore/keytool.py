"""Typed wrapper around the JDK ``keytool`` binary.

Every invocation is an argument vector passed to ``subprocess.run``; nothing
goes through a shell. Passwords are masked in logs and error messages.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass, replace
from pathlib import Path

from pki.errors import GenerationFailure, ToolNotFound

logger = logging.getLogger(__name__)

# keytool output is localized; force English so entries can be parsed
_LOCALE_ARGS = ["-J-Duser.language=en", "-J-Duser.country=US"]

_PASSWORD_FLAGS = {"-storepass", "-srcstorepass", "-deststorepass", "-keypass", "-destkeypass"}


@dataclass(frozen=True)
class KeystoreEntry:
    alias: str
    entry_type: str  # PrivateKeyEntry, trustedCertEntry, ...
    sha256: str | None = None  # first certificate, lowercase hex without colons

    @property
    def is_trusted_cert(self) -> bool:
        return self.entry_type == "trustedCertEntry"


def _masked(argv: list[str]) -> str:
    parts = []
    mask_next = False
    for arg in argv:
        parts.append("****" if mask_next else arg)
        mask_next = arg in _PASSWORD_FLAGS
    return " ".join(parts)


class Keytool:
    """Runs keytool for truststore, JKS conversion and listing operations."""

    def __init__(self, executable: str = "keytool") -> None:
        self.executable = executable

    def check_available(self) -> str:
        """Resolve the keytool binary or raise ToolNotFound."""
        resolved = shutil.which(self.executable)
        if resolved is None:
            raise ToolNotFound(
                f"keytool not found: {self.executable}",
                operation="locate keytool",
                hint="install a JDK or set KEYTOOL_PATH to the keytool binary",
            )
        return resolved

    def run(self, args: list[str], operation: str, store: Path | None = None) -> str:
        """Run keytool with ``args`` and return its stdout.

        Raises:
            GenerationFailure: On a nonzero exit, naming the masked command.
        """
        argv = [self.executable, *_LOCALE_ARGS, *args]
        logger.debug("keytool_run", extra={"argv": _masked(argv)})
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        except OSError as e:
            raise ToolNotFound(
                f"Could not execute {self.executable}: {e}",
                operation=operation,
                hint="install a JDK or set KEYTOOL_PATH to the keytool binary",
            ) from e

        if proc.returncode != 0:
            output = proc.stderr.strip() or proc.stdout.strip()
            logger.error(
                "keytool_failed",
                extra={"operation": operation, "returncode": proc.returncode, "output": output},
            )
            hint = f"keytool -list -v -keystore {store}" if store else None
            raise GenerationFailure(
                f"keytool failed ({proc.returncode}): {output}",
                operation=f"{operation}: {_masked(argv)}",
                hint=hint,
            )
        return proc.stdout

    def import_cert(
        self,
        keystore: Path,
        alias: str,
        cert_file: Path,
        password: str,
        store_type: str = "PKCS12",
    ) -> None:
        """Import a certificate (trusted cert or certificate reply) under ``alias``."""
        self.run(
            [
                "-importcert",
                "-noprompt",
                "-alias", alias,
                "-file", str(cert_file),
                "-keystore", str(keystore),
                "-storetype", store_type,
                "-storepass", password,
            ],
            operation=f"import {cert_file.name} as {alias} into {keystore.name}",
            store=keystore,
        )

    def import_keystore(
        self,
        source: Path,
        source_password: str,
        dest: Path,
        dest_password: str,
        alias: str,
        source_type: str = "PKCS12",
        dest_type: str = "JKS",
    ) -> None:
        """Copy the ``alias`` key entry from ``source`` into ``dest``."""
        self.run(
            [
                "-importkeystore",
                "-noprompt",
                "-srckeystore", str(source),
                "-srcstoretype", source_type,
                "-srcstorepass", source_password,
                "-srcalias", alias,
                "-destkeystore", str(dest),
                "-deststoretype", dest_type,
                "-deststorepass", dest_password,
                "-destkeypass", dest_password,
                "-destalias", alias,
            ],
            operation=f"convert {source.name} to {dest_type} {dest.name}",
            store=dest,
        )

    def list_entries(
        self, keystore: Path, password: str, store_type: str = "PKCS12"
    ) -> list[KeystoreEntry]:
        """List aliases and entry types; also proves the password opens the store."""
        output = self.run(
            [
                "-list",
                "-v",
                "-keystore", str(keystore),
                "-storetype", store_type,
                "-storepass", password,
            ],
            operation=f"list {keystore.name}",
            store=keystore,
        )
        return parse_list_output(output)


def parse_list_output(output: str) -> list[KeystoreEntry]:
    """Parse ``keytool -list -v`` output into entries with their fingerprints."""
    entries = []
    alias = None
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("Alias name:"):
            alias = line.split(":", 1)[1].strip()
        elif line.startswith("Entry type:") and alias is not None:
            entries.append(KeystoreEntry(alias=alias, entry_type=line.split(":", 1)[1].strip()))
            alias = None
        elif line.startswith("SHA256:") and entries and entries[-1].sha256 is None:
            fingerprint = line.split(":", 1)[1].strip().replace(":", "").lower()
            entries[-1] = replace(entries[-1], sha256=fingerprint)
    return entries
