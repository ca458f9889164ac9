"""Shared security utilities for keystore password generation."""

import secrets


def generate_store_password() -> str:
    """
    Generate an opaque keystore password: 32 lowercase hex characters.

    Example: 3f2c9a8e0b7d4e1f9c6a5b4d3e2f1a0b
    """
    return secrets.token_hex(16)


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last characters of a secret for log output."""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
