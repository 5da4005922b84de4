"""ID helpers."""

from __future__ import annotations

import secrets
import uuid

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_-"


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 string with optional prefix."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def short_id(length: int = 8) -> str:
    """URL-safe random suffix for blob names."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))
