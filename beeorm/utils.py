"""Small helpers shared across the package."""

from __future__ import annotations

import hashlib

CACHE_NIL_VALUE = ""


class DuplicatedKeyError(Exception):
    """Raised when a row violates a unique index."""

    def __init__(self, message: str, index: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        return self.message


def hash_string(value: str) -> str:
    """Return the hex SHA-256 digest of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()