"""Hashing utilities."""

from __future__ import annotations

import hashlib
from typing import Iterable


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    return sha256_bytes(text.encode("utf-8"))


def path_fingerprint(paths: Iterable[str]) -> str:
    """Fingerprint a set of paths, independent of their order or contents."""
    joined = "\n".join(sorted(paths))
    return f"paths-{sha256_text(joined)[:16]}"
