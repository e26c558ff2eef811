"""Content hashing used as the change-detection key for cached runs."""

from __future__ import annotations

import hashlib

# Changing this invalidates every stored entry; bump CACHE_VERSION with it.
HASH_LENGTH = 16


def compute_hash(content: str | bytes) -> str:
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def block_hash(code: str, language: str) -> str:
    return compute_hash(code + language)
