"""Persistent result cache shared by script runs and markdown block runs.

The store owns the on-disk file. Callers mutate the in-memory ``Cache``
returned by ``load()`` and ask the store to ``save()`` once per command.
Any problem reading the file degrades to an empty cache: caching only
ever saves time, it never decides an outcome.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.fs import write_json
from ..core.logging import log_event
from .models import (
    CACHE_VERSION,
    BlockCacheEntry,
    Cache,
    CacheEntry,
    CacheFormatError,
    ScriptCacheEntry,
    cache_from_json,
    cache_to_json,
)

if TYPE_CHECKING:
    from ..core.context import RunContext


@dataclass(frozen=True)
class CacheStats:
    version: str
    total_entries: int
    script_count: int
    block_count: int
    success_count: int
    failure_count: int
    total_duration_ms: int

    def to_payload(self) -> dict[str, object]:
        return {
            "version": self.version,
            "total_entries": self.total_entries,
            "script_count": self.script_count,
            "block_count": self.block_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_duration_ms": self.total_duration_ms,
        }


def entry_matches_hash(entry: CacheEntry | None, content_hash: str) -> bool:
    return entry is not None and entry.hash == content_hash


class CacheStore:
    """Versioned key/value store; subclasses supply the raw persistence."""

    def __init__(self, ctx: RunContext | None = None, version: str = CACHE_VERSION) -> None:
        self.ctx = ctx
        self.version = version
        self.cache = Cache(version=version)

    def _read_text(self) -> str | None:
        raise NotImplementedError

    def _write_payload(self, payload: dict[str, object]) -> None:
        raise NotImplementedError

    def exists(self) -> bool:
        raise NotImplementedError

    def _fresh(self) -> Cache:
        self.cache = Cache(version=self.version)
        return self.cache

    def load(self) -> Cache:
        try:
            text = self._read_text()
        except (OSError, UnicodeDecodeError) as exc:
            log_event(self.ctx, "warn", "cache", "unreadable", error=str(exc), note="starting fresh")
            return self._fresh()
        if text is None:
            return self._fresh()
        try:
            payload = json.loads(text)
        except ValueError as exc:
            log_event(self.ctx, "warn", "cache", "corrupt", error=str(exc), note="starting fresh")
            return self._fresh()
        if not isinstance(payload, dict) or payload.get("version") != self.version:
            found = payload.get("version") if isinstance(payload, dict) else None
            log_event(self.ctx, "warn", "cache", "version-mismatch", expected=self.version, found=found, note="starting fresh")
            return self._fresh()
        try:
            self.cache = cache_from_json(payload)
        except CacheFormatError as exc:
            log_event(self.ctx, "warn", "cache", "corrupt", error=str(exc), note="starting fresh")
            return self._fresh()
        return self.cache

    def save(self, cache: Cache | None = None) -> None:
        if cache is not None:
            self.cache = cache
        self._write_payload(cache_to_json(self.cache))
        log_event(self.ctx, "debug", "cache", "saved", entries=len(self.cache.entries))

    def clear(self) -> int:
        removed = len(self.cache.entries)
        self.cache = Cache(version=self.version)
        self.save()
        return removed

    def lookup(self, key: str) -> CacheEntry | None:
        return self.cache.entries.get(key)

    def lookup_script(self, key: str) -> ScriptCacheEntry | None:
        entry = self.lookup(key)
        return entry if isinstance(entry, ScriptCacheEntry) else None

    def lookup_block(self, key: str) -> BlockCacheEntry | None:
        entry = self.lookup(key)
        return entry if isinstance(entry, BlockCacheEntry) else None

    def put(self, key: str, entry: CacheEntry) -> None:
        self.cache.entries[key] = entry

    @staticmethod
    def entry_matches_hash(entry: CacheEntry | None, content_hash: str) -> bool:
        return entry_matches_hash(entry, content_hash)

    def stats(self) -> CacheStats:
        entries = list(self.cache.entries.values())
        blocks = [e for e in entries if isinstance(e, BlockCacheEntry)]
        return CacheStats(
            version=self.cache.version,
            total_entries=len(entries),
            script_count=sum(1 for e in entries if isinstance(e, ScriptCacheEntry)),
            block_count=len(blocks),
            success_count=sum(1 for e in blocks if e.success),
            failure_count=sum(1 for e in blocks if not e.success),
            total_duration_ms=sum(e.duration_ms for e in entries),
        )


class FileCacheStore(CacheStore):
    def __init__(self, path: Path, ctx: RunContext | None = None, version: str = CACHE_VERSION) -> None:
        super().__init__(ctx, version)
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def _read_text(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write_payload(self, payload: dict[str, object]) -> None:
        write_json(self.path, payload)


class MemoryCacheStore(CacheStore):
    """Keeps the serialized cache in memory; used where no file should be touched."""

    def __init__(self, text: str | None = None, ctx: RunContext | None = None, version: str = CACHE_VERSION) -> None:
        super().__init__(ctx, version)
        self.text = text

    def exists(self) -> bool:
        return self.text is not None

    def _read_text(self) -> str | None:
        return self.text

    def _write_payload(self, payload: dict[str, object]) -> None:
        self.text = json.dumps(payload, indent=2, sort_keys=True)


def open_store(ctx: RunContext) -> FileCacheStore:
    return FileCacheStore(ctx.cache_file, ctx)
