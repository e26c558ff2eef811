from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Union

from ..config import SCHEMAS_ROOT
from ..core.fs import read_json

CACHE_VERSION = "2.0"
CACHE_ENTRY_SCHEMA = SCHEMAS_ROOT / "cache.schema.json"

SCRIPT_PREFIX = "script:"
BLOCK_PREFIX = "block:"


@dataclass(frozen=True)
class ScriptCacheEntry:
    hash: str
    last_run: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    kind: Literal["script"] = "script"


@dataclass(frozen=True)
class BlockCacheEntry:
    hash: str
    success: bool
    exit_code: int
    stderr: str
    duration_ms: int
    timestamp: str
    kind: Literal["block"] = "block"


CacheEntry = Union[ScriptCacheEntry, BlockCacheEntry]


@dataclass
class Cache:
    version: str = CACHE_VERSION
    entries: dict[str, CacheEntry] = field(default_factory=dict)


class CacheFormatError(ValueError):
    pass


def script_key(path: Path) -> str:
    return f"{SCRIPT_PREFIX}{path.resolve()}"


def block_key(file_path: Path | str, line: int, content_hash: str) -> str:
    return f"{BLOCK_PREFIX}{file_path}:{line}:{content_hash}"


def entry_to_json(entry: CacheEntry) -> dict[str, Any]:
    return asdict(entry)


def _entry_validator() -> Any:
    import jsonschema

    schema = read_json(CACHE_ENTRY_SCHEMA)
    return jsonschema.Draft202012Validator(schema)


def entry_from_json(payload: object, validator: Any | None = None) -> CacheEntry:
    checker = validator or _entry_validator()
    errors = sorted(checker.iter_errors(payload), key=lambda err: list(err.absolute_path))
    if errors:
        raise CacheFormatError(errors[0].message)
    if not isinstance(payload, dict):
        raise CacheFormatError("cache entry must be an object")
    data = dict(payload)
    kind = data.pop("kind")
    if kind == "script":
        return ScriptCacheEntry(**data)
    return BlockCacheEntry(**data)


def cache_to_json(cache: Cache) -> dict[str, Any]:
    return {
        "version": cache.version,
        "entries": {key: entry_to_json(entry) for key, entry in sorted(cache.entries.items())},
    }


def cache_from_json(payload: object) -> Cache:
    if not isinstance(payload, dict):
        raise CacheFormatError("cache root must be an object")
    raw_entries = payload.get("entries")
    if not isinstance(raw_entries, dict):
        raise CacheFormatError("cache `entries` must be an object")
    validator = _entry_validator()
    entries: dict[str, CacheEntry] = {}
    for key, raw in raw_entries.items():
        entry = entry_from_json(raw, validator)
        expected = SCRIPT_PREFIX if entry.kind == "script" else BLOCK_PREFIX
        if not str(key).startswith(expected):
            raise CacheFormatError(f"entry `{key}` does not match its kind `{entry.kind}`")
        entries[str(key)] = entry
    return Cache(version=str(payload.get("version")), entries=entries)
