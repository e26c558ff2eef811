from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.hashing import compute_hash
from ..errors import ScriptError
from ..exit_codes import ERR_USAGE, OK
from .models import script_key
from .store import CacheStore, open_store

if TYPE_CHECKING:
    from ..core.context import RunContext


def configure_cache_parser(sub: argparse._SubParsersAction) -> None:
    cache_p = sub.add_parser("cache", help="inspect or reset the result cache")
    group = cache_p.add_mutually_exclusive_group()
    group.add_argument("--status", metavar="SCRIPT", help="compare a script's current hash with its cached hash")
    group.add_argument("--clear", action="store_true", help="remove every cache entry")
    group.add_argument("--stats", action="store_true", help="print aggregated cache statistics")


def show_status(ctx: RunContext, store: CacheStore, raw_path: str) -> int:
    store.load()
    path = Path(raw_path)
    script = (path if path.is_absolute() else ctx.cwd / path).resolve()
    entry = store.lookup_script(script_key(script))
    if entry is None:
        print(f"No cache entry for: {raw_path}")
        return OK
    if not script.exists():
        print(f"Script not found: {raw_path}")
        return OK
    current = compute_hash(script.read_bytes())
    matches = store.entry_matches_hash(entry, current)
    if ctx.output_format == "json":
        payload = {
            "schema_version": 1,
            "tool": "exercise-validator",
            "kind": "cache-status",
            "script": str(script),
            "current_hash": current,
            "cached_hash": entry.hash,
            "hash_match": matches,
            "last_run": entry.last_run,
            "exit_code": entry.exit_code,
            "duration_ms": entry.duration_ms,
        }
        print(json.dumps(payload, sort_keys=True))
        return OK
    rule = "=" * 50
    print(f"\nCache Status: {script.name}")
    print(rule)
    print(f"Current hash:  {current}")
    print(f"Cached hash:   {entry.hash}")
    print(f"Hash match:    {'YES (would skip)' if matches else 'NO (would run)'}")
    print(f"Last run:      {entry.last_run}")
    print(f"Exit code:     {entry.exit_code}")
    print(f"Duration:      {entry.duration_ms}ms")
    print(f"{rule}\n")
    return OK


def show_stats(ctx: RunContext, store: CacheStore) -> int:
    store.load()
    stats = store.stats()
    if ctx.output_format == "json":
        payload = {"schema_version": 1, "tool": "exercise-validator", "kind": "cache-stats", **stats.to_payload()}
        print(json.dumps(payload, sort_keys=True))
        return OK
    print(
        "\n".join(
            [
                "",
                "Cache Statistics",
                "================",
                f"Version: {stats.version}",
                f"Total entries: {stats.total_entries}",
                "",
                f"Scripts: {stats.script_count}",
                f"Code blocks: {stats.block_count}",
                f"  Successful: {stats.success_count}",
                f"  Failed: {stats.failure_count}",
                "",
                f"Total execution time: {stats.total_duration_ms / 1000:.1f}s",
            ]
        )
    )
    return OK


def clear_cache(ctx: RunContext, store: CacheStore) -> int:
    if not store.exists():
        print("No cache file found")
        return OK
    store.load()
    removed = store.clear()
    print(f"Cleared {removed} cache entries")
    return OK


def run_cache_command(ctx: RunContext, ns: argparse.Namespace, store: CacheStore | None = None) -> int:
    cache_store = store or open_store(ctx)
    if ns.clear:
        return clear_cache(ctx, cache_store)
    if ns.stats:
        return show_stats(ctx, cache_store)
    if ns.status:
        return show_status(ctx, cache_store, ns.status)
    raise ScriptError("Unknown cache command. Use --clear, --stats, or --status <path>", ERR_USAGE, "usage_error")
