from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ..cache.models import ScriptCacheEntry, script_key
from ..cache.store import CacheStore, open_store
from ..core.hashing import compute_hash
from ..core.language import SCRIPT_SUFFIXES
from ..core.process import ScriptRun, ScriptRunner
from ..errors import ScriptError
from ..exit_codes import ERR_NOT_FOUND, ERR_TIMEOUT, ERR_USAGE, TIMEOUT_EXIT_CODE, process_exit_code

if TYPE_CHECKING:
    from ..core.context import RunContext

FORCE_FLAG = "--force"


def configure_run_parser(sub: argparse._SubParsersAction) -> None:
    run_p = sub.add_parser("run", help="run a script, replaying the cached result when its hash is unchanged")
    run_p.add_argument("--force", action="store_true", help="re-run even when the cached hash matches")
    run_p.add_argument("script", nargs="?", help="path to a .ts, .tsx, .js, .sh or .bash file")
    run_p.add_argument("args", nargs=argparse.REMAINDER, help="arguments forwarded to the script")


def resolve_script(ctx: RunContext, raw: str | None) -> Path:
    if not raw:
        raise ScriptError("No script path provided", ERR_USAGE, "usage_error")
    path = Path(raw)
    script = (path if path.is_absolute() else ctx.cwd / path).resolve()
    if not script.exists():
        raise ScriptError(f"Script not found: {raw}", ERR_NOT_FOUND, "not_found")
    if not script.name.lower().endswith(SCRIPT_SUFFIXES):
        raise ScriptError(f"Expected .ts, .tsx, .js, .sh, or .bash file, got: {raw}", ERR_USAGE, "usage_error")
    return script


def _rule() -> str:
    return "=" * 60


def _replay(script: Path, entry: ScriptCacheEntry) -> None:
    print(f"\n{_rule()}")
    print(f"CACHED: {script.name}")
    print(f"Hash: {entry.hash} (unchanged)")
    print(f"Last run: {entry.last_run}")
    print(f"Duration: {entry.duration_ms}ms")
    print(f"{_rule()}\n")
    if entry.stdout:
        print("--- Cached stdout ---")
        print(entry.stdout)
    if entry.stderr:
        print("--- Cached stderr ---", flush=True)
        print(entry.stderr, file=sys.stderr, flush=True)
    print("\nSkipped execution (hash unchanged). Use --force to re-run.")


def _payload(script: Path, entry: ScriptCacheEntry, cached: bool, timed_out: bool) -> dict[str, object]:
    return {
        "schema_version": 1,
        "tool": "exercise-validator",
        "kind": "script-run",
        "status": "pass" if entry.exit_code == 0 else "fail",
        "script": str(script),
        "cached": cached,
        "hash": entry.hash,
        "exit_code": entry.exit_code,
        "timed_out": timed_out,
        "duration_ms": entry.duration_ms,
        "last_run": entry.last_run,
        "stdout": entry.stdout,
        "stderr": entry.stderr,
    }


def to_cache_entry(run: ScriptRun) -> ScriptCacheEntry:
    return ScriptCacheEntry(
        hash=run.hash,
        last_run=run.last_run,
        exit_code=run.exit_code,
        stdout=run.stdout,
        stderr=run.stderr,
        duration_ms=run.duration_ms,
    )


def run_run_command(
    ctx: RunContext,
    ns: argparse.Namespace,
    store: CacheStore | None = None,
    runner: ScriptRunner | None = None,
) -> int:
    forwarded = [arg for arg in (ns.args or []) if arg != FORCE_FLAG]
    force = bool(ns.force) or len(forwarded) != len(ns.args or [])
    script = resolve_script(ctx, ns.script)
    as_json = ctx.output_format == "json"

    cache_store = store or open_store(ctx)
    cache_store.load()
    key = script_key(script)
    entry = cache_store.lookup_script(key)
    if not force and entry is not None and cache_store.entry_matches_hash(entry, compute_hash(script.read_bytes())):
        if as_json:
            print(json.dumps(_payload(script, entry, True, entry.exit_code == TIMEOUT_EXIT_CODE), sort_keys=True))
        else:
            _replay(script, entry)
        return process_exit_code(entry.exit_code)

    result = (runner or ScriptRunner(ctx)).run(script, forwarded, silent=as_json)
    fresh = to_cache_entry(result)
    cache_store.put(key, fresh)
    cache_store.save()

    if as_json:
        print(json.dumps(_payload(script, fresh, False, result.timed_out), sort_keys=True))
        return ERR_TIMEOUT if result.timed_out else process_exit_code(result.exit_code)
    if result.timed_out:
        print("\nScript timed out. Use --force to re-run.")
        return ERR_TIMEOUT
    print(f"Result cached. Use 'cache --status {ns.script}' to check.")
    return process_exit_code(result.exit_code)
