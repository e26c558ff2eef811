from __future__ import annotations

import json
from pathlib import Path

import pytest

from exercise_validator.cache.models import (
    CACHE_VERSION,
    BlockCacheEntry,
    CacheFormatError,
    ScriptCacheEntry,
    block_key,
    cache_from_json,
    script_key,
)
from exercise_validator.cache.store import FileCacheStore, MemoryCacheStore
from exercise_validator.core.hashing import compute_hash


def _script_entry(content_hash: str = "0123456789abcdef", exit_code: int = 0) -> ScriptCacheEntry:
    return ScriptCacheEntry(
        hash=content_hash,
        last_run="2026-01-01T00:00:00+00:00",
        exit_code=exit_code,
        stdout="out\n",
        stderr="",
        duration_ms=12,
    )


def _block_entry(success: bool = True, duration_ms: int = 5) -> BlockCacheEntry:
    return BlockCacheEntry(
        hash="fedcba9876543210",
        success=success,
        exit_code=0 if success else 2,
        stderr="" if success else "boom",
        duration_ms=duration_ms,
        timestamp="2026-01-01T00:00:00+00:00",
    )


def test_missing_file_loads_empty_cache(tmp_path: Path) -> None:
    store = FileCacheStore(tmp_path / "cache.json")
    cache = store.load()
    assert cache.version == CACHE_VERSION
    assert cache.entries == {}
    assert store.exists() is False


def test_save_then_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    store = FileCacheStore(path)
    store.load()
    s_key = script_key(tmp_path / "hello.ts")
    b_key = block_key("chapters/a.md", 3, "fedcba9876543210")
    store.put(s_key, _script_entry())
    store.put(b_key, _block_entry())
    store.save()

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == CACHE_VERSION
    assert set(payload["entries"]) == {s_key, b_key}

    reloaded = FileCacheStore(path)
    reloaded.load()
    assert reloaded.lookup_script(s_key) == _script_entry()
    assert reloaded.lookup_block(b_key) == _block_entry()
    assert reloaded.lookup_script(b_key) is None


def test_save_leaves_no_temp_files(tmp_path: Path) -> None:
    store = FileCacheStore(tmp_path / "cache.json")
    store.load()
    store.put(script_key(tmp_path / "x.sh"), _script_entry())
    store.save()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["cache.json"]


def test_version_mismatch_discards_entries(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"version": "1.0", "entries": {"script:/x.sh": {}}}), encoding="utf-8")
    cache = FileCacheStore(path).load()
    assert cache.entries == {}
    assert cache.version == CACHE_VERSION
    err = capsys.readouterr().err
    assert "action=version-mismatch" in err
    assert "starting fresh" in err


def test_corrupt_json_starts_fresh(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    assert FileCacheStore(path).load().entries == {}
    assert "action=corrupt" in capsys.readouterr().err


def test_schema_violation_starts_fresh() -> None:
    bad = {"version": CACHE_VERSION, "entries": {"block:a.md:1:abc": {"kind": "block", "hash": "abc"}}}
    store = MemoryCacheStore(json.dumps(bad))
    assert store.load().entries == {}


def test_key_prefix_must_match_kind() -> None:
    entry = {
        "kind": "script",
        "hash": "0123456789abcdef",
        "last_run": "t",
        "exit_code": 0,
        "stdout": "",
        "stderr": "",
        "duration_ms": 1,
    }
    with pytest.raises(CacheFormatError):
        cache_from_json({"version": CACHE_VERSION, "entries": {"block:a.md:1:abc": entry}})


def test_hash_mismatch_is_a_miss(tmp_path: Path) -> None:
    store = MemoryCacheStore()
    store.load()
    script = tmp_path / "a.sh"
    script.write_text("echo one\n", encoding="utf-8")
    key = script_key(script)
    store.put(key, _script_entry(compute_hash(script.read_bytes())))
    assert store.entry_matches_hash(store.lookup_script(key), compute_hash(script.read_bytes()))
    script.write_text("echo two\n", encoding="utf-8")
    assert not store.entry_matches_hash(store.lookup_script(key), compute_hash(script.read_bytes()))
    assert not store.entry_matches_hash(None, "anything")


def test_script_key_is_absolute(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert script_key(Path("demo.ts")) == f"script:{(tmp_path / 'demo.ts').resolve()}"


def test_clear_reports_removed_count(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    store = FileCacheStore(path)
    store.load()
    for idx in range(5):
        store.put(block_key("a.md", idx + 1, "fedcba9876543210"), _block_entry())
    store.save()

    again = FileCacheStore(path)
    again.load()
    assert again.clear() == 5
    assert json.loads(path.read_text(encoding="utf-8"))["entries"] == {}


def test_stats_tally_kinds_and_outcomes() -> None:
    store = MemoryCacheStore()
    store.load()
    store.put(script_key(Path("/tmp/s.sh")), _script_entry())
    store.put(block_key("a.md", 1, "fedcba9876543210"), _block_entry(True, 100))
    store.put(block_key("a.md", 9, "fedcba9876543210"), _block_entry(False, 250))
    stats = store.stats()
    assert stats.version == CACHE_VERSION
    assert stats.total_entries == 3
    assert stats.script_count == 1
    assert stats.block_count == 2
    assert stats.success_count == 1
    assert stats.failure_count == 1
    assert stats.total_duration_ms == 12 + 100 + 250


def test_non_object_entry_is_rejected() -> None:
    bad = {"version": CACHE_VERSION, "entries": {"block:a.md:1:abc": ["not", "an", "object"]}}
    with pytest.raises(CacheFormatError):
        cache_from_json(bad)
    assert MemoryCacheStore(json.dumps(bad)).load().entries == {}
