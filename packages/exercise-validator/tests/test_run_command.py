from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from exercise_validator.cache.models import script_key
from exercise_validator.cache.store import MemoryCacheStore
from exercise_validator.core import process
from exercise_validator.errors import ScriptError
from exercise_validator.run.command import resolve_script, run_run_command


@pytest.fixture
def spawn_calls(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    calls: list[list[str]] = []
    real = process.spawn_process

    def _spy(cmd, env, cwd=None):
        calls.append(list(cmd))
        return real(cmd, env, cwd)

    monkeypatch.setattr(process, "spawn_process", _spy)
    return calls


def _ns(script: str, *args: str, force: bool = False) -> argparse.Namespace:
    return argparse.Namespace(script=script, args=list(args), force=force)


def test_second_run_replays_without_spawning(
    make_ctx, workspace: Path, spawn_calls: list[list[str]], capsys: pytest.CaptureFixture[str]
) -> None:
    (workspace / "hello.sh").write_text('echo "Hello from test fixture!"\n', encoding="utf-8")
    ctx = make_ctx()
    store = MemoryCacheStore(ctx=ctx)

    assert run_run_command(ctx, _ns("hello.sh"), store) == 0
    first = capsys.readouterr().out
    assert run_run_command(ctx, _ns("hello.sh"), store) == 0
    second = capsys.readouterr().out

    assert len(spawn_calls) == 1
    assert "Hello from test fixture!" in first
    assert "CACHED: hello.sh" in second
    assert "Hello from test fixture!" in second
    assert "Skipped execution (hash unchanged)" in second
    assert list(store.cache.entries) == [script_key(workspace / "hello.sh")]


def test_force_always_spawns(make_ctx, workspace: Path, spawn_calls: list[list[str]]) -> None:
    (workspace / "x.sh").write_text("echo x\n", encoding="utf-8")
    ctx = make_ctx()
    store = MemoryCacheStore(ctx=ctx)
    run_run_command(ctx, _ns("x.sh"), store)
    run_run_command(ctx, _ns("x.sh", force=True), store)
    run_run_command(ctx, _ns("x.sh", "--force"), store)
    assert len(spawn_calls) == 3
    assert all("--force" not in call for call in spawn_calls)


def test_edit_invalidates_cached_run(make_ctx, workspace: Path, spawn_calls: list[list[str]]) -> None:
    script = workspace / "e.sh"
    script.write_text("echo one\n", encoding="utf-8")
    ctx = make_ctx()
    store = MemoryCacheStore(ctx=ctx)
    run_run_command(ctx, _ns("e.sh"), store)
    script.write_text("echo two\n", encoding="utf-8")
    run_run_command(ctx, _ns("e.sh"), store)
    assert len(spawn_calls) == 2
    assert store.lookup_script(script_key(script)).stdout == "two\n"


def test_cached_failure_exit_code_is_returned(make_ctx, workspace: Path, spawn_calls: list[list[str]]) -> None:
    (workspace / "f.sh").write_text("exit 5\n", encoding="utf-8")
    ctx = make_ctx()
    store = MemoryCacheStore(ctx=ctx)
    assert run_run_command(ctx, _ns("f.sh"), store) == 5
    assert run_run_command(ctx, _ns("f.sh"), store) == 5
    assert len(spawn_calls) == 1


@pytest.mark.slow
def test_timeout_is_fatal(make_ctx, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (workspace / "slow.sh").write_text("sleep 10\n", encoding="utf-8")
    ctx = make_ctx(timeout_ms=300)
    store = MemoryCacheStore(ctx=ctx)
    assert run_run_command(ctx, _ns("slow.sh"), store) == 1
    assert "Script timed out. Use --force to re-run." in capsys.readouterr().out
    assert store.lookup_script(script_key(workspace / "slow.sh")).exit_code == -1


def test_resolve_script_errors(make_ctx, workspace: Path) -> None:
    ctx = make_ctx()
    (workspace / "readme.md").write_text("", encoding="utf-8")
    with pytest.raises(ScriptError, match="No script path provided"):
        resolve_script(ctx, None)
    with pytest.raises(ScriptError, match="Script not found: gone.ts"):
        resolve_script(ctx, "gone.ts")
    with pytest.raises(ScriptError, match="got: readme.md"):
        resolve_script(ctx, "readme.md")
