from __future__ import annotations

import socket
from pathlib import Path

import pytest
from hypothesis import settings

from exercise_validator.config import ValidatorConfig
from exercise_validator.core.context import RunContext

_ALLOWED_MARKERS = {"unit", "integration", "slow"}

settings.register_profile("exercise-validator", deadline=None)
settings.load_profile("exercise-validator")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        names = {mark.name for mark in item.iter_markers()}
        if not names.intersection(_ALLOWED_MARKERS):
            item.add_marker("unit")


@pytest.fixture(autouse=True)
def no_network_for_unit(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    if request.node.get_closest_marker("integration") or request.node.get_closest_marker("slow"):
        return

    def _blocked(*_args: object, **_kwargs: object) -> socket.socket:
        raise RuntimeError("network disabled in unit tests")

    def _blocked_connect(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("network disabled in unit tests")

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket.socket, "connect", _blocked_connect)


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def make_ctx(workspace: Path):
    def _make(**overrides: object) -> RunContext:
        output_format = overrides.pop("output_format", "text")
        verbose = bool(overrides.pop("verbose", False))
        progress = bool(overrides.pop("progress", False))
        cfg = ValidatorConfig(**overrides)  # type: ignore[arg-type]
        return RunContext(
            run_id="pytest-run",
            cwd=workspace,
            config=cfg,
            output_format=output_format,  # type: ignore[arg-type]
            verbose=verbose,
            progress=progress,
        )

    return _make
