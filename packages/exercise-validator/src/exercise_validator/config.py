"""Validator configuration: defaults, optional YAML file, environment overrides."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from .core.fs import read_json
from .errors import ScriptError
from .exit_codes import ERR_CONFIG

DEFAULT_CONFIG_NAME = ".exercise-validator.yaml"
SCHEMAS_ROOT = Path(__file__).resolve().parent / "schemas"
CONFIG_SCHEMA = SCHEMAS_ROOT / "config.schema.json"

ENV_CONFIG = "EXERCISE_VALIDATOR_CONFIG"
ENV_TIMEOUT_MS = "EXERCISE_VALIDATOR_TIMEOUT_MS"
ENV_CACHE_FILE = "EXERCISE_VALIDATOR_CACHE_FILE"
ENV_SHELL = "EXERCISE_VALIDATOR_SHELL"
ENV_SCRIPT_RUNTIME = "EXERCISE_VALIDATOR_SCRIPT_RUNTIME"


@dataclass(frozen=True)
class ValidatorConfig:
    timeout_ms: int = 120_000
    max_output_bytes: int = 10 * 1024
    cache_file: str = ".exercise-cache.json"
    temp_dir: str = ".exercise-validation-tmp"
    chapters_dir: str = "chapters"
    shell: tuple[str, ...] = ("bash",)
    script_runtime: tuple[str, ...] = ("bun", "run")
    strict_stderr: bool = True
    keep_temp: bool = False

    def cache_path(self, cwd: Path) -> Path:
        return _under(cwd, self.cache_file)

    def temp_path(self, cwd: Path) -> Path:
        return _under(cwd, self.temp_dir)

    def chapters_path(self, cwd: Path) -> Path:
        return _under(cwd, self.chapters_dir)


def _under(cwd: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else cwd / path


def _command(value: str | list[str]) -> tuple[str, ...]:
    parts = shlex.split(value) if isinstance(value, str) else [str(v) for v in value]
    if not parts:
        raise ScriptError("command setting must not be empty", ERR_CONFIG, "config_error")
    return tuple(parts)


def load_yaml(path: Path) -> Any:
    import yaml

    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ScriptError(f"cannot read config {path}: {exc}", ERR_CONFIG, "config_error") from exc


def validate_config_payload(payload: object, source: Path) -> dict[str, Any]:
    import jsonschema

    if payload is None:
        return {}
    try:
        jsonschema.validate(payload, read_json(CONFIG_SCHEMA))
    except jsonschema.ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ScriptError(f"invalid config {source}: {where}: {exc.message}", ERR_CONFIG, "config_error") from exc
    if not isinstance(payload, dict):
        raise ScriptError(f"invalid config {source}: top level must be a mapping", ERR_CONFIG, "config_error")
    return payload


def _from_mapping(base: ValidatorConfig, data: Mapping[str, Any]) -> ValidatorConfig:
    updates: dict[str, Any] = {}
    for key, value in data.items():
        if key in {"shell", "script_runtime"}:
            updates[key] = _command(value)
        else:
            updates[key] = value
    return replace(base, **updates)


def _apply_env(cfg: ValidatorConfig, env: Mapping[str, str]) -> ValidatorConfig:
    updates: dict[str, Any] = {}
    raw_timeout = env.get(ENV_TIMEOUT_MS)
    if raw_timeout:
        try:
            timeout_ms = int(raw_timeout)
        except ValueError as exc:
            raise ScriptError(f"{ENV_TIMEOUT_MS} must be an integer, got: {raw_timeout}", ERR_CONFIG, "config_error") from exc
        if timeout_ms <= 0:
            raise ScriptError(f"{ENV_TIMEOUT_MS} must be positive, got: {raw_timeout}", ERR_CONFIG, "config_error")
        updates["timeout_ms"] = timeout_ms
    if env.get(ENV_CACHE_FILE):
        updates["cache_file"] = env[ENV_CACHE_FILE]
    if env.get(ENV_SHELL):
        updates["shell"] = _command(env[ENV_SHELL])
    if env.get(ENV_SCRIPT_RUNTIME):
        updates["script_runtime"] = _command(env[ENV_SCRIPT_RUNTIME])
    return replace(cfg, **updates) if updates else cfg


def resolve_config_path(explicit: str | None, cwd: Path, env: Mapping[str, str]) -> Path | None:
    if explicit:
        return _under(cwd, explicit)
    if env.get(ENV_CONFIG):
        return _under(cwd, env[ENV_CONFIG])
    default = cwd / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def load_config(explicit: str | None = None, cwd: Path | None = None, env: Mapping[str, str] | None = None) -> ValidatorConfig:
    root = cwd or Path.cwd()
    environ = os.environ if env is None else env
    cfg = ValidatorConfig()
    path = resolve_config_path(explicit, root, environ)
    if path is not None:
        if not path.is_file():
            raise ScriptError(f"config file not found: {path}", ERR_CONFIG, "config_error")
        payload = load_yaml(path)
        cfg = _from_mapping(cfg, validate_config_payload(payload, path))
    return _apply_env(cfg, environ)
