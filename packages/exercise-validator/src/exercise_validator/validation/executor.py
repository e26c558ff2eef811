from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.hashing import block_hash
from ..core.language import language_from_tag, runtime_for
from ..core.logging import log_event
from ..core.process import Spawner, child_env, run_command, spawn_process
from ..exit_codes import TIMEOUT_EXIT_CODE
from ..markdown.extract import CodeBlock

if TYPE_CHECKING:
    from ..cache.models import BlockCacheEntry
    from ..core.context import RunContext

BLOCK_ENV_OVERRIDES: dict[str, str] = {"NODE_OPTIONS": "--max-old-space-size=256"}


@dataclass(frozen=True)
class ValidationResult:
    source_file: str
    block: CodeBlock
    hash: str
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool
    skipped: bool
    skip_reason: str | None = None
    cached: bool = False

    @property
    def passed(self) -> bool:
        return self.success and not self.skipped

    @property
    def failed(self) -> bool:
        return not self.success and not self.skipped


def skipped_result(block: CodeBlock, source_file: str, reason: str | None) -> ValidationResult:
    return ValidationResult(
        source_file=source_file,
        block=block,
        hash=block_hash(block.code, block.language),
        success=True,
        exit_code=0,
        stdout="",
        stderr="",
        duration_ms=0,
        timed_out=False,
        skipped=True,
        skip_reason=reason,
    )


def cached_result(block: CodeBlock, source_file: str, entry: BlockCacheEntry) -> ValidationResult:
    return ValidationResult(
        source_file=source_file,
        block=block,
        hash=entry.hash,
        success=entry.success,
        exit_code=entry.exit_code,
        stdout="",
        stderr=entry.stderr,
        duration_ms=entry.duration_ms,
        timed_out=entry.exit_code == TIMEOUT_EXIT_CODE,
        skipped=False,
        cached=True,
    )


def is_success(exit_code: int, stderr: str, timed_out: bool, strict_stderr: bool = True) -> bool:
    if timed_out or exit_code != 0:
        return False
    return not (strict_stderr and stderr)


class BlockExecutor:
    """Materializes a code block as a temp script and runs it."""

    def __init__(self, ctx: RunContext, spawn: Spawner | None = None) -> None:
        self.ctx = ctx
        self._spawn = spawn or spawn_process

    def temp_file_for(self, block: CodeBlock, extension: str) -> Path:
        return self.ctx.temp_dir / f"block-{block_hash(block.code, block.language)}{extension}"

    def execute(self, block: CodeBlock, source_file: str, timeout_ms: int | None = None) -> ValidationResult:
        if block.skip:
            return skipped_result(block, source_file, block.skip_reason)
        cfg = self.ctx.config
        runtime = runtime_for(language_from_tag(block.language), cfg.shell, cfg.script_runtime)
        if runtime is None:
            return skipped_result(block, source_file, f"Unsupported language: {block.language}")

        limit_ms = timeout_ms if timeout_ms is not None else cfg.timeout_ms
        content_hash = block_hash(block.code, block.language)
        temp_file = self.temp_file_for(block, runtime.extension)
        temp_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file.write_text(block.code, encoding="utf-8")
        try:
            result = run_command(
                [*runtime.command, str(temp_file)],
                timeout_ms=limit_ms,
                env=child_env(BLOCK_ENV_OVERRIDES),
                cwd=self.ctx.cwd,
                max_output_bytes=cfg.max_output_bytes,
                spawn=self._spawn,
            )
        finally:
            if not cfg.keep_temp:
                temp_file.unlink(missing_ok=True)
                log_event(self.ctx, "debug", "executor", "temp-cleanup", path=str(temp_file))
        log_event(
            self.ctx,
            "debug",
            "executor",
            "block-done",
            file=source_file,
            line=block.start_line,
            code=result.exit_code,
            duration_ms=result.duration_ms,
        )
        return ValidationResult(
            source_file=source_file,
            block=block,
            hash=content_hash,
            success=is_success(result.exit_code, result.stderr, result.timed_out, cfg.strict_stderr),
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=result.duration_ms,
            timed_out=result.timed_out,
            skipped=False,
        )
