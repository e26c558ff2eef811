"""Drives extraction, cache lookup and block execution over markdown files.

Blocks and files are processed strictly one after another. The cache is
written once, after the whole batch; an interrupted batch leaves previously
persisted entries untouched.
"""

from __future__ import annotations

import glob
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from ..cache.models import BlockCacheEntry, block_key
from ..core.hashing import block_hash
from ..core.logging import log_event
from ..errors import ScriptError
from ..exit_codes import ERR_NOT_FOUND, ERR_VALIDATION, OK
from ..markdown.extract import CodeBlock, executable_blocks, scan_blocks
from .executor import BlockExecutor, ValidationResult, cached_result, skipped_result

if TYPE_CHECKING:
    from ..cache.store import CacheStore
    from ..core.context import RunContext

GLOB_CHARS = ("*",)


def compute_score(passed: int, failed: int) -> int:
    tested = passed + failed
    if tested == 0:
        return 100
    # Half-up rounding of passed / tested * 100.
    return (passed * 200 + tested) // (2 * tested)


@dataclass(frozen=True)
class ValidationSummary:
    files: int
    total_blocks: int
    passed: int
    failed: int
    skipped: int

    @property
    def score(self) -> int:
        return compute_score(self.passed, self.failed)

    @property
    def is_perfect(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return OK if self.is_perfect else ERR_VALIDATION


def summarize(results: Iterable[ValidationResult], files: int) -> ValidationSummary:
    rows = list(results)
    return ValidationSummary(
        files=files,
        total_blocks=len(rows),
        passed=sum(1 for r in rows if r.passed),
        failed=sum(1 for r in rows if r.failed),
        skipped=sum(1 for r in rows if r.skipped),
    )


@dataclass
class ValidationReport:
    files: list[Path]
    results: list[ValidationResult] = field(default_factory=list)
    misses: int = 0
    check_only: bool = False

    @property
    def summary(self) -> ValidationSummary:
        return summarize(self.results, len(self.files))

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if r.failed]


def has_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in GLOB_CHARS)


def resolve_targets(ctx: RunContext, patterns: list[str], all_chapters: bool = False) -> list[Path]:
    found: list[Path] = []
    if all_chapters:
        chapters = ctx.chapters_dir
        if chapters.is_dir():
            found.extend(p for p in chapters.rglob("*.md") if p.is_file())
    else:
        for pattern in patterns:
            if has_glob(pattern):
                for match in glob.glob(pattern, root_dir=ctx.cwd, recursive=True):
                    path = Path(match) if Path(match).is_absolute() else ctx.cwd / match
                    if path.is_file():
                        found.append(path)
                continue
            path = Path(pattern) if Path(pattern).is_absolute() else ctx.cwd / pattern
            if not path.is_file():
                raise ScriptError(f"File not found: {pattern}", ERR_NOT_FOUND, "not_found")
            found.append(path)
    unique = sorted({p.resolve() for p in found})
    if not unique:
        raise ScriptError("No files found to validate", ERR_NOT_FOUND, "not_found")
    return unique


def _status_line(result: ValidationResult) -> str:
    if result.skipped:
        return f" ⊘ (skipped: {result.skip_reason})"
    if result.success:
        return f" ✓ ({result.duration_ms}ms)"
    if result.timed_out:
        return " ⏱ (timeout)"
    line = f" ✗ (exit {result.exit_code})"
    if result.stderr:
        line += f"\n    stderr: {result.stderr[:200]}"
    return line


class Validator:
    def __init__(self, ctx: RunContext, store: CacheStore, executor: BlockExecutor | None = None) -> None:
        self.ctx = ctx
        self.store = store
        self.executor = executor or BlockExecutor(ctx)

    @property
    def _chatty(self) -> bool:
        return self.ctx.output_format == "text" and not self.ctx.quiet

    def _say(self, text: str, progress_only: bool = True) -> None:
        if self._chatty and (self.ctx.progress or not progress_only):
            print(text, flush=True)

    def _record(self, key: str, result: ValidationResult) -> None:
        self.store.put(
            key,
            BlockCacheEntry(
                hash=result.hash,
                success=result.success,
                exit_code=result.exit_code,
                stderr=result.stderr,
                duration_ms=result.duration_ms,
                timestamp=datetime.now(timezone.utc).isoformat(),
            ),
        )

    def _validate_block(self, block: CodeBlock, source: str, report: ValidationReport) -> ValidationResult | None:
        if block.skip:
            result = skipped_result(block, source, block.skip_reason)
            self._say(f"  ⊘ Line {block.start_line} [{block.language}] (skipped: {result.skip_reason})")
            return result

        content_hash = block_hash(block.code, block.language)
        key = block_key(source, block.start_line, content_hash)
        entry = self.store.lookup_block(key)
        if entry is not None and self.store.entry_matches_hash(entry, content_hash):
            status = "✓" if entry.success else "✗"
            self._say(f"  {status} Line {block.start_line} [{block.language}] (cached)")
            return cached_result(block, source, entry)

        if report.check_only:
            report.misses += 1
            self._say(f"  ? Line {block.start_line} [{block.language}] (not cached)", progress_only=False)
            return None

        if self._chatty and self.ctx.progress:
            print(f"  ⋯ Line {block.start_line} [{block.language}]", end="", flush=True)
        result = self.executor.execute(block, source)
        if not result.skipped:
            self._record(key, result)
        self._say(_status_line(result))
        return result

    def validate_file(self, path: Path, report: ValidationReport) -> list[ValidationResult]:
        source = str(path)
        scanned = scan_blocks(path.read_text(encoding="utf-8", errors="replace"))
        if scanned.unclosed_line is not None:
            log_event(self.ctx, "warn", "markdown", "unclosed-fence", file=source, line=scanned.unclosed_line)
        blocks = executable_blocks(scanned.blocks)
        self._say(f"\n{path.name}: {len(blocks)} executable blocks")
        results: list[ValidationResult] = []
        for block in blocks:
            result = self._validate_block(block, source, report)
            if result is not None:
                results.append(result)
        return results

    def validate(self, files: list[Path], check_only: bool = False) -> ValidationReport:
        report = ValidationReport(files=list(files), check_only=check_only)
        self._say(f"Validating {len(files)} file(s)...", progress_only=False)
        for path in files:
            report.results.extend(self.validate_file(path, report))
        if not check_only:
            self.store.save()
        summary = report.summary
        log_event(
            self.ctx,
            "debug",
            "validate",
            "finish",
            files=summary.files,
            passed=summary.passed,
            failed=summary.failed,
            skipped=summary.skipped,
            score=summary.score,
        )
        return report
