from __future__ import annotations

from pathlib import Path

from .. import __version__
from .executor import ValidationResult
from .orchestrator import ValidationReport

TOOL = "exercise-validator"


def display_path(source: str, cwd: Path) -> str:
    path = Path(source)
    try:
        return path.relative_to(cwd).as_posix()
    except ValueError:
        return source


def _failure_detail(result: ValidationResult) -> str | None:
    if result.timed_out:
        return f"Timed out after {result.duration_ms}ms"
    if result.stderr:
        return result.stderr[:200]
    return None


def render_text(report: ValidationReport, cwd: Path) -> str:
    summary = report.summary
    verdict = "✓ PERFECT" if summary.is_perfect else "✗ NEEDS WORK"
    lines = [
        "",
        "Summary",
        "=======",
        f"Files validated: {summary.files}",
        f"Code blocks: {summary.total_blocks}",
        f"  ✓ Passed: {summary.passed}",
        f"  ✗ Failed: {summary.failed}",
        f"  ⊘ Skipped: {summary.skipped}",
    ]
    if report.check_only:
        lines.append(f"  ? Not cached: {report.misses}")
    lines += [
        "",
        "=" * 40,
        f"VALIDATION SCORE: {summary.score}/100 {verdict}",
        "=" * 40,
    ]
    failures = report.failures
    if failures:
        lines += ["", "Failures:"]
        for failure in failures:
            where = display_path(failure.source_file, cwd)
            lines.append(f"  {where}:{failure.block.start_line} [{failure.block.language}]")
            detail = _failure_detail(failure)
            if detail:
                lines.append(f"    {detail}")
    return "\n".join(lines) + "\n"


def report_payload(report: ValidationReport, cwd: Path) -> dict[str, object]:
    summary = report.summary
    return {
        "schema_version": 1,
        "tool": TOOL,
        "version": __version__,
        "kind": "validation-report",
        "status": "pass" if summary.is_perfect else "fail",
        "check_only": report.check_only,
        "files": [display_path(str(p), cwd) for p in report.files],
        "total_blocks": summary.total_blocks,
        "passed": summary.passed,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "not_cached": report.misses,
        "score": summary.score,
        "is_perfect": summary.is_perfect,
        "failures": [
            {
                "file": display_path(r.source_file, cwd),
                "line": r.block.start_line,
                "language": r.block.language,
                "exit_code": r.exit_code,
                "timed_out": r.timed_out,
                "cached": r.cached,
                "detail": _failure_detail(r),
            }
            for r in report.failures
        ],
    }
