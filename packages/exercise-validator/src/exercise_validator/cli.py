from __future__ import annotations

import argparse
import json
import sys

from . import __version__
from .cache.command import configure_cache_parser, run_cache_command
from .core.context import RunContext
from .core.language import SCRIPT_SUFFIXES
from .core.logging import log_event
from .errors import ScriptError
from .exit_codes import ERR_INTERNAL, ERR_USAGE, OK
from .run.command import configure_run_parser, run_run_command
from .validation.command import configure_validate_parser, run_validate_command
from .validation.orchestrator import has_glob

TOOL = "exercise-validator"
COMMANDS = ("run", "validate", "cache")
# Global options that consume the following token.
_VALUE_OPTIONS = frozenset({"--config", "--format"})

HELP_TEXT = """\
Unified Exercise Validator

Runs example scripts and the code blocks embedded in markdown chapters,
caching results by content hash so unchanged code is never re-executed.

examples:
  exercise-validator run examples/hello.ts
  exercise-validator run --force scripts/setup.sh arg1
  exercise-validator validate chapters/01-intro.md
  exercise-validator validate --all
  exercise-validator validate --check 'chapters/**/*.md'
  exercise-validator cache --status examples/hello.ts
  exercise-validator cache --stats
  exercise-validator cache --clear

shorthand:
  exercise-validator <script.ts|.tsx|.js|.sh|.bash>   same as `run`
  exercise-validator <file.md|glob>                   same as `validate`
"""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ScriptError(message, ERR_USAGE, "usage_error")


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog=TOOL,
        description=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--version", action="version", version=f"{TOOL} {__version__}")
    p.add_argument("--config", help="path to a YAML config file")
    p.add_argument("--format", choices=["text", "json"], default=None, help="output format")
    p.add_argument("--json", action="store_true", help="shorthand for --format json")
    p.add_argument("--log-json", action="store_true", help="emit log events as JSON lines on stderr")
    vg = p.add_mutually_exclusive_group()
    vg.add_argument("--verbose", action="store_true", help="enable debug diagnostics")
    vg.add_argument("--quiet", action="store_true", help="only emit errors")
    sub = p.add_subparsers(dest="cmd")
    configure_run_parser(sub)
    configure_validate_parser(sub)
    configure_cache_parser(sub)
    return p


def _first_positional(argv: list[str]) -> int | None:
    skip = False
    for idx, token in enumerate(argv):
        if skip:
            skip = False
            continue
        if token in _VALUE_OPTIONS:
            skip = True
            continue
        if token.startswith("-"):
            continue
        return idx
    return None


def normalize_argv(argv: list[str]) -> list[str]:
    """Rewrite the bare-path shorthand into an explicit subcommand."""
    idx = _first_positional(argv)
    if idx is None:
        return argv
    token = argv[idx]
    if token in COMMANDS:
        return argv
    if token.lower().endswith(SCRIPT_SUFFIXES):
        return [*argv[:idx], "run", *argv[idx:]]
    if token.lower().endswith(".md") or has_glob(token):
        return [*argv[:idx], "validate", *argv[idx:]]
    raise ScriptError(f"Unknown command: {token}", ERR_USAGE, "usage_error")


def _wants_help(argv: list[str]) -> bool:
    if not argv:
        return True
    idx = _first_positional(argv)
    head = argv if idx is None else argv[:idx]
    return any(token in {"-h", "--help"} for token in head)


def _report_error(exc: ScriptError, as_json: bool) -> None:
    if as_json:
        payload = {
            "schema_version": 1,
            "tool": TOOL,
            "status": "fail",
            "error": {"message": str(exc), "code": exc.code, "kind": exc.kind},
        }
        print(json.dumps(payload, sort_keys=True), file=sys.stderr)
    else:
        print(f"Error: {exc}", file=sys.stderr)


def _json_requested(argv: list[str]) -> bool:
    if "--json" in argv:
        return True
    return any(a == "--format=json" for a in argv) or any(
        a == "--format" and b == "json" for a, b in zip(argv, argv[1:])
    )


def main(argv: list[str] | None = None) -> int:
    raw = list(sys.argv[1:] if argv is None else argv)
    p = build_parser()
    as_json = _json_requested(raw)
    try:
        if _wants_help(raw):
            p.print_help()
            return OK
        ns = p.parse_args(normalize_argv(raw))
        if ns.cmd is None:
            p.print_help()
            return OK
        fmt = "json" if ns.json else ns.format
        ctx = RunContext.from_args(
            ns.config,
            fmt,
            ns.verbose,
            ns.quiet,
            ns.log_json,
            progress=bool(getattr(ns, "block_verbose", False)),
        )
        as_json = ctx.output_format == "json"
        log_event(ctx, "debug", "cli", "start", cmd=ns.cmd, fmt=ctx.output_format)
        if ns.cmd == "run":
            return run_run_command(ctx, ns)
        if ns.cmd == "validate":
            return run_validate_command(ctx, ns)
        if ns.cmd == "cache":
            return run_cache_command(ctx, ns)
        raise ScriptError(f"Unknown command: {ns.cmd}", ERR_USAGE, "usage_error")
    except ScriptError as exc:
        _report_error(exc, as_json)
        return exc.code
    except SystemExit as exc:
        # argparse --help / --version inside a subcommand
        if exc.code is None:
            return OK
        return exc.code if isinstance(exc.code, int) else ERR_USAGE
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return ERR_INTERNAL
    except Exception as exc:  # pragma: no cover
        if as_json:
            print(
                json.dumps(
                    {
                        "schema_version": 1,
                        "tool": TOOL,
                        "status": "fail",
                        "error": {"message": f"internal error: {exc}", "code": ERR_INTERNAL},
                    },
                    sort_keys=True,
                ),
                file=sys.stderr,
            )
        else:
            print(f"internal error: {exc}", file=sys.stderr)
        return ERR_INTERNAL


if __name__ == "__main__":
    raise SystemExit(main())
