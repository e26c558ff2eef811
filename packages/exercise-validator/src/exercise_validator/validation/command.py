from __future__ import annotations

import argparse
import json
from typing import TYPE_CHECKING

from ..cache.store import CacheStore, open_store
from .executor import BlockExecutor
from .orchestrator import Validator, resolve_targets
from .report import render_text, report_payload

if TYPE_CHECKING:
    from ..core.context import RunContext


def configure_validate_parser(sub: argparse._SubParsersAction) -> None:
    val_p = sub.add_parser("validate", help="execute the code blocks embedded in markdown files")
    val_p.add_argument("targets", nargs="*", help="markdown files or glob patterns")
    val_p.add_argument("--all", dest="all_chapters", action="store_true", help="validate every markdown file under the chapters directory")
    val_p.add_argument("--check", action="store_true", help="report from the cache only, never execute or save")
    val_p.add_argument("-v", "--verbose", dest="block_verbose", action="store_true", help="print one progress line per block")


def run_validate_command(
    ctx: RunContext,
    ns: argparse.Namespace,
    store: CacheStore | None = None,
    executor: BlockExecutor | None = None,
) -> int:
    files = resolve_targets(ctx, list(ns.targets or []), bool(ns.all_chapters))
    cache_store = store or open_store(ctx)
    cache_store.load()
    report = Validator(ctx, cache_store, executor).validate(files, check_only=bool(ns.check))
    if ctx.output_format == "json":
        print(json.dumps(report_payload(report, ctx.cwd), sort_keys=True))
    else:
        print(render_text(report, ctx.cwd), end="")
    return report.summary.exit_code
