from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import RunContext

_LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}


def _enabled(ctx: RunContext | None, level: str) -> bool:
    rank = _LEVELS.get(level, _LEVELS["info"])
    if ctx is None:
        return rank >= _LEVELS["info"]
    if ctx.quiet:
        return rank >= _LEVELS["error"]
    if rank < _LEVELS["info"]:
        return ctx.verbose
    return True


def log_event(ctx: RunContext | None, level: str, component: str, action: str, **fields: object) -> None:
    if not _enabled(ctx, level):
        return
    run_id = ctx.run_id if ctx is not None else "local"
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "run_id": run_id,
        "component": component,
        "action": action,
        **fields,
    }
    if ctx is not None and ctx.log_json:
        sys.stderr.write(json.dumps(payload, sort_keys=True) + "\n")
        return
    core = f"ts={payload['ts']} level={level} run_id={run_id} component={component} action={action}"
    extras = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
    sys.stderr.write((core if not extras else f"{core} {extras}") + "\n")
