from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from ..config import ValidatorConfig, load_config

OutputFormat = Literal["text", "json"]


@dataclass(frozen=True)
class RunContext:
    run_id: str
    cwd: Path
    config: ValidatorConfig = field(default_factory=ValidatorConfig)
    output_format: OutputFormat = "text"
    verbose: bool = False
    progress: bool = False
    quiet: bool = False
    log_json: bool = False

    @property
    def cache_file(self) -> Path:
        return self.config.cache_path(self.cwd)

    @property
    def temp_dir(self) -> Path:
        return self.config.temp_path(self.cwd)

    @property
    def chapters_dir(self) -> Path:
        return self.config.chapters_path(self.cwd)

    @classmethod
    def from_args(
        cls,
        config_path: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: bool = False,
        quiet: bool = False,
        log_json: bool = False,
        progress: bool = False,
        cwd: Path | None = None,
    ) -> "RunContext":
        root = (cwd or Path.cwd()).resolve()
        default_run = f"exv-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}"
        return cls(
            run_id=os.environ.get("RUN_ID", default_run),
            cwd=root,
            config=load_config(config_path, root),
            output_format=output_format or "text",
            verbose=verbose,
            quiet=quiet,
            log_json=log_json,
            progress=progress,
        )
