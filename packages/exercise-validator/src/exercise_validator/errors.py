from __future__ import annotations

from dataclasses import dataclass

from .exit_codes import ERR_EXECUTION, ERR_INTERNAL


@dataclass
class ScriptError(Exception):
    message: str
    code: int = ERR_INTERNAL
    kind: str = "generic_error"

    def __str__(self) -> str:
        return self.message


class ExecutionError(ScriptError):
    """The interpreter for a script could not be started."""

    def __init__(self, message: str, command: list[str] | None = None) -> None:
        super().__init__(message, ERR_EXECUTION, "spawn_error")
        self.command = list(command or [])
