"""Closed set of languages the validator knows how to execute."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class Language(enum.Enum):
    SHELL = "shell"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    UNSUPPORTED = "unsupported"


_TAGS: dict[str, Language] = {
    "bash": Language.SHELL,
    "sh": Language.SHELL,
    "typescript": Language.TYPESCRIPT,
    "ts": Language.TYPESCRIPT,
    "javascript": Language.JAVASCRIPT,
    "js": Language.JAVASCRIPT,
}

_SUFFIXES: dict[str, Language] = {
    ".sh": Language.SHELL,
    ".bash": Language.SHELL,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".js": Language.JAVASCRIPT,
}

EXECUTABLE_TAGS = frozenset(_TAGS)
SCRIPT_SUFFIXES = tuple(_SUFFIXES)


@dataclass(frozen=True)
class LanguageRuntime:
    extension: str
    command: tuple[str, ...]


def language_from_tag(tag: str | None) -> Language:
    return _TAGS.get((tag or "").strip().lower(), Language.UNSUPPORTED)


def language_from_path(path: Path | str) -> Language:
    return _SUFFIXES.get(Path(path).suffix.lower(), Language.UNSUPPORTED)


def runtime_for(language: Language, shell: tuple[str, ...], script_runtime: tuple[str, ...]) -> LanguageRuntime | None:
    if language is Language.SHELL:
        return LanguageRuntime(".sh", shell)
    if language is Language.TYPESCRIPT:
        return LanguageRuntime(".ts", script_runtime)
    if language is Language.JAVASCRIPT:
        return LanguageRuntime(".js", script_runtime)
    return None
