"""Fenced code block extraction for markdown chapters."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..core.language import EXECUTABLE_TAGS

FENCE_OPEN_RE = re.compile(r"^```(\w+)?(?:\s+(.*))?")
FENCE_CLOSE_RE = re.compile(r"^```\s*$")

SKIP_MARKERS = (
    "# skip-validation",
    "// skip-validation",
    "<!-- skip-validation -->",
)
SKIP_REASON = "Contains skip-validation marker"


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str
    start_line: int
    filename: str | None = None
    skip: bool = False
    skip_reason: str | None = None

    @property
    def executable(self) -> bool:
        return self.language in EXECUTABLE_TAGS


@dataclass(frozen=True)
class ExtractResult:
    blocks: list[CodeBlock]
    unclosed_line: int | None = None


def has_skip_marker(code: str) -> bool:
    return any(marker in code for marker in SKIP_MARKERS)


def scan_blocks(markdown: str) -> ExtractResult:
    blocks: list[CodeBlock] = []
    language = "text"
    filename: str | None = None
    start_line = 0
    body: list[str] | None = None

    for lineno, line in enumerate(markdown.split("\n"), start=1):
        if body is None:
            match = FENCE_OPEN_RE.match(line)
            if match:
                language = (match.group(1) or "text").lower()
                filename = (match.group(2) or "").strip() or None
                start_line = lineno
                body = []
            continue
        if FENCE_CLOSE_RE.match(line):
            code = "\n".join(body)
            skip = has_skip_marker(code)
            blocks.append(
                CodeBlock(
                    language=language,
                    code=code,
                    start_line=start_line,
                    filename=filename,
                    skip=skip,
                    skip_reason=SKIP_REASON if skip else None,
                )
            )
            body = None
            continue
        body.append(line)

    # A fence left open at end of input is dropped; callers may report it.
    return ExtractResult(blocks=blocks, unclosed_line=start_line if body is not None else None)


def extract_blocks(markdown: str) -> list[CodeBlock]:
    return scan_blocks(markdown).blocks


def executable_blocks(blocks: list[CodeBlock]) -> list[CodeBlock]:
    return [block for block in blocks if block.executable]
