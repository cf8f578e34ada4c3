"""Line-oriented parser for the patch protocol."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from edit_agent.config import PatchConfig
from edit_agent.errors import PatchParseError
from edit_agent.patch.protocol import (
    BLOCK_OPEN_LINE,
    CLOSE_LINE,
    DIVIDER_LINE,
    NOTE_PREFIX,
    SEARCH_OPEN_LINE,
)
from edit_agent.types import BlockReplace, PatchOp, SearchReplace

_CLOSING_ONLY = re.compile(r"^(?:[\s)\]}>;,]|</[A-Za-z][\w.-]*>)*$")


@dataclass(slots=True)
class ParsedPatch:
    ops: list[PatchOp] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class PatchParser:
    """Turns raw model output into typed ops.

    The parser is a small state machine over lines: `outside`, `anchor`,
    `replacement` and `block`. Text outside blocks is ignored except for
    `///` note lines. Any structural problem (a block that never closes, a
    sentinel in the wrong state, an anchor that is only closing brackets)
    raises `PatchParseError` with the 1-based line number; nothing here
    looks at the document the ops will be applied to.
    """

    def __init__(self, config: PatchConfig | None = None) -> None:
        self.config = config or PatchConfig()

    def parse(self, text: str) -> ParsedPatch:
        result = ParsedPatch()
        state = "outside"
        opened_at = 0
        target = ""
        anchor: list[str] = []
        body: list[str] = []

        for number, raw in enumerate(text.split("\n"), start=1):
            line = raw.rstrip("\r")
            marker = line.strip()

            if state == "outside":
                if SEARCH_OPEN_LINE.match(marker):
                    state, opened_at, anchor = "anchor", number, []
                elif (block := BLOCK_OPEN_LINE.match(marker)) is not None:
                    state, opened_at, body = "block", number, []
                    target = block.group("target").strip()
                elif marker.startswith(NOTE_PREFIX):
                    note = marker.strip("/").strip()
                    if note:
                        result.notes.append(note)
                elif DIVIDER_LINE.match(marker) or CLOSE_LINE.match(marker):
                    raise PatchParseError(number, "sentinel outside of a patch block")
                continue

            if _is_open_sentinel(marker):
                raise PatchParseError(number, f"new block opened before block at line {opened_at} closed")

            if state == "anchor":
                if DIVIDER_LINE.match(marker):
                    state, body = "replacement", []
                elif CLOSE_LINE.match(marker):
                    raise PatchParseError(number, "search block closed without a ==== divider")
                else:
                    anchor.append(line)
            elif state == "replacement":
                if CLOSE_LINE.match(marker):
                    result.ops.append(self._search_replace(anchor, body, opened_at))
                    state = "outside"
                elif DIVIDER_LINE.match(marker):
                    raise PatchParseError(number, "second ==== divider in search block")
                else:
                    body.append(line)
            elif state == "block":
                if CLOSE_LINE.match(marker):
                    result.ops.append(
                        BlockReplace(
                            target_id=target,
                            replacement=_join(body),
                            line_number=opened_at,
                        )
                    )
                    state = "outside"
                else:
                    body.append(line)

        if state != "outside":
            raise PatchParseError(opened_at, "block never closed (output truncated?)")
        return result

    def _search_replace(self, anchor_lines: list[str], body: list[str], line_number: int) -> SearchReplace:
        anchor = _join(anchor_lines)
        if not anchor.strip():
            raise PatchParseError(line_number, "empty search anchor")
        if _CLOSING_ONLY.match(anchor):
            raise PatchParseError(line_number, "anchor is only closing delimiters and cannot be unique")
        context_lines = sum(1 for line in anchor.split("\n") if line.strip())
        if context_lines < self.config.min_anchor_lines:
            raise PatchParseError(
                line_number,
                f"anchor has {context_lines} lines, at least {self.config.min_anchor_lines} required",
            )
        return SearchReplace(
            anchor=anchor,
            replacement=_join(body),
            context_lines=context_lines,
            line_number=line_number,
        )


def parse_patch(text: str, config: PatchConfig | None = None) -> ParsedPatch:
    return PatchParser(config).parse(text)


def _is_open_sentinel(marker: str) -> bool:
    return bool(SEARCH_OPEN_LINE.match(marker) or BLOCK_OPEN_LINE.match(marker))


def _join(lines: list[str]) -> str:
    """Join block lines, dropping blank lines at either end."""
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])
