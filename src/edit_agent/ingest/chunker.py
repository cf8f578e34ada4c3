"""Declaration-level chunking of single-file web applications."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from edit_agent.config import ChunkingConfig
from edit_agent.types import Chunk, ChunkKind

logger = logging.getLogger(__name__)

_EMBEDDED_BLOCK = re.compile(
    r"<(?P<tag>style|script)\b[^>]*>(?P<body>.*?)</(?P=tag)\s*>",
    flags=re.IGNORECASE | re.DOTALL,
)
_MARKUP_HINT = re.compile(
    r"<(?:!doctype|html|head|body)\b|^[ \t]*<(?:script|style)\b",
    flags=re.IGNORECASE | re.MULTILINE,
)
_DECLARATION = re.compile(
    r"^(?:export\s+(?:default\s+)?)?(?:async\s+)?"
    r"(?:function\*?\s+(?P<fn>[A-Za-z_$][\w$]*)"
    r"|class\s+(?P<cls>[A-Za-z_$][\w$]*)"
    r"|(?:const|let|var)\s+(?P<var>[A-Za-z_$][\w$]*)\s*(?::[^=]+)?=(?!=)\s*(?P<rhs>.*))"
)
_CALLABLE_RHS = re.compile(
    r"^(?:async\s+)?function\b|^(?:React\.)?(?:memo|forwardRef|lazy)\s*\(|^styled[.(]"
)
_COMPONENT_CLASS = re.compile(r"extends\s+(?:React\.)?(?:Pure)?Component\b")
_CONSTANT_NAME = re.compile(r"[A-Z][A-Z0-9_]*")

_CODE_MODES = {"code", "line_comment"}
_CONTINUATION_STARTS = (".", "?", ":", "+", "-", "&&", "||", "<", ",", "=")
_CONTINUATION_ENDS = ("=", "+", "-", "*", ",", "?", ":", "&&", "||", ".")
_REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")
_JSX_PRECEDERS = set("(,=:[!&|?{};>")
_EXPRESSION_KEYWORDS = {
    "return", "typeof", "case", "do", "else", "in", "of", "new", "delete",
    "void", "throw", "yield", "await", "default",
}


@dataclass(slots=True)
class _Unit:
    start_line: int
    name: str | None
    kind: ChunkKind
    literal: bool = False


class SourceChunker:
    """Splits one source document into named, non-overlapping chunks.

    The document is first partitioned into regions: markup, embedded
    `<style>` bodies and embedded `<script>` bodies. A document without any
    markup is treated as one script region. Script regions are then split at
    top-level statements: a line that starts at brace depth zero opens a new
    unit unless it is a comment, starts with a closing bracket, or continues
    the previous statement (a leading `.`/`?`/`&&`, or a previous line ending
    in an operator such as `=` or `+`). Declarations get
    their declared name as id; runs of other top-level statements are grouped
    into one `other` chunk per contiguous run.

    Chunks tile the whole document, so concatenating their contents gives the
    source back. Any unexpected failure degrades to a single chunk spanning the
    whole document.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, source: str) -> list[Chunk]:
        if not source:
            return []
        try:
            return self._chunk(source)
        except Exception:  # noqa: BLE001 - chunking must be total
            logger.warning("chunking failed, falling back to whole-document chunk", exc_info=True)
            region = "markup" if _MARKUP_HINT.search(source) else "script"
            return [
                Chunk(
                    id="document",
                    kind=ChunkKind.OTHER,
                    start_offset=0,
                    end_offset=len(source),
                    content=source,
                    region=region,
                )
            ]

    def _chunk(self, source: str) -> list[Chunk]:
        seen: set[str] = set()
        chunks: list[Chunk] = []

        for start, end, region in self._regions(source):
            if region == "markup":
                chunks.append(
                    self._make(source, start, end, _unique("markup", seen), ChunkKind.OTHER, region)
                )
            elif region == "style":
                chunks.append(
                    self._make(source, start, end, _unique("style", seen), ChunkKind.STYLE, region)
                )
            else:
                chunks.extend(self._split_script(source, start, end, seen))
        return chunks

    @staticmethod
    def _regions(source: str) -> list[tuple[int, int, str]]:
        if not _MARKUP_HINT.search(source):
            return [(0, len(source), "script")]

        regions: list[tuple[int, int, str]] = []
        cursor = 0
        for match in _EMBEDDED_BLOCK.finditer(source):
            body_start, body_end = match.span("body")
            if not match.group("body").strip():
                continue
            if body_start > cursor:
                regions.append((cursor, body_start, "markup"))
            regions.append((body_start, body_end, match.group("tag").lower()))
            cursor = body_end
        if cursor < len(source):
            regions.append((cursor, len(source), "markup"))
        return regions

    def _split_script(self, source: str, start: int, end: int, seen: set[str]) -> list[Chunk]:
        text = source[start:end]
        lines = _split_lines(text)
        line_offsets: list[int] = []
        offset = 0
        for line in lines:
            line_offsets.append(offset)
            offset += len(line)
        scanner = BracketScanner(text)

        units: list[_Unit] = []
        previous = ""
        for index, line in enumerate(lines):
            stripped = line.strip()
            continues = _continues(previous, stripped)
            if stripped and not _is_comment(stripped) and scanner.line_modes[index] in _CODE_MODES:
                previous = stripped
            if scanner.depths[index] != 0 or continues:
                continue
            if not stripped or _is_comment(stripped) or stripped[0] in "})]":
                continue

            match = _DECLARATION.match(stripped)
            if match is None:
                if units and units[-1].name is None:
                    continue
                units.append(_Unit(start_line=index, name=None, kind=ChunkKind.OTHER))
                continue

            name, kind, literal = _classify_declaration(match, stripped)
            start_line = index
            floor = units[-1].start_line + 1 if units else 0
            while start_line - 1 >= floor and _is_comment(lines[start_line - 1].strip()):
                start_line -= 1
            units.append(_Unit(start_line=start_line, name=name, kind=kind, literal=literal))

        if not units:
            return [self._make(source, start, end, _unique("script", seen), ChunkKind.OTHER, "script")]
        units[0].start_line = 0

        chunks: list[Chunk] = []
        for position, unit in enumerate(units):
            unit_start = start + line_offsets[unit.start_line]
            if position + 1 < len(units):
                unit_end = start + line_offsets[units[position + 1].start_line]
            else:
                unit_end = end
            if unit_end <= unit_start:
                continue

            kind = unit.kind
            if unit.literal and unit.name is not None:
                size = len(source[unit_start:unit_end].encode("utf-8"))
                if _CONSTANT_NAME.fullmatch(unit.name) or size >= self.config.data_table_min_bytes:
                    kind = ChunkKind.DATA
            chunk_id = _unique(unit.name or "script", seen)
            chunks.append(self._make(source, unit_start, unit_end, chunk_id, kind, "script"))
        return chunks

    @staticmethod
    def _make(
        source: str, start: int, end: int, chunk_id: str, kind: ChunkKind, region: str
    ) -> Chunk:
        return Chunk(
            id=chunk_id,
            kind=kind,
            start_offset=start,
            end_offset=end,
            content=source[start:end],
            region=region,
        )


def chunk(source: str, config: ChunkingConfig | None = None) -> list[Chunk]:
    """Split `source` into chunks. Pure and deterministic."""
    return SourceChunker(config).chunk(source)


def reconstruct(source: str, chunks: Iterable[Chunk]) -> str:
    """Rebuild a document from its chunks and the untouched text between them."""
    parts: list[str] = []
    cursor = 0
    for item in sorted(chunks, key=lambda c: c.start_offset):
        parts.append(source[cursor : item.start_offset])
        parts.append(item.content)
        cursor = item.end_offset
    parts.append(source[cursor:])
    return "".join(parts)


def resolve_chunk_id(candidate: str, chunk_ids: Iterable[str]) -> str | None:
    """Map a model- or user-supplied name onto a known chunk id.

    Exact match wins, then a case-insensitive match, then the best partial
    match (one name containing the other, at least three characters). Ties
    keep document order.
    """

    ids = list(chunk_ids)
    name = candidate.strip().strip("`'\"")
    if not name:
        return None
    if name in ids:
        return name

    lowered = name.lower()
    for chunk_id in ids:
        if chunk_id.lower() == lowered:
            return chunk_id

    if len(lowered) < 3:
        return None
    best: str | None = None
    best_ratio = 0.0
    for chunk_id in ids:
        other = chunk_id.lower()
        if len(other) < 3 or (lowered not in other and other not in lowered):
            continue
        ratio = min(len(other), len(lowered)) / max(len(other), len(lowered))
        if ratio > best_ratio:
            best, best_ratio = chunk_id, ratio
    return best


def resolve_chunk_ids(candidates: Iterable[str], chunk_ids: Iterable[str]) -> list[str]:
    """Resolve each name with `resolve_chunk_id`, dropping misses and duplicates."""
    ids = list(chunk_ids)
    resolved: list[str] = []
    for candidate in candidates:
        chunk_id = resolve_chunk_id(candidate, ids)
        if chunk_id is not None and chunk_id not in resolved:
            resolved.append(chunk_id)
    return resolved


def _classify_declaration(match: re.Match[str], line: str) -> tuple[str, ChunkKind, bool]:
    if match.group("fn"):
        name = match.group("fn")
        return name, ChunkKind.COMPONENT if name[0].isupper() else ChunkKind.FUNCTION, False
    if match.group("cls"):
        name = match.group("cls")
        kind = ChunkKind.COMPONENT if _COMPONENT_CLASS.search(line) else ChunkKind.DECLARATION
        return name, kind, False

    name = match.group("var")
    rhs = match.group("rhs").strip()
    if "=>" in rhs or _CALLABLE_RHS.match(rhs):
        return name, ChunkKind.COMPONENT if name[0].isupper() else ChunkKind.FUNCTION, False
    if rhs.startswith(("[", "{")):
        return name, ChunkKind.DECLARATION, True
    return name, ChunkKind.DECLARATION, False


def _is_comment(stripped: str) -> bool:
    return stripped.startswith(("//", "/*", "*"))


def _split_lines(text: str) -> list[str]:
    # Only "\n" ends a line; str.splitlines also breaks on \r and form feeds.
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _unique(base: str, seen: set[str]) -> str:
    candidate = base
    counter = 2
    while candidate in seen:
        candidate = f"{base}-{counter}"
        counter += 1
    seen.add(candidate)
    return candidate


def _continues(previous: str, stripped: str) -> bool:
    """True when `stripped` carries on the statement ended by `previous`."""

    if not stripped or not previous:
        return False
    if stripped.startswith(_CONTINUATION_STARTS) and not stripped.startswith(("++", "--")):
        return True
    return previous.endswith(_CONTINUATION_ENDS) and not previous.endswith(("++", "--", "*/"))


def brackets_balanced(text: str) -> bool:
    """True when `text` closes every bracket, string and JSX element it opens."""
    return BracketScanner(text).balanced


@dataclass(slots=True)
class _Frame:
    mode: str
    depth: int
    jsx_depth: int


class BracketScanner:
    """Bracket depth and lexical mode at the start of every line of a script.

    Strings, template literals, regex literals, comments and JSX text are
    skipped, so an apostrophe in `<p>Don't</p>` or a `{` inside `/[{(]/`
    does not shift the depth. Lines that begin inside a comment, template
    literal or JSX element report depth 1 so they never count as top-level
    statements. Quotes do not survive a newline, which keeps a stray
    apostrophe from swallowing the rest of the file.

    `<` starts JSX and `/` starts a regex only where an expression may
    begin (after an operator, an opening bracket or a keyword such as
    `return`); after an identifier or a closing bracket they are operators.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.depths = [0]
        self.line_modes = ["code"]
        self.balanced = True
        self._scan()

    def _scan(self) -> None:
        text = self.text
        length = len(text)
        depth = 0
        mode = "code"
        string_return = "code"
        closing_tag = False
        jsx_depth = 0
        frames: list[_Frame] = []
        prev = ""
        prev_word = ""
        underflow = False
        i = 0

        while i < length:
            ch = text[i]
            nxt = text[i + 1] if i + 1 < length else ""

            if ch == "\n":
                if mode in {"line_comment", "regex", "regex_class"}:
                    mode = "code"
                elif mode in {"single", "double"}:
                    mode = string_return
                self.depths.append(depth if mode == "code" else max(depth, 1))
                self.line_modes.append(mode)
                i += 1
                continue

            if mode == "code":
                if ch.isspace():
                    i += 1
                    continue
                if ch == "/" and nxt in "/*" and nxt:
                    mode = "line_comment" if nxt == "/" else "block_comment"
                    i += 2
                    continue
                if ch.isalnum() or ch in "_$":
                    end = i + 1
                    while end < length and (text[end].isalnum() or text[end] in "_$"):
                        end += 1
                    prev_word = "" if ch.isdigit() else text[i:end]
                    prev = text[end - 1]
                    i = end
                    continue

                expression_start = prev == "" or prev_word in _EXPRESSION_KEYWORDS
                if ch == "/" and (expression_start or prev in _REGEX_PRECEDERS):
                    mode = "regex"
                elif ch == "<" and (nxt.isalpha() or nxt == ">") and (
                    expression_start or prev in _JSX_PRECEDERS
                ):
                    mode, closing_tag = "jsx_tag", False
                elif ch in "'\"":
                    mode, string_return = ("single" if ch == "'" else "double"), "code"
                elif ch == "`":
                    mode = "template"
                elif ch in "{([":
                    depth += 1
                elif ch in "})]":
                    if depth == 0:
                        underflow = True
                    depth = max(0, depth - 1)
                    if ch == "}" and frames and depth == frames[-1].depth:
                        frame = frames.pop()
                        mode, jsx_depth = frame.mode, frame.jsx_depth
                prev, prev_word = ch, ""
                i += 1
                continue

            if mode == "block_comment":
                if ch == "*" and nxt == "/":
                    mode = "code"
                    i += 2
                    continue
            elif mode in {"single", "double"}:
                if ch == "\\" and nxt != "\n":
                    i += 2
                    continue
                if (mode == "single" and ch == "'") or (mode == "double" and ch == '"'):
                    mode = string_return
            elif mode == "template":
                if ch == "\\" and nxt != "\n":
                    i += 2
                    continue
                if ch == "`":
                    mode = "code"
                elif ch == "$" and nxt == "{":
                    frames.append(_Frame("template", depth, jsx_depth))
                    depth, jsx_depth, mode = depth + 1, 0, "code"
                    prev, prev_word = "{", ""
                    i += 2
                    continue
            elif mode in {"regex", "regex_class"}:
                if ch == "\\" and nxt != "\n":
                    i += 2
                    continue
                if mode == "regex_class":
                    if ch == "]":
                        mode = "regex"
                elif ch == "[":
                    mode = "regex_class"
                elif ch == "/":
                    mode, prev, prev_word = "code", ")", ""
            elif mode == "jsx_tag":
                if ch in "'\"":
                    mode, string_return = ("single" if ch == "'" else "double"), "jsx_tag"
                elif ch == "{":
                    frames.append(_Frame("jsx_tag", depth, jsx_depth))
                    depth, jsx_depth, mode = depth + 1, 0, "code"
                    prev, prev_word = "{", ""
                elif ch == "/" and nxt == ">":
                    mode = "jsx_children" if jsx_depth else "code"
                    prev, prev_word = ")", ""
                    i += 2
                    continue
                elif ch == ">":
                    jsx_depth += -1 if closing_tag else 1
                    if jsx_depth <= 0:
                        jsx_depth, mode = 0, "code"
                        prev, prev_word = ")", ""
                    else:
                        mode = "jsx_children"
            elif mode == "jsx_children":
                if ch == "{":
                    frames.append(_Frame("jsx_children", depth, jsx_depth))
                    depth, jsx_depth, mode = depth + 1, 0, "code"
                    prev, prev_word = "{", ""
                elif ch == "<":
                    mode, closing_tag = "jsx_tag", nxt == "/"
                    if closing_tag:
                        i += 2
                        continue
            i += 1

        self.balanced = not underflow and depth == 0 and not frames and mode in _CODE_MODES
