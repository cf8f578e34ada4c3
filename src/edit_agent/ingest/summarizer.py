"""Structural outline of a chunk list for cheap classifier briefing."""

from __future__ import annotations

import re

from edit_agent.config import SummaryConfig
from edit_agent.types import Chunk, ChunkKind, SummaryEntry

_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")
_NAMED_KINDS = {
    ChunkKind.DECLARATION,
    ChunkKind.FUNCTION,
    ChunkKind.COMPONENT,
    ChunkKind.DATA,
}


class ArchitectureSummarizer:
    """Derives `{id, kind, size, referenced_by}` entries from chunks.

    References are a textual-occurrence check: chunk B is listed in A's
    `referenced_by` when A's declared name appears as an identifier token in
    B's body. This is not a call graph; shadowed names and names inside
    strings are counted too.
    """

    def __init__(self, config: SummaryConfig | None = None) -> None:
        self.config = config or SummaryConfig()

    def summarize(self, chunks: list[Chunk]) -> list[SummaryEntry]:
        identifiers = [set(_IDENTIFIER.findall(item.content)) for item in chunks]
        entries: list[SummaryEntry] = []

        for index, item in enumerate(chunks):
            referenced_by: list[str] = []
            if item.kind in _NAMED_KINDS:
                name = declared_name(item)
                for other_index, other in enumerate(chunks):
                    if other_index == index:
                        continue
                    if name in identifiers[other_index]:
                        referenced_by.append(other.id)
            entries.append(
                SummaryEntry(
                    id=item.id,
                    kind=item.kind,
                    size_bytes=item.size_bytes,
                    referenced_by=referenced_by,
                )
            )
        return entries

    def render(self, entries: list[SummaryEntry]) -> str:
        """Render entries as one line each, largest first when truncated."""

        selected = entries
        if len(entries) > self.config.max_entries:
            ranked = sorted(entries, key=lambda e: e.size_bytes, reverse=True)
            keep = {entry.id for entry in ranked[: self.config.max_entries]}
            selected = [entry for entry in entries if entry.id in keep]

        lines: list[str] = []
        for entry in selected:
            line = f"- {entry.id} [{entry.kind.value}, {_format_size(entry.size_bytes)}]"
            refs = entry.referenced_by[: self.config.max_referenced_by]
            if refs:
                more = len(entry.referenced_by) - len(refs)
                suffix = f" +{more}" if more > 0 else ""
                line += f" <- {', '.join(refs)}{suffix}"
            lines.append(line)
        omitted = len(entries) - len(selected)
        if omitted:
            lines.append(f"- ... {omitted} smaller units omitted")
        return "\n".join(lines)


def summarize(chunks: list[Chunk], config: SummaryConfig | None = None) -> list[SummaryEntry]:
    return ArchitectureSummarizer(config).summarize(chunks)


def declared_name(item: Chunk) -> str:
    """Chunk id without the `-N` suffix added for duplicate names."""
    return re.sub(r"-\d+$", "", item.id)


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    return f"{size / 1024:.1f}KB"
