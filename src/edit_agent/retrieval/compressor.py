"""Stub-based context compression for large source documents."""

from __future__ import annotations

import logging
import re

from edit_agent.config import CompressionConfig
from edit_agent.errors import CompressionSkipped
from edit_agent.ingest.chunker import resolve_chunk_ids
from edit_agent.types import (
    Chunk,
    ChunkKind,
    CompressedContext,
    CompressionStats,
    Intent,
    IntentResult,
    RetrievalSelection,
)

logger = logging.getLogger(__name__)

STUB_PATTERN = re.compile(r"\[stub: [^,\]]+, [a-z]+, \d+ bytes omitted\]")
READ_ONLY_MARKER = "[READ-ONLY"


def comment_for(region: str, text: str) -> str:
    """Wrap `text` in a comment that is valid inside `region`."""
    if region == "markup":
        return f"<!-- {text} -->"
    if region == "style":
        return f"/* {text} */"
    return f"// {text}"


def stub_for(item: Chunk) -> str:
    stub = comment_for(item.region, f"[stub: {item.id}, {item.kind.value}, {item.size_bytes} bytes omitted]")
    if item.content.endswith("\n"):
        stub += "\n"
    return stub


class ContextCompressor:
    """Replaces chunks outside the selection with deterministic stubs.

    Kept chunks are copied byte for byte. Read-only reference chunks are
    kept too, preceded by a marker comment on its own line; the chunk
    content itself is not touched. Small `other` regions (document
    skeleton, setup code) are never stubbed because the generation model
    needs them to place edits.
    """

    def __init__(self, config: CompressionConfig | None = None) -> None:
        self.config = config or CompressionConfig()

    def should_compress(self, source: str, *, skip_compression: bool = False) -> bool:
        size = len(source.encode("utf-8"))
        if skip_compression:
            logger.info("%s: full-code mode requested", CompressionSkipped.__name__)
            return False
        if size < self.config.size_threshold_bytes:
            logger.info(
                "%s: %d bytes below threshold %d",
                CompressionSkipped.__name__,
                size,
                self.config.size_threshold_bytes,
            )
            return False
        return True

    def compress(
        self,
        source: str,
        selection: RetrievalSelection,
        explicit_targets: tuple[str, ...] | list[str],
        reference_targets: tuple[str, ...] | list[str],
        intent: IntentResult,
        chunks: list[Chunk],
    ) -> CompressedContext:
        all_ids = [item.id for item in chunks]
        edit_ids = resolve_chunk_ids(explicit_targets, all_ids)
        read_only = [
            chunk_id for chunk_id in resolve_chunk_ids(reference_targets, all_ids) if chunk_id not in edit_ids
        ]
        keep_all = selection.is_global or intent.intent == Intent.GLOBAL_REVIEW
        keep = set(selection.chunk_ids) | set(edit_ids) | set(read_only)

        parts: list[str] = []
        cursor = 0
        kept_ids: list[str] = []
        stubbed = 0
        for item in sorted(chunks, key=lambda c: c.start_offset):
            parts.append(source[cursor : item.start_offset])
            cursor = item.end_offset
            if keep_all or item.id in keep or self._always_kept(item):
                if item.id in read_only:
                    marker = f"{READ_ONLY_MARKER}: {item.id}] context only, do not modify"
                    parts.append(comment_for(item.region, marker) + "\n")
                parts.append(item.content)
                kept_ids.append(item.id)
            else:
                parts.append(stub_for(item))
                stubbed += 1
        parts.append(source[cursor:])

        text = "".join(parts)
        stats = CompressionStats(
            original_size=len(source.encode("utf-8")),
            compressed_size=len(text.encode("utf-8")),
            chunks_kept=len(kept_ids),
            chunks_stubbed=stubbed,
        )
        logger.info(
            "compressed %d -> %d bytes (%d kept, %d stubbed)",
            stats.original_size,
            stats.compressed_size,
            len(kept_ids),
            stubbed,
        )
        return CompressedContext(text=text, stats=stats, read_only_ids=read_only, kept_ids=kept_ids)

    def _always_kept(self, item: Chunk) -> bool:
        return item.kind == ChunkKind.OTHER and item.size_bytes < self.config.keep_small_other_bytes


def render_relevant_context(
    chunks: list[Chunk], selection: RetrievalSelection, read_only_ids: list[str]
) -> str:
    """Selected chunks under `### <id> (<kind>)` headers, read-only ones marked."""

    sections: list[str] = []
    for item in chunks:
        if item.id not in selection:
            continue
        header = f"### {item.id} ({item.kind.value})"
        if item.id in read_only_ids:
            header += " [READ-ONLY]"
        sections.append(f"{header}\n{item.content.rstrip()}")
    return "\n\n".join(sections)
