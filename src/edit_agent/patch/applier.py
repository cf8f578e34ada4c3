"""Applies parsed patch ops to a working copy of the document."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from edit_agent.config import PatchConfig
from edit_agent.errors import (
    PatchAnchorAmbiguous,
    PatchAnchorNotFound,
    PatchError,
    PatchTargetNotFound,
    PatchTargetReadOnly,
    PatchTargetUnbalanced,
)
from edit_agent.ingest.chunker import SourceChunker, brackets_balanced
from edit_agent.retrieval.compressor import READ_ONLY_MARKER, STUB_PATTERN
from edit_agent.types import BlockReplace, Chunk, PatchFailure, PatchOp, PatchResult, SearchReplace

logger = logging.getLogger(__name__)

_TRAILING_WS = re.compile(r"\s*\Z")
_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*\n)*")
_SCRIPT_BODY = re.compile(r"<script\b[^>]*>(.*?)</script>", re.IGNORECASE | re.DOTALL)
_MAX_BRACE_DRIFT = 5
_PLACEHOLDER = re.compile(r"\.\.\.\s*(?:\d+\s+)?lines? omitted|\.\.\.\s*existing code", re.IGNORECASE)


class PatchApplier:
    """Applies ops in order; each op sees the result of the previous ones.

    `read_only_ids` are never writable. When `writable_ids` is given, an op
    may only touch chunks in that set. Chunk ownership is re-derived from
    the working copy before every op, so a block replace keeps working
    after an earlier search/replace moved offsets around.
    """

    def __init__(self, chunker: SourceChunker | None = None) -> None:
        self.chunker = chunker or SourceChunker()

    def apply(
        self,
        source: str,
        ops: list[PatchOp],
        *,
        writable_ids: Iterable[str] | None = None,
        read_only_ids: Iterable[str] = (),
    ) -> PatchResult:
        writable = set(writable_ids) if writable_ids is not None else None
        read_only = set(read_only_ids)
        result = PatchResult(document=source)

        for index, op in enumerate(ops):
            try:
                if isinstance(op, SearchReplace):
                    working = self._search_replace(result.document, op, index, writable, read_only)
                else:
                    working = self._block_replace(result.document, op, index, writable, read_only)
            except PatchError as exc:
                logger.warning("patch op %d rejected (%s): %s", index, exc.code, exc.reason)
                result.failures.append(PatchFailure(op_index=index, code=exc.code, reason=exc.reason))
                continue
            result.document = working
            result.applied.append(index)

        logger.info("applied %d/%d patch ops", len(result.applied), len(ops))
        return result

    def _search_replace(
        self,
        working: str,
        op: SearchReplace,
        index: int,
        writable: set[str] | None,
        read_only: set[str],
    ) -> str:
        artifact = _artifact_in(op.anchor)
        if artifact:
            raise PatchAnchorNotFound(index, f"anchor contains {artifact}, which is not in the document")

        positions = _occurrences(working, op.anchor, limit=2)
        if not positions:
            raise PatchAnchorNotFound(index, "anchor text not found in document")
        if len(positions) > 1:
            raise PatchAnchorAmbiguous(index, "anchor text matches more than once; add context lines")

        start = positions[0]
        end = start + len(op.anchor)
        touched = [
            item for item in self.chunker.chunk(working) if item.start_offset < end and item.end_offset > start
        ]
        _check_writable(index, touched, writable, read_only)
        return working[:start] + op.replacement + working[end:]

    def _block_replace(
        self,
        working: str,
        op: BlockReplace,
        index: int,
        writable: set[str] | None,
        read_only: set[str],
    ) -> str:
        chunks = self.chunker.chunk(working)
        target = _find_chunk(op.target_id, chunks)
        if target is None:
            raise PatchTargetNotFound(index, f"no chunk named {op.target_id!r}")
        _check_writable(index, [target], writable, read_only)
        if target.region == "script" and not brackets_balanced(target.content):
            raise PatchTargetUnbalanced(
                index, f"{target.id} does not span a complete unit; use a search block instead"
            )

        leading = _LEADING_BLANK_LINES.match(target.content).group()
        trailing = _TRAILING_WS.search(target.content).group()
        body = _LEADING_BLANK_LINES.sub("", op.replacement, count=1).rstrip()
        return working[: target.start_offset] + leading + body + trailing + working[target.end_offset :]


def build_write_allowlist(
    selection_ids: Iterable[str],
    explicit_targets: Iterable[str],
    read_only_ids: Iterable[str],
) -> set[str]:
    """Selected chunks plus explicit targets, minus read-only reference chunks.

    Chunks the compressor keeps verbatim without selecting them (small
    markup and setup regions) stay visible but are not writable.
    """

    return (set(selection_ids) | set(explicit_targets)) - set(read_only_ids)


def validate_document(original: str, patched: str, config: PatchConfig | None = None) -> list[str]:
    """Sanity checks on a patched document; returns human-readable problems.

    Checks only flag regressions: a structural oddity already present in
    `original` is not reported again.
    """

    config = config or PatchConfig()
    errors: list[str] = []
    lowered_original = original.lower()
    lowered_patched = patched.lower()

    for marker in ("<!doctype", "<html", "</html>"):
        if marker in lowered_original and marker not in lowered_patched:
            errors.append(f"document lost its {marker} marker")

    if _tag_balance(lowered_original) == 0 and _tag_balance(lowered_patched) != 0:
        errors.append("unbalanced <script> tags")

    if abs(_brace_drift(original)) <= _MAX_BRACE_DRIFT < abs(_brace_drift(patched)):
        errors.append(f"brace imbalance of {_brace_drift(patched)} in script code")
    if _scripts_balanced(original) and not _scripts_balanced(patched):
        errors.append("script brackets are no longer balanced")

    if original:
        ratio = len(patched) / len(original)
        if ratio < config.max_shrink_ratio:
            errors.append(f"document shrank to {ratio:.0%} of its original size")
        elif ratio > config.max_growth_ratio:
            errors.append(f"document grew to {ratio:.0%} of its original size")
    return errors


def _check_writable(
    index: int, touched: list[Chunk], writable: set[str] | None, read_only: set[str]
) -> None:
    for item in touched:
        if item.id in read_only:
            raise PatchTargetReadOnly(index, f"{item.id} is read-only reference context")
        if writable is not None and item.id not in writable:
            raise PatchTargetReadOnly(index, f"{item.id} is outside the editable selection")


def _artifact_in(anchor: str) -> str:
    if STUB_PATTERN.search(anchor):
        return "compression stub text"
    if READ_ONLY_MARKER in anchor:
        return "a read-only marker"
    if _PLACEHOLDER.search(anchor):
        return "an omitted-code placeholder"
    return ""


def _find_chunk(target_id: str, chunks: list[Chunk]) -> Chunk | None:
    for item in chunks:
        if item.id == target_id:
            return item
    lowered = target_id.lower()
    for item in chunks:
        if item.id.lower() == lowered:
            return item
    return None


def _occurrences(text: str, needle: str, *, limit: int) -> list[int]:
    positions: list[int] = []
    start = text.find(needle)
    while start != -1 and len(positions) < limit:
        positions.append(start)
        start = text.find(needle, start + 1)
    return positions


def _tag_balance(lowered: str) -> int:
    return len(re.findall(r"<script\b", lowered)) - lowered.count("</script>")


def _script_bodies(source: str) -> list[str]:
    return _SCRIPT_BODY.findall(source) if "<script" in source.lower() else [source]


def _brace_drift(source: str) -> int:
    return sum(body.count("{") - body.count("}") for body in _script_bodies(source))


def _scripts_balanced(source: str) -> bool:
    return all(brackets_balanced(body) for body in _script_bodies(source))
