"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ChunkKind(str, Enum):
    DECLARATION = "declaration"
    FUNCTION = "function"
    COMPONENT = "component"
    DATA = "data"
    STYLE = "style"
    OTHER = "other"


class Intent(str, Enum):
    UI_MODIFICATION = "UI_MODIFICATION"
    LOGIC_FIX = "LOGIC_FIX"
    NEW_FEATURE = "NEW_FEATURE"
    DATA_OPERATION = "DATA_OPERATION"
    CONFIG_HELP = "CONFIG_HELP"
    PERFORMANCE = "PERFORMANCE"
    REFACTOR = "REFACTOR"
    QA_EXPLANATION = "QA_EXPLANATION"
    BACKEND_SETUP = "BACKEND_SETUP"
    GLOBAL_REVIEW = "GLOBAL_REVIEW"
    UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class Chunk:
    """A named, addressable region of the source document.

    `region` records which syntax the span lives in (`markup`, `style` or
    `script`) so stubs and markers can be written as valid comments.
    """

    id: str
    kind: ChunkKind
    start_offset: int
    end_offset: int
    content: str
    region: str = "script"

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(slots=True)
class SummaryEntry:
    id: str
    kind: ChunkKind
    size_bytes: int
    referenced_by: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class IntentResult:
    """Classifier verdict for one request. Never mutated after creation."""

    intent: Intent
    targets: tuple[str, ...] = ()
    reference_targets: tuple[str, ...] = ()
    reasoning: str = ""
    confidence: float = 0.0
    source: str = "heuristic"
    latency_ms: float = 0.0


@dataclass(slots=True)
class RetrievalSelection:
    chunk_ids: list[str]
    is_global: bool = False
    reason: str = ""
    scores: dict[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.chunk_ids)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self.chunk_ids


@dataclass(slots=True)
class CompressionStats:
    original_size: int
    compressed_size: int
    chunks_kept: int
    chunks_stubbed: int

    @property
    def ratio(self) -> float:
        if self.original_size == 0:
            return 1.0
        return self.compressed_size / self.original_size

    def as_payload(self) -> dict[str, Any]:
        return {
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "ratio": round(self.ratio, 4),
            "module_count": self.chunks_kept + self.chunks_stubbed,
            "chunks_kept": self.chunks_kept,
            "chunks_stubbed": self.chunks_stubbed,
        }


@dataclass(slots=True)
class CompressedContext:
    text: str
    stats: CompressionStats
    read_only_ids: list[str] = field(default_factory=list)
    kept_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SearchReplace:
    anchor: str
    replacement: str
    context_lines: int
    line_number: int = 0


@dataclass(frozen=True, slots=True)
class BlockReplace:
    target_id: str
    replacement: str
    line_number: int = 0


PatchOp = Union[SearchReplace, BlockReplace]


@dataclass(slots=True)
class PatchFailure:
    op_index: int
    code: str
    reason: str


@dataclass(slots=True)
class PatchResult:
    """Outcome of applying one batch of ops to a working copy."""

    document: str
    applied: list[int] = field(default_factory=list)
    failures: list[PatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(slots=True)
class GenerationTask:
    id: str
    prompt_truncated: str
    status: str = "pending"
    model: str | None = None


@dataclass(slots=True)
class PipelineEvent:
    """One progress-channel event.

    `thinking` and `progress` are informational; `result`, `error` and
    `cancelled` are terminal and end the stream.
    """

    type: str
    data: dict[str, Any]

    @property
    def is_terminal(self) -> bool:
        return self.type in {"result", "error", "cancelled"}

    def as_payload(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


@dataclass(slots=True)
class EditRequest:
    """One user request. No `current_code` means a fresh generation."""

    user_prompt: str
    current_code: str | None = None
    skip_compression: bool = False
    model: str | None = None
    type: str = "modification"

    @property
    def is_fresh(self) -> bool:
        return not (self.current_code or "").strip()


@dataclass(slots=True)
class PatchCommit:
    """Outcome of the commit policy for one model response."""

    document: str
    committed: bool
    applied: list[int] = field(default_factory=list)
    failures: list[PatchFailure] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)
    parse_error: str | None = None
    notes: list[str] = field(default_factory=list)
