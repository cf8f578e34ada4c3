"""Configuration models for the edit pipeline."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChunkingConfig(BaseModel):
    """Configures how the source document is split into addressable units."""

    data_table_min_bytes: int = Field(default=400, ge=1)


class SummaryConfig(BaseModel):
    """Bounds the architecture outline sent to the classifier."""

    max_referenced_by: int = Field(default=6, ge=0)
    max_entries: int = Field(default=80, ge=1)


class ClassifierConfig(BaseModel):
    """Configures remote intent classification and its local fallback."""

    force_remote: bool = True
    timeout_seconds: float = Field(default=15.0, gt=0.0)
    heuristic_confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    cache_ttl_seconds: float = Field(default=300.0, gt=0.0)
    cache_max_entries: int = Field(default=256, ge=1)


class RetrievalConfig(BaseModel):
    """Configures chunk selection heuristics."""

    top_n: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.1, ge=0.0, le=1.0)
    max_referrer_expansion: int = Field(default=3, ge=0)


class CompressionConfig(BaseModel):
    """Configures when and how unselected chunks are stubbed."""

    size_threshold_bytes: int = Field(default=10 * 1024, ge=0)
    keep_small_other_bytes: int = Field(default=2048, ge=0)


class PatchConfig(BaseModel):
    """Configures patch parsing and the commit policy."""

    min_anchor_lines: int = Field(default=1, ge=1)
    allow_partial: bool = False
    max_shrink_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    max_growth_ratio: float = Field(default=3.0, ge=1.0)


class OrchestratorConfig(BaseModel):
    """Configures progress reporting and collaborator timeouts."""

    heartbeat_initial_delay_seconds: float = Field(default=3.0, gt=0.0)
    heartbeat_interval_seconds: float = Field(default=3.0, gt=0.0)
    task_timeout_seconds: float = Field(default=10.0, gt=0.0)
    prompt_preview_chars: int = Field(default=200, ge=1)
    heartbeat_messages: list[str] = Field(
        default_factory=lambda: [
            "Analyzing your request...",
            "Mapping the code structure...",
            "Locating the relevant modules...",
            "Still thinking, almost there...",
        ],
        min_length=1,
    )


class PipelineConfig(BaseModel):
    """Aggregates per-stage configuration for one orchestrator instance."""

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    patch: PatchConfig = Field(default_factory=PatchConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
