"""Per-request pipeline traces and aggregate metrics."""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)

OUTCOMES = ("done", "failed", "cancelled")


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    prompt_preview: str
    intent: str
    intent_source: str
    targets: list[str]
    reference_targets: list[str]
    chunk_count: int
    selected_count: int
    original_size: int
    compressed_size: int
    input_tokens: int
    latency_ms: float
    outcome: str
    task_id: str | None = None
    error: str | None = None
    stage_latency_ms: dict[str, float] = field(default_factory=dict)

    @property
    def compression_ratio(self) -> float:
        if self.original_size == 0:
            return 1.0
        return self.compressed_size / self.original_size


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, *, max_records: int = 1000) -> None:
        self.max_records = max_records
        self._records: dict[str, TraceRecord] = {}

    def create_record(
        self,
        *,
        prompt: str,
        intent: str,
        intent_source: str,
        targets: list[str],
        reference_targets: list[str],
        chunk_count: int,
        selected_count: int,
        original_size: int,
        compressed_size: int,
        context_text: str,
        latency_ms: float,
        outcome: str,
        task_id: str | None = None,
        error: str | None = None,
        stage_latency_ms: dict[str, float] | None = None,
    ) -> TraceRecord:
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            prompt_preview=prompt[:200],
            intent=intent,
            intent_source=intent_source,
            targets=list(targets),
            reference_targets=list(reference_targets),
            chunk_count=chunk_count,
            selected_count=selected_count,
            original_size=original_size,
            compressed_size=compressed_size,
            input_tokens=estimate_token_count(prompt) + estimate_token_count(context_text),
            latency_ms=latency_ms,
            outcome=outcome,
            task_id=task_id,
            error=error,
            stage_latency_ms=dict(stage_latency_ms or {}),
        )
        self._records[record.trace_id] = record
        while len(self._records) > self.max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        counts = {outcome: sum(1 for record in records if record.outcome == outcome) for outcome in OUTCOMES}
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_compression_ratio": 1.0,
                "total_input_tokens": 0,
                "remote_classifications": 0,
                **{f"{outcome}_requests": 0 for outcome in OUTCOMES},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_compression_ratio": sum(record.compression_ratio for record in records) / total,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "remote_classifications": sum(1 for record in records if record.intent_source == "remote"),
            **{f"{outcome}_requests": count for outcome, count in counts.items()},
        }


class Timer:
    """Simple context timer used by the classifier and orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
