"""Per-request pipeline: intent, retrieval, compression, generation hand-off."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from edit_agent.agent.classifier import IntentClassifier
from edit_agent.agent.remote import CancellationToken, call_remote
from edit_agent.agent.tasks import TaskStore
from edit_agent.config import PipelineConfig
from edit_agent.errors import PatchParseError, RequestCancelled, UpstreamError, UpstreamTimeout
from edit_agent.ingest.chunker import SourceChunker, resolve_chunk_ids
from edit_agent.ingest.summarizer import ArchitectureSummarizer
from edit_agent.obs.tracing import Timer, TraceStore
from edit_agent.patch.applier import PatchApplier, build_write_allowlist, validate_document
from edit_agent.patch.parser import PatchParser
from edit_agent.patch.protocol import PATCH_FORMAT_INSTRUCTIONS
from edit_agent.retrieval.compressor import ContextCompressor, render_relevant_context
from edit_agent.retrieval.retriever import RelevanceRetriever
from edit_agent.types import (
    CompressedContext,
    EditRequest,
    IntentResult,
    PatchCommit,
    PipelineEvent,
    RetrievalSelection,
    SummaryEntry,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RunState:
    """Facts gathered along one run, used for the trace record."""

    intent: IntentResult | None = None
    chunk_count: int = 0
    selected_count: int = 0
    original_size: int = 0
    compressed_size: int = 0
    context_text: str = ""
    task_id: str | None = None
    stage_latency_ms: dict[str, float] = field(default_factory=dict)


def progress(stage: str, message: str, **extra: Any) -> PipelineEvent:
    return PipelineEvent(type="progress", data={"stage": stage, "message": message, **extra})


class StreamingOrchestrator:
    """Drives one request through `intent -> retrieval -> compression -> generation`.

    `run()` is an async generator of `PipelineEvent`s. It always starts
    with a `connected` progress event and always ends with exactly one
    terminal event: `result`, `error` (upstream failure) or `cancelled`.
    Heartbeat progress events are emitted while the classifier is slow and
    stop as soon as it settles.

    Collaborators are injected; nothing is shared between runs except the
    classifier cache and the trace/task stores the caller wires in.
    """

    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        task_store: TaskStore,
        trace_store: TraceStore | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.classifier = classifier
        self.task_store = task_store
        self.trace_store = trace_store
        self.chunker = SourceChunker(self.config.chunking)
        self.summarizer = ArchitectureSummarizer(self.config.summary)
        self.retriever = RelevanceRetriever(self.config.retrieval, summarizer=self.summarizer)
        self.compressor = ContextCompressor(self.config.compression)
        self.parser = PatchParser(self.config.patch)
        self.applier = PatchApplier(self.chunker)

    async def run(
        self, request: EditRequest, token: CancellationToken | None = None
    ) -> AsyncIterator[PipelineEvent]:
        token = token or CancellationToken()
        state = _RunState()
        outcome = "cancelled"
        error: str | None = None

        timer = Timer()
        try:
            with timer:
                yield progress("connected", "Connected, starting analysis")
                try:
                    if request.is_fresh:
                        stages = self._fresh(request, token, state)
                    else:
                        stages = self._modification(request, token, state)
                    async for event in stages:
                        if event.type == "result":
                            outcome = "done"
                        yield event
                except RequestCancelled as exc:
                    logger.info("request cancelled: %s", exc)
                    error = str(exc) or "cancelled"
                    yield PipelineEvent(type="cancelled", data={"reason": error})
                except UpstreamError as exc:
                    outcome, error = "failed", str(exc)
                    logger.warning("request failed: %s", exc)
                    code = "upstream_timeout" if isinstance(exc, UpstreamTimeout) else "upstream_unavailable"
                    yield PipelineEvent(type="error", data={"error": error, "code": code})
        finally:
            # Also reached when the consumer closes the stream early.
            if outcome == "cancelled" and error is None:
                error = token.reason or "stream closed"
            self._record(request, state, outcome, error, timer.elapsed_ms)

    async def run_blocking(
        self, request: EditRequest, token: CancellationToken | None = None
    ) -> PipelineEvent:
        """Consume `run()` and return only its terminal event."""

        terminal: PipelineEvent | None = None
        async for event in self.run(request, token):
            if event.is_terminal:
                terminal = event
        if terminal is None:
            raise RuntimeError("pipeline ended without a terminal event")
        return terminal

    def commit_patch(
        self,
        source: str,
        raw_output: str,
        *,
        writable_ids: list[str] | set[str] | None = None,
        read_only_ids: list[str] | set[str] = (),
    ) -> PatchCommit:
        """Parse, apply and validate a model response; commit only if clean.

        With `allow_partial` off, a single failed op leaves the source
        untouched. A document that fails validation is never committed.
        """

        try:
            parsed = self.parser.parse(raw_output)
        except PatchParseError as exc:
            logger.warning("patch output unparseable: %s", exc)
            return PatchCommit(document=source, committed=False, parse_error=str(exc))

        result = self.applier.apply(
            source, parsed.ops, writable_ids=writable_ids, read_only_ids=read_only_ids
        )
        validation = validate_document(source, result.document, self.config.patch) if result.applied else []
        acceptable = result.ok or self.config.patch.allow_partial
        committed = bool(result.applied) and acceptable and not validation
        if validation:
            logger.warning("patched document rejected: %s", "; ".join(validation))

        return PatchCommit(
            document=result.document if committed else source,
            committed=committed,
            applied=result.applied,
            failures=result.failures,
            validation_errors=validation,
            notes=parsed.notes,
        )

    async def _fresh(
        self, request: EditRequest, token: CancellationToken, state: _RunState
    ) -> AsyncIterator[PipelineEvent]:
        yield progress("generation", "Starting generation")
        task_id = await self._create_task(request, token, state)
        yield PipelineEvent(
            type="result",
            data={
                "task_id": task_id,
                "rag_context": "",
                "compressed_code": "",
                "rag_summary": "Fresh generation; no existing code to analyze.",
                "targets": [],
                "reference_targets": [],
                "intent": None,
                "stats": None,
            },
        )

    async def _modification(
        self, request: EditRequest, token: CancellationToken, state: _RunState
    ) -> AsyncIterator[PipelineEvent]:
        source = request.current_code or ""
        chunks = self.chunker.chunk(source)
        entries = self.summarizer.summarize(chunks)
        all_ids = [item.id for item in chunks]
        state.chunk_count = len(chunks)
        state.original_size = state.compressed_size = len(source.encode("utf-8"))

        yield progress("intent", "Analyzing your request", module_count=len(chunks))
        intent: IntentResult | None = None
        with Timer() as timer:
            async for item in self._classify_with_heartbeat(request.user_prompt, entries, token):
                if isinstance(item, PipelineEvent):
                    yield item
                else:
                    intent = item
        state.stage_latency_ms["intent"] = timer.elapsed_ms
        if intent is None:
            raise RuntimeError("classification ended without a verdict")
        state.intent = intent
        token.raise_if_cancelled()
        yield PipelineEvent(
            type="thinking",
            data={
                "intent": intent.intent.value,
                "reasoning": intent.reasoning,
                "targets": list(intent.targets),
                "reference_targets": list(intent.reference_targets),
                "confidence": intent.confidence,
                "source": intent.source,
            },
        )

        selection = self.retriever.retrieve(chunks, request.user_prompt, intent)
        state.selected_count = len(selection)
        edit_ids = resolve_chunk_ids(intent.targets, all_ids)
        read_only = [
            chunk_id
            for chunk_id in resolve_chunk_ids(intent.reference_targets, all_ids)
            if chunk_id not in edit_ids
        ]
        token.raise_if_cancelled()
        yield progress(
            "rag",
            f"Selected {len(selection)} of {len(chunks)} modules",
            selected=selection.chunk_ids,
            reason=selection.reason,
        )

        compressed: CompressedContext | None = None
        if self.compressor.should_compress(source, skip_compression=request.skip_compression):
            compressed = self.compressor.compress(
                source, selection, intent.targets, intent.reference_targets, intent, chunks
            )
            state.compressed_size = compressed.stats.compressed_size
            token.raise_if_cancelled()
            yield progress(
                "compression",
                f"Compressed context to {compressed.stats.ratio:.0%} of original",
                stats=compressed.stats.as_payload(),
            )

        rag_context = render_relevant_context(chunks, selection, read_only)
        state.context_text = compressed.text if compressed is not None else rag_context
        writable = build_write_allowlist(selection.chunk_ids, edit_ids, read_only)

        yield progress("generation", "Starting generation")
        task_id = await self._create_task(request, token, state)
        yield PipelineEvent(
            type="result",
            data={
                "task_id": task_id,
                "rag_context": rag_context,
                "compressed_code": compressed.text if compressed is not None else "",
                "rag_summary": _summary_line(intent, selection, len(chunks), compressed),
                "targets": edit_ids,
                "reference_targets": read_only,
                "writable_ids": [chunk_id for chunk_id in all_ids if chunk_id in writable],
                "intent": intent.intent.value,
                "selection": {
                    "chunk_ids": selection.chunk_ids,
                    "reason": selection.reason,
                    "is_global": selection.is_global,
                },
                "stats": compressed.stats.as_payload() if compressed is not None else None,
                "patch_instructions": PATCH_FORMAT_INSTRUCTIONS,
            },
        )

    async def _classify_with_heartbeat(
        self, user_text: str, entries: list[SummaryEntry], token: CancellationToken
    ) -> AsyncIterator[PipelineEvent | IntentResult]:
        settings = self.config.orchestrator
        messages = itertools.cycle(settings.heartbeat_messages)
        task = asyncio.ensure_future(
            self.classifier.classify(user_text, architecture_summary=entries, token=token)
        )
        wait_for = settings.heartbeat_initial_delay_seconds
        beats = 0
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=wait_for)
                if done:
                    break
                beats += 1
                yield progress("intent", next(messages), heartbeat=beats)
                wait_for = settings.heartbeat_interval_seconds
        finally:
            if not task.done():
                task.cancel()
        yield task.result()

    async def _create_task(
        self, request: EditRequest, token: CancellationToken, state: _RunState
    ) -> str:
        with Timer() as timer:
            task = await call_remote(
                self.task_store.create(request.user_prompt, model=request.model),
                timeout_seconds=self.config.orchestrator.task_timeout_seconds,
                token=token,
                label="task creation",
            )
        state.stage_latency_ms["generation"] = timer.elapsed_ms
        state.task_id = task.id
        return task.id

    def _record(
        self,
        request: EditRequest,
        state: _RunState,
        outcome: str,
        error: str | None,
        latency_ms: float,
    ) -> None:
        if self.trace_store is None:
            return
        intent = state.intent
        self.trace_store.create_record(
            prompt=request.user_prompt,
            intent=intent.intent.value if intent is not None else "NONE",
            intent_source=intent.source if intent is not None else "none",
            targets=list(intent.targets) if intent is not None else [],
            reference_targets=list(intent.reference_targets) if intent is not None else [],
            chunk_count=state.chunk_count,
            selected_count=state.selected_count,
            original_size=state.original_size,
            compressed_size=state.compressed_size,
            context_text=state.context_text,
            latency_ms=latency_ms,
            outcome=outcome,
            task_id=state.task_id,
            error=error,
            stage_latency_ms=state.stage_latency_ms,
        )


def _summary_line(
    intent: IntentResult,
    selection: RetrievalSelection,
    chunk_count: int,
    compressed: CompressedContext | None,
) -> str:
    parts = [f"Intent {intent.intent.value}"]
    if intent.targets:
        parts.append(f"targets {', '.join(intent.targets)}")
    parts.append(f"{len(selection)}/{chunk_count} modules selected ({selection.reason})")
    if compressed is not None:
        parts.append(f"context compressed to {compressed.stats.ratio:.0%}")
    else:
        parts.append("full code sent")
    return "; ".join(parts) + "."
