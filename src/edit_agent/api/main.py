"""FastAPI entrypoint for the edit pipeline, patch commits and traces."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from edit_agent.agent.cache import ClassificationCache
from edit_agent.agent.classifier import IntentClassifier, RemoteIntentClassifier
from edit_agent.agent.fallback import HeuristicIntentClassifier
from edit_agent.agent.orchestrator import StreamingOrchestrator
from edit_agent.agent.remote import CancellationToken
from edit_agent.agent.tasks import InMemoryTaskStore
from edit_agent.config import ClassifierConfig, PipelineConfig
from edit_agent.obs.logging_utils import configure_logging
from edit_agent.obs.tracing import TraceStore
from edit_agent.types import EditRequest, PipelineEvent

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {"upstream_timeout": 504, "upstream_unavailable": 502}


def _create_llm(config: ClassifierConfig) -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    options: dict[str, Any] = {
        "model": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        "temperature": config.temperature,
        "timeout": config.timeout_seconds,
    }
    base_url = os.getenv("OPENAI_BASE_URL")
    if base_url:
        options["base_url"] = base_url
    return ChatOpenAI(**options)


class GenerateRequest(BaseModel):
    type: str = "modification"
    user_prompt: str = Field(min_length=1)
    current_code: str | None = None
    skip_compression: bool = False
    model: str | None = None


class PatchApplyRequest(BaseModel):
    current_code: str
    patch_text: str
    writable_ids: list[str] | None = None
    read_only_ids: list[str] = Field(default_factory=list)


configure_logging()

app = FastAPI(title="Edit Agent", version="0.1.0")

_config = PipelineConfig()
_llm = _create_llm(_config.classifier)
_cache = ClassificationCache(
    ttl_seconds=_config.classifier.cache_ttl_seconds,
    max_entries=_config.classifier.cache_max_entries,
)
_classifier = IntentClassifier(
    remote=RemoteIntentClassifier(llm=_llm, config=_config.classifier) if _llm is not None else None,
    heuristic=HeuristicIntentClassifier(),
    cache=_cache,
    config=_config.classifier,
)
_task_store = InMemoryTaskStore(prompt_preview_chars=_config.orchestrator.prompt_preview_chars)
_trace_store = TraceStore()
_orchestrator = StreamingOrchestrator(
    classifier=_classifier,
    task_store=_task_store,
    trace_store=_trace_store,
    config=_config,
)


def _sse(payload: dict[str, Any] | str) -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {body}\n\n"


def _to_edit_request(payload: GenerateRequest) -> EditRequest:
    return EditRequest(
        user_prompt=payload.user_prompt,
        current_code=payload.current_code,
        skip_compression=payload.skip_compression,
        model=payload.model,
        type=payload.type,
    )


def _terminal_response(event: PipelineEvent) -> Any:
    if event.type == "result":
        return event.data
    if event.type == "cancelled":
        return JSONResponse(status_code=499, content={"error": event.data.get("reason", "cancelled")})
    status = _STATUS_BY_CODE.get(event.data.get("code", ""), 502)
    return JSONResponse(status_code=status, content=event.data)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": _llm is not None,
        "classifier_mode": _classifier.mode,
        "trace_count": len(_trace_store),
        "cache_entries": len(_cache),
    }


@app.post("/generate")
async def generate(payload: GenerateRequest, request: Request) -> Any:
    edit_request = _to_edit_request(payload)
    token = CancellationToken()

    if "text/event-stream" not in request.headers.get("accept", ""):
        return _terminal_response(await _orchestrator.run_blocking(edit_request, token))

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in _orchestrator.run(edit_request, token):
                yield _sse(event.as_payload())
                if await request.is_disconnected():
                    token.cancel("client disconnected")
            yield _sse("[DONE]")
        finally:
            # Reached on normal completion too; cancelling a finished token is harmless.
            token.cancel("stream closed")

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/patches/apply")
def apply_patch(request: PatchApplyRequest) -> dict[str, Any]:
    commit = _orchestrator.commit_patch(
        request.current_code,
        request.patch_text,
        writable_ids=request.writable_ids,
        read_only_ids=request.read_only_ids,
    )
    return asdict(commit)


@app.get("/tasks/{task_id}")
def task_detail(task_id: str) -> dict[str, Any]:
    try:
        task = _task_store.get(task_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(task)


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
