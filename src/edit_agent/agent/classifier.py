"""LangChain-backed intent classification with local degradation."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field, ValidationError, field_validator

from edit_agent.agent.cache import ClassificationCache
from edit_agent.agent.fallback import HeuristicIntentClassifier
from edit_agent.agent.remote import CancellationToken, call_remote
from edit_agent.config import ClassifierConfig
from edit_agent.errors import ClassificationDegraded, RequestCancelled, UpstreamError
from edit_agent.ingest.chunker import resolve_chunk_id
from edit_agent.ingest.summarizer import ArchitectureSummarizer
from edit_agent.obs.tracing import Timer
from edit_agent.types import Intent, IntentResult, SummaryEntry

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You classify edit requests against a single-file web application.

Intents:
- UI_MODIFICATION: visual changes (colors, layout, styles, animation).
- LOGIC_FIX: something behaves wrongly or throws.
- NEW_FEATURE: add a capability, page or component.
- DATA_OPERATION: change data tables, lists, storage or fetching.
- CONFIG_HELP: build, install or environment questions.
- PERFORMANCE: make something faster or lighter.
- REFACTOR: restructure without changing behavior.
- QA_EXPLANATION: the user asks a question; nothing is edited.
- BACKEND_SETUP: database, auth or server integration.
- GLOBAL_REVIEW: the user wants the whole document reviewed.

Rules:
1) `targets` are code units the user wants CHANGED. Use names from the outline.
2) `reference_targets` are units needed only as read-only context.
3) A unit may appear in both lists only if it is edited and also consulted.
4) Answer with one JSON object and nothing else:
{{"intent": "...", "targets": [], "reference_targets": [], "reasoning": "...", "confidence": 0.0}}
""".strip()

_HUMAN_PROMPT = """
Code outline (id [kind, size] <- referenced by):
{outline}

Request:
{request}
""".strip()

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_LINE_COMMENT = re.compile(r"^\s*//.*$|(?<=[,\[{\s])//[^\n\"]*$", re.MULTILINE)
_INTENT_NAME = re.compile(r"\b(" + "|".join(intent.value for intent in Intent) + r")\b")


class _RemoteVerdict(BaseModel):
    intent: Intent = Intent.UNKNOWN
    targets: list[str] = Field(default_factory=list)
    reference_targets: list[str] = Field(default_factory=list)
    reasoning: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, value: Any) -> Any:
        name = str(value or "").strip().upper()
        return name if name in Intent.__members__ else Intent.UNKNOWN

    @field_validator("targets", "reference_targets", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> Any:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.5


class RemoteIntentClassifier:
    """Single-shot chat model call that returns an `IntentResult`.

    Raises `UpstreamError` subclasses when the model cannot be reached and
    `ClassificationDegraded` when its answer cannot be read; the facade
    below decides what to do with either.
    """

    def __init__(
        self,
        *,
        llm: Any,
        config: ClassifierConfig | None = None,
        summarizer: ArchitectureSummarizer | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or ClassifierConfig()
        self.summarizer = summarizer or ArchitectureSummarizer()
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", _SYSTEM_PROMPT), ("human", _HUMAN_PROMPT)]
        )

    async def classify(
        self,
        user_text: str,
        *,
        architecture_summary: list[SummaryEntry] | None = None,
        token: CancellationToken | None = None,
    ) -> IntentResult:
        entries = architecture_summary or []
        messages = self.prompt.format_messages(
            outline=self.summarizer.render(entries) or "(empty document)",
            request=user_text,
        )
        with Timer() as timer:
            response = await call_remote(
                self.llm.ainvoke(messages),
                timeout_seconds=self.config.timeout_seconds,
                token=token,
                label="intent classification",
            )
        verdict = parse_verdict(_message_text(response))
        known = [entry.id for entry in entries]
        return IntentResult(
            intent=verdict.intent,
            targets=_normalize_targets(verdict.targets, known),
            reference_targets=_normalize_targets(verdict.reference_targets, known),
            reasoning=verdict.reasoning,
            confidence=verdict.confidence,
            source="remote",
            latency_ms=timer.elapsed_ms,
        )


class IntentClassifier:
    """Entry point used by the orchestrator.

    With `force_remote` the heuristic is skipped and the remote model is
    authoritative. Otherwise a confident heuristic verdict short-circuits the
    remote call. Remote failures never propagate: they degrade to UNKNOWN
    so retrieval falls back to keyword scoring. Cancellation does propagate.
    """

    def __init__(
        self,
        *,
        remote: RemoteIntentClassifier | None = None,
        heuristic: HeuristicIntentClassifier | None = None,
        cache: ClassificationCache | None = None,
        config: ClassifierConfig | None = None,
    ) -> None:
        self.remote = remote
        self.heuristic = heuristic or HeuristicIntentClassifier()
        self.cache = cache
        self.config = config or ClassifierConfig()
        self.summarizer = remote.summarizer if remote is not None else ArchitectureSummarizer()

    @property
    def mode(self) -> str:
        return "remote" if self.remote is not None else "heuristic"

    async def classify(
        self,
        user_text: str,
        *,
        architecture_summary: list[SummaryEntry] | None = None,
        force_remote: bool | None = None,
        token: CancellationToken | None = None,
    ) -> IntentResult:
        if token is not None:
            token.raise_if_cancelled()
        force = self.config.force_remote if force_remote is None else force_remote

        if self.remote is None:
            return self.heuristic.classify(user_text, architecture_summary=architecture_summary)

        if not force:
            local = self.heuristic.classify(user_text, architecture_summary=architecture_summary)
            if local.confidence >= self.config.heuristic_confidence_threshold:
                logger.info("heuristic verdict %s accepted (%.2f)", local.intent.value, local.confidence)
                return local

        key = ""
        if self.cache is not None:
            key = self.cache.make_key(user_text, self.summarizer.render(architecture_summary or []))
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            result = await self.remote.classify(
                user_text, architecture_summary=architecture_summary, token=token
            )
        except RequestCancelled:
            raise
        except (UpstreamError, ClassificationDegraded) as exc:
            logger.warning("%s: %s", ClassificationDegraded.__name__, exc)
            return IntentResult(
                intent=Intent.UNKNOWN,
                reasoning=f"Remote classification unavailable: {exc}",
                confidence=0.0,
                source="heuristic",
            )

        if self.cache is not None:
            self.cache.put(key, result)
        return result


def parse_verdict(text: str) -> _RemoteVerdict:
    """Read a model answer, repairing the usual formatting slips.

    Tries raw JSON, a fenced code block, then the outermost braces, each
    with `//` comments stripped. Falls back to a bare intent name anywhere
    in the text.
    """

    for candidate in _json_candidates(text):
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(payload, dict):
            continue
        try:
            return _RemoteVerdict.model_validate(payload)
        except ValidationError as exc:
            raise ClassificationDegraded(f"invalid verdict: {exc.errors()[0]['msg']}") from exc

    match = _INTENT_NAME.search(text.upper())
    if match is None:
        raise ClassificationDegraded(f"unreadable verdict: {text[:80]!r}")
    return _RemoteVerdict(intent=match.group(1), reasoning="Bare intent name in model output.")


def _json_candidates(text: str) -> list[str]:
    stripped = text.strip()
    candidates = [stripped]
    fenced = _FENCE.search(stripped)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = stripped.find("{"), stripped.rfind("}")
    if 0 <= start < end:
        candidates.append(stripped[start : end + 1])
    return [
        variant
        for candidate in candidates
        for variant in (candidate, _LINE_COMMENT.sub("", candidate))
    ]


def _normalize_targets(names: list[str], known: list[str]) -> tuple[str, ...]:
    if not known:
        return tuple(dict.fromkeys(name.strip() for name in names if name.strip()))
    resolved: list[str] = []
    for name in names:
        chunk_id = resolve_chunk_id(name.strip(), known)
        if chunk_id is None:
            logger.info("dropping unknown target %r", name)
        elif chunk_id not in resolved:
            resolved.append(chunk_id)
    return tuple(resolved)


def _message_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)
