"""Selects the chunks a request needs before any generation call."""

from __future__ import annotations

import logging
import re

from edit_agent.config import RetrievalConfig
from edit_agent.errors import RetrievalEmpty
from edit_agent.ingest.chunker import resolve_chunk_ids
from edit_agent.ingest.summarizer import ArchitectureSummarizer
from edit_agent.retrieval.scoring import KeywordOverlapScorer, RelevanceScorer
from edit_agent.types import Chunk, ChunkKind, Intent, IntentResult, RetrievalSelection

logger = logging.getLogger(__name__)

_REVIEW_WORDS = {"review", "audit", "检查", "审查", "审核", "排查"}
_SCOPE_WORDS = {"all", "everything", "entire", "whole", "every", "全部", "所有", "整个", "全面"}
_TOKEN = re.compile(r"[A-Za-z]+|[一-鿿]+")

# Retrieval budget per intent; intents not listed use RetrievalConfig.top_n.
_INTENT_TOP_N = {
    Intent.UI_MODIFICATION: 5,
    Intent.LOGIC_FIX: 8,
    Intent.CONFIG_HELP: 3,
    Intent.NEW_FEATURE: 6,
    Intent.QA_EXPLANATION: 4,
    Intent.PERFORMANCE: 6,
    Intent.REFACTOR: 8,
    Intent.DATA_OPERATION: 5,
}
_CALLER_KINDS = {ChunkKind.FUNCTION, ChunkKind.COMPONENT}


def looks_like_global_review(user_text: str) -> bool:
    """True when the request pairs a review verb with a whole-scope word."""

    lowered = user_text.lower()
    tokens = set(_TOKEN.findall(lowered))
    has_review = bool(tokens & _REVIEW_WORDS) or any(
        word in lowered for word in _REVIEW_WORDS if not word.isascii()
    )
    has_scope = bool(tokens & _SCOPE_WORDS) or any(
        word in lowered for word in _SCOPE_WORDS if not word.isascii()
    )
    return has_review and has_scope


class RelevanceRetriever:
    """Picks the minimal chunk subset for an edit.

    Priority order:
    1. Global review (by intent or by request wording) selects every chunk.
    2. Chunks named by the classifier's targets or reference targets.
    3. Top-N chunks by lexical score above `min_score`.
    4. If nothing scores, the single largest chunk.

    Steps 2-4 then add up to `max_referrer_expansion` functions/components
    whose bodies mention a selected edit target, so callers of a modified
    unit are not orphaned. The result is always in document order and never
    empty for a non-empty chunk list.
    """

    def __init__(
        self,
        config: RetrievalConfig | None = None,
        scorer: RelevanceScorer | None = None,
        summarizer: ArchitectureSummarizer | None = None,
    ) -> None:
        self.config = config or RetrievalConfig()
        self.scorer = scorer or KeywordOverlapScorer()
        self.summarizer = summarizer or ArchitectureSummarizer()

    def retrieve(
        self, chunks: list[Chunk], user_text: str, intent: IntentResult
    ) -> RetrievalSelection:
        all_ids = [item.id for item in chunks]
        if not chunks:
            return RetrievalSelection(chunk_ids=[], reason="no_chunks")

        if intent.intent == Intent.GLOBAL_REVIEW or looks_like_global_review(user_text):
            return RetrievalSelection(chunk_ids=all_ids, is_global=True, reason="global_review")

        edit_ids = resolve_chunk_ids(intent.targets, all_ids)
        reference_ids = resolve_chunk_ids(intent.reference_targets, all_ids)
        scores: dict[str, float] = {}

        if edit_ids or reference_ids:
            selected = set(edit_ids) | set(reference_ids)
            anchors = edit_ids
            reason = "explicit_targets"
        else:
            scores = self.scorer.score(user_text, chunks)
            budget = _INTENT_TOP_N.get(intent.intent, self.config.top_n)
            ranked = sorted(
                (chunk_id for chunk_id in all_ids if scores[chunk_id] >= self.config.min_score),
                key=lambda chunk_id: scores[chunk_id],
                reverse=True,
            )[:budget]
            if ranked:
                selected = set(ranked)
                anchors = ranked
                reason = "keyword_score"
            else:
                largest = max(chunks, key=lambda item: item.size_bytes)
                logger.info("%s; defaulting to largest chunk %s", RetrievalEmpty.__name__, largest.id)
                selected = {largest.id}
                anchors = [largest.id]
                reason = "largest_chunk_default"

        selected |= self._referrers(chunks, anchors, selected)
        return RetrievalSelection(
            chunk_ids=[chunk_id for chunk_id in all_ids if chunk_id in selected],
            reason=reason,
            scores=scores,
        )

    def _referrers(
        self, chunks: list[Chunk], anchors: list[str], selected: set[str]
    ) -> set[str]:
        if self.config.max_referrer_expansion == 0:
            return set()
        kinds = {item.id: item.kind for item in chunks}
        summary = {entry.id: entry for entry in self.summarizer.summarize(chunks)}
        added: set[str] = set()
        for anchor in anchors:
            for referrer in summary[anchor].referenced_by:
                if len(added) >= self.config.max_referrer_expansion:
                    return added
                if referrer not in selected and kinds[referrer] in _CALLER_KINDS:
                    added.add(referrer)
        return added
