"""Lexical relevance scoring between a request and chunk bodies."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from edit_agent.types import Chunk

_WORD = re.compile(r"[A-Za-z][A-Za-z0-9]*|[一-鿿]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "for", "from",
    "in", "into", "is", "it", "its", "make", "me", "my", "of", "on", "or",
    "please", "so", "that", "the", "this", "to", "with", "you", "i", "we",
    "const", "let", "var", "return", "function", "div", "class", "classname",
}


class RelevanceScorer(ABC):
    """Scores chunks against a request; higher is more relevant."""

    @abstractmethod
    def score(self, query: str, chunks: list[Chunk]) -> dict[str, float]:
        """Return a score in [0, 1] per chunk id."""


class KeywordOverlapScorer(RelevanceScorer):
    """Share of request terms found in a chunk, with a bonus for its name.

    Identifiers are split on camelCase and underscores so "footer year"
    matches `FooterYear`; CJK runs contribute their character bigrams.
    """

    def __init__(self, name_bonus: float = 0.5) -> None:
        self.name_bonus = name_bonus

    def score(self, query: str, chunks: list[Chunk]) -> dict[str, float]:
        query_terms = terms(query)
        scores: dict[str, float] = {}
        for item in chunks:
            if not query_terms:
                scores[item.id] = 0.0
                continue
            chunk_terms = terms(item.content)
            overlap = len(query_terms & chunk_terms) / len(query_terms)
            if query_terms & terms(item.id):
                overlap += self.name_bonus
            scores[item.id] = min(1.0, overlap)
        return scores


def terms(text: str) -> set[str]:
    result: set[str] = set()
    for word in _WORD.findall(text):
        if "一" <= word[0] <= "鿿":
            if len(word) == 1:
                result.add(word)
            result.update(word[i : i + 2] for i in range(len(word) - 1))
            continue
        for part in _CAMEL_BOUNDARY.split(word):
            lowered = part.lower()
            if len(lowered) > 1 and lowered not in _STOPWORDS:
                result.add(lowered)
    return result
