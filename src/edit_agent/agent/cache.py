"""Bounded TTL cache for remote classification results."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from hashlib import sha1

from edit_agent.types import IntentResult


@dataclass(slots=True)
class _CacheEntry:
    value: IntentResult
    created_at: float


class ClassificationCache:
    """LRU cache with a per-entry time-to-live.

    Instances are passed into the classifier explicitly; there is no module
    level cache, so tests inject their own and concurrent pipelines only
    share one when the caller wires it that way.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(user_text: str, summary_text: str = "") -> str:
        digest = sha1()
        digest.update(user_text.strip().encode("utf-8"))
        digest.update(b"\x00")
        digest.update(summary_text.encode("utf-8"))
        return digest.hexdigest()

    def get(self, key: str) -> IntentResult | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.created_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def put(self, key: str, value: IntentResult) -> None:
        self._entries[key] = _CacheEntry(value=value, created_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
