import asyncio

import pytest

from edit_agent.agent.cache import ClassificationCache
from edit_agent.agent.remote import CancellationToken, call_remote
from edit_agent.errors import RequestCancelled, UpstreamTimeout, UpstreamUnavailable
from edit_agent.types import Intent, IntentResult


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_cache_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache = ClassificationCache(ttl_seconds=10.0, clock=clock)
    key = cache.make_key("fix the footer", "- Footer [component, 80B]")
    cache.put(key, IntentResult(intent=Intent.LOGIC_FIX))

    clock.now = 9.0
    assert cache.get(key) is not None
    clock.now = 20.0
    assert cache.get(key) is None
    assert (cache.hits, cache.misses) == (1, 1)
    assert len(cache) == 0


def test_cache_evicts_least_recently_used() -> None:
    cache = ClassificationCache(max_entries=2)
    for name in ("a", "b"):
        cache.put(name, IntentResult(intent=Intent.UNKNOWN, reasoning=name))
    cache.get("a")
    cache.put("c", IntentResult(intent=Intent.UNKNOWN))

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert len(cache) == 2


def test_cache_key_depends_on_outline() -> None:
    assert ClassificationCache.make_key("x", "one") != ClassificationCache.make_key("x", "two")
    assert ClassificationCache.make_key(" x ", "one") == ClassificationCache.make_key("x", "one")


def test_call_remote_returns_result() -> None:
    async def _ok() -> str:
        return "done"

    assert asyncio.run(call_remote(_ok(), timeout_seconds=1.0)) == "done"


def test_call_remote_times_out() -> None:
    async def _slow() -> None:
        await asyncio.sleep(5)

    with pytest.raises(UpstreamTimeout):
        asyncio.run(call_remote(_slow(), timeout_seconds=0.05))


def test_call_remote_wraps_failures() -> None:
    async def _boom() -> None:
        raise ConnectionError("refused")

    with pytest.raises(UpstreamUnavailable, match="refused"):
        asyncio.run(call_remote(_boom(), timeout_seconds=1.0, label="model"))


def test_call_remote_aborts_on_cancellation() -> None:
    finished: list[bool] = []

    async def _slow() -> None:
        await asyncio.sleep(5)
        finished.append(True)

    async def _scenario() -> float:
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel, "client disconnected")
        started = loop.time()
        with pytest.raises(RequestCancelled, match="client disconnected"):
            await call_remote(_slow(), timeout_seconds=10.0, token=token)
        return loop.time() - started

    elapsed = asyncio.run(_scenario())

    assert elapsed < 1.0
    assert finished == []


def test_already_cancelled_token_short_circuits() -> None:
    async def _never() -> None:
        raise AssertionError("should not run")

    async def _scenario() -> None:
        token = CancellationToken()
        token.cancel()
        await call_remote(_never(), timeout_seconds=1.0, token=token)

    with pytest.raises(RequestCancelled):
        asyncio.run(_scenario())
