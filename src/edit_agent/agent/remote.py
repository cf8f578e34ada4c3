"""Cancellation token and the bounded wrapper around remote calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from edit_agent.errors import RequestCancelled, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Request-scoped cancellation flag shared by every pipeline stage.

    Cancellation only flows downward: the orchestrator (or the HTTP layer
    on client disconnect) calls `cancel()`; stages check `raise_if_cancelled()`
    at their boundaries and `call_remote` aborts in-flight calls.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()


async def call_remote(
    call: Awaitable[T],
    *,
    timeout_seconds: float,
    token: CancellationToken | None = None,
    label: str = "remote call",
) -> T:
    """Await `call` with an explicit deadline, aborting on cancellation.

    Raises:
        UpstreamTimeout: the call did not settle within `timeout_seconds`.
        UpstreamUnavailable: the call raised.
        RequestCancelled: `token` was cancelled before the call settled.
    """

    if token is not None and token.cancelled:
        if asyncio.iscoroutine(call):
            call.close()
        raise RequestCancelled(token.reason)

    task: asyncio.Task[Any] = asyncio.ensure_future(call)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Task[None] | None = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task not in done:
        task.cancel()
        if token is not None and token.cancelled:
            logger.info("%s aborted: request cancelled", label)
            raise RequestCancelled(token.reason)
        logger.warning("%s timed out after %.1fs", label, timeout_seconds)
        raise UpstreamTimeout(f"{label} timed out after {timeout_seconds:.1f}s")

    try:
        return task.result()
    except asyncio.CancelledError as exc:
        raise UpstreamUnavailable(f"{label} was cancelled upstream") from exc
    except Exception as exc:
        raise UpstreamUnavailable(f"{label} failed: {exc}") from exc
