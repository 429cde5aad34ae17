"""Cooperative cancellation signal.

One ``CancellationSignal`` is created per user-facing operation and passed
explicitly down to the backend wait and every invocation. Nothing is ever
force-killed by the signal itself; code polls ``is_cancelled`` (or calls
``raise_if_cancelled``) at its suspension points:

* before an invocation starts and after each awaited I/O step,
* on every line / poll interval while draining subprocess output,
* while waiting on the backend (``race``) and during retry backoff (``sleep``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from agentloop.errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationSignal:
    """Advisory cancellation token backed by an ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.debug("Cancellation requested: %s", reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep up to ``delay`` seconds, raising early if cancelled."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled(self._reason)

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the signal fires first.

        On cancellation the pending work is cancelled and
        ``OperationCancelled`` is raised.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            work.cancel()
            waiter.cancel()
            raise
        if work in done:
            waiter.cancel()
            return work.result()
        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            logger.debug("Pending work discarded after cancellation", exc_info=True)
        raise OperationCancelled(self._reason)


def never_cancelled() -> CancellationSignal:
    """A fresh signal nobody holds a reference to cancel."""
    return CancellationSignal()
