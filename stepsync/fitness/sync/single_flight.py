"""Per-key single-flight execution.

Concurrent callers asking for the same key share one running task instead of
starting a second one.  Used to keep two sync triggers for the same account
from racing to advance its cursor with different windows.

Usage::

    flights = SingleFlight()
    result = await flights.run(account_id, lambda: orchestrator.sync(account_id, stream))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

logger = logging.getLogger("stepsync.fitness.sync.single_flight")


class SingleFlight:
    """Deduplicate concurrent async calls by key.

    Scoped to one event loop and one process; it is not a distributed lock.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Future] = {}

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``fn()`` unless a call for ``key`` is already in flight.

        Args:
            key: Deduplication key (e.g. an account id).
            fn:  Zero-argument coroutine factory.  Only called when no task for
                 ``key`` is running.

        Returns:
            The result of the (possibly shared) call.  Exceptions propagate to
            every waiter.
        """
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.info("Joining in-flight call for %s", key)
        # shield: a cancelled waiter must not cancel the shared task
        return await asyncio.shield(task)

    def in_flight(self, key: Hashable) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    def _forget(self, key: Hashable, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def __len__(self) -> int:
        return sum(1 for t in self._inflight.values() if not t.done())
