"""
Per-key call coalescing.

While a call for a key is running, later callers for the same key wait on
that call instead of starting their own.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Call:
    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0
        self.abandoned = False


class SingleFlight:
    """
    Runs at most one coroutine per key at a time.

    Every caller awaits the shared task through ``asyncio.shield`` so that one
    caller giving up does not cancel the work for the others. When the last
    waiter is cancelled the shared task is cancelled too, but the key stays
    taken until that task has actually finished. Callers arriving in the
    meantime wait for it and then start a fresh run.
    """

    def __init__(self):
        self._calls: Dict[Hashable, _Call] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory()`` for key, or join the run already in progress.

        Args:
            key: Coalescing key
            factory: Zero-argument callable returning the coroutine to run

        Returns:
            The shared result; exceptions are shared the same way
        """
        call = self._calls.get(key)
        while call is not None and call.abandoned:
            logger.debug(f"Waiting for abandoned call for {key} to finish")
            await asyncio.wait({call.task})
            self._forget(key, call)
            call = self._calls.get(key)

        if call is None:
            call = _Call(asyncio.ensure_future(factory()))
            self._calls[key] = call
            call.task.add_done_callback(lambda _task: self._forget(key, call))
        else:
            logger.debug(f"Joining in-flight call for {key}")

        call.waiters += 1
        try:
            return await asyncio.shield(call.task)
        finally:
            call.waiters -= 1
            if call.waiters == 0 and not call.task.done():
                logger.info(f"All callers for {key} cancelled, cancelling the call")
                call.abandoned = True
                call.task.cancel()

    def _forget(self, key: Hashable, call: _Call) -> None:
        if self._calls.get(key) is call:
            del self._calls[key]
