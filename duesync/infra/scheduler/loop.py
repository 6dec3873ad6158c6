# duesync/infra/scheduler/loop.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set, Tuple

from duesync.domain.common.ports import CancelToken, DelayedFn, Scheduler

logger = logging.getLogger(__name__)


class AsyncioScheduler(Scheduler):
    """
    Delayed one-shot calls on the running event loop (undo windows).

    A call fires only if its token is still pending when the timer expires:
    claim the token, forget the timer, then run. cancel() before that point
    guarantees the call never starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._timers: Dict[CancelToken, Tuple[asyncio.TimerHandle, DelayedFn]] = {}
        self._running: Set[asyncio.Task] = set()

    def schedule_once(self, delay_seconds: float, fn: DelayedFn) -> CancelToken:
        loop = self._loop or asyncio.get_running_loop()
        token = CancelToken()
        handle = loop.call_later(max(0.0, delay_seconds), self._fire, token)
        self._timers[token] = (handle, fn)
        return token

    @property
    def pending_count(self) -> int:
        return sum(1 for token in self._timers if token.pending)

    def _fire(self, token: CancelToken) -> None:
        entry = self._timers.pop(token, None)
        if entry is None or not token.claim():
            return
        _, fn = entry
        task = asyncio.ensure_future(self._execute_one(fn))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _execute_one(self, fn: DelayedFn) -> None:
        try:
            await fn()
        except Exception as e:
            # never crash the loop because of a delayed write, but log errors
            logger.error(f"Delayed call failed: {e}", exc_info=True)

    async def flush(self) -> None:
        """Run every pending call now (shutdown before the windows close)."""
        entries = list(self._timers.items())
        self._timers.clear()
        for token, (handle, fn) in entries:
            handle.cancel()
            if token.claim():
                await self._execute_one(fn)
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def cancel_all(self) -> int:
        cancelled = 0
        for token, (handle, _) in list(self._timers.items()):
            if token.cancel():
                cancelled += 1
            handle.cancel()
        self._timers.clear()
        return cancelled
