"""Cancellable acceptance-window timers."""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    """Returned by ``MatchTimer.schedule``; cancelling is idempotent."""

    def __init__(self, timer_id: int, cancel: Callable[[int], None]) -> None:
        self.timer_id = timer_id
        self._cancel = cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._cancel(self.timer_id)


class MatchTimer(ABC):
    @abstractmethod
    def schedule(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        """Run ``callback`` once after ``delay_seconds`` unless cancelled first."""

    @abstractmethod
    async def close(self) -> None:
        """Cancel everything still scheduled or running."""


class AsyncioMatchTimer(MatchTimer):
    """Timers on the running event loop via ``loop.call_later``."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._handles: Dict[int, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        timer_id = next(self._ids)
        self._handles[timer_id] = loop.call_later(delay_seconds, self._fire, timer_id, callback)
        return TimerHandle(timer_id, self._cancel)

    def _fire(self, timer_id: int, callback: TimerCallback) -> None:
        if self._handles.pop(timer_id, None) is None:
            return
        task = asyncio.get_running_loop().create_task(self._run(timer_id, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, timer_id: int, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception(f"Timer {timer_id} callback failed")

    def _cancel(self, timer_id: int) -> None:
        handle = self._handles.pop(timer_id, None)
        if handle is not None:
            handle.cancel()

    @property
    def pending_count(self) -> int:
        return len(self._handles)

    async def close(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class ManualMatchTimer(MatchTimer):
    """Timers that only fire when told to. Used to drive timeouts in tests."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._pending: Dict[int, tuple[float, TimerCallback]] = {}

    def schedule(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        timer_id = next(self._ids)
        self._pending[timer_id] = (delay_seconds, callback)
        return TimerHandle(timer_id, self._cancel)

    def _cancel(self, timer_id: int) -> None:
        self._pending.pop(timer_id, None)

    @property
    def pending(self) -> List[int]:
        return sorted(self._pending)

    def delay_of(self, timer_id: int) -> Optional[float]:
        entry = self._pending.get(timer_id)
        return entry[0] if entry else None

    async def fire(self, timer_id: int) -> bool:
        entry = self._pending.pop(timer_id, None)
        if entry is None:
            return False
        await entry[1]()
        return True

    async def fire_next(self) -> bool:
        """Fire the oldest pending timer; ``False`` when nothing is scheduled."""
        if not self._pending:
            return False
        return await self.fire(min(self._pending))

    async def close(self) -> None:
        self._pending.clear()
