"""
services/signals.py

Minimal publish/subscribe channel used between runtime components
(e.g. the countdown clock announcing expiry to the session controller).
Coroutine subscribers are scheduled as tasks on the running event loop.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Set

logger = logging.getLogger(__name__)


class Signal:
    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: List[Callable[..., Any]] = []
        self._tasks: Set[asyncio.Task] = set()

    def connect(self, callback: Callable[..., Any]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, *args: Any) -> List[asyncio.Task]:
        """Call every subscriber; returns tasks created for coroutine subscribers."""
        scheduled: List[asyncio.Task] = []
        for callback in list(self._subscribers):
            result = callback(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
                scheduled.append(task)
        return scheduled

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Subscriber of '{self.name}' failed: {exc!r}")
