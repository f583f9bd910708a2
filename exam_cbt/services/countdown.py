"""
services/countdown.py

Exam countdown clock.

Ticks once per `tick_interval` on the running event loop, emits `warning`
when a time threshold is crossed and `expired` exactly once when the time
runs out. Displayed time is advisory: host timer granularity is not an
audit timestamp.
"""

import asyncio
import logging
from typing import Iterable, Optional, Set

import config
from exam_cbt.services.signals import Signal

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    """12345 -> "03:25:45"."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class CountdownClock:
    def __init__(
        self,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
        warning_thresholds: Iterable[int] = config.TIME_WARNING_THRESHOLDS,
    ) -> None:
        self.tick_interval = tick_interval
        self.warning_thresholds = sorted(set(warning_thresholds), reverse=True)
        self.remaining = 0
        self.expired = Signal("expired")
        self.warning = Signal("warning")

        self._task: Optional[asyncio.Task] = None
        self._active = False
        self._fired = False
        self._suppressed = False
        self._warned: Set[int] = set()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    def start(self, initial_seconds: int) -> None:
        """Begin ticking from `initial_seconds`. No-op while already active or suppressed."""
        if self._active or self._suppressed:
            return
        self.remaining = max(0, int(initial_seconds))
        self._fired = False
        # thresholds already behind us never fire
        self._warned = {t for t in self.warning_thresholds if t >= self.remaining}
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Countdown started: {format_time(self.remaining)}")

    def stop(self) -> None:
        """Cancel ticking. Safe to call any number of times."""
        self._active = False
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def suppress(self) -> None:
        """Stop for good: no further ticks, warnings or expiry."""
        self._suppressed = True
        self.stop()

    def tick(self) -> None:
        if not self._active or self._suppressed:
            return

        self.remaining = max(0, self.remaining - 1)

        for threshold in self.warning_thresholds:
            if self.remaining <= threshold and threshold not in self._warned:
                self._warned.add(threshold)
                self.warning.emit(self.remaining)
                break

        if self.remaining == 0 and not self._fired:
            self._fired = True
            self.stop()
            logger.info("Countdown expired")
            self.expired.emit()

    async def _run(self) -> None:
        while self._active and not self._suppressed:
            await asyncio.sleep(self.tick_interval)
            self.tick()
