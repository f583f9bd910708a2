"""
services/question_timer.py

Per-question time ledger. Wall-clock time is attributed to whichever
question is open; at most one segment is open at any moment.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from exam_cbt.models.session_state import QuestionTime

logger = logging.getLogger(__name__)


class QuestionTimeTracker:
    def __init__(self, now: Callable[[], float] = time.monotonic) -> None:
        self._now = now
        self._totals: Dict[int, float] = {}
        self._current: Optional[int] = None
        self._segment_start = 0.0

    @property
    def current(self) -> Optional[int]:
        """Question with the open segment, or None when idle."""
        return self._current

    def start_tracking(self, question_number: int) -> None:
        if self._current == question_number:
            return
        if self._current is not None:
            self.stop_tracking()
        self._totals.setdefault(question_number, 0.0)
        self._current = question_number
        self._segment_start = self._now()

    def stop_tracking(self) -> None:
        if self._current is None:
            return
        elapsed = max(0.0, self._now() - self._segment_start)
        self._totals[self._current] += elapsed
        logger.debug(f"Q{self._current}: +{elapsed:.1f}s (total {self._totals[self._current]:.1f}s)")
        self._current = None

    def get_elapsed(self, question_number: int) -> float:
        """Seconds spent on the question, including the live segment."""
        elapsed = self._totals.get(question_number, 0.0)
        if self._current == question_number:
            elapsed += max(0.0, self._now() - self._segment_start)
        return elapsed

    def snapshot(self) -> List[QuestionTime]:
        entries = []
        for number in sorted(self._totals):
            spent = int(round(self.get_elapsed(number)))
            if spent > 0:
                entries.append(QuestionTime(question_number=number, time_spent=spent))
        return entries

    def reset(self) -> None:
        self._totals.clear()
        self._current = None
        self._segment_start = 0.0
