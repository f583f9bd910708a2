"""
services/answer_store.py

Candidate answers keyed by 1-based question number, with best-effort
background persistence of each change to the answer repository.

The in-memory record is the scoring source of truth; persisted rows are
a convenience for analytics and are re-sent at finalize if they lag.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Set

from exam_cbt.errors import PersistenceError, SessionStateError, ValidationError
from exam_cbt.models.question_model import Question
from exam_cbt.services.exam_service import grade_answer, normalize_answer
from exam_cbt.services.question_timer import QuestionTimeTracker
from exam_cbt.services.repositories import AnswerRepository
from exam_cbt.services.submission_gate import SubmissionGate

logger = logging.getLogger(__name__)


class AnswerStore:
    def __init__(
        self,
        session_id: str,
        questions: Sequence[Question],
        repository: AnswerRepository,
        tracker: QuestionTimeTracker,
        gate: SubmissionGate,
    ) -> None:
        self.session_id = session_id
        self.questions = list(questions)
        self.repository = repository
        self.tracker = tracker
        self.gate = gate

        self._answers: Dict[int, str] = {}
        self._sent: Dict[int, str] = {}  # last normalized value handed to the repository
        self._confirmed: Dict[int, str] = {}  # last normalized value the repository acknowledged
        self._tasks: Set[asyncio.Task] = set()

    def _require_mounted(self) -> None:
        if not self.gate.mounted:
            raise SessionStateError("Session was torn down")

    def _question(self, number: int) -> Question:
        if not isinstance(number, int) or not 1 <= number <= len(self.questions):
            raise ValidationError(f"Question {number} does not exist")
        return self.questions[number - 1]

    def get(self, number: int) -> Optional[str]:
        return self._answers.get(number)

    def answers(self) -> Dict[int, str]:
        return dict(self._answers)

    def count_answered(self) -> int:
        return sum(1 for value in self._answers.values() if normalize_answer(value))

    def set_answer(self, number: int, value: str) -> Optional[asyncio.Task]:
        """
        Record an answer and schedule its persistence.

        Returns:
            The persistence task, or None when the value matches what was
            already sent for this question.
        """
        self._require_mounted()
        question = self._question(number)
        raw = "" if value is None else str(value)
        self._answers[number] = raw

        normalized = normalize_answer(raw)
        if self._sent.get(number) == normalized:
            return None
        self._sent[number] = normalized

        task = asyncio.get_running_loop().create_task(self._persist(number, question, raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def clear_answer(self, number: int) -> None:
        self._require_mounted()
        self._question(number)
        self._answers.pop(number, None)

    async def _persist(self, number: int, question: Question, raw: str) -> bool:
        is_correct, marks = grade_answer(question, raw)
        time_spent = int(round(self.tracker.get_elapsed(number)))
        normalized = normalize_answer(raw)
        try:
            await self.repository.upsert_answer(
                self.session_id, question.id, raw, is_correct, marks, time_spent
            )
        except PersistenceError as e:
            logger.warning(f"Saving answer for Q{number} failed (kept in memory): {e}")
            if self.gate.mounted and self._sent.get(number) == normalized:
                del self._sent[number]
            return False

        if self.gate.mounted:
            self._confirmed[number] = normalized
        return True

    async def flush(self) -> int:
        """
        Re-send answers whose stored row lags the in-memory value.

        Cleared answers are sent as "". Failures are logged and ignored.

        Returns:
            Number of rows successfully written.
        """
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        pending: List[asyncio.Task] = []
        numbers = sorted(set(self._answers) | set(self._confirmed))
        for number in numbers:
            raw = self._answers.get(number, "")
            normalized = normalize_answer(raw)
            if self._confirmed.get(number) == normalized:
                continue
            if number not in self._confirmed and not normalized:
                continue
            self._sent[number] = normalized
            pending.append(
                asyncio.ensure_future(self._persist(number, self._question(number), raw))
            )

        if not pending:
            return 0
        results = await asyncio.gather(*pending, return_exceptions=True)
        written = sum(1 for r in results if r is True)
        logger.info(f"Flushed {written}/{len(pending)} lagging answers")
        return written

    def cancel_pending(self) -> None:
        for task in list(self._tasks):
            task.cancel()
