"""
services/repositories.py

Collaborator interfaces consumed by the session controller, plus in-memory
implementations used by the sample exam and the tests.

Public API:
  - load_questions(rows) -> List[Question]   : raw rows -> validated questions
  - QuestionSource / SessionRepository / AnswerRepository / ActivityRecorder / ResultPresenter
  - InMemoryQuestionBank, InMemorySessionRepository, InMemoryAnswerRepository,
    InMemoryActivityLog, CollectingPresenter
"""

import logging
import random
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from pydantic import ValidationError as PydanticValidationError

from exam_cbt.errors import PersistenceError, ValidationError
from exam_cbt.models.question_model import Question
from exam_cbt.models.session_state import ResultHandoff, SubmissionPayload

logger = logging.getLogger(__name__)


def load_questions(rows: Iterable[Any]) -> List[Question]:
    """
    Validate question rows at the question-source boundary.

    Raises:
        ValidationError: any row missing id / correct_answer or otherwise malformed.
    """
    questions: List[Question] = []
    for position, row in enumerate(rows, start=1):
        if isinstance(row, Question):
            questions.append(row)
            continue
        try:
            questions.append(Question.model_validate(row))
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValidationError(f"Question {position} is malformed ({fields})") from e
    return questions


# ── Interfaces ───────────────────────────────────────────────────────────────

class QuestionSource(Protocol):
    async def fetch_questions_for_subject(self, subject_code: str, count: int) -> List[Question]: ...

    async def fetch_subject_codes(self) -> List[str]: ...


class SessionRepository(Protocol):
    async def create_session(self, subject: str, total_questions: int) -> str: ...

    async def submit_session(self, session_id: str, payload: SubmissionPayload) -> None: ...

    async def delete_session(self, session_id: str) -> None: ...

    async def is_session_submitted(self, session_id: str) -> bool: ...


class AnswerRepository(Protocol):
    async def upsert_answer(
        self,
        session_id: str,
        question_id: str,
        raw_answer: str,
        is_correct: bool,
        marks_awarded: float,
        time_spent_seconds: int,
    ) -> None: ...


class ActivityRecorder(Protocol):
    async def record_activity(
        self,
        session_id: str,
        activity_type: str,
        question_number: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None: ...


class ResultPresenter(Protocol):
    def present(self, handoff: ResultHandoff) -> None: ...


# ── In-memory implementations ────────────────────────────────────────────────

class InMemoryQuestionBank:
    """Question source over a fixed list of rows (dicts or Question objects)."""

    def __init__(self, rows: Iterable[Any], shuffle: bool = True) -> None:
        self._questions = load_questions(rows)
        self.shuffle = shuffle

    async def fetch_questions_for_subject(self, subject_code: str, count: int) -> List[Question]:
        matching = [q for q in self._questions if q.subject.upper() == subject_code.upper()]
        if self.shuffle:
            matching = random.sample(matching, len(matching))
        return matching[:count]

    async def fetch_subject_codes(self) -> List[str]:
        return sorted({q.subject.upper() for q in self._questions})


class InMemorySessionRepository:
    def __init__(self) -> None:
        self.sessions: Dict[str, Dict[str, Any]] = {}

    async def create_session(self, subject: str, total_questions: int) -> str:
        session_id = str(uuid.uuid4())
        self.sessions[session_id] = {
            "id": session_id,
            "subject": subject.upper(),
            "total_questions": total_questions,
            "start_time": datetime.now(),
            "status": "in_progress",
            "is_submitted": False,
        }
        logger.info(f"Test session created: {session_id}")
        return session_id

    async def submit_session(self, session_id: str, payload: SubmissionPayload) -> None:
        row = self.sessions.get(session_id)
        if row is None:
            raise PersistenceError(f"Session {session_id} not found", retryable=False)
        # keyed by session id: a repeated submit overwrites with the same values
        row.update(payload.model_dump())
        row.update(status="completed", is_submitted=True, submitted_at=datetime.now())

    async def delete_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    async def is_session_submitted(self, session_id: str) -> bool:
        row = self.sessions.get(session_id)
        return bool(row and row["is_submitted"])


class InMemoryAnswerRepository:
    def __init__(self) -> None:
        self.rows: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls = 0

    async def upsert_answer(
        self,
        session_id: str,
        question_id: str,
        raw_answer: str,
        is_correct: bool,
        marks_awarded: float,
        time_spent_seconds: int,
    ) -> None:
        self.calls += 1
        self.rows[(session_id, question_id)] = {
            "user_answer": raw_answer,
            "is_correct": is_correct,
            "marks_awarded": marks_awarded,
            "time_spent": time_spent_seconds,
        }


class InMemoryActivityLog:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    async def record_activity(
        self,
        session_id: str,
        activity_type: str,
        question_number: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.events.append(
            {
                "session_id": session_id,
                "activity_type": activity_type,
                "question_number": question_number,
                "metadata": metadata,
                "timestamp": datetime.now(),
            }
        )


class CollectingPresenter:
    """Keeps the last hand-off for whoever renders results."""

    def __init__(self) -> None:
        self.handoff: Optional[ResultHandoff] = None

    def present(self, handoff: ResultHandoff) -> None:
        self.handoff = handoff
