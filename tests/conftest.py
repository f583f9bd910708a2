import asyncio

import pytest

from exam_cbt.errors import PersistenceError
from exam_cbt.models.question_model import Question
from exam_cbt.services.countdown import CountdownClock
from exam_cbt.services.question_timer import QuestionTimeTracker
from exam_cbt.services.repositories import (
    CollectingPresenter,
    InMemoryActivityLog,
    InMemoryAnswerRepository,
    InMemoryQuestionBank,
    InMemorySessionRepository,
)
from exam_cbt.services.session_controller import SessionController


class FakeTime:
    """Monotonic time source moved by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingSessionRepository(InMemorySessionRepository):
    def __init__(self, fail_submits: int = 0) -> None:
        super().__init__()
        self.fail_submits = fail_submits
        self.submit_calls = 0
        self.submitted_checks = 0

    async def submit_session(self, session_id, payload):
        self.submit_calls += 1
        if self.fail_submits:
            self.fail_submits -= 1
            raise PersistenceError("database unavailable")
        await super().submit_session(session_id, payload)

    async def is_session_submitted(self, session_id):
        self.submitted_checks += 1
        return await super().is_session_submitted(session_id)


class LostReplySessionRepository(CountingSessionRepository):
    """Stores the submission, then reports a failure for the first `lost_replies` calls."""

    def __init__(self, lost_replies: int = 1) -> None:
        super().__init__()
        self.lost_replies = lost_replies

    async def submit_session(self, session_id, payload):
        await super().submit_session(session_id, payload)
        if self.lost_replies:
            self.lost_replies -= 1
            raise PersistenceError("connection reset")


class BlockingSessionRepository(InMemorySessionRepository):
    """submit_session waits until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.submit_calls = 0

    async def submit_session(self, session_id, payload):
        self.submit_calls += 1
        self.entered.set()
        await self.release.wait()
        await super().submit_session(session_id, payload)


class HangingAnswerRepository(InMemoryAnswerRepository):
    """upsert_answer never returns."""

    async def upsert_answer(self, *args):
        self.calls += 1
        await asyncio.Event().wait()


class FailingActivityLog(InMemoryActivityLog):
    async def record_activity(self, *args, **kwargs):
        raise PersistenceError("tracking table unavailable")


class FlakyAnswerRepository(InMemoryAnswerRepository):
    def __init__(self, fail_times: int = 0) -> None:
        super().__init__()
        self.fail_times = fail_times

    async def upsert_answer(self, *args):
        if self.fail_times:
            self.fail_times -= 1
            self.calls += 1
            raise PersistenceError("network down")
        await super().upsert_answer(*args)


def make_question(number: int, **overrides) -> Question:
    data = {
        "id": f"q{number}",
        "subject": "CS",
        "question_text": f"Question {number}",
        "question_type": "MCQ",
        "options": ["w", "x", "y", "z"],
        "correct_answer": "A",
        "marks": 1,
        "negative_marks": 0.33,
    }
    data.update(overrides)
    return Question.model_validate(data)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def questions():
    return [make_question(n) for n in range(1, 6)]


@pytest.fixture
def build_controller(questions, fake_time):
    """Factory for a controller wired to in-memory collaborators."""

    def _build(
        session_repository=None,
        answer_repository=None,
        question_rows=None,
        duration=600,
        **kwargs,
    ):
        bank = InMemoryQuestionBank(question_rows if question_rows is not None else questions, shuffle=False)
        controller = SessionController(
            "cs",
            bank,
            session_repository or CountingSessionRepository(),
            answer_repository or InMemoryAnswerRepository(),
            CollectingPresenter(),
            duration_seconds=duration,
            clock=CountdownClock(tick_interval=3600, warning_thresholds=()),
            tracker=QuestionTimeTracker(now=fake_time),
            **kwargs,
        )
        return controller

    return _build


async def settle(delay: float = 0.05) -> None:
    await asyncio.sleep(delay)
