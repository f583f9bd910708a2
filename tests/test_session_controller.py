import asyncio

import pytest

from conftest import (
    BlockingSessionRepository,
    CountingSessionRepository,
    HangingAnswerRepository,
    LostReplySessionRepository,
    settle,
)
from exam_cbt.errors import (
    InitializationError,
    PersistenceError,
    SessionStateError,
    SubmissionFailedError,
    ValidationError,
)
from exam_cbt.models.session_state import QuestionTime, SessionStatus
from exam_cbt.services.repositories import InMemoryQuestionBank


class FailingQuestionSource:
    def __init__(self, questions, failures):
        self.bank = InMemoryQuestionBank(questions, shuffle=False)
        self.failures = failures
        self.calls = 0

    async def fetch_questions_for_subject(self, subject_code, count):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise PersistenceError("question service unavailable")
        return await self.bank.fetch_questions_for_subject(subject_code, count)

    async def fetch_subject_codes(self):
        return await self.bank.fetch_subject_codes()


def test_initialize_starts_clock_and_tracking(build_controller):
    async def scenario():
        c = build_controller()
        session = await c.initialize()

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.subject == "CS"
        assert session.total_questions == 5
        assert session.id in c.session_repository.sessions
        assert c.clock.active
        assert c.time_left == 600
        assert c.formatted_time == "00:10:00"
        assert c.tracker.current == 1
        c.teardown()

    asyncio.run(scenario())


def test_initialize_with_no_questions_is_a_validation_error(build_controller):
    async def scenario():
        c = build_controller(question_rows=[])
        with pytest.raises(ValidationError, match="No questions"):
            await c.initialize()
        assert c.status == SessionStatus.ERROR
        assert c.session_repository.sessions == {}

    asyncio.run(scenario())


def test_initialize_retry_is_bounded(build_controller, questions):
    async def scenario():
        c = build_controller(max_init_attempts=2)
        c.question_source = FailingQuestionSource(questions, failures=5)

        with pytest.raises(PersistenceError):
            await c.initialize()
        assert c.status == SessionStatus.ERROR
        with pytest.raises(PersistenceError):
            await c.initialize()
        with pytest.raises(InitializationError):
            await c.initialize()
        assert c.question_source.calls == 2

    asyncio.run(scenario())


def test_initialize_recovers_from_error(build_controller, questions):
    async def scenario():
        c = build_controller()
        c.question_source = FailingQuestionSource(questions, failures=1)

        with pytest.raises(PersistenceError):
            await c.initialize()
        session = await c.initialize()

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.error is None
        c.teardown()

    asyncio.run(scenario())


def test_initialize_twice_is_rejected(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        with pytest.raises(SessionStateError):
            await c.initialize()
        c.teardown()

    asyncio.run(scenario())


def test_manual_submit_scores_and_presents(build_controller, fake_time):
    async def scenario():
        c = build_controller()
        await c.initialize()
        c.set_answer(1, "A")
        fake_time.advance(10)
        c.go_to(2)
        c.set_answer(2, "A")
        fake_time.advance(5)
        c.go_to(3)
        c.set_answer(3, "C")
        fake_time.advance(3)
        c.clock.remaining = 480

        handoff = await c.submit()

        assert handoff is not None
        assert c.presenter.handoff is handoff
        assert handoff.result.correct_answers == 2
        assert handoff.result.wrong_answers == 1
        assert handoff.result.unanswered == 2
        assert handoff.result.score == 1.67
        assert handoff.result.percentage == 33
        assert handoff.answers == {1: "A", 2: "A", 3: "C"}
        assert handoff.time_snapshot == [
            QuestionTime(question_number=1, time_spent=10),
            QuestionTime(question_number=2, time_spent=5),
            QuestionTime(question_number=3, time_spent=3),
        ]
        assert handoff.time_taken == 2

        session = c.session
        assert session.status == SessionStatus.COMPLETED
        assert session.score == 1.67
        assert session.percentage == 33
        assert session.answered_questions == 3
        assert session.time_taken == 2
        assert not c.clock.active
        assert c.tracker.current is None

        row = c.session_repository.sessions[session.id]
        assert row["is_submitted"] is True
        assert row["score"] == 1.67
        assert row["time_taken"] == 2

    asyncio.run(scenario())


def test_session_is_immutable_after_completion(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        await c.submit()

        with pytest.raises(SessionStateError):
            c.set_answer(1, "A")
        with pytest.raises(SessionStateError):
            c.clear_answer(1)
        with pytest.raises(SessionStateError):
            c.go_to(2)
        with pytest.raises(SessionStateError):
            c.toggle_review(2)
        assert await c.submit() is None
        assert c.session_repository.submit_calls == 1

    asyncio.run(scenario())


def test_double_click_submits_once(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()

        first, second = await asyncio.gather(c.submit(), c.submit())

        assert (first is None) != (second is None)
        assert c.session_repository.submit_calls == 1

    asyncio.run(scenario())


def test_manual_submit_and_expiry_in_same_tick(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        c.set_answer(1, "A")

        c.clock.remaining = 1
        c.clock.tick()  # schedules the expiry handler
        handoff = await c.submit()
        await settle()

        assert handoff is not None
        assert c.status == SessionStatus.COMPLETED
        assert c.session_repository.submit_calls == 1

    asyncio.run(scenario())


def test_expiry_wins_then_manual_submit_is_ignored(build_controller):
    async def scenario():
        repo = BlockingSessionRepository()
        c = build_controller(session_repository=repo)
        await c.initialize()

        c.clock.remaining = 1
        c.clock.tick()
        await asyncio.wait_for(repo.entered.wait(), timeout=1)
        assert c.status == SessionStatus.SUBMITTING

        assert await c.submit() is None
        repo.release.set()
        await settle()

        assert c.status == SessionStatus.COMPLETED
        assert repo.submit_calls == 1
        assert c.presenter.handoff is not None
        assert c.session.time_taken == 10

    asyncio.run(scenario())


def test_expiry_auto_submits(build_controller):
    async def scenario():
        c = build_controller(duration=3)
        await c.initialize()
        c.set_answer(2, "A")

        for _ in range(3):
            c.clock.tick()
        await settle()

        assert c.status == SessionStatus.COMPLETED
        assert c.presenter.handoff.result.correct_answers == 1

    asyncio.run(scenario())


def test_no_ticks_after_submission_starts(build_controller):
    async def scenario():
        repo = BlockingSessionRepository()
        c = build_controller(session_repository=repo)
        await c.initialize()

        task = asyncio.ensure_future(c.submit())
        await asyncio.wait_for(repo.entered.wait(), timeout=1)
        before = c.clock.remaining
        c.clock.tick()
        assert c.clock.remaining == before

        repo.release.set()
        assert await task is not None

    asyncio.run(scenario())


def test_failed_submit_releases_gate_and_allows_retry(build_controller):
    async def scenario():
        repo = CountingSessionRepository(fail_submits=1)
        c = build_controller(session_repository=repo)
        await c.initialize()
        c.go_to(2)
        c.set_answer(2, "A")

        with pytest.raises(SubmissionFailedError) as exc:
            await c.submit()

        assert exc.value.retryable
        assert c.status == SessionStatus.IN_PROGRESS
        assert c.session.error == "database unavailable"
        assert not c.gate.locked
        assert c.clock.active
        assert c.tracker.current == 2

        handoff = await c.submit()
        assert handoff is not None
        assert c.status == SessionStatus.COMPLETED
        assert repo.submit_calls == 2

    asyncio.run(scenario())


def test_failed_auto_submit_waits_for_manual_retry(build_controller):
    async def scenario():
        repo = CountingSessionRepository(fail_submits=1)
        c = build_controller(session_repository=repo, duration=1)
        await c.initialize()

        c.clock.tick()
        await settle()

        assert c.status == SessionStatus.IN_PROGRESS
        assert not c.clock.active
        assert c.time_left == 0

        handoff = await c.submit()
        assert handoff is not None
        assert handoff.time_taken == 0

    asyncio.run(scenario())


def test_submit_timeout_is_retryable(build_controller):
    async def scenario():
        repo = BlockingSessionRepository()
        c = build_controller(session_repository=repo, submit_timeout=0.05)
        await c.initialize()

        with pytest.raises(SubmissionFailedError, match="timed out"):
            await c.submit()
        assert c.status == SessionStatus.IN_PROGRESS

        repo.release.set()
        assert await c.submit() is not None

    asyncio.run(scenario())


def test_validation_failure_leaves_session_running(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        c.session.id = "  "

        with pytest.raises(ValidationError):
            await c.submit()

        assert c.status == SessionStatus.IN_PROGRESS
        assert not c.gate.locked
        assert not c.gate.has_submitted
        assert c.clock.active
        c.teardown()

    asyncio.run(scenario())


def test_teardown_during_submit_suppresses_writes(build_controller):
    async def scenario():
        repo = BlockingSessionRepository()
        c = build_controller(session_repository=repo)
        await c.initialize()

        task = asyncio.ensure_future(c.submit())
        await asyncio.wait_for(repo.entered.wait(), timeout=1)
        c.teardown()
        repo.release.set()

        assert await task is None
        assert c.status == SessionStatus.SUBMITTING
        assert c.presenter.handoff is None
        assert repo.sessions[c.session.id]["is_submitted"] is True

    asyncio.run(scenario())


def test_teardown_blocks_expiry(build_controller):
    async def scenario():
        c = build_controller(duration=2)
        await c.initialize()

        c.teardown()
        c.clock.tick()
        c.clock.tick()
        await settle()

        assert c.status == SessionStatus.IN_PROGRESS
        assert c.session_repository.submit_calls == 0
        assert await c.submit() is None

    asyncio.run(scenario())


def test_navigation_moves_tracking(build_controller, fake_time):
    async def scenario():
        c = build_controller()
        await c.initialize()

        assert c.next_question() == 2
        fake_time.advance(4)
        assert c.next_question() == 3
        assert c.previous_question() == 2
        assert c.go_to(5) == 5
        assert c.next_question() == 5
        c.go_to(1)
        assert c.previous_question() == 1
        with pytest.raises(ValidationError):
            c.go_to(6)

        assert c.tracker.get_elapsed(2) == 4
        assert c.session.current_question == 1
        c.teardown()

    asyncio.run(scenario())


def test_toggle_review(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()

        assert c.toggle_review(3) is True
        assert c.session.marked_for_review == {3}
        assert c.toggle_review(3) is False
        assert c.session.marked_for_review == set()
        c.teardown()

    asyncio.run(scenario())


def test_answers_are_saved_in_background(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()

        await c.set_answer(1, "A")

        row = c.answer_repository.rows[(c.session.id, "q1")]
        assert row["is_correct"] is True
        c.teardown()

    asyncio.run(scenario())


def test_abandon_deletes_unfinished_session(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        session_id = c.session.id

        await c.abandon()

        assert session_id not in c.session_repository.sessions
        assert not c.mounted

    asyncio.run(scenario())


def test_abandon_keeps_completed_session(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        await c.submit()

        await c.abandon()

        assert await c.session_repository.is_session_submitted(c.session.id)

    asyncio.run(scenario())


def test_time_warnings_are_recorded(build_controller):
    async def scenario():
        c = build_controller(duration=5)
        c.clock.warning_thresholds = [2]
        await c.initialize()

        for _ in range(3):
            c.clock.tick()

        assert c.session.last_warning == 2
        c.teardown()

    asyncio.run(scenario())


def test_hung_answer_save_does_not_block_submit(build_controller):
    async def scenario():
        c = build_controller(answer_repository=HangingAnswerRepository(), submit_timeout=0.05)
        await c.initialize()
        c.set_answer(1, "A")

        handoff = await asyncio.wait_for(c.submit(), timeout=1)

        assert handoff is not None
        assert handoff.result.correct_answers == 1
        assert c.status == SessionStatus.COMPLETED
        assert c.session_repository.submit_calls == 1

    asyncio.run(scenario())


def test_writes_after_teardown_are_rejected(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        c.teardown()

        with pytest.raises(SessionStateError):
            c.set_answer(2, "B")
        with pytest.raises(SessionStateError):
            c.clear_answer(2)
        with pytest.raises(SessionStateError):
            c.go_to(3)
        with pytest.raises(SessionStateError):
            c.next_question()
        with pytest.raises(SessionStateError):
            c.toggle_review(3)
        await settle()

        assert c.answer_repository.calls == 0
        assert c.answers.answers() == {}
        assert c.session.current_question == 1
        assert c.session.marked_for_review == set()
        assert c.tracker.current is None

    asyncio.run(scenario())


def test_initialize_after_teardown_is_rejected(build_controller):
    async def scenario():
        c = build_controller()
        c.teardown()

        with pytest.raises(SessionStateError):
            await c.initialize()
        assert c.session_repository.sessions == {}

    asyncio.run(scenario())


def test_retry_after_lost_reply_does_not_submit_twice(build_controller):
    async def scenario():
        repo = LostReplySessionRepository()
        c = build_controller(session_repository=repo)
        await c.initialize()

        with pytest.raises(SubmissionFailedError):
            await c.submit()
        assert c.status == SessionStatus.IN_PROGRESS

        handoff = await c.submit()

        assert handoff is not None
        assert c.status == SessionStatus.COMPLETED
        assert repo.submit_calls == 1
        assert repo.submitted_checks == 1

    asyncio.run(scenario())


def test_first_submit_skips_stored_check(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        await c.submit()

        assert c.session_repository.submitted_checks == 0

    asyncio.run(scenario())


def test_result_is_available_after_completion(build_controller):
    async def scenario():
        c = build_controller()
        await c.initialize()
        c.set_answer(1, "A")
        assert c.result is None

        handoff = await c.submit()

        assert c.result is handoff.result
        assert c.result.correct_answers == 1

    asyncio.run(scenario())
