"""
services/session_controller.py

Session lifecycle: Initializing -> InProgress -> Submitting -> Completed.

The controller owns one countdown clock, one time tracker, one answer store
and one submission gate. Manual submit and clock expiry both funnel into
_finalize(); the gate lets exactly one of them score and persist the
attempt. After teardown() every write is skipped, including writes from
coroutines that resume afterwards.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import config
from exam_cbt.errors import (
    ConcurrencyError,
    InitializationError,
    PersistenceError,
    SessionStateError,
    SubmissionFailedError,
    ValidationError,
)
from exam_cbt.models.question_model import Question
from exam_cbt.models.session_state import (
    ExamSession,
    ResultHandoff,
    ResultSet,
    SessionStatus,
    SubmissionPayload,
)
from exam_cbt.services.activity import ActivityTracker, ActivityType
from exam_cbt.services.answer_store import AnswerStore
from exam_cbt.services.countdown import CountdownClock, format_time
from exam_cbt.services.exam_service import (
    calculate_results,
    calculate_time_taken,
    summarize_time,
)
from exam_cbt.services.question_timer import QuestionTimeTracker
from exam_cbt.services.repositories import (
    ActivityRecorder,
    AnswerRepository,
    QuestionSource,
    ResultPresenter,
    SessionRepository,
)
from exam_cbt.services.submission_gate import (
    SubmissionGate,
    validate_questions,
    validate_session_id,
    validate_submission,
)

logger = logging.getLogger(__name__)


class SessionController:
    def __init__(
        self,
        subject: str,
        question_source: QuestionSource,
        session_repository: SessionRepository,
        answer_repository: AnswerRepository,
        presenter: Optional[ResultPresenter] = None,
        *,
        duration_seconds: int = config.EXAM_DURATION_SECONDS,
        question_count: int = config.QUESTIONS_PER_TEST,
        max_init_attempts: int = config.INIT_MAX_ATTEMPTS,
        submit_timeout: Optional[float] = config.SUBMIT_TIMEOUT_SECONDS,
        clock: Optional[CountdownClock] = None,
        tracker: Optional[QuestionTimeTracker] = None,
        activity_recorder: Optional[ActivityRecorder] = None,
        heartbeat_interval: Optional[float] = config.HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.question_source = question_source
        self.session_repository = session_repository
        self.answer_repository = answer_repository
        self.presenter = presenter
        self.duration_seconds = duration_seconds
        self.question_count = question_count
        self.max_init_attempts = max_init_attempts
        self.submit_timeout = submit_timeout

        self.session = ExamSession(subject=subject.upper())
        self.questions: List[Question] = []
        self.gate = SubmissionGate()
        self.clock = clock or CountdownClock()
        self.tracker = tracker or QuestionTimeTracker()
        self.activity = ActivityTracker(activity_recorder, heartbeat_interval)
        self.answers: Optional[AnswerStore] = None
        self.handoff: Optional[ResultHandoff] = None

        self._init_attempts = 0
        self._submit_failures = 0
        self.clock.expired.connect(self._on_expired)
        self.clock.warning.connect(self._on_warning)

    # ── Accessors ────────────────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def mounted(self) -> bool:
        return self.gate.mounted

    @property
    def time_left(self) -> int:
        return self.clock.remaining

    @property
    def formatted_time(self) -> str:
        return format_time(self.clock.remaining)

    @property
    def result(self) -> Optional[ResultSet]:
        """Scored result once the session is Completed."""
        return self.handoff.result if self.handoff else None

    def _require(self, *statuses: SessionStatus) -> None:
        if not self.mounted:
            raise SessionStateError("Session was torn down")
        if self.session.status not in statuses:
            raise SessionStateError(
                f"Not allowed while session is {self.session.status.value}"
            )

    # ── Initialization ───────────────────────────────────────────────────────

    async def initialize(self) -> ExamSession:
        """
        Load questions, create the durable session and start the clock.

        Retrying from Error is the explicit Error -> Initializing transition,
        allowed `max_init_attempts` times in total.

        Raises:
            ValidationError:     no questions / malformed questions / bad session id.
            PersistenceError:    question source or session store failed.
            InitializationError: retry budget exhausted.
        """
        if not self.mounted:
            raise SessionStateError("Session was torn down")
        if self.session.status == SessionStatus.ERROR:
            if self._init_attempts >= self.max_init_attempts:
                raise InitializationError(
                    f"Could not start the test after {self._init_attempts} attempts"
                )
            logger.info(f"Retrying session start ({self._init_attempts + 1}/{self.max_init_attempts})")
            self.session.status = SessionStatus.INITIALIZING
        self._require(SessionStatus.INITIALIZING)

        self._init_attempts += 1
        subject = self.session.subject
        try:
            questions = await self.question_source.fetch_questions_for_subject(
                subject, self.question_count
            )
            validate_questions(questions)
            session_id = await self.session_repository.create_session(subject, len(questions))
            validate_session_id(session_id)
        except (ValidationError, PersistenceError) as e:
            logger.error(f"Session start failed for {subject}: {e}")
            if self.mounted:
                self.session.status = SessionStatus.ERROR
                self.session.error = str(e)
            raise

        if not self.mounted:
            logger.info(f"Session {session_id} created after teardown; ignoring")
            return self.session

        self.questions = list(questions)
        self.answers = AnswerStore(
            session_id, self.questions, self.answer_repository, self.tracker, self.gate
        )
        self.session.id = session_id
        self.session.total_questions = len(self.questions)
        self.session.start_time = datetime.now()
        self.session.error = None
        self.session.status = SessionStatus.IN_PROGRESS

        self.clock.start(self.duration_seconds)
        self.tracker.start_tracking(self.session.current_question)
        self.activity.start(session_id)
        logger.info(f"Session {session_id} in progress: {subject}, {len(self.questions)} questions")
        return self.session

    # ── Candidate actions ────────────────────────────────────────────────────

    def _check_number(self, number: int) -> int:
        if not isinstance(number, int) or not 1 <= number <= len(self.questions):
            raise ValidationError(f"Question {number} does not exist")
        return number

    def go_to(self, number: int) -> int:
        self._require(SessionStatus.IN_PROGRESS)
        previous = self.session.current_question
        self.session.current_question = self._check_number(number)
        self.tracker.start_tracking(number)
        if number != previous:
            self.activity.track(ActivityType.QUESTION_CHANGE, number)
        return number

    def next_question(self) -> int:
        return self.go_to(min(self.session.current_question + 1, len(self.questions)))

    def previous_question(self) -> int:
        return self.go_to(max(self.session.current_question - 1, 1))

    def toggle_review(self, number: int) -> bool:
        """Returns True when the question is now marked for review."""
        self._require(SessionStatus.IN_PROGRESS)
        self._check_number(number)
        marked = self.session.marked_for_review
        if number in marked:
            marked.discard(number)
            return False
        marked.add(number)
        return True

    def set_answer(self, number: int, value: str) -> Optional[asyncio.Task]:
        self._require(SessionStatus.IN_PROGRESS)
        task = self.answers.set_answer(number, value)
        self.activity.track(ActivityType.ANSWER_UPDATE, number, {"answer": value})
        return task

    def clear_answer(self, number: int) -> None:
        self._require(SessionStatus.IN_PROGRESS)
        self.answers.clear_answer(number)

    async def submit(self) -> Optional[ResultHandoff]:
        """
        Manual submit (after the candidate confirms).

        Returns:
            The hand-off, or None when another submit already owns the gate
            or the session was torn down.
        """
        try:
            return await self._finalize("manual")
        except ConcurrencyError as e:
            logger.info(f"Duplicate manual submit ignored: {e}")
            return None

    # ── Clock events ─────────────────────────────────────────────────────────

    async def _on_expired(self) -> None:
        logger.info(f"Time up for session {self.session.id}; auto-submitting")
        try:
            await self._finalize("expiry")
        except ConcurrencyError as e:
            logger.info(f"Duplicate auto-submit ignored: {e}")
        except SubmissionFailedError as e:
            logger.error(f"Auto-submit failed, waiting for manual retry: {e}")

    def _on_warning(self, remaining: int) -> None:
        if not self.mounted:
            return
        self.session.last_warning = remaining
        logger.warning(f"Session {self.session.id}: {format_time(remaining)} remaining")

    # ── Finalize ─────────────────────────────────────────────────────────────

    async def _finalize(self, trigger: str) -> Optional[ResultHandoff]:
        if not self.gate.acquire():
            raise ConcurrencyError(f"{trigger} submit arrived after the gate closed")
        if not self.mounted:
            self.gate.release()
            logger.info(f"Ignoring {trigger} submit: session torn down")
            return None
        if self.session.status != SessionStatus.IN_PROGRESS:
            self.gate.release()
            raise SessionStateError(f"Cannot submit while session is {self.session.status.value}")

        answers = self.answers.answers()
        try:
            validate_submission(self.session.id, self.questions, answers, self.clock.remaining)
        except ValidationError:
            self.gate.release()
            raise

        # nothing below may interleave with a tick or a navigation
        self.session.status = SessionStatus.SUBMITTING
        self.clock.stop()
        self.tracker.stop_tracking()
        time_snapshot = self.tracker.snapshot()

        result = calculate_results(self.questions, answers)
        time_taken = calculate_time_taken(self.duration_seconds, self.clock.remaining)
        analytics = summarize_time(time_snapshot, answers, time_taken)
        end_time = datetime.now()
        payload = SubmissionPayload(
            end_time=end_time,
            answered_questions=result.answered_questions,
            score=result.score,
            percentage=result.percentage,
            time_taken=time_taken,
            **analytics.model_dump(),
        )
        logger.info(
            f"Submitting session {self.session.id} ({trigger}): "
            f"{result.score}/{result.max_score} ({result.percentage}%)"
        )

        await self._flush_answers()
        try:
            await self._bounded(self._store_submission(payload))
        except (PersistenceError, asyncio.TimeoutError) as e:
            message = str(e) or "submission timed out"
            self._submit_failures += 1
            logger.error(f"Submitting session {self.session.id} failed: {message}")
            if self.mounted:
                self._resume_after_failure(message)
            self.gate.release(allow_retry=True)
            raise SubmissionFailedError(message) from e

        if not self.mounted:
            logger.info(f"Session {self.session.id} stored after teardown; result not presented")
            return None

        self.session.end_time = end_time
        self.session.score = result.score
        self.session.percentage = result.percentage
        self.session.answered_questions = self.answers.count_answered()
        self.session.time_taken = time_taken
        self.session.status = SessionStatus.COMPLETED

        self.handoff = ResultHandoff(
            session_id=self.session.id,
            subject=self.session.subject,
            result=result,
            answers=answers,
            questions=self.questions,
            time_snapshot=time_snapshot,
            time_taken=time_taken,
            analytics=analytics,
        )
        self.activity.stop(trigger=trigger)
        if self.presenter is not None:
            self.presenter.present(self.handoff)
        logger.info(f"Session {self.session.id} completed")
        return self.handoff

    async def _bounded(self, coro):
        if self.submit_timeout:
            return await asyncio.wait_for(coro, timeout=self.submit_timeout)
        return await coro

    async def _flush_answers(self) -> None:
        try:
            await self._bounded(self.answers.flush())
        except asyncio.TimeoutError:
            logger.warning(f"Saving answers for session {self.session.id} timed out; submitting anyway")

    async def _store_submission(self, payload: SubmissionPayload) -> None:
        # an earlier attempt may have been stored before it reported failure
        if self._submit_failures and await self.session_repository.is_session_submitted(
            self.session.id
        ):
            logger.info(f"Session {self.session.id} already stored; not submitting again")
            return
        await self.session_repository.submit_session(self.session.id, payload)

    def _resume_after_failure(self, message: str) -> None:
        self.session.status = SessionStatus.IN_PROGRESS
        self.session.error = message
        if self.clock.remaining > 0:
            self.clock.start(self.clock.remaining)
        self.tracker.start_tracking(self.session.current_question)

    # ── Teardown ─────────────────────────────────────────────────────────────

    def teardown(self) -> None:
        """Page left / component unmounted. Idempotent."""
        if not self.mounted:
            return
        self.gate.unmount()
        self.clock.suppress()
        self.tracker.stop_tracking()
        self.activity.stop(trigger="teardown")
        logger.info(f"Session {self.session.id or '(new)'} torn down in {self.session.status.value}")

    async def abandon(self) -> None:
        """Teardown and remove the stored session unless it was completed."""
        status = self.session.status
        self.teardown()
        if self.answers is not None:
            self.answers.cancel_pending()
        if self.session.id and status != SessionStatus.COMPLETED:
            await self.session_repository.delete_session(self.session.id)
