"""
services/submission_gate.py

At-most-once finalize guard and submission-state validation.

The gate is owned by exactly one SessionController. acquire() performs its
check and set inside one synchronous call, so on a single event loop no
other callback can interleave between them.
"""

import logging
from typing import Any, Mapping, Sequence

from exam_cbt.errors import ValidationError

logger = logging.getLogger(__name__)


class SubmissionGate:
    def __init__(self) -> None:
        self.locked = False
        self.has_submitted = False
        self.mounted = True

    def acquire(self) -> bool:
        if self.locked or self.has_submitted:
            return False
        self.locked = True
        self.has_submitted = True
        return True

    def release(self, allow_retry: bool = True) -> None:
        """
        Failure path only.

        Args:
            allow_retry: also clear `has_submitted` so a later acquire() can win.
        """
        self.locked = False
        if allow_retry:
            self.has_submitted = False

    def unmount(self) -> None:
        self.mounted = False


def validate_session_id(session_id: Any) -> None:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("Invalid session ID")


def validate_questions(questions: Any) -> None:
    """
    Structural check of the served question list.

    Raises:
        ValidationError: empty list, or entries without id / correct_answer.
    """
    if not isinstance(questions, Sequence) or isinstance(questions, (str, bytes)) or not questions:
        raise ValidationError("No questions available")

    invalid = 0
    for number, question in enumerate(questions, start=1):
        if getattr(question, "id", None) in (None, ""):
            logger.error(f"Question {number}: missing id")
            invalid += 1
        elif getattr(question, "correct_answer", None) is None:
            logger.error(f"Question {number}: missing correct answer")
            invalid += 1
    if invalid:
        raise ValidationError(f"{invalid} questions have invalid structure")


def validate_submission(
    session_id: Any,
    questions: Any,
    answers: Any,
    time_left: Any,
) -> None:
    """
    Validate everything finalize depends on, before any state is touched.

    Raises:
        ValidationError: with a user-facing message.
    """
    validate_session_id(session_id)
    validate_questions(questions)
    if not isinstance(answers, Mapping):
        raise ValidationError("Invalid answers object")
    if isinstance(time_left, bool) or not isinstance(time_left, (int, float)) or time_left < 0:
        raise ValidationError("Invalid time remaining")
