"""
errors.py

Error taxonomy for the exam runtime.
"""


class ExamError(Exception):
    """Base exception for exam runtime errors."""

    pass


class ValidationError(ExamError):
    """Malformed session id or question list. Never retried automatically."""

    pass


class ConcurrencyError(ExamError):
    """A finalize attempt that lost the race for the submission gate."""

    pass


class SessionStateError(ExamError):
    """Operation not allowed in the session's current status."""

    pass


class PersistenceError(ExamError):
    """A collaborator call (question source, session or answer store) failed."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class InitializationError(PersistenceError):
    """Session start failed and the retry budget is spent."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class SubmissionFailedError(PersistenceError):
    """submit_session failed; the gate was released and submit may be retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)
