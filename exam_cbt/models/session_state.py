"""
models/session_state.py

Session, result and hand-off models.
Pydantic BaseModel based; no runtime logic beyond field defaults.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from exam_cbt.models.question_model import Question


class SessionStatus(str, Enum):
    INITIALIZING = "Initializing"
    IN_PROGRESS = "InProgress"
    SUBMITTING = "Submitting"
    COMPLETED = "Completed"
    ERROR = "Error"


class ExamSession(BaseModel):
    """
    One candidate's timed attempt at a subject's question set.

    Attributes:
        id:                 Durable session id from the session store ("" until created).
        subject:            Upper-cased subject code.
        total_questions:    Number of questions served.
        status:             Lifecycle status, see SessionStatus.
        start_time:         When the countdown started.
        end_time:           When the attempt was finalized.
        score:              Final score (set at Completed).
        percentage:         Final percentage (set at Completed).
        answered_questions: Answered count at finalize time.
        time_taken:         Minutes used, rounded.
        current_question:   1-based question currently on screen.
        marked_for_review:  Question numbers flagged by the candidate.
        last_warning:       Remaining seconds at the most recent time warning.
        error:              Message of the last initialization/submission failure.
    """

    id: str = ""
    subject: str
    total_questions: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.INITIALIZING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    score: Optional[float] = None
    percentage: Optional[int] = None
    answered_questions: int = 0
    time_taken: Optional[int] = None
    current_question: int = Field(default=1, ge=1)
    marked_for_review: Set[int] = Field(default_factory=set)
    last_warning: Optional[int] = None
    error: Optional[str] = None


class SubjectBreakdown(BaseModel):
    total: int = 0
    correct: int = 0
    wrong: int = 0
    unanswered: int = 0
    score: float = 0.0


class ResultSet(BaseModel):
    """Scoring summary. Recomputable from Question[] + answers at any time."""

    score: float
    max_score: float
    percentage: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    total_questions: int
    answered_questions: int
    subject_wise_analysis: Dict[str, SubjectBreakdown] = Field(default_factory=dict)


class QuestionTime(BaseModel):
    question_number: int
    time_spent: int  # seconds


class TimeAnalytics(BaseModel):
    total_time_on_questions: int = 0  # minutes
    average_time_per_question: int = 0  # seconds
    average_time_per_answered: int = 0  # seconds
    questions_with_time_data: int = 0
    time_efficiency_score: float = 0.0  # answered questions per minute


class SubmissionPayload(BaseModel):
    """Row update sent to the session store when an attempt is finalized."""

    end_time: datetime
    answered_questions: int
    score: float
    percentage: int
    time_taken: int  # minutes
    total_time_on_questions: int = 0
    average_time_per_question: int = 0
    average_time_per_answered: int = 0
    questions_with_time_data: int = 0
    time_efficiency_score: float = 0.0


class ResultHandoff(BaseModel):
    """Everything the results screen needs; read-only for the consumer."""

    model_config = {"frozen": True}

    session_id: str
    subject: str
    result: ResultSet
    answers: Dict[int, str]
    questions: List[Question]
    time_snapshot: List[QuestionTime]
    time_taken: int
    analytics: TimeAnalytics
