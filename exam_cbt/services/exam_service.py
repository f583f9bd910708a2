"""
services/exam_service.py

Scoring and result analysis business logic.
Pure Python functions only: no I/O, no global state.
"""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import config
from exam_cbt.models.question_model import Question, QuestionType
from exam_cbt.models.session_state import (
    QuestionTime,
    ResultSet,
    SubjectBreakdown,
    TimeAnalytics,
)

_ONE = Decimal("1")
_CENTS = Decimal("0.01")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _round_half_up(value: Decimal, places: Decimal = _ONE) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


def normalize_answer(value: Optional[object]) -> str:
    """Stringify and trim. None becomes ""."""
    if value is None:
        return ""
    return str(value).strip()


def question_marks(question: Question) -> Decimal:
    """Marks for a correct answer; non-positive marks count as 1."""
    marks = question.marks
    if marks is None or marks <= 0:
        return _ONE
    return _dec(marks)


def resolve_negative_marks(question: Question) -> Decimal:
    """
    Penalty for a wrong MCQ answer.

    Uses `negative_marks` when configured, otherwise 1/3 of the marks for
    1-mark questions and 2/3 of the marks for everything else.
    NAT questions are never penalised.
    """
    if question.question_type != QuestionType.MCQ:
        return Decimal("0")
    if question.negative_marks is not None:
        return _dec(question.negative_marks)
    marks = question_marks(question)
    if marks == _ONE:
        return marks / 3
    return marks * 2 / 3


def grade_answer(question: Question, raw_answer: Optional[object]) -> Tuple[bool, float]:
    """
    Grade a single answer.

    Returns:
        (is_correct, marks_awarded). Empty answers award 0.
    """
    answer = normalize_answer(raw_answer)
    if not answer:
        return False, 0.0
    if answer == normalize_answer(question.correct_answer):
        return True, float(question_marks(question))
    penalty = resolve_negative_marks(question)
    return False, float(_round_half_up(-penalty, _CENTS)) if penalty else 0.0


def calculate_results(
    questions: Sequence[Question],
    answers: Mapping[int, str],
) -> ResultSet:
    """
    Score an attempt.

    Answers are keyed by 1-based question position. Scoring rules:
    - empty (after trimming) or missing answer: unanswered, no score change
    - match with the correct answer: +marks
    - mismatch: MCQ loses resolve_negative_marks(), NAT loses nothing

    Args:
        questions: Questions in the order they were served.
        answers:   {question_number: raw answer string}

    Returns:
        ResultSet with the score floored at 0 and rounded to 2 dp, and
        percentage = round(score / max_score * 100) (0 when max_score is 0).
        Identical inputs always produce an identical ResultSet.
    """
    total = Decimal("0")
    max_score = Decimal("0")
    correct = wrong = unanswered = 0

    buckets: Dict[str, Dict[str, object]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "wrong": 0, "unanswered": 0, "score": Decimal("0")}
    )

    for number, question in enumerate(questions, start=1):
        bucket = buckets[question.subject]
        bucket["total"] += 1

        marks = question_marks(question)
        max_score += marks

        answer = normalize_answer(answers.get(number))
        if not answer:
            unanswered += 1
            bucket["unanswered"] += 1
            continue

        if answer == normalize_answer(question.correct_answer):
            correct += 1
            total += marks
            bucket["correct"] += 1
            bucket["score"] += marks
        else:
            penalty = resolve_negative_marks(question)
            wrong += 1
            total -= penalty
            bucket["wrong"] += 1
            bucket["score"] -= penalty

    score = _round_half_up(max(Decimal("0"), total), _CENTS)
    percentage = int(_round_half_up(score / max_score * 100)) if max_score > 0 else 0

    subject_wise = {
        subject: SubjectBreakdown(
            total=buckets[subject]["total"],
            correct=buckets[subject]["correct"],
            wrong=buckets[subject]["wrong"],
            unanswered=buckets[subject]["unanswered"],
            score=float(_round_half_up(buckets[subject]["score"], _CENTS)),
        )
        for subject in sorted(buckets)
    }

    return ResultSet(
        score=float(score),
        max_score=float(max_score),
        percentage=percentage,
        correct_answers=correct,
        wrong_answers=wrong,
        unanswered=unanswered,
        total_questions=len(questions),
        answered_questions=correct + wrong,
        subject_wise_analysis=subject_wise,
    )


def calculate_time_taken(duration_seconds: int, remaining_seconds: int) -> int:
    """Minutes used out of the exam duration, rounded half-up."""
    used = max(0, duration_seconds - remaining_seconds)
    return int(_round_half_up(Decimal(used) / 60))


def summarize_time(
    snapshot: Sequence[QuestionTime],
    answers: Mapping[int, str],
    time_taken_minutes: int,
) -> TimeAnalytics:
    """Aggregate per-question time into the figures stored with the session."""
    total_seconds = sum(entry.time_spent for entry in snapshot)
    answered_entries: List[QuestionTime] = [
        entry for entry in snapshot if normalize_answer(answers.get(entry.question_number))
    ]
    answered_count = sum(1 for value in answers.values() if normalize_answer(value))

    def _avg(seconds: int, count: int) -> int:
        return int(_round_half_up(Decimal(seconds) / count)) if count else 0

    efficiency = (
        float(_round_half_up(Decimal(answered_count) / time_taken_minutes, _CENTS))
        if time_taken_minutes > 0
        else 0.0
    )
    return TimeAnalytics(
        total_time_on_questions=int(_round_half_up(Decimal(total_seconds) / 60)),
        average_time_per_question=_avg(total_seconds, len(snapshot)),
        average_time_per_answered=_avg(
            sum(entry.time_spent for entry in answered_entries), len(answered_entries)
        ),
        questions_with_time_data=len(snapshot),
        time_efficiency_score=efficiency,
    )


def is_passed(percentage: float, pass_percentage: float = config.PASS_PERCENTAGE) -> bool:
    """
    Pass/fail verdict.

    Args:
        percentage:      ResultSet.percentage (0 ~ 100).
        pass_percentage: Pass mark (default config.PASS_PERCENTAGE).
    """
    return percentage >= pass_percentage
