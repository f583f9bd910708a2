"""
api/routes.py — FastAPI endpoints
"""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from exam_cbt.errors import (
    InitializationError,
    PersistenceError,
    SessionStateError,
    ValidationError,
)
from exam_cbt.models.question_model import Question
from exam_cbt.models.session_state import SessionStatus
from exam_cbt.services.exam_service import is_passed
from exam_cbt.services.repositories import CollectingPresenter
from exam_cbt.services.session_controller import SessionController

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class StartExamBody(BaseModel):
    subject: str


class SaveAnswerBody(BaseModel):
    question_number: int
    answer: str


class QuestionNumberBody(BaseModel):
    question_number: int


# ── Helpers ──────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question, reveal: bool = False) -> dict:
    d = {
        "id": q.id,
        "subject": q.subject,
        "question_text": q.question_text,
        "question_type": q.question_type.value,
        "options": {key: choice.model_dump() for key, choice in q.options.items()},
        "marks": q.marks,
        "question_image": q.question_image,
    }
    if reveal:
        d.update(
            correct_answer=q.correct_answer,
            negative_marks=q.negative_marks,
            explanation=q.explanation,
            explanation_image=q.explanation_image,
        )
    return d


def _controller(request: Request) -> SessionController:
    controller = session.controller_for(request.state.session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="No exam session.")
    return controller


def _raise_http(e: Exception):
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, SessionStateError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PersistenceError):
        raise HTTPException(status_code=503, detail=str(e))
    raise e


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.get("/api/subjects")
async def list_subjects(request: Request):
    try:
        subjects = await request.app.state.question_source.fetch_subject_codes()
    except PersistenceError as e:
        _raise_http(e)
    return {"subjects": subjects}


@router.post("/api/start-exam")
async def start_exam(request: Request, body: StartExamBody):
    sid = request.state.session_id
    controller = session.controller_for(sid)

    # retry an exam whose start failed, within its retry budget
    if controller is None or controller.status != SessionStatus.ERROR or (
        controller.session.subject != body.subject.upper()
    ):
        presenter = CollectingPresenter()
        controller = SessionController(
            body.subject,
            request.app.state.question_source,
            request.app.state.session_repository,
            request.app.state.answer_repository,
            presenter,
            duration_seconds=request.app.state.exam_duration,
            activity_recorder=request.app.state.activity_recorder,
        )
        session.attach(sid, controller, presenter)

    try:
        exam = await controller.initialize()
    except InitializationError as e:
        session.reset(sid)
        _raise_http(e)
    except (ValidationError, PersistenceError, SessionStateError) as e:
        _raise_http(e)
    return {"session_id": exam.id, "total": exam.total_questions, "ok": True}


@router.get("/api/question/{number}")
async def get_question(request: Request, number: int):
    controller = _controller(request)
    if not 1 <= number <= len(controller.questions):
        raise HTTPException(status_code=404, detail="Question not found.")

    q = controller.questions[number - 1]
    d = _question_to_dict(q, reveal=controller.status == SessionStatus.COMPLETED)
    d.update(
        saved_answer=controller.answers.get(number),
        number=number,
        total=len(controller.questions),
        marked_for_review=number in controller.session.marked_for_review,
    )
    return d


@router.get("/api/exam-state")
async def get_exam_state(request: Request):
    controller = _controller(request)
    exam = controller.session
    answers = controller.answers.answers() if controller.answers else {}
    return {
        "session_id": exam.id,
        "subject": exam.subject,
        "status": exam.status.value,
        "current_question": exam.current_question,
        "user_answers": {str(k): v for k, v in answers.items()},
        "marked_for_review": sorted(exam.marked_for_review),
        "answered_count": controller.answers.count_answered() if controller.answers else 0,
        "total": exam.total_questions,
        "time_left": controller.time_left,
        "formatted_time": controller.formatted_time,
        "last_warning": exam.last_warning,
        "error": exam.error,
    }


@router.post("/api/save-answer")
async def save_answer(request: Request, body: SaveAnswerBody):
    controller = _controller(request)
    try:
        controller.set_answer(body.question_number, body.answer)
    except (ValidationError, SessionStateError) as e:
        _raise_http(e)
    return {"ok": True, "answered_count": controller.answers.count_answered()}


@router.post("/api/clear-answer")
async def clear_answer(request: Request, body: QuestionNumberBody):
    controller = _controller(request)
    try:
        controller.clear_answer(body.question_number)
    except (ValidationError, SessionStateError) as e:
        _raise_http(e)
    return {"ok": True, "answered_count": controller.answers.count_answered()}


@router.post("/api/navigate")
async def navigate(request: Request, body: QuestionNumberBody):
    controller = _controller(request)
    try:
        number = controller.go_to(body.question_number)
    except (ValidationError, SessionStateError) as e:
        _raise_http(e)
    return {"current_question": number, "ok": True}


@router.post("/api/mark-review")
async def mark_review(request: Request, body: QuestionNumberBody):
    controller = _controller(request)
    try:
        marked = controller.toggle_review(body.question_number)
    except (ValidationError, SessionStateError) as e:
        _raise_http(e)
    return {"marked": marked, "ok": True}


@router.post("/api/submit-exam")
async def submit_exam(request: Request):
    controller = _controller(request)
    try:
        handoff = await controller.submit()
    except (ValidationError, SessionStateError, PersistenceError) as e:
        _raise_http(e)
    if handoff is None:
        # another submit (or the clock) got there first
        return {"ok": True, "duplicate": True, "status": controller.status.value}
    return {
        "ok": True,
        "duplicate": False,
        "score": handoff.result.score,
        "max_score": handoff.result.max_score,
        "percentage": handoff.result.percentage,
    }


@router.get("/api/results")
async def get_results(request: Request):
    presenter = session.presenter_for(request.state.session_id)
    if presenter is None or presenter.handoff is None:
        raise HTTPException(status_code=404, detail="No results yet.")

    handoff = presenter.handoff
    result = handoff.result
    return {
        "session_id": handoff.session_id,
        "subject": handoff.subject,
        "score": result.score,
        "max_score": result.max_score,
        "percentage": result.percentage,
        "passed": is_passed(result.percentage),
        "correct_answers": result.correct_answers,
        "wrong_answers": result.wrong_answers,
        "unanswered": result.unanswered,
        "total_questions": result.total_questions,
        "subject_wise_analysis": {
            subject: breakdown.model_dump()
            for subject, breakdown in result.subject_wise_analysis.items()
        },
        "time_taken": handoff.time_taken,
        "time_analytics": handoff.analytics.model_dump(),
        "question_time": [entry.model_dump() for entry in handoff.time_snapshot],
        "answers": {str(k): v for k, v in handoff.answers.items()},
        "questions": [_question_to_dict(q, reveal=True) for q in handoff.questions],
    }


@router.post("/api/leave-exam")
async def leave_exam(request: Request):
    controller = _controller(request)
    try:
        await controller.abandon()
    except PersistenceError as e:
        _raise_http(e)
    return {"ok": True}


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(request.state.session_id)
    return {"ok": True}
