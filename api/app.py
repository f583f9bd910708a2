"""
api/app.py — FastAPI app instance + session middleware + collaborator wiring
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import config
import api.session as session
from api.routes import router
from api.sample_questions import SAMPLE_QUESTIONS
from exam_cbt.services.repositories import (
    ActivityRecorder,
    AnswerRepository,
    InMemoryActivityLog,
    InMemoryAnswerRepository,
    InMemoryQuestionBank,
    InMemorySessionRepository,
    QuestionSource,
    SessionRepository,
)

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


def _default_collaborators():
    """Supabase when configured, otherwise the built-in sample bank in memory."""
    if config.SUPABASE_URL and config.SUPABASE_KEY:
        from exam_cbt.services.supabase_store import (
            SupabaseActivityRecorder,
            SupabaseAnswerRepository,
            SupabaseQuestionSource,
            SupabaseSessionRepository,
            make_client,
        )

        client = make_client()
        logger.info("Using Supabase persistence")
        return (
            SupabaseQuestionSource(client),
            SupabaseSessionRepository(client),
            SupabaseAnswerRepository(client),
            SupabaseActivityRecorder(client),
        )
    logger.info("SUPABASE_URL not set; using sample questions with in-memory persistence")
    return (
        InMemoryQuestionBank(SAMPLE_QUESTIONS),
        InMemorySessionRepository(),
        InMemoryAnswerRepository(),
        InMemoryActivityLog(),
    )


def create_app(
    question_source: Optional[QuestionSource] = None,
    session_repository: Optional[SessionRepository] = None,
    answer_repository: Optional[AnswerRepository] = None,
    activity_recorder: Optional[ActivityRecorder] = None,
    exam_duration: int = config.EXAM_DURATION_SECONDS,
) -> FastAPI:
    if None in (question_source, session_repository, answer_repository, activity_recorder):
        defaults = _default_collaborators()
        question_source = question_source or defaults[0]
        session_repository = session_repository or defaults[1]
        answer_repository = answer_repository or defaults[2]
        activity_recorder = activity_recorder or defaults[3]

    # periodic cleanup of expired browser sessions
    async def _cleanup_loop():
        while True:
            await asyncio.sleep(config.SESSION_CLEANUP_INTERVAL)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"Removed {removed} expired sessions")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(_cleanup_loop())
        yield
        task.cancel()

    app = FastAPI(title="CBT Exam Runtime", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.question_source = question_source
    app.state.session_repository = session_repository
    app.state.answer_repository = answer_repository
    app.state.activity_recorder = activity_recorder
    app.state.exam_duration = exam_duration

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # read the session id from the cookie, issue a new one when missing
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)
    return app
