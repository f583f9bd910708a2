"""
services/supabase_store.py

Supabase-backed collaborators (questions, test_sessions, user_answers and
test_session_tracking tables).

supabase-py is synchronous; every call runs in a worker thread via
asyncio.to_thread so the event loop keeps ticking while a request is
outstanding. Client errors are wrapped in PersistenceError.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from supabase import Client, create_client

import config
from exam_cbt.errors import PersistenceError
from exam_cbt.models.question_model import Question
from exam_cbt.models.session_state import SubmissionPayload
from exam_cbt.services.repositories import load_questions

logger = logging.getLogger(__name__)


def make_client(url: str = config.SUPABASE_URL, key: str = config.SUPABASE_KEY) -> Client:
    if not url or not key:
        raise PersistenceError("SUPABASE_URL / SUPABASE_KEY are not set", retryable=False)
    return create_client(url, key)


async def _execute(action: str, call: Callable[[], Any]) -> Any:
    try:
        response = await asyncio.to_thread(call)
    except Exception as e:
        logger.error(f"Supabase {action} failed: {e}")
        raise PersistenceError(f"{action} failed: {e}") from e
    return response.data


class SupabaseQuestionSource:
    def __init__(self, client: Client) -> None:
        self.client = client

    async def fetch_questions_for_subject(self, subject_code: str, count: int) -> List[Question]:
        rows = await _execute(
            "fetch questions",
            lambda: self.client.table("questions").select("*").eq("subject", subject_code).execute(),
        )
        if not rows:
            return []
        selected = random.sample(rows, min(count, len(rows)))
        return load_questions(selected)

    async def fetch_subject_codes(self) -> List[str]:
        rows = await _execute(
            "fetch subjects",
            lambda: self.client.table("questions").select("subject").order("subject").execute(),
        )
        return sorted({row["subject"] for row in rows or [] if row.get("subject")})


class SupabaseSessionRepository:
    def __init__(self, client: Client, user_id: Optional[str] = None) -> None:
        self.client = client
        self.user_id = user_id

    async def create_session(self, subject: str, total_questions: int) -> str:
        row = {
            "subject": subject.upper(),
            "total_questions": total_questions,
            "status": "in_progress",
        }
        if self.user_id:
            row["user_id"] = self.user_id
        data = await _execute(
            "create session",
            lambda: self.client.table("test_sessions").insert(row).execute(),
        )
        if not data:
            raise PersistenceError("create session returned no row")
        session_id = str(data[0]["id"])
        logger.info(f"Test session created: {session_id}")
        return session_id

    async def submit_session(self, session_id: str, payload: SubmissionPayload) -> None:
        update = payload.model_dump(mode="json")
        update.update(
            status="completed",
            is_submitted=True,
            submitted_at=datetime.now(timezone.utc).isoformat(),
        )
        # update keyed by id: replaying it after a partial failure is harmless
        await _execute(
            "submit session",
            lambda: self.client.table("test_sessions").update(update).eq("id", session_id).execute(),
        )
        logger.info(f"Test session submitted: {session_id}")

    async def delete_session(self, session_id: str) -> None:
        await _execute(
            "delete answers",
            lambda: self.client.table("user_answers").delete().eq("session_id", session_id).execute(),
        )
        await _execute(
            "delete session",
            lambda: self.client.table("test_sessions").delete().eq("id", session_id).execute(),
        )
        logger.info(f"Test session deleted: {session_id}")

    async def is_session_submitted(self, session_id: str) -> bool:
        data = await _execute(
            "check session",
            lambda: self.client.table("test_sessions")
            .select("is_submitted")
            .eq("id", session_id)
            .limit(1)
            .execute(),
        )
        return bool(data and data[0].get("is_submitted"))


class SupabaseAnswerRepository:
    def __init__(self, client: Client) -> None:
        self.client = client

    async def upsert_answer(
        self,
        session_id: str,
        question_id: str,
        raw_answer: str,
        is_correct: bool,
        marks_awarded: float,
        time_spent_seconds: int,
    ) -> None:
        row = {
            "session_id": session_id,
            "question_id": question_id,
            "user_answer": raw_answer,
            "is_correct": is_correct,
            "marks_awarded": marks_awarded,
            "time_spent": time_spent_seconds,
        }
        await _execute(
            "save answer",
            lambda: self.client.table("user_answers")
            .upsert(row, on_conflict="session_id,question_id")
            .execute(),
        )


class SupabaseActivityRecorder:
    def __init__(self, client: Client, user_id: Optional[str] = None) -> None:
        self.client = client
        self.user_id = user_id

    async def record_activity(
        self,
        session_id: str,
        activity_type: str,
        question_number: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        row = {
            "session_id": session_id,
            "activity_type": activity_type,
            "question_number": question_number,
            "metadata": metadata,
        }
        if self.user_id:
            row["user_id"] = self.user_id
        await _execute(
            "track activity",
            lambda: self.client.table("test_session_tracking").insert(row).execute(),
        )
