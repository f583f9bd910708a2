"""
services/activity.py

Best-effort activity log for a running session: session start/end,
question changes, answer updates and a periodic heartbeat. Failed writes
are logged and dropped; they never affect the exam itself.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set

import config
from exam_cbt.errors import PersistenceError
from exam_cbt.services.repositories import ActivityRecorder

logger = logging.getLogger(__name__)


class ActivityType(str, Enum):
    SESSION_START = "session_start"
    QUESTION_CHANGE = "question_change"
    ANSWER_UPDATE = "answer_update"
    HEARTBEAT = "heartbeat"
    SESSION_END = "session_end"


class ActivityTracker:
    def __init__(
        self,
        recorder: Optional[ActivityRecorder] = None,
        heartbeat_interval: Optional[float] = config.HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.recorder = recorder
        self.heartbeat_interval = heartbeat_interval
        self.session_id: Optional[str] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.session_id is not None

    def start(self, session_id: str) -> None:
        """Record session_start and begin the heartbeat. No-op without a recorder."""
        if self.recorder is None or self.active:
            return
        self.session_id = session_id
        self.track(ActivityType.SESSION_START)
        if self.heartbeat_interval:
            self._heartbeat = asyncio.get_running_loop().create_task(self._beat())

    def stop(self, **metadata: Any) -> None:
        """Record session_end once and cancel the heartbeat."""
        if not self.active:
            return
        self.track(ActivityType.SESSION_END, metadata=metadata or None)
        self.session_id = None
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

    def track(
        self,
        activity_type: ActivityType,
        question_number: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[asyncio.Task]:
        if not self.active:
            return None
        task = asyncio.get_running_loop().create_task(
            self._record(self.session_id, activity_type, question_number, metadata)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _record(
        self,
        session_id: str,
        activity_type: ActivityType,
        question_number: Optional[int],
        metadata: Optional[Dict[str, Any]],
    ) -> bool:
        try:
            await self.recorder.record_activity(
                session_id, activity_type.value, question_number, metadata
            )
        except PersistenceError as e:
            logger.warning(f"Tracking {activity_type.value} for {session_id} failed: {e}")
            return False
        return True

    async def _beat(self) -> None:
        while self.active:
            await asyncio.sleep(self.heartbeat_interval)
            self.track(ActivityType.HEARTBEAT)
