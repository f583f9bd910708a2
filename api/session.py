"""
api/session.py — multi-user in-memory browser sessions (cookie based)

Each browser gets a UUID session id holding one exam slot: the running
controller and the presenter that receives its result. Sessions expire
after SESSION_TTL seconds of inactivity; expiring or resetting a session
tears its controller down.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import config
from exam_cbt.services.repositories import CollectingPresenter
from exam_cbt.services.session_controller import SessionController

_lock = threading.Lock()
_slots: dict[str, "ExamSlot"] = {}
_timestamps: dict[str, float] = {}

SESSION_TTL = config.SESSION_TTL


@dataclass
class ExamSlot:
    controller: Optional[SessionController] = None
    presenter: Optional[CollectingPresenter] = None

    def teardown(self) -> None:
        if self.controller is not None:
            self.controller.teardown()


def create_session() -> str:
    """Create a session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _slots[sid] = ExamSlot()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> ExamSlot | None:
    """Exam slot for the id; None when unknown or expired."""
    with _lock:
        if sid not in _slots:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            _slots.pop(sid).teardown()
            del _timestamps[sid]
            return None
        _timestamps[sid] = time.time()  # refresh on access
        return _slots[sid]


def controller_for(sid: str) -> SessionController | None:
    slot = get_session(sid)
    return slot.controller if slot else None


def presenter_for(sid: str) -> CollectingPresenter | None:
    slot = get_session(sid)
    return slot.presenter if slot else None


def attach(sid: str, controller: SessionController, presenter: CollectingPresenter) -> None:
    """Replace the exam in this session, tearing down the previous one."""
    with _lock:
        if sid not in _slots:
            return
        _slots[sid].teardown()
        _slots[sid] = ExamSlot(controller, presenter)
        _timestamps[sid] = time.time()


def reset(sid: str) -> None:
    """Tear down the running exam and start from a clean state."""
    with _lock:
        if sid in _slots:
            _slots[sid].teardown()
            _slots[sid] = ExamSlot()
            _timestamps[sid] = time.time()


def cleanup_expired() -> int:
    """Drop expired sessions. Returns how many were removed."""
    now = time.time()
    removed = 0
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            _slots.pop(sid).teardown()
            del _timestamps[sid]
            removed += 1
    return removed
