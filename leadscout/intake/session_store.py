"""
Session Store

In-memory, time-boxed conversation state keyed by session id.

Expiry is decided by one function, ``_is_expired``, used by both the read
path (``get``) and the background sweep, so the two can never disagree.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ..common.config import SessionConfig
from ..common.schemas import QuestionType, SessionStatus

logger = logging.getLogger("leadscout.intake.session_store")

# Rough per-entry footprint used for the memory estimate
SESSION_OVERHEAD_BYTES = 200
QA_OVERHEAD_BYTES = 500

# Checked in order; first hit wins
QUESTION_TYPE_KEYWORDS = [
    (QuestionType.PRODUCT, ("product", "service")),
    (QuestionType.INDUSTRY, ("industry", "business")),
    (QuestionType.REGION, ("region", "country", "location")),
    (QuestionType.KEYWORDS, ("keyword", "specific")),
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def classify_question(question: str) -> QuestionType:
    """Classify a question by substring match on a small keyword table."""
    lowered = question.lower()
    for question_type, words in QUESTION_TYPE_KEYWORDS:
        if any(word in lowered for word in words):
            return question_type
    return QuestionType.GENERAL


@dataclass(frozen=True)
class QuestionAnswer:
    id: str
    timestamp: datetime
    question: str
    answer: str
    classified_type: QuestionType

    @property
    def answer_length(self) -> int:
        return len(self.answer)


@dataclass
class Session:
    id: str
    created_at: datetime
    last_activity: datetime
    question_answers: List[QuestionAnswer] = field(default_factory=list)
    total_questions: int = 0
    last_generation_at: Optional[datetime] = None

    def snapshot(self) -> "Session":
        """Copy safe to hand out while the store keeps mutating the original."""
        return replace(self, question_answers=list(self.question_answers))


def session_status(
    session: Session,
    now: datetime,
    *,
    idle_after_seconds: float = 300.0,
    active_min_answers: int = 3,
) -> SessionStatus:
    """Derive a session's status. Pure; never stored."""
    count = len(session.question_answers)
    if count == 0:
        return SessionStatus.NEW
    if count < active_min_answers:
        return SessionStatus.GATHERING
    if (now - session.last_activity).total_seconds() > idle_after_seconds:
        return SessionStatus.IDLE
    return SessionStatus.ACTIVE


class SessionStore:
    """
    Arena of sessions (id -> Session) with TTL eviction.

    All mutation happens under one short-held lock, so concurrent appends
    to the same id never lose an update, and the sweep only holds the lock
    long enough to delete each expired entry.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or SessionConfig()
        self._clock = clock
        self._ttl = timedelta(seconds=self.config.ttl_seconds)
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def now(self) -> datetime:
        return self._clock()

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now - session.last_activity > self._ttl

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self, session_id: str) -> Session:
        now = self.now()
        session = Session(id=session_id, created_at=now, last_activity=now)
        with self._lock:
            self._sessions[session_id] = session
        logger.debug("Created session %s", session_id)
        return session.snapshot()

    def get(self, session_id: str) -> Optional[Session]:
        """Return the session, or None if absent or expired (evicting it)."""
        now = self.now()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self._is_expired(session, now):
                del self._sessions[session_id]
                logger.info("Session %s expired on read", session_id)
                return None
            return session.snapshot()

    def append_answer(self, session_id: str, question: str, answer: str) -> Session:
        """Append a Q&A pair, creating the session on first use."""
        now = self.now()
        question = question.strip()
        answer = answer.strip()
        qa = QuestionAnswer(
            id=f"qa_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            timestamp=now,
            question=question,
            answer=answer,
            classified_type=classify_question(question),
        )

        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and self._is_expired(session, now):
                del self._sessions[session_id]
                session = None
            if session is None:
                session = Session(id=session_id, created_at=now, last_activity=now)
                self._sessions[session_id] = session
                logger.debug("Created session %s", session_id)

            session.question_answers.append(qa)
            session.total_questions += 1
            session.last_activity = max(session.last_activity, now)
            result = session.snapshot()

        logger.debug(
            "Stored Q&A for session %s (type=%s, total=%d)",
            session_id, qa.classified_type.value, result.total_questions,
        )
        return result

    def mark_generated(self, session_id: str) -> None:
        now = self.now()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_generation_at = now

    def sweep(self) -> int:
        """Evict every expired session. Returns how many were removed."""
        now = self.now()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]

        cleared = 0
        for sid in expired:
            with self._lock:
                session = self._sessions.get(sid)
                # Re-check: an append may have revived it since the scan
                if session is not None and self._is_expired(session, now):
                    del self._sessions[sid]
                    cleared += 1

        if cleared:
            logger.info("Swept %d expired sessions", cleared)
        return cleared

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
        logger.info("Cleared all %d sessions", count)
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def list_active_ids(self) -> List[str]:
        now = self.now()
        with self._lock:
            return [sid for sid, s in self._sessions.items() if not self._is_expired(s, now)]

    def status_of(self, session: Session) -> SessionStatus:
        return session_status(
            session,
            self.now(),
            idle_after_seconds=self.config.idle_after_seconds,
            active_min_answers=self.config.active_min_answers,
        )

    def stats(self) -> Dict[str, Any]:
        now = self.now()
        with self._lock:
            sessions = list(self._sessions.values())

        active = [s for s in sessions if not self._is_expired(s, now)]
        total_qas = sum(len(s.question_answers) for s in sessions)
        durations = [(s.last_activity - s.created_at).total_seconds() / 60 for s in sessions]
        memory = {
            "sessions": len(sessions) * SESSION_OVERHEAD_BYTES,
            "questionAnswers": total_qas * QA_OVERHEAD_BYTES,
        }
        memory["total"] = memory["sessions"] + memory["questionAnswers"]

        return {
            "totalSessions": len(sessions),
            "activeSessions": len(active),
            "expiredSessions": len(sessions) - len(active),
            "totalQuestionAnswers": total_qas,
            "averageSessionDurationMinutes": (
                round(sum(durations) / len(durations), 2) if durations else 0.0
            ),
            "estimatedMemoryBytes": memory["total"],
            "estimatedMemory": memory,
        }

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        interval = self.config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error("Session sweep failed: %s", e)

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info(
                "Session sweeper started (every %.0fs, ttl %.0fs)",
                self.config.sweep_interval_seconds, self.config.ttl_seconds,
            )

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
