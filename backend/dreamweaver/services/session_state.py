"""
DreamWeaver Backend — Session State Resolver
=============================================

What:  Answers "does this user have an active sleep session, and which one?"
Why:   There is no stored is_active flag. Active-ness is derived from the
       wake-ups array every time, so it can never drift from the data.

Derivation rule:
    - no wake-ups yet                   → active (just went to bed)
    - last wake-up finished_sleeping=F  → active (user went back to bed)
    - last wake-up finished_sleeping=T  → closed for good

    Only the tail element matters. Wake-ups are append-only and nothing can
    be appended after a final one, so every earlier element of an open
    session is already non-final.

Resolution:
    The user's sessions are read newest-created-first, limited to
    settings.active_session_scan_window rows, and the first active one wins.
    A session must be closed before the next one can begin, so the open one
    (if any) is always the newest. If external writes ever left two sessions
    open, only the newest is surfaced.
"""

import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dreamweaver.config import settings
from dreamweaver.exceptions import DatabaseError
from dreamweaver.models.sleep_session import SleepSession

logger = logging.getLogger(__name__)


def is_active(wake_ups: Optional[Sequence[Mapping[str, Any]]]) -> bool:
    """Pure predicate over a session's wake-ups; see module docstring."""
    if not wake_ups:
        return True
    return not bool(wake_ups[-1].get("finished_sleeping"))


def session_is_active(session: SleepSession) -> bool:
    return is_active(session.wake_ups)


class SessionStateResolver:
    """
    Read-only lookup of a user's active sleep session.

    Stateless apart from an optional fixed scan window (tests pin it; the
    application reads it from settings on every call).
    """

    def __init__(self, scan_window: Optional[int] = None):
        self._scan_window = scan_window

    @property
    def scan_window(self) -> int:
        return self._scan_window or settings.active_session_scan_window

    async def recent_sessions(
        self, db: AsyncSession, user_id: str, limit: Optional[int] = None
    ) -> Sequence[SleepSession]:
        """The user's newest sessions, newest first."""
        result = await db.execute(
            select(SleepSession)
            .where(SleepSession.user_id == user_id)
            .order_by(SleepSession.created_at.desc())
            .limit(limit or self.scan_window)
        )
        return result.scalars().all()

    async def find_active_session(
        self, db: AsyncSession, user_id: str
    ) -> Optional[SleepSession]:
        """
        Return the user's active session, or None when every recent session is closed.

        Raises:
            DatabaseError: the store could not be queried
        """
        try:
            sessions = await self.recent_sessions(db, user_id)
        except Exception as e:
            logger.error("Database error resolving active session for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not look up your sleep sessions. Please try again.",
                context={"user_id": user_id, "error_type": type(e).__name__},
            )

        for session in sessions:
            if session_is_active(session):
                return session
        return None


session_state_resolver = SessionStateResolver()
