"""
DreamWeaver Backend — Sleep History Service
============================================

What:  Read, edit and delete a user's past (and current) sleep sessions.
Who:   Called by the sleep-sessions router for everything except the three
       lifecycle operations, which live in session_lifecycle.py.

Editing rules:
    Only bedroom_id, cuddle_buddy and sleepy_thoughts can be changed.
    wake_ups are append-only and go through record_wake_up(); the one
    exception is set_back_to_bed(), which corrects the back-to-bed time of a
    wake-up the user went back to bed after. Wake-ups are never removed or
    reordered. user_id and created_at never change. A new bedroom_id must
    belong to the caller.

Date lookup:
    get_session_by_date() takes a compact YYYYMMDD string and matches the
    session whose created_at falls on that UTC calendar day (newest first
    when there are several).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dreamweaver.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from dreamweaver.models.sleep_session import SleepSession
from dreamweaver.schemas.sleep_session import (
    SleepSessionListResponse,
    SleepSessionResponse,
    SleepSessionUpdate,
    WakeUp,
)
from dreamweaver.services.bedroom_service import bedroom_service
from dreamweaver.services.session_lifecycle import as_utc

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y%m%d"


def parse_session_date(value: str) -> datetime:
    """
    Parse YYYYMMDD into midnight UTC of that day.

    Raises:
        ValidationError: wrong length, non-digits, or not a real calendar date
    """
    if len(value) != 8 or not value.isdigit():
        raise ValidationError(
            message="Date must be in YYYYMMDD format",
            field="date",
            context={"value": value},
        )
    try:
        day = datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        raise ValidationError(
            message=f"'{value}' is not a valid calendar date",
            field="date",
            context={"value": value},
        )
    return day.replace(tzinfo=timezone.utc)


class HistoryService:
    """Session history for a single owner. Stateless."""

    async def get_owned_session(
        self, db: AsyncSession, session_id: UUID, user_id: str
    ) -> SleepSession:
        try:
            result = await db.execute(
                select(SleepSession).where(
                    SleepSession.id == session_id, SleepSession.user_id == user_id
                )
            )
            session = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching sleep session %s: %s", session_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the sleep session. Please try again.",
                context={"session_id": str(session_id)},
            )

        if session is None:
            raise NotFoundError(resource="sleep session", resource_id=str(session_id))
        return session

    async def list_sessions(
        self,
        db: AsyncSession,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> SleepSessionListResponse:
        """
        Page through the user's sessions, newest first.

        Query plan:
            SELECT ... WHERE user_id = :uid ORDER BY created_at DESC LIMIT/OFFSET
            → idx_sleep_sessions_user_created
        """
        try:
            total_result = await db.execute(
                select(func.count(SleepSession.id)).where(SleepSession.user_id == user_id)
            )
            total_count = total_result.scalar() or 0

            result = await db.execute(
                select(SleepSession)
                .where(SleepSession.user_id == user_id)
                .order_by(SleepSession.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            sessions = result.scalars().all()
        except Exception as e:
            logger.error("Database error listing sleep sessions: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve your sleep history. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return SleepSessionListResponse(
            sessions=[SleepSessionResponse.from_session(s) for s in sessions],
            total_count=total_count,
            limit=limit,
            offset=offset,
            has_more=offset + len(sessions) < total_count,
        )

    async def get_session(
        self, db: AsyncSession, session_id: UUID, user_id: str
    ) -> SleepSessionResponse:
        session = await self.get_owned_session(db, session_id, user_id)
        return SleepSessionResponse.from_session(session)

    async def get_session_by_date(
        self, db: AsyncSession, user_id: str, date: str
    ) -> SleepSessionResponse:
        """
        The newest session begun on the given UTC day.

        Raises:
            ValidationError: malformed or impossible date
            NotFoundError:   no session begun that day
        """
        start = parse_session_date(date)
        end = start + timedelta(days=1)
        try:
            result = await db.execute(
                select(SleepSession)
                .where(
                    SleepSession.user_id == user_id,
                    SleepSession.created_at >= start,
                    SleepSession.created_at < end,
                )
                .order_by(SleepSession.created_at.desc())
                .limit(1)
            )
            session = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching sleep session for %s: %s", date, str(e))
            raise DatabaseError(
                message="Could not retrieve the sleep session. Please try again.",
                context={"date": date},
            )

        if session is None:
            raise NotFoundError(
                resource="sleep session",
                message=f"No sleep session found for {date}",
                context={"date": date},
            )
        return SleepSessionResponse.from_session(session)

    async def update_session(
        self,
        db: AsyncSession,
        session_id: UUID,
        user_id: str,
        payload: SleepSessionUpdate,
    ) -> SleepSessionResponse:
        """
        Change a session's metadata.

        Raises:
            ValidationError: nothing to update, or an explicit null
            NotFoundError:   session (or the new bedroom) missing or not owned
            ConflictError:   the row changed underneath this write
        """
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError(message="No fields provided for update")
        for field, value in changes.items():
            if value is None:
                raise ValidationError(message=f"'{field}' cannot be null", field=field)

        session = await self.get_owned_session(db, session_id, user_id)
        if "bedroom_id" in changes:
            await bedroom_service.get_owned_bedroom(db, changes["bedroom_id"], user_id)

        try:
            for field, value in changes.items():
                setattr(session, field, value)
            await db.flush()
            logger.info("Sleep session %s updated: %s", session.id, sorted(changes))
            return SleepSessionResponse.from_session(session)

        except StaleDataError:
            logger.warning("Concurrent modification of sleep session %s", session_id)
            raise ConflictError(
                message="The sleep session was modified concurrently. Please retry.",
                context={"session_id": str(session_id)},
            )
        except Exception as e:
            logger.error("Database error updating sleep session %s: %s", session_id, str(e))
            raise DatabaseError(
                message="Could not update the sleep session. Please try again.",
                context={"session_id": str(session_id)},
            )

    async def set_back_to_bed(
        self,
        db: AsyncSession,
        session_id: UUID,
        user_id: str,
        index: int,
        back_to_bed_at: datetime,
    ) -> SleepSessionResponse:
        """
        Correct the back-to-bed time of one recorded wake-up.

        The wake-up keeps its position and every other field. A wake-up that
        ended the night has no back-to-bed time and cannot be given one.

        Raises:
            ValidationError: index out of range, or the wake-up ended the night
            NotFoundError:   session missing or not owned
            ConflictError:   the row changed underneath this write
        """
        session = await self.get_owned_session(db, session_id, user_id)
        wake_ups: List[Dict[str, Any]] = list(session.wake_ups or [])
        if not 0 <= index < len(wake_ups):
            raise ValidationError(
                message="Invalid wake-up index",
                field="index",
                context={"index": index, "wake_up_count": len(wake_ups)},
            )

        wake_up = WakeUp.model_validate(wake_ups[index])
        if wake_up.finished_sleeping:
            raise ValidationError(
                message="Cannot set a back-to-bed time when finished sleeping",
                field="back_to_bed_at",
            )

        updated = wake_up.model_copy(update={"back_to_bed_at": as_utc(back_to_bed_at)})
        wake_ups[index] = updated.model_dump(mode="json")
        try:
            session.wake_ups = wake_ups
            await db.flush()
        except StaleDataError:
            logger.warning("Concurrent modification of sleep session %s", session_id)
            raise ConflictError(
                message="The sleep session was modified concurrently. Please retry.",
                context={"session_id": str(session_id)},
            )
        except Exception as e:
            logger.error("Database error updating wake-up on %s: %s", session_id, str(e))
            raise DatabaseError(
                message="Could not update the wake-up. Please try again.",
                context={"session_id": str(session_id), "index": index},
            )

        logger.info("Back-to-bed time of wake-up #%d on session %s corrected", index, session_id)
        return SleepSessionResponse.from_session(session)

    async def delete_session(self, db: AsyncSession, session_id: UUID, user_id: str) -> None:
        session = await self.get_owned_session(db, session_id, user_id)
        try:
            await db.delete(session)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting sleep session %s: %s", session_id, str(e))
            raise DatabaseError(
                message="Could not delete the sleep session. Please try again.",
                context={"session_id": str(session_id)},
            )
        logger.info("Sleep session %s deleted by user %s", session_id, user_id)


history_service = HistoryService()
