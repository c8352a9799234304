"""
DreamWeaver Backend — Sleep Session Lifecycle Controller
=========================================================

What:  The three operations that drive a sleep session through its states:
       begin session, record wake-up, query active session.
Why:   These are the only writes that can open or close a session, so the
       state machine and its validation live here and nowhere else.
How:   Each operation asks the SessionStateResolver for the user's active
       session and then creates, appends, or reports.

State Machine:
    (no active session) ──begin──▶ OPEN, no wake-ups
    OPEN ──wake-up finished=false──▶ OPEN (awake, going back to bed)
    OPEN ──wake-up finished=true───▶ CLOSED (permanent; history only)
    any OPEN ──begin──▶ ConflictError (with a summary of the open session)
    (no active session) ──wake-up──▶ NotFoundError

Concurrency:
    begin and record-wake-up are check-then-act sequences. Within this
    process they are serialized per user by UserLockRegistry, and the
    transaction is committed before the lock is released so the next waiter
    sees the result. Across processes the version_id_col on SleepSession
    turns a lost append into StaleDataError, reported as ConflictError.
    Two processes beginning a session for the same user at the same instant
    can still both succeed; there is no store-level uniqueness constraint.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dreamweaver.config import settings
from dreamweaver.database import utcnow
from dreamweaver.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from dreamweaver.models.sleep_session import SleepSession
from dreamweaver.schemas.sleep_session import (
    SLEEP_QUALITY_MAX,
    SLEEP_QUALITY_MIN,
    ActiveSessionResponse,
    SessionSummary,
    SleepSessionCreate,
    SleepSessionResponse,
    WakeUp,
    WakeUpCreate,
    WakeUpRecordResponse,
)
from dreamweaver.services.bedroom_service import bedroom_service
from dreamweaver.services.session_state import SessionStateResolver, session_state_resolver

logger = logging.getLogger(__name__)


class UserLockRegistry:
    """
    One asyncio.Lock per user ID, created on demand.

    Locks live in a WeakValueDictionary: an entry disappears once no
    coroutine holds or waits on it, so idle users cost nothing.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def prepare_wake_up(
    payload: WakeUpCreate,
    now: Optional[datetime] = None,
    back_to_bed_minutes: Optional[int] = None,
) -> WakeUp:
    """
    Validate a wake-up request and fill in defaults. First failure wins.

    Order:
        1. sleep_quality present and within [1, 10]
        2. timestamps parse (already enforced by WakeUpCreate; naive → UTC)
        3. finished_sleeping=True must not carry back_to_bed_at
        4. finished_sleeping=False without back_to_bed_at gets
           awaken_at + back_to_bed_minutes (default from settings)

    Raises:
        ValidationError: on the first rule that fails
    """
    if payload.sleep_quality is None:
        raise ValidationError(message="sleep_quality is required", field="sleep_quality")
    if not SLEEP_QUALITY_MIN <= payload.sleep_quality <= SLEEP_QUALITY_MAX:
        raise ValidationError(
            message=(
                f"sleep_quality must be between {SLEEP_QUALITY_MIN} and {SLEEP_QUALITY_MAX}"
            ),
            field="sleep_quality",
            context={"value": payload.sleep_quality},
        )

    awaken_at = as_utc(payload.awaken_at) if payload.awaken_at else as_utc(now or utcnow())
    back_to_bed_at = as_utc(payload.back_to_bed_at) if payload.back_to_bed_at else None
    finished = bool(payload.finished_sleeping)

    if finished and back_to_bed_at is not None:
        raise ValidationError(
            message="Cannot set a back-to-bed time when finished sleeping",
            field="back_to_bed_at",
        )

    if not finished and back_to_bed_at is None:
        minutes = back_to_bed_minutes or settings.default_back_to_bed_minutes
        back_to_bed_at = awaken_at + timedelta(minutes=minutes)

    return WakeUp(
        sleep_quality=payload.sleep_quality,
        dream_journal=payload.dream_journal or "",
        awaken_at=awaken_at,
        finished_sleeping=finished,
        back_to_bed_at=back_to_bed_at,
    )


class SessionLifecycleService:
    """
    Begin / wake-up / query operations over a user's sleep sessions.

    Error Handling Strategy:
        Business-rule violations raise ValidationError, ConflictError or
        NotFoundError. Store failures are wrapped in DatabaseError. Nothing
        is retried here.
    """

    def __init__(
        self,
        resolver: SessionStateResolver = session_state_resolver,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.resolver = resolver
        self.locks = locks or UserLockRegistry()

    async def begin_session(
        self, db: AsyncSession, user_id: str, payload: SleepSessionCreate
    ) -> SleepSessionResponse:
        """
        Open a new sleep session for the user.

        Steps:
            1. Verify the bedroom belongs to the user (NotFoundError otherwise)
            2. Under the user's lock, resolve the active session
            3. Active session found → ConflictError carrying its summary
            4. Otherwise insert a session with no wake-ups and commit

        Raises:
            NotFoundError:  bedroom missing or owned by someone else
            ConflictError:  the user already has an active session
            DatabaseError:  the store failed
        """
        await bedroom_service.get_owned_bedroom(db, payload.bedroom_id, user_id)

        async with self.locks.lock_for(user_id):
            active = await self.resolver.find_active_session(db, user_id)
            if active is not None:
                summary = SessionSummary.from_session(active)
                logger.warning(
                    "User %s tried to begin a session while %s is active", user_id, active.id
                )
                raise ConflictError(
                    message=(
                        "An active sleep session already exists. "
                        "Record a wake-up to continue or finish it."
                    ),
                    active_session=summary.to_payload(),
                )

            try:
                session = SleepSession(
                    user_id=user_id,
                    bedroom_id=payload.bedroom_id,
                    cuddle_buddy=payload.cuddle_buddy,
                    sleepy_thoughts=payload.sleepy_thoughts,
                    wake_ups=[],
                    created_at=utcnow(),
                )
                db.add(session)
                await db.commit()
            except Exception as e:
                await db.rollback()
                logger.error(
                    "Database error beginning session for %s: %s", user_id, str(e), exc_info=True
                )
                raise DatabaseError(
                    message="Could not start your sleep session. Please try again.",
                    context={"user_id": user_id, "error_type": type(e).__name__},
                )

        logger.info("Sleep session %s begun for user %s", session.id, user_id)
        return SleepSessionResponse.from_session(session)

    async def record_wake_up(
        self, db: AsyncSession, user_id: str, payload: WakeUpCreate
    ) -> WakeUpRecordResponse:
        """
        Append a wake-up to the user's active session.

        The payload is validated before the store is touched. The append
        replaces the wake_ups list with a new list (old entries + the new
        one), which is what SQLAlchemy needs to detect the change on a plain
        JSON column.

        Raises:
            ValidationError: see prepare_wake_up()
            NotFoundError:   no active session (begin one first)
            ConflictError:   the session changed underneath this write
            DatabaseError:   the store failed
        """
        wake_up = prepare_wake_up(payload)

        async with self.locks.lock_for(user_id):
            session = await self.resolver.find_active_session(db, user_id)
            if session is None:
                raise NotFoundError(
                    resource="sleep session",
                    message="No active sleep session. Begin a new session first.",
                )

            # rollback() expires `session`; its attributes cannot be read afterwards
            session_id = session.id
            try:
                session.wake_ups = [*(session.wake_ups or []), wake_up.model_dump(mode="json")]
                await db.commit()
            except StaleDataError:
                await db.rollback()
                logger.warning("Concurrent modification of sleep session %s", session_id)
                raise ConflictError(
                    message="The sleep session was modified concurrently. Please retry.",
                    context={"session_id": str(session_id)},
                )
            except Exception as e:
                await db.rollback()
                logger.error(
                    "Database error recording wake-up on %s: %s", session_id, str(e), exc_info=True
                )
                raise DatabaseError(
                    message="Could not record your wake-up. Please try again.",
                    context={"session_id": str(session_id), "error_type": type(e).__name__},
                )

        count = len(session.wake_ups)
        logger.info(
            "Wake-up #%d recorded on session %s (finished=%s)",
            count,
            session.id,
            wake_up.finished_sleeping,
        )
        return WakeUpRecordResponse(
            session=SleepSessionResponse.from_session(session),
            wake_up_count=count,
            closed_session=wake_up.finished_sleeping,
        )

    async def get_active_session(self, db: AsyncSession, user_id: str) -> ActiveSessionResponse:
        """Read-only: whether the user has an active session, with its summary."""
        session = await self.resolver.find_active_session(db, user_id)
        if session is None:
            return ActiveSessionResponse(active=False)
        return ActiveSessionResponse(active=True, session=SessionSummary.from_session(session))


session_lifecycle_service = SessionLifecycleService()
