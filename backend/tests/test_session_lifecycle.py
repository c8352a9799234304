"""
DreamWeaver Backend — Sleep Session Lifecycle Tests
====================================================

What:  Begin session / record wake-up / active query against a real store.

Test Strategy:
    ✅ Begin: empty wake-ups, conflict carries the open session's summary,
       bedroom ownership enforced before anything is written
    ✅ Wake-up validation order (quality, then finished/back-to-bed)
    ✅ Default back-to-bed time (+30 minutes)
    ✅ Append order preserved; a final wake-up closes the session for good
    ✅ Per-user serialization of concurrent begins
    ✅ Lost update across sessions surfaces as ConflictError
    ✅ Store failures on commit surface as DatabaseError, nothing written
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dreamweaver.database import Base
from dreamweaver.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from dreamweaver.models import Bedroom, SleepSession
from dreamweaver.schemas.sleep_session import SleepSessionCreate, WakeUpCreate
from dreamweaver.services.session_lifecycle import (
    SessionLifecycleService,
    UserLockRegistry,
    prepare_wake_up,
)
from dreamweaver.services.session_state import SessionStateResolver, session_is_active

from tests.helpers import OTHER_USER_ID, USER_ID

AWAKE = datetime(2024, 3, 2, 3, 15, tzinfo=timezone.utc)


def new_service() -> SessionLifecycleService:
    return SessionLifecycleService(resolver=SessionStateResolver(scan_window=5))


async def count_sessions(db, user_id: str = USER_ID) -> int:
    result = await db.execute(
        select(func.count(SleepSession.id)).where(SleepSession.user_id == user_id)
    )
    return result.scalar()


class TestPrepareWakeUp:
    """Validation and defaults, before the store is touched."""

    def test_quality_is_required(self):
        with pytest.raises(ValidationError, match="sleep_quality is required"):
            prepare_wake_up(WakeUpCreate(finished_sleeping=True))

    @pytest.mark.parametrize("quality", [0, 11, -1])
    def test_quality_out_of_range_rejected(self, quality):
        with pytest.raises(ValidationError, match="between 1 and 10"):
            prepare_wake_up(WakeUpCreate(sleep_quality=quality))

    @pytest.mark.parametrize("quality", [1, 10])
    def test_quality_bounds_are_inclusive(self, quality):
        wake_up = prepare_wake_up(WakeUpCreate(sleep_quality=quality, awaken_at=AWAKE))
        assert wake_up.sleep_quality == quality

    def test_non_numeric_quality_rejected_by_schema(self):
        with pytest.raises(PydanticValidationError):
            WakeUpCreate(sleep_quality="restless")

    @pytest.mark.parametrize("quality", [True, False])
    def test_boolean_quality_rejected_by_schema(self, quality):
        with pytest.raises(PydanticValidationError, match="not a boolean"):
            WakeUpCreate(sleep_quality=quality)

    def test_finished_with_back_to_bed_rejected(self):
        payload = WakeUpCreate(
            sleep_quality=8,
            finished_sleeping=True,
            back_to_bed_at=AWAKE + timedelta(minutes=10),
        )
        with pytest.raises(ValidationError, match="back-to-bed"):
            prepare_wake_up(payload)

    def test_quality_checked_before_consistency(self):
        """First failure wins: a bad quality is reported even if the flags also conflict."""
        payload = WakeUpCreate(
            sleep_quality=42,
            finished_sleeping=True,
            back_to_bed_at=AWAKE,
        )
        with pytest.raises(ValidationError) as exc_info:
            prepare_wake_up(payload)
        assert exc_info.value.field == "sleep_quality"

    def test_back_to_bed_defaults_to_thirty_minutes(self):
        wake_up = prepare_wake_up(WakeUpCreate(sleep_quality=6, awaken_at=AWAKE))
        assert wake_up.finished_sleeping is False
        assert wake_up.back_to_bed_at == AWAKE + timedelta(minutes=30)

    def test_back_to_bed_default_is_configurable(self):
        wake_up = prepare_wake_up(
            WakeUpCreate(sleep_quality=6, awaken_at=AWAKE), back_to_bed_minutes=45
        )
        assert wake_up.back_to_bed_at == AWAKE + timedelta(minutes=45)

    def test_supplied_back_to_bed_is_kept(self):
        back = AWAKE + timedelta(minutes=5)
        wake_up = prepare_wake_up(
            WakeUpCreate(sleep_quality=6, awaken_at=AWAKE, back_to_bed_at=back)
        )
        assert wake_up.back_to_bed_at == back

    def test_final_wake_up_has_no_back_to_bed(self):
        wake_up = prepare_wake_up(
            WakeUpCreate(sleep_quality=9, awaken_at=AWAKE, finished_sleeping=True)
        )
        assert wake_up.back_to_bed_at is None

    def test_awaken_at_defaults_to_now(self):
        now = datetime(2024, 3, 2, 6, 0, tzinfo=timezone.utc)
        wake_up = prepare_wake_up(WakeUpCreate(sleep_quality=5), now=now)
        assert wake_up.awaken_at == now

    def test_naive_timestamps_are_taken_as_utc(self):
        wake_up = prepare_wake_up(
            WakeUpCreate(sleep_quality=5, awaken_at=datetime(2024, 3, 2, 4, 0))
        )
        assert wake_up.awaken_at == datetime(2024, 3, 2, 4, 0, tzinfo=timezone.utc)


class TestBeginSession:

    @pytest.mark.asyncio
    async def test_begin_creates_empty_session(self, db_session, bedroom):
        """Scenario A: a user with no sessions begins one."""
        service = new_service()

        result = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )

        assert result.wake_ups == []
        assert result.wake_up_count == 0
        assert result.active is True
        assert result.cuddle_buddy == "none"
        assert result.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_second_begin_conflicts_with_summary(self, db_session, bedroom):
        """Scenario B: the conflict references the session already open."""
        service = new_service()
        first = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )

        with pytest.raises(ConflictError) as exc_info:
            await service.begin_session(
                db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
            )

        summary = exc_info.value.active_session
        assert summary["id"] == str(first.id)
        assert summary["wake_up_count"] == 0
        assert summary["last_wake_up"] is None
        assert await count_sessions(db_session) == 1

    @pytest.mark.asyncio
    async def test_begin_with_someone_elses_bedroom(self, db_session, other_bedroom):
        """Scenario E: ownership rejection, nothing created."""
        service = new_service()

        with pytest.raises(NotFoundError):
            await service.begin_session(
                db_session, USER_ID, SleepSessionCreate(bedroom_id=other_bedroom.id)
            )
        assert await count_sessions(db_session) == 0

    @pytest.mark.asyncio
    async def test_other_users_open_session_does_not_block(
        self, db_session, bedroom, other_bedroom
    ):
        service = new_service()
        await service.begin_session(
            db_session, OTHER_USER_ID, SleepSessionCreate(bedroom_id=other_bedroom.id)
        )

        result = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )
        assert result.active is True

    @pytest.mark.asyncio
    async def test_begin_allowed_after_final_wake_up(self, db_session, bedroom):
        service = new_service()
        first = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )
        await service.record_wake_up(
            db_session, USER_ID, WakeUpCreate(sleep_quality=8, finished_sleeping=True)
        )

        second = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id, cuddle_buddy="pet")
        )

        assert second.id != first.id
        assert second.cuddle_buddy == "pet"


class TestRecordWakeUp:

    @pytest.mark.asyncio
    async def test_wake_up_without_session_is_not_found(self, db_session):
        service = new_service()
        with pytest.raises(NotFoundError, match="Begin a new session"):
            await service.record_wake_up(db_session, USER_ID, WakeUpCreate(sleep_quality=5))

    @pytest.mark.asyncio
    async def test_non_final_wake_up_keeps_session_open(self, db_session, bedroom):
        """Scenario C."""
        service = new_service()
        begun = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )

        result = await service.record_wake_up(
            db_session, USER_ID, WakeUpCreate(sleep_quality=7, finished_sleeping=False)
        )

        assert result.wake_up_count == 1
        assert result.closed_session is False
        assert result.session.id == begun.id
        assert result.session.active is True
        active = await service.get_active_session(db_session, USER_ID)
        assert active.active is True
        assert active.session.id == begun.id

    @pytest.mark.asyncio
    async def test_final_wake_up_closes_session_for_good(self, db_session, bedroom):
        """Scenario D and terminal close."""
        service = new_service()
        await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )
        await service.record_wake_up(db_session, USER_ID, WakeUpCreate(sleep_quality=7))

        result = await service.record_wake_up(
            db_session, USER_ID, WakeUpCreate(sleep_quality=9, finished_sleeping=True)
        )

        assert result.closed_session is True
        assert result.wake_up_count == 2
        assert result.session.active is False
        with pytest.raises(NotFoundError):
            await service.record_wake_up(db_session, USER_ID, WakeUpCreate(sleep_quality=3))
        assert (await service.get_active_session(db_session, USER_ID)).active is False

    @pytest.mark.asyncio
    async def test_wake_ups_keep_arrival_order(self, db_session, bedroom):
        service = new_service()
        await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )
        qualities = [4, 6, 2, 9]
        for quality in qualities:
            result = await service.record_wake_up(
                db_session, USER_ID, WakeUpCreate(sleep_quality=quality, dream_journal=f"q{quality}")
            )

        assert [w.sleep_quality for w in result.session.wake_ups] == qualities
        assert [w.dream_journal for w in result.session.wake_ups] == ["q4", "q6", "q2", "q9"]

    @pytest.mark.asyncio
    async def test_invalid_wake_up_does_not_touch_session(self, db_session, bedroom):
        service = new_service()
        await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )

        with pytest.raises(ValidationError):
            await service.record_wake_up(
                db_session,
                USER_ID,
                WakeUpCreate(sleep_quality=5, finished_sleeping=True, back_to_bed_at=AWAKE),
            )

        active = await service.get_active_session(db_session, USER_ID)
        assert active.session.wake_up_count == 0

    @pytest.mark.asyncio
    async def test_stored_wake_up_has_default_back_to_bed(self, db_session, bedroom):
        service = new_service()
        await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )

        result = await service.record_wake_up(
            db_session, USER_ID, WakeUpCreate(sleep_quality=5, awaken_at=AWAKE)
        )

        stored = result.session.wake_ups[0]
        assert stored.awaken_at == AWAKE
        assert stored.back_to_bed_at == AWAKE + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_at_most_one_active_session_through_a_night_sequence(
        self, db_session, bedroom
    ):
        service = new_service()
        resolver = service.resolver
        for night in range(3):
            await service.begin_session(
                db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
            )
            await service.record_wake_up(db_session, USER_ID, WakeUpCreate(sleep_quality=5))
            with pytest.raises(ConflictError):
                await service.begin_session(
                    db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
                )
            await service.record_wake_up(
                db_session, USER_ID, WakeUpCreate(sleep_quality=8, finished_sleeping=True)
            )

            recent = await resolver.recent_sessions(db_session, USER_ID, limit=50)
            assert not any(session_is_active(s) for s in recent)

        assert await count_sessions(db_session) == 3


def failing_commit() -> AsyncMock:
    return AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))


class TestStoreFailures:
    """A failed commit is rolled back and reported as DatabaseError."""

    @pytest.mark.asyncio
    async def test_begin_commit_failure(self, db_session, session_factory, bedroom, monkeypatch):
        service = new_service()
        monkeypatch.setattr(AsyncSession, "commit", failing_commit())

        with pytest.raises(DatabaseError) as exc_info:
            await service.begin_session(
                db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
            )

        assert exc_info.value.context["error_type"] == "OperationalError"
        async with session_factory() as check:
            assert await count_sessions(check) == 0

    @pytest.mark.asyncio
    async def test_wake_up_commit_failure(
        self, db_session, session_factory, bedroom, monkeypatch
    ):
        service = new_service()
        begun = await service.begin_session(
            db_session, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
        )
        monkeypatch.setattr(AsyncSession, "commit", failing_commit())

        with pytest.raises(DatabaseError) as exc_info:
            await service.record_wake_up(db_session, USER_ID, WakeUpCreate(sleep_quality=5))

        assert exc_info.value.context["session_id"] == str(begun.id)
        monkeypatch.undo()
        async with session_factory() as check:
            active = await service.get_active_session(check, USER_ID)
            assert active.session.wake_up_count == 0


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_begins_create_one_session(self, tmp_path):
        """Two simultaneous begins for one user: one wins, the other conflicts."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with factory() as setup:
            bedroom = Bedroom(owner_id=USER_ID, bedroom_name="Race Room")
            setup.add(bedroom)
            await setup.commit()

        service = new_service()

        async def begin():
            async with factory() as db:
                return await service.begin_session(
                    db, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
                )

        results = await asyncio.gather(begin(), begin(), return_exceptions=True)

        successes = [r for r in results if not isinstance(r, BaseException)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1

        async with factory() as check:
            assert await count_sessions(check) == 1
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_lost_update_is_reported_as_conflict(self, session_factory, bedroom):
        """A stale copy of the session cannot overwrite a newer wake-up."""
        service = new_service()
        async with session_factory() as setup:
            await service.begin_session(
                setup, USER_ID, SleepSessionCreate(bedroom_id=bedroom.id)
            )

        async with session_factory() as stale, session_factory() as fresh:
            # Load the session into `stale` before the other writer appends
            assert await service.resolver.find_active_session(stale, USER_ID) is not None

            await service.record_wake_up(fresh, USER_ID, WakeUpCreate(sleep_quality=6))

            with pytest.raises(ConflictError, match="modified concurrently"):
                await service.record_wake_up(stale, USER_ID, WakeUpCreate(sleep_quality=4))

        async with session_factory() as check:
            active = await service.get_active_session(check, USER_ID)
            assert active.session.wake_up_count == 1


class TestUserLockRegistry:

    def test_same_user_gets_same_lock(self):
        registry = UserLockRegistry()
        lock = registry.lock_for(USER_ID)
        assert registry.lock_for(USER_ID) is lock

    def test_different_users_get_different_locks(self):
        registry = UserLockRegistry()
        lock = registry.lock_for(USER_ID)
        assert registry.lock_for(OTHER_USER_ID) is not lock
