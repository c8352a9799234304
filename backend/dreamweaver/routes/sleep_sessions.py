"""
DreamWeaver Backend — Sleep Session Routes
===========================================

What:  The sleep-session lifecycle (begin, wake up, active query) plus the
       session history views.

Route order:
    The literal paths /active and /by-date/{date} are declared before
    /{session_id}. FastAPI matches in declaration order, and "active" would
    otherwise be parsed (and rejected) as a UUID.

Typical client flow:
    POST /api/sleep-sessions                 → 201, session open
    POST /api/sleep-sessions/active/wake-ups → 201, {"finished_sleeping": false}
    POST /api/sleep-sessions/active/wake-ups → 201, {"finished_sleeping": true}
    POST /api/sleep-sessions                 → 201, next night

Wake-up indexes in /{session_id}/wake-ups/{index}/back-to-bed are zero-based
positions in the session's wake_ups list.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from dreamweaver.auth import Identity, get_current_identity
from dreamweaver.database import get_db_session
from dreamweaver.schemas.common import ErrorResponse
from dreamweaver.schemas.sleep_session import (
    ActiveSessionResponse,
    BackToBedUpdate,
    SleepSessionCreate,
    SleepSessionListResponse,
    SleepSessionResponse,
    SleepSessionUpdate,
    WakeUpCreate,
    WakeUpRecordResponse,
)
from dreamweaver.services.history_service import history_service
from dreamweaver.services.session_lifecycle import session_lifecycle_service

router = APIRouter(prefix="/api/sleep-sessions", tags=["Sleep Sessions"])

_NOT_FOUND = {404: {"description": "Sleep session not found", "model": ErrorResponse}}


# ── Lifecycle ─────────────────────────────────────────────────────────────


@router.post(
    "",
    response_model=SleepSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Bedroom not found", "model": ErrorResponse},
        409: {
            "description": "An active session already exists; details.active_session describes it",
            "model": ErrorResponse,
        },
    },
    summary="Begin a sleep session",
)
async def begin_session(
    payload: SleepSessionCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionResponse:
    return await session_lifecycle_service.begin_session(db, identity.user_id, payload)


@router.post(
    "/active/wake-ups",
    response_model=WakeUpRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid wake-up", "model": ErrorResponse},
        404: {"description": "No active session; begin one first", "model": ErrorResponse},
        409: {"description": "Session changed concurrently", "model": ErrorResponse},
    },
    summary="Record a wake-up on the active session",
)
async def record_wake_up(
    payload: WakeUpCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> WakeUpRecordResponse:
    return await session_lifecycle_service.record_wake_up(db, identity.user_id, payload)


@router.get(
    "/active",
    response_model=ActiveSessionResponse,
    summary="Is there an active sleep session?",
)
async def get_active_session(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> ActiveSessionResponse:
    return await session_lifecycle_service.get_active_session(db, identity.user_id)


# ── History ───────────────────────────────────────────────────────────────


@router.get(
    "",
    response_model=SleepSessionListResponse,
    summary="List sleep sessions, newest first",
)
async def list_sessions(
    response: Response,
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    offset: int = Query(default=0, ge=0, description="Items to skip"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionListResponse:
    result = await history_service.list_sessions(db, identity.user_id, limit=limit, offset=offset)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/by-date/{date}",
    response_model=SleepSessionResponse,
    responses={
        **_NOT_FOUND,
        400: {"description": "Date is not a valid YYYYMMDD", "model": ErrorResponse},
    },
    summary="Get the session begun on a given UTC day (YYYYMMDD)",
)
async def get_session_by_date(
    date: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionResponse:
    return await history_service.get_session_by_date(db, identity.user_id, date)


@router.get(
    "/{session_id}",
    response_model=SleepSessionResponse,
    responses=_NOT_FOUND,
    summary="Get a sleep session",
)
async def get_session(
    session_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionResponse:
    return await history_service.get_session(db, session_id, identity.user_id)


@router.patch(
    "/{session_id}",
    response_model=SleepSessionResponse,
    responses={
        **_NOT_FOUND,
        400: {"description": "Empty or invalid update", "model": ErrorResponse},
    },
    summary="Edit a session's bedroom, cuddle buddy or thoughts",
)
async def update_session(
    session_id: UUID,
    payload: SleepSessionUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionResponse:
    return await history_service.update_session(db, session_id, identity.user_id, payload)


@router.patch(
    "/{session_id}/wake-ups/{index}/back-to-bed",
    response_model=SleepSessionResponse,
    responses={
        **_NOT_FOUND,
        400: {
            "description": "No wake-up at that index, or it ended the night",
            "model": ErrorResponse,
        },
        409: {"description": "Session changed concurrently", "model": ErrorResponse},
    },
    summary="Correct the back-to-bed time of a recorded wake-up",
)
async def set_back_to_bed(
    session_id: UUID,
    index: int,
    payload: BackToBedUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> SleepSessionResponse:
    return await history_service.set_back_to_bed(
        db, session_id, identity.user_id, index, payload.back_to_bed_at
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_NOT_FOUND,
    summary="Delete a sleep session",
)
async def delete_session(
    session_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await history_service.delete_session(db, session_id, identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
