"""
DreamWeaver Backend — Bedroom Routes
=====================================

CRUD for the caller's bedroom profiles. A sleep session must reference one
of these, so clients create a bedroom before beginning their first session.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from dreamweaver.auth import Identity, get_current_identity
from dreamweaver.database import get_db_session
from dreamweaver.schemas.bedroom import (
    BedroomCreate,
    BedroomListResponse,
    BedroomResponse,
    BedroomUpdate,
)
from dreamweaver.schemas.common import ErrorResponse
from dreamweaver.services.bedroom_service import bedroom_service

router = APIRouter(prefix="/api/bedrooms", tags=["Bedrooms"])

_NOT_FOUND = {404: {"description": "Bedroom not found", "model": ErrorResponse}}


@router.post(
    "",
    response_model=BedroomResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid bedroom values", "model": ErrorResponse},
        409: {"description": "Name already used by another of your bedrooms", "model": ErrorResponse},
    },
    summary="Create a bedroom",
)
async def create_bedroom(
    payload: BedroomCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> BedroomResponse:
    return await bedroom_service.create_bedroom(db, identity.user_id, payload)


@router.get(
    "",
    response_model=BedroomListResponse,
    summary="List your bedrooms (favorite first)",
)
async def list_bedrooms(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> BedroomListResponse:
    return await bedroom_service.list_bedrooms(db, identity.user_id)


@router.get(
    "/{bedroom_id}",
    response_model=BedroomResponse,
    responses=_NOT_FOUND,
    summary="Get a bedroom",
)
async def get_bedroom(
    bedroom_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> BedroomResponse:
    return await bedroom_service.get_bedroom(db, bedroom_id, identity.user_id)


@router.patch(
    "/{bedroom_id}",
    response_model=BedroomResponse,
    responses={
        **_NOT_FOUND,
        400: {"description": "Empty or invalid update", "model": ErrorResponse},
        409: {"description": "Name already used", "model": ErrorResponse},
    },
    summary="Update a bedroom",
)
async def update_bedroom(
    bedroom_id: UUID,
    payload: BedroomUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> BedroomResponse:
    return await bedroom_service.update_bedroom(db, bedroom_id, identity.user_id, payload)


@router.delete(
    "/{bedroom_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={
        **_NOT_FOUND,
        409: {"description": "Bedroom is referenced by sleep sessions", "model": ErrorResponse},
    },
    summary="Delete an unused bedroom",
)
async def delete_bedroom(
    bedroom_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await bedroom_service.delete_bedroom(db, bedroom_id, identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
