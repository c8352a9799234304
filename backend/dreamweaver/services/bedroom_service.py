"""
DreamWeaver Backend — Bedroom Service
======================================

What:  CRUD for bedroom environment profiles, scoped to their owner.
Who:   Called by the bedrooms router; get_owned_bedroom() is also the
       ownership check the lifecycle controller runs before a session begins.

Ownership:
    Every lookup filters on owner_id. A bedroom that exists but belongs to
    someone else is reported exactly like a missing one (NotFoundError).

Favorite flag:
    At most one favorite per owner. Setting favorite=True on one bedroom
    clears it on the owner's others within the same transaction.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dreamweaver.exceptions import (
    ConflictError,
    DatabaseError,
    DreamWeaverError,
    NotFoundError,
    ValidationError,
)
from dreamweaver.models.bedroom import Bedroom
from dreamweaver.models.sleep_session import SleepSession
from dreamweaver.schemas.bedroom import (
    BedroomCreate,
    BedroomListResponse,
    BedroomResponse,
    BedroomUpdate,
)

logger = logging.getLogger(__name__)


class BedroomService:
    """Business logic for bedrooms. Stateless; receives the db session per call."""

    async def get_owned_bedroom(
        self, db: AsyncSession, bedroom_id: UUID, owner_id: str
    ) -> Bedroom:
        """
        Load a bedroom the caller owns.

        Raises:
            NotFoundError: no such bedroom, or it belongs to another user
            DatabaseError: the query failed
        """
        try:
            result = await db.execute(
                select(Bedroom).where(Bedroom.id == bedroom_id, Bedroom.owner_id == owner_id)
            )
            bedroom = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching bedroom %s: %s", bedroom_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the bedroom. Please try again.",
                context={"bedroom_id": str(bedroom_id)},
            )

        if bedroom is None:
            raise NotFoundError(resource="bedroom", resource_id=str(bedroom_id))
        return bedroom

    async def create_bedroom(
        self, db: AsyncSession, owner_id: str, payload: BedroomCreate
    ) -> BedroomResponse:
        try:
            await self._ensure_name_available(db, owner_id, payload.bedroom_name)
            if payload.favorite:
                await self._clear_favorites(db, owner_id)

            bedroom = Bedroom(owner_id=owner_id, **payload.model_dump())
            db.add(bedroom)
            await db.flush()
            logger.info("Bedroom %s created for user %s", bedroom.id, owner_id)
            return BedroomResponse.model_validate(bedroom)

        except DreamWeaverError:
            raise
        except Exception as e:
            logger.error("Database error creating bedroom: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the bedroom. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def list_bedrooms(self, db: AsyncSession, owner_id: str) -> BedroomListResponse:
        try:
            result = await db.execute(
                select(Bedroom)
                .where(Bedroom.owner_id == owner_id)
                .order_by(Bedroom.favorite.desc(), Bedroom.bedroom_name)
            )
            bedrooms = result.scalars().all()
        except Exception as e:
            logger.error("Database error listing bedrooms: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve bedrooms. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return BedroomListResponse(
            bedrooms=[BedroomResponse.model_validate(b) for b in bedrooms],
            total_count=len(bedrooms),
        )

    async def get_bedroom(
        self, db: AsyncSession, bedroom_id: UUID, owner_id: str
    ) -> BedroomResponse:
        bedroom = await self.get_owned_bedroom(db, bedroom_id, owner_id)
        return BedroomResponse.model_validate(bedroom)

    async def update_bedroom(
        self, db: AsyncSession, bedroom_id: UUID, owner_id: str, payload: BedroomUpdate
    ) -> BedroomResponse:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError(message="No fields provided for update")
        for field, value in changes.items():
            if value is None:
                raise ValidationError(message=f"'{field}' cannot be null", field=field)

        bedroom = await self.get_owned_bedroom(db, bedroom_id, owner_id)
        try:
            if "bedroom_name" in changes and changes["bedroom_name"] != bedroom.bedroom_name:
                await self._ensure_name_available(
                    db, owner_id, changes["bedroom_name"], exclude_id=bedroom.id
                )
            if changes.get("favorite"):
                await self._clear_favorites(db, owner_id, exclude_id=bedroom.id)

            for field, value in changes.items():
                setattr(bedroom, field, value)
            await db.flush()
            await db.refresh(bedroom)
            logger.info("Bedroom %s updated: %s", bedroom.id, sorted(changes))
            return BedroomResponse.model_validate(bedroom)

        except DreamWeaverError:
            raise
        except Exception as e:
            logger.error("Database error updating bedroom %s: %s", bedroom_id, str(e))
            raise DatabaseError(
                message="Could not update the bedroom. Please try again.",
                context={"bedroom_id": str(bedroom_id)},
            )

    async def delete_bedroom(self, db: AsyncSession, bedroom_id: UUID, owner_id: str) -> None:
        """
        Delete a bedroom that no sleep session references.

        Raises:
            ConflictError: sessions still reference the bedroom (history would break)
        """
        bedroom = await self.get_owned_bedroom(db, bedroom_id, owner_id)
        try:
            result = await db.execute(
                select(func.count(SleepSession.id)).where(SleepSession.bedroom_id == bedroom.id)
            )
            in_use = result.scalar() or 0
            if in_use:
                raise ConflictError(
                    message=(
                        f"This bedroom is used by {in_use} sleep session(s) and cannot be deleted."
                    ),
                    context={"bedroom_id": str(bedroom.id), "session_count": in_use},
                )
            await db.delete(bedroom)
            await db.flush()
            logger.info("Bedroom %s deleted by user %s", bedroom_id, owner_id)

        except DreamWeaverError:
            raise
        except Exception as e:
            logger.error("Database error deleting bedroom %s: %s", bedroom_id, str(e))
            raise DatabaseError(
                message="Could not delete the bedroom. Please try again.",
                context={"bedroom_id": str(bedroom_id)},
            )

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _ensure_name_available(
        self,
        db: AsyncSession,
        owner_id: str,
        name: str,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        query = select(Bedroom.id).where(
            Bedroom.owner_id == owner_id,
            func.lower(Bedroom.bedroom_name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(Bedroom.id != exclude_id)
        result = await db.execute(query)
        if result.first() is not None:
            raise ConflictError(
                message=f"You already have a bedroom named '{name}'",
                context={"bedroom_name": name},
            )

    async def _clear_favorites(
        self, db: AsyncSession, owner_id: str, exclude_id: Optional[UUID] = None
    ) -> None:
        stmt = update(Bedroom).where(Bedroom.owner_id == owner_id, Bedroom.favorite.is_(True))
        if exclude_id is not None:
            stmt = stmt.where(Bedroom.id != exclude_id)
        await db.execute(stmt.values(favorite=False).execution_options(synchronize_session="fetch"))


bedroom_service = BedroomService()
