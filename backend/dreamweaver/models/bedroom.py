"""
DreamWeaver Backend — Bedroom SQLAlchemy Model
===============================================

What:  ORM model for the `bedrooms` table: a user's sleep environment profile.
Who:   Used by BedroomService for CRUD and by the lifecycle controller to
       verify that a new sleep session references a bedroom the caller owns.

Table Design Rationale:
    - owner_id: opaque user ID taken from the verified bearer token. There is
      no users table; the identity provider owns user records.
    - Enumerated fields (bed_type, light_level, ...) are short strings; the
      allowed values live in schemas/bedroom.py.
    - Index on owner_id: every query is scoped to one owner.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from dreamweaver.database import USER_ID_LENGTH, Base, UTCDateTime, utcnow


class Bedroom(Base):
    """A named bedroom configuration owned by exactly one user."""

    __tablename__ = "bedrooms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    owner_id: Mapped[str] = mapped_column(
        String(USER_ID_LENGTH),
        nullable=False,
        comment="User ID of the owner (from the identity provider)",
    )

    bedroom_name: Mapped[str] = mapped_column(String(50), nullable=False)

    bed_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="bed", server_default=text("'bed'")
    )
    mattress_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="memory foam"
    )
    bed_size: Mapped[str] = mapped_column(String(20), nullable=False, default="queen")

    # Fahrenheit, 40-100
    temperature: Mapped[int] = mapped_column(
        Integer, nullable=False, default=68, server_default=text("68")
    )
    light_level: Mapped[str] = mapped_column(String(20), nullable=False, default="dim")
    noise_level: Mapped[str] = mapped_column(String(20), nullable=False, default="quiet")
    pillows: Mapped[str] = mapped_column(String(20), nullable=False, default="two")

    # At most one favorite per owner (maintained by BedroomService)
    favorite: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_bedrooms_owner_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<Bedroom(id={self.id}, owner_id='{self.owner_id}', name='{self.bedroom_name}')>"
