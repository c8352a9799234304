"""
DreamWeaver Backend — SleepSession SQLAlchemy Model
====================================================

What:  ORM model for the `sleep_sessions` table: one night of sleep for one user.
Who:   Read by the SessionStateResolver; written by the lifecycle controller
       (begin / record wake-up) and the history service (metadata edits).

Table Design Rationale:
    - wake_ups: ordered JSON array embedded in the row. Wake-ups are never
      addressed on their own, and the whole list is rewritten on append.
      Each element is the JSON form of schemas.sleep_session.WakeUp.
    - No is_active column: whether a session is still open is derived from
      the last wake-up (see services/session_state.py).
    - version: SQLAlchemy version_id_col. Every UPDATE carries
      "WHERE version = :loaded_version", so a concurrent writer that replaced
      wake_ups in between makes the flush fail instead of silently losing an
      append.
    - Index on (user_id, created_at): the resolver's "newest sessions of
      this user" query.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from dreamweaver.database import USER_ID_LENGTH, Base, UTCDateTime, utcnow


class SleepSession(Base):
    """
    A sleep session and its embedded wake-up events.

    Lifecycle:
        1. Created by "begin session" with wake_ups = [] (open)
        2. Each wake-up with finished_sleeping=False keeps it open
        3. A wake-up with finished_sleeping=True closes it for good
        4. Closed sessions stay as history; nothing is deleted on close
    """

    __tablename__ = "sleep_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)

    bedroom_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bedrooms.id", ondelete="RESTRICT"),
        nullable=False,
    )

    cuddle_buddy: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    sleepy_thoughts: Mapped[str] = mapped_column(Text, nullable=False, default="")

    wake_ups: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_sleep_sessions_user_created", "user_id", "created_at"),
        Index("idx_sleep_sessions_bedroom_id", "bedroom_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SleepSession(id={self.id}, user_id='{self.user_id}', "
            f"wake_ups={len(self.wake_ups or [])}, created_at='{self.created_at}')>"
        )
