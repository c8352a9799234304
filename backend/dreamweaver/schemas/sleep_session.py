"""
DreamWeaver Backend — Sleep Session Schemas
============================================

What:  Request/response contracts for sleep sessions and their wake-ups.
Why:   The stored row is a plain JSON list of wake-ups; these models give it
       a typed shape and add derived fields (active, wake_up_count) that are
       computed on read and never persisted.

Request models are permissive where the lifecycle controller
owns the rule: WakeUpCreate accepts any integer sleep_quality and any
combination of finished_sleeping/back_to_bed_at, because range and
consistency checks must run in a fixed order inside
services/session_lifecycle.py. Type-level problems (non-numeric quality,
unparseable timestamps) are still rejected here and reported as
validation_error by the global handler.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dreamweaver.models.sleep_session import SleepSession
from dreamweaver.services.session_state import is_active

CuddleBuddy = Literal["none", "pillow", "stuffed animal", "pet", "person"]

SLEEP_QUALITY_MIN = 1
SLEEP_QUALITY_MAX = 10


# ══════════════════════════════════════════════════════════════════════════
# Wake-ups
# ══════════════════════════════════════════════════════════════════════════


class WakeUp(BaseModel):
    """One stored wake-up event (an element of SleepSession.wake_ups)."""
    sleep_quality: int = Field(ge=SLEEP_QUALITY_MIN, le=SLEEP_QUALITY_MAX)
    dream_journal: str = ""
    awaken_at: datetime
    finished_sleeping: bool
    back_to_bed_at: Optional[datetime] = None


class WakeUpCreate(BaseModel):
    """
    Body of POST /api/sleep-sessions/active/wake-ups.

    Fields:
        sleep_quality:     required, 1-10 (range checked by the controller)
        dream_journal:     optional free text
        awaken_at:         optional, defaults to the time of recording
        finished_sleeping: optional, defaults to false (user goes back to bed)
        back_to_bed_at:    optional; forbidden when finished_sleeping is true,
                           defaulted to awaken_at + 30 minutes otherwise
    """
    model_config = ConfigDict(extra="forbid")

    sleep_quality: Optional[int] = None
    dream_journal: Optional[str] = None
    awaken_at: Optional[datetime] = None
    finished_sleeping: Optional[bool] = False
    back_to_bed_at: Optional[datetime] = None

    @field_validator("sleep_quality", mode="before")
    @classmethod
    def reject_boolean_quality(cls, v: Any) -> Any:
        # bool is an int subclass; lax mode would store true as 1
        if isinstance(v, bool):
            raise ValueError("sleep_quality must be a number, not a boolean")
        return v


class BackToBedUpdate(BaseModel):
    """Body of PATCH /api/sleep-sessions/{id}/wake-ups/{index}/back-to-bed."""
    model_config = ConfigDict(extra="forbid")

    back_to_bed_at: datetime


# ══════════════════════════════════════════════════════════════════════════
# Sessions: requests
# ══════════════════════════════════════════════════════════════════════════


class SleepSessionCreate(BaseModel):
    """Body of POST /api/sleep-sessions (begin session)."""
    model_config = ConfigDict(extra="forbid")

    bedroom_id: uuid.UUID = Field(description="A bedroom owned by the caller")
    cuddle_buddy: CuddleBuddy = "none"
    sleepy_thoughts: str = ""


class SleepSessionUpdate(BaseModel):
    """
    Body of PATCH /api/sleep-sessions/{id}.

    Only session metadata is editable. wake_ups, user_id and created_at are
    not fields of this model, so attempts to send them are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    bedroom_id: Optional[uuid.UUID] = None
    cuddle_buddy: Optional[CuddleBuddy] = None
    sleepy_thoughts: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Sessions: responses
# ══════════════════════════════════════════════════════════════════════════


class SleepSessionResponse(BaseModel):
    """Full representation of a sleep session, including derived state."""
    id: uuid.UUID
    user_id: str
    bedroom_id: uuid.UUID
    cuddle_buddy: str
    sleepy_thoughts: str
    wake_ups: List[WakeUp]
    created_at: datetime
    wake_up_count: int = Field(description="Number of recorded wake-ups")
    active: bool = Field(description="True until a wake-up with finished_sleeping=true is recorded")

    @classmethod
    def from_session(cls, session: SleepSession) -> "SleepSessionResponse":
        wake_ups = list(session.wake_ups or [])
        return cls(
            id=session.id,
            user_id=session.user_id,
            bedroom_id=session.bedroom_id,
            cuddle_buddy=session.cuddle_buddy,
            sleepy_thoughts=session.sleepy_thoughts,
            wake_ups=[WakeUp.model_validate(w) for w in wake_ups],
            created_at=session.created_at,
            wake_up_count=len(wake_ups),
            active=is_active(wake_ups),
        )


class SessionSummary(BaseModel):
    """
    Compact view of a session used by the active-session query and by the
    conflict payload when a second session is begun.
    """
    id: uuid.UUID
    bedroom_id: uuid.UUID
    created_at: datetime
    wake_up_count: int
    last_wake_up: Optional[WakeUp] = None

    @classmethod
    def from_session(cls, session: SleepSession) -> "SessionSummary":
        wake_ups = list(session.wake_ups or [])
        return cls(
            id=session.id,
            bedroom_id=session.bedroom_id,
            created_at=session.created_at,
            wake_up_count=len(wake_ups),
            last_wake_up=WakeUp.model_validate(wake_ups[-1]) if wake_ups else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe dict, suitable for an error response's details."""
        return self.model_dump(mode="json")


class ActiveSessionResponse(BaseModel):
    """Result of GET /api/sleep-sessions/active."""
    active: bool
    session: Optional[SessionSummary] = None


class WakeUpRecordResponse(BaseModel):
    """Result of recording a wake-up."""
    session: SleepSessionResponse
    wake_up_count: int
    closed_session: bool = Field(description="True when this wake-up ended the session")


class SleepSessionListResponse(BaseModel):
    """Paginated session history, newest first."""
    sessions: List[SleepSessionResponse]
    total_count: int
    limit: int
    offset: int
    has_more: bool
