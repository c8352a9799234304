"""
DreamWeaver Backend — Bedroom Schemas
======================================

What:  Request/response contracts for bedroom environment profiles.
How:   Enumerated fields use Literal types so FastAPI rejects unknown values
       and documents the allowed set in OpenAPI.
"""

import re
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BedType = Literal["bean bag", "sleeping bag", "chair", "couch", "futon", "bed"]
MattressType = Literal["memory foam", "spring", "latex", "hybrid", "air", "water", "none"]
BedSize = Literal["twin", "twin xl", "full", "queen", "king", "california king", "custom"]
LightLevel = Literal["pitch black", "very dim", "dim", "moderate", "bright", "daylight"]
NoiseLevel = Literal["silent", "very quiet", "quiet", "moderate", "loud", "very loud"]
PillowSetup = Literal[
    "none", "one", "two", "three", "four", "five",
    "many (5+)", "body pillow", "custom setup",
]

# Letters, digits, whitespace and common punctuation
BEDROOM_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_.,!?'()]+$")


def _clean_bedroom_name(value: str) -> str:
    name = value.strip()
    if not 3 <= len(name) <= 50:
        raise ValueError("Bedroom name must be between 3 and 50 characters")
    if not BEDROOM_NAME_PATTERN.match(name):
        raise ValueError("Bedroom name contains invalid characters")
    return name


class BedroomCreate(BaseModel):
    """Body of POST /api/bedrooms. Everything but the name has a default."""
    model_config = ConfigDict(extra="forbid")

    bedroom_name: str = Field(description="Display name, 3-50 characters")
    bed_type: BedType = "bed"
    mattress_type: MattressType = "memory foam"
    bed_size: BedSize = "queen"
    temperature: int = Field(default=68, ge=40, le=100, description="Room temperature (°F)")
    light_level: LightLevel = "dim"
    noise_level: NoiseLevel = "quiet"
    pillows: PillowSetup = "two"
    favorite: bool = False
    notes: str = Field(default="", max_length=500)

    @field_validator("bedroom_name")
    @classmethod
    def validate_bedroom_name(cls, v: str) -> str:
        return _clean_bedroom_name(v)


class BedroomUpdate(BaseModel):
    """Body of PATCH /api/bedrooms/{id}; only supplied fields change."""
    model_config = ConfigDict(extra="forbid")

    bedroom_name: Optional[str] = None
    bed_type: Optional[BedType] = None
    mattress_type: Optional[MattressType] = None
    bed_size: Optional[BedSize] = None
    temperature: Optional[int] = Field(default=None, ge=40, le=100)
    light_level: Optional[LightLevel] = None
    noise_level: Optional[NoiseLevel] = None
    pillows: Optional[PillowSetup] = None
    favorite: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("bedroom_name")
    @classmethod
    def validate_bedroom_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_bedroom_name(v)


class BedroomResponse(BaseModel):
    """Full representation of a bedroom."""
    id: uuid.UUID
    owner_id: str
    bedroom_name: str
    bed_type: str
    mattress_type: str
    bed_size: str
    temperature: int
    light_level: str
    noise_level: str
    pillows: str
    favorite: bool
    notes: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BedroomListResponse(BaseModel):
    """All bedrooms of the caller, favorite first then by name."""
    bedrooms: List[BedroomResponse]
    total_count: int
