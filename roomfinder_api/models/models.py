# roomfinder_api/models/models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class CanonicalLocation(BaseModel):
    id: str
    name: str
    building: str
    latitude: float = Field(..., alias="lat")
    longitude: float = Field(..., alias="lon")

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v):
        if not -90.0 <= v <= 90.0:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v):
        if not -180.0 <= v <= 180.0:
            raise ValueError("Longitude must be between -180 and 180")
        return v

    class Config:
        populate_by_name = True
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "JAN_MOUTON_1013",
                "name": "Jan Mouton 1013",
                "building": "Jan Mouton",
                "lat": -33.9318,
                "lon": 18.8652,
            }
        }


class CalendarEvent(BaseModel):
    start: datetime
    end: datetime
    location: str
    summary: Optional[str] = None

    class Config:
        frozen = True


class ScheduleDerivation(BaseModel):
    """Last/next class around a reference instant, before location matching."""
    last_event: CalendarEvent = Field(..., alias="lastEvent")
    next_event: CalendarEvent = Field(..., alias="nextEvent")
    reference_instant: datetime = Field(..., alias="referenceInstant")
    gap_minutes: float = Field(..., alias="gapMinutes")

    class Config:
        populate_by_name = True
        frozen = True


class ScheduleResolution(BaseModel):
    last_location: CanonicalLocation = Field(..., alias="lastLocation")
    next_location: CanonicalLocation = Field(..., alias="nextLocation")
    last_event: CalendarEvent = Field(..., alias="lastEvent")
    next_event: CalendarEvent = Field(..., alias="nextEvent")
    reference_instant: datetime = Field(..., alias="referenceInstant")

    class Config:
        populate_by_name = True
        frozen = True


class ScheduleFailure(BaseModel):
    error: str
    kind: Literal["NoCurrentContext", "InsufficientGap", "UnresolvableLocation"]

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "error": "Your next class starts in less than an hour, so no free hour is available.",
                "kind": "InsufficientGap",
            }
        }


class TimeSlot(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time_format(cls, v):
        try:
            datetime.strptime(v, "%H:%M")
            return v
        except ValueError:
            raise ValueError("Time must be in HH:MM format")

    class Config:
        frozen = True


class RoomAvailability(BaseModel):
    location: CanonicalLocation
    is_open: bool = Field(..., alias="isOpen")
    # False when the verdict comes from the unreachable-room policy rather than a read timetable
    confirmed: bool
    booked_slots: List[str] = Field(default_factory=list, alias="bookedSlots")
    reason: Optional[str] = None

    class Config:
        populate_by_name = True
        frozen = True


class RankedRoom(BaseModel):
    location: CanonicalLocation
    total_distance_km: float = Field(..., alias="totalDistanceKm")
    confirmed: bool

    class Config:
        populate_by_name = True
        frozen = True
