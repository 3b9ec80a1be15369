from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import CalendarEvent, CanonicalLocation, RankedRoom, TimeSlot


class FindRoomsRequest(BaseModel):
    """
    Request body for the manual room search: the user picks the locations of
    their last and next class.
    """
    last_class_id: str = Field(..., description="Canonical location id of the class just finished.")
    next_class_id: str = Field(..., description="Canonical location id of the upcoming class.")
    at: Optional[datetime] = Field(None, description="Instant to search at. Defaults to now in the campus time zone.")


class FindRoomsResponse(BaseModel):
    """
    Open rooms ordered by walking distance between the two classes.
    """
    week: int = Field(..., description="ISO week number the timetables were read for.")
    day: str = Field(..., description="Weekday the timetables were read for.")
    time_slot: TimeSlot = Field(..., description="The 15-minute slot that was checked.")
    start_location: CanonicalLocation
    end_location: CanonicalLocation
    rooms: List[RankedRoom] = Field(default_factory=list, description="Open rooms, shortest total distance first.")
    unconfirmed_rooms: int = Field(0, description="Rooms whose timetable could not be read.")


class IcsFindRoomsResponse(FindRoomsResponse):
    """
    Room search driven by an uploaded calendar export.
    """
    last_event: CalendarEvent
    next_event: CalendarEvent
    reference_instant: datetime


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human-readable failure message.")
    kind: str = Field(..., description="Failure category, e.g. 'InsufficientGap'.")
