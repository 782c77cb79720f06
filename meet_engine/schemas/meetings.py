# meet_engine/schemas/meetings.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


MeetingTypeCode = Literal["consultation", "workshop", "other"]
RsvpDecision = Literal["confirmed", "declined", "cancelled"]


def to_naive_utc(value: datetime) -> datetime:
    """The engine stores naive UTC; aware datetimes are converted on the way in."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Interval(BaseModel):
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    def normalize_tz(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_end_after_start(self) -> "Interval":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class PricingIn(BaseModel):
    is_free: bool = True
    price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None


class RelationsIn(BaseModel):
    activity_id: Optional[str] = None
    enrollment_id: Optional[str] = None
    max_participants: Optional[int] = Field(default=None, ge=1)


class MeetingCreate(Interval):
    coach_id: str
    title: str
    guest_ids: List[str]
    description: Optional[str] = None
    meeting_type: MeetingTypeCode = "consultation"
    pricing: PricingIn = Field(default_factory=PricingIn)
    relations: RelationsIn = Field(default_factory=RelationsIn)
    abort_on_conflict: bool = False


class RescheduleCreate(Interval):
    requested_by: str
    reason: Optional[str] = None
    abort_on_conflict: bool = False


class RsvpPayload(BaseModel):
    person_id: str
    decision: RsvpDecision


class CancelPayload(BaseModel):
    cancelled_by: str
    reason: Optional[str] = None


class OverlapCheck(Interval):
    coach_id: str
    exclude_meeting_id: Optional[int] = None
    client_ids: List[str] = Field(default_factory=list)


class RespondPayload(BaseModel):
    person_id: str
