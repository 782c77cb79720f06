# meet_engine/models/meeting.py
import math
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from meet_engine.models.base import Base


class MeetingType(str, Enum):
    CONSULTATION = "consultation"
    WORKSHOP = "workshop"
    OTHER = "other"


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Meeting(Base):
    __tablename__ = "meetings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_meetings_end_after_start"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # The host; always a participant with role "coach"
    coach_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    meeting_type = Column(
        String(32),
        nullable=False,
        default=MeetingType.CONSULTATION.value,
    )

    # Store status as a simple string; MeetingStatus is still used in Python
    status = Column(
        String(32),
        nullable=False,
        default=MeetingStatus.SCHEDULED.value,
    )

    # Pricing
    is_free = Column(Boolean, nullable=False, default=True)
    price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(8), nullable=True)

    # Relations to the product catalog (opaque ids, owned elsewhere)
    activity_id = Column(String(64), nullable=True)
    enrollment_id = Column(String(64), nullable=True)
    max_participants = Column(Integer, nullable=True)

    # Filled in later by the video-call provisioner
    video_link = Column(String(512), nullable=True)
    video_meeting_id = Column(String(128), nullable=True)

    # Bumped on every committed interval change
    revision = Column(Integer, nullable=False, default=0, server_default="0")

    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    participants = relationship(
        "Participant",
        back_populates="meeting",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Participant.created_at",
    )
    reschedule_requests = relationship(
        "RescheduleRequest",
        back_populates="meeting",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RescheduleRequest.created_at",
    )

    @property
    def duration_minutes(self) -> int:
        # A started minute counts as a whole one
        return math.ceil((self.end_time - self.start_time).total_seconds() / 60)

    @property
    def host(self):
        for p in self.participants:
            if p.is_host:
                return p
        return None

    @property
    def guests(self):
        return [p for p in self.participants if not p.is_host]
