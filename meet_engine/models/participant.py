# meet_engine/models/participant.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from meet_engine.models.base import Base


class ParticipantRole(str, Enum):
    COACH = "coach"
    CLIENT = "client"


class RsvpStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    FREE = "free"
    CREDIT_DEDUCTION = "credit_deduction"
    UNPAID = "unpaid"
    PAID = "paid"


class Participant(Base):
    """
    One person's seat in a Meeting.

    Keyed by (meeting_id, person_id) so seeding the same person twice
    is an upsert rather than a duplicate seat.
    """

    __tablename__ = "meeting_participants"

    meeting_id = Column(
        Integer,
        ForeignKey("meetings.id", ondelete="CASCADE"),
        primary_key=True,
    )
    person_id = Column(String(64), primary_key=True, index=True)

    role = Column(String(16), nullable=False, default=ParticipantRole.CLIENT.value)
    is_host = Column(Boolean, nullable=False, default=False)

    rsvp_status = Column(String(16), nullable=False, default=RsvpStatus.PENDING.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.UNPAID.value)

    # Out-of-band payment record (checkout, transfer...) when one exists
    payment_id = Column(String(128), nullable=True)

    invited_by = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    meeting = relationship("Meeting", back_populates="participants")
