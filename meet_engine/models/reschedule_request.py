# meet_engine/models/reschedule_request.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from meet_engine.models.base import Base


class RescheduleStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RescheduleRequest(Base):
    __tablename__ = "reschedule_requests"
    __table_args__ = (
        # At most one open proposal per meeting
        Index(
            "uq_reschedule_requests_one_pending",
            "meeting_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    meeting_id = Column(
        Integer,
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    requested_by = Column(String(64), nullable=False)
    requested_by_role = Column(String(16), nullable=True)

    from_start_time = Column(DateTime, nullable=False)
    from_end_time = Column(DateTime, nullable=False)
    to_start_time = Column(DateTime, nullable=False)
    to_end_time = Column(DateTime, nullable=False)

    status = Column(String(16), nullable=False, default=RescheduleStatus.PENDING.value)
    reason = Column(Text, nullable=True)

    responded_by = Column(String(64), nullable=True)
    responded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="reschedule_requests")
