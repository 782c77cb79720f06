# meet_engine/models/outbox_task.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from meet_engine.models.base import Base


class OutboxTaskStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class OutboxTask(Base):
    """
    A side effect (video link, calendar push, SMS) recorded in the same
    database as the meeting and delivered after the request returns.

    Delivery is at-least-once; handlers must tolerate re-runs.
    """

    __tablename__ = "outbox_tasks"

    id = Column(Integer, primary_key=True, index=True)

    kind = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)

    # Same key enqueued twice -> one task
    dedupe_key = Column(String(255), nullable=False, unique=True)

    status = Column(
        String(16),
        nullable=False,
        default=OutboxTaskStatus.PENDING.value,
        index=True,
    )
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)
