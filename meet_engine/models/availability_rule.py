# meet_engine/models/availability_rule.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Time

from meet_engine.models.base import Base


class RuleScope(str, Enum):
    ALWAYS = "always"
    MONTH = "month"


class AvailabilityRule(Base):
    """
    One weekday row of a coach's recurring availability.

    Rows sharing (start_time, end_time, scope, year, month) form one
    user-facing "rule group"; e.g. "Mon/Wed 09:00–12:00 in March 2025"
    is stored as 2 rows.
    """

    __tablename__ = "coach_availability_rules"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_rules_end_after_start"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_rules_weekday"),
    )

    id = Column(Integer, primary_key=True, index=True)

    coach_id = Column(String(64), nullable=False, index=True)

    # 0=MON ... 6=SUN, same as datetime.weekday()
    weekday = Column(Integer, nullable=False)

    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    scope = Column(String(16), nullable=False, default=RuleScope.ALWAYS.value)
    year = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)

    timezone = Column(String(64), nullable=False, default="UTC")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
