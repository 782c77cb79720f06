# meet_engine/models/credit_ledger.py
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text

from meet_engine.models.base import Base


class CreditLedgerEntry(Base):
    """Meet credits a client holds with one coach (1 credit = one quantum of meeting time)."""

    __tablename__ = "client_meet_credits"
    __table_args__ = (
        CheckConstraint("credits_available >= 0", name="ck_credits_non_negative"),
    )

    coach_id = Column(String(64), primary_key=True)
    client_id = Column(String(64), primary_key=True, index=True)

    credits_available = Column(Integer, nullable=False, default=0)

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class CreditTransaction(Base):
    """Audit row for each movement on a ledger entry. Debits are negative."""

    __tablename__ = "client_meet_credit_transactions"

    id = Column(Integer, primary_key=True, index=True)

    coach_id = Column(String(64), nullable=False, index=True)
    client_id = Column(String(64), nullable=False, index=True)

    # No FK: the audit trail outlives deleted meetings
    meeting_id = Column(Integer, nullable=True, index=True)

    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
