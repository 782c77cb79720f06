# meet_engine/services/credit_service.py
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from meet_engine.config import get_settings
from meet_engine.models.credit_ledger import CreditLedgerEntry, CreditTransaction
from meet_engine.models.meeting import Meeting
from meet_engine.models.participant import PaymentStatus
from meet_engine.services.errors import LedgerError, ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def credit_cost(duration_minutes: int, quantum_minutes: Optional[int] = None) -> int:
    """
    Credits needed to cover a meeting: one per started quantum.

    With the default 15-minute quantum: 15 -> 1, 16 -> 2, 37 -> 3.
    """
    quantum = quantum_minutes or get_settings().CREDIT_QUANTUM_MINUTES
    if duration_minutes <= 0:
        return 0
    return math.ceil(duration_minutes / quantum)


@dataclass
class PaymentPlan:
    person_id: str
    cost: int
    available: int
    payment_status: PaymentStatus
    # Debit covering the whole cost (credit_deduction only)
    full_debit: int = 0
    # Best-effort debit of a balance that cannot cover the cost
    partial_debit: int = 0
    shortfall_credits: int = 0
    # Money still owed for the shortfall; priced meetings only
    amount_due: Optional[Decimal] = None

    def as_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "cost": self.cost,
            "available": self.available,
            "payment_status": self.payment_status.value,
            "full_debit": self.full_debit,
            "partial_debit": self.partial_debit,
            "shortfall_credits": self.shortfall_credits,
            "amount_due": str(self.amount_due) if self.amount_due is not None else None,
        }


def plan_payment(
    *,
    person_id: str,
    cost: int,
    available: int,
    is_free: bool,
    price: Optional[Decimal],
) -> PaymentPlan:
    """
    Classify a guest's payment at invitation time.

    Priority:
      1. credit_deduction – balance covers the cost (full debit)
      2. free            – free meeting, balance short or empty
      3. unpaid          – priced meeting, balance short; rest paid out of band

    Whatever the class, a partial balance (0 < balance < cost) is consumed.
    For priced meetings the shortfall is charged pro rata:
        amount_due = price / cost * (cost - balance)
    """
    available = max(0, int(available or 0))

    if available >= cost:
        return PaymentPlan(
            person_id=person_id,
            cost=cost,
            available=available,
            payment_status=PaymentStatus.CREDIT_DEDUCTION,
            full_debit=cost,
        )

    status = PaymentStatus.FREE if is_free else PaymentStatus.UNPAID
    shortfall = cost - available

    amount_due: Optional[Decimal] = None
    if not is_free:
        unit_price = Decimal(price or 0) / Decimal(cost)
        amount_due = (unit_price * shortfall).quantize(CENT, rounding=ROUND_HALF_UP)

    return PaymentPlan(
        person_id=person_id,
        cost=cost,
        available=available,
        payment_status=status,
        partial_debit=available,
        shortfall_credits=shortfall,
        amount_due=amount_due,
    )


class CreditLedger:
    """
    Read/debit access to client meet credits.

    Debits are a single guarded UPDATE (credits_available >= amount), so two
    bookings racing on the same balance cannot both spend it.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_available_credits(self, coach_id: str, client_id: str) -> int:
        entry = self.db.get(CreditLedgerEntry, (coach_id, client_id))
        if entry is None:
            return 0
        return max(0, entry.credits_available or 0)

    def balances_for(self, coach_id: str, client_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(client_ids)
        balances = {cid: 0 for cid in ids}
        if not ids:
            return balances
        rows = (
            self.db.query(CreditLedgerEntry)
            .filter(
                CreditLedgerEntry.coach_id == coach_id,
                CreditLedgerEntry.client_id.in_(ids),
            )
            .all()
        )
        for row in rows:
            balances[row.client_id] = max(0, row.credits_available or 0)
        return balances

    def debit(
        self,
        client_id: str,
        amount: int,
        meeting_id: int,
        reason: str,
        coach_id: Optional[str] = None,
    ) -> int:
        """
        Take `amount` credits from the client's balance with the meeting's coach.

        Returns the new balance. Raises LedgerError if the balance is short
        or the write fails; the balance is left untouched in both cases.
        """
        if amount <= 0:
            raise LedgerError("debit amount must be positive")

        if coach_id is None:
            meeting = self.db.get(Meeting, meeting_id)
            if meeting is None:
                raise LedgerError(f"Meeting {meeting_id} not found")
            coach_id = meeting.coach_id

        stmt = (
            update(CreditLedgerEntry)
            .where(
                CreditLedgerEntry.coach_id == coach_id,
                CreditLedgerEntry.client_id == client_id,
                CreditLedgerEntry.credits_available >= amount,
            )
            .values(
                credits_available=CreditLedgerEntry.credits_available - amount,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                raise LedgerError(
                    f"Insufficient credits for client {client_id} (coach {coach_id}): need {amount}"
                )
            self.db.add(
                CreditTransaction(
                    coach_id=coach_id,
                    client_id=client_id,
                    meeting_id=meeting_id,
                    amount=-amount,
                    reason=reason,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Debit failed for client {client_id}: {e}") from e

        self.db.expire_all()
        return self.get_available_credits(coach_id, client_id)

    def grant(self, coach_id: str, client_id: str, amount: int, reason: str = "") -> int:
        """Add credits to a client's balance with a coach. Returns the new balance."""
        if amount <= 0:
            raise ValidationError("amount must be positive")

        for _ in range(2):
            try:
                result = self.db.execute(
                    update(CreditLedgerEntry)
                    .where(
                        CreditLedgerEntry.coach_id == coach_id,
                        CreditLedgerEntry.client_id == client_id,
                    )
                    .values(
                        credits_available=CreditLedgerEntry.credits_available + amount,
                        updated_at=datetime.utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    self.db.add(
                        CreditLedgerEntry(
                            coach_id=coach_id,
                            client_id=client_id,
                            credits_available=amount,
                        )
                    )
                self.db.add(
                    CreditTransaction(
                        coach_id=coach_id,
                        client_id=client_id,
                        meeting_id=None,
                        amount=amount,
                        reason=reason or None,
                    )
                )
                self.db.commit()
                break
            except IntegrityError:
                # Someone created the entry between our UPDATE and INSERT; retry as an UPDATE
                self.db.rollback()
        else:
            raise LedgerError(f"Could not grant credits to client {client_id}")

        self.db.expire_all()
        return self.get_available_credits(coach_id, client_id)


@dataclass
class CreditReconciliation:
    person_id: str
    debited: int = 0
    failed: bool = False


def reconcile_credits(
    ledger: CreditLedger,
    *,
    meeting_id: int,
    coach_id: str,
    plans: List[PaymentPlan],
) -> List[CreditReconciliation]:
    """
    Apply the debits decided by plan_payment once participants exist.

    - full debit failures are integrity problems (the plan said the balance
      was enough): logged as errors, booking stands
    - partial debit failures are expected under contention: logged, skipped
    """
    outcomes: List[CreditReconciliation] = []

    for plan in plans:
        outcome = CreditReconciliation(person_id=plan.person_id)

        if plan.full_debit > 0:
            try:
                ledger.debit(
                    plan.person_id,
                    plan.full_debit,
                    meeting_id,
                    f"Meet booking (cost: {plan.cost})",
                    coach_id=coach_id,
                )
                outcome.debited = plan.full_debit
            except LedgerError as e:
                outcome.failed = True
                logger.error(
                    f"Credit integrity check failed for meeting {meeting_id}, "
                    f"client {plan.person_id}: {e}"
                )

        elif plan.partial_debit > 0:
            try:
                ledger.debit(
                    plan.person_id,
                    plan.partial_debit,
                    meeting_id,
                    f"Partial booking payment (required: {plan.cost}, available: {plan.available})",
                    coach_id=coach_id,
                )
                outcome.debited = plan.partial_debit
            except LedgerError as e:
                outcome.failed = True
                logger.warning(
                    f"Skipping partial credit debit for meeting {meeting_id}, "
                    f"client {plan.person_id}: {e}"
                )

        outcomes.append(outcome)

    return outcomes
