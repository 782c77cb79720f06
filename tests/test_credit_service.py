# tests/test_credit_service.py
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from meet_engine.db.session import engine, SessionLocal
from meet_engine.models import Base, CreditTransaction
from meet_engine.models.participant import PaymentStatus
from meet_engine.services.credit_service import (
    CreditLedger,
    credit_cost,
    plan_payment,
    reconcile_credits,
)
from meet_engine.services.errors import LedgerError, ValidationError
from meet_engine.services.meeting_service import create_meeting


def _clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def test_credit_cost_rounds_up_to_quarter_hours():
    assert credit_cost(37) == 3
    assert credit_cost(15) == 1
    assert credit_cost(16) == 2
    assert credit_cost(60) == 4
    assert credit_cost(0) == 0


def test_enough_balance_is_credit_deduction():
    plan = plan_payment(person_id="c1", cost=4, available=10, is_free=True, price=None)
    assert plan.payment_status == PaymentStatus.CREDIT_DEDUCTION
    assert plan.full_debit == 4
    assert plan.partial_debit == 0
    assert plan.shortfall_credits == 0


def test_short_balance_on_free_meeting_is_free_with_partial_debit():
    plan = plan_payment(person_id="c1", cost=8, available=5, is_free=True, price=None)
    assert plan.payment_status == PaymentStatus.FREE
    assert plan.full_debit == 0
    assert plan.partial_debit == 5
    assert plan.shortfall_credits == 3
    assert plan.amount_due is None


def test_short_balance_on_priced_meeting_is_unpaid_with_amount_due():
    plan = plan_payment(
        person_id="c1", cost=3, available=1, is_free=False, price=Decimal("100.00")
    )
    assert plan.payment_status == PaymentStatus.UNPAID
    assert plan.partial_debit == 1
    assert plan.shortfall_credits == 2
    # 100 / 3 * 2, rounded half-up to cents
    assert plan.amount_due == Decimal("66.67")


def test_empty_balance_has_no_partial_debit():
    plan = plan_payment(person_id="c1", cost=2, available=0, is_free=False, price=Decimal("40"))
    assert plan.payment_status == PaymentStatus.UNPAID
    assert plan.partial_debit == 0
    assert plan.amount_due == Decimal("40.00")


def test_debit_and_grant_keep_an_audit_trail():
    _clean_db()
    db: Session = SessionLocal()
    try:
        ledger = CreditLedger(db)
        assert ledger.get_available_credits("coach-1", "client-1") == 0

        assert ledger.grant("coach-1", "client-1", 10, "Pack of 10") == 10
        assert ledger.grant("coach-1", "client-1", 2) == 12

        assert ledger.debit("client-1", 4, meeting_id=99, reason="Booking", coach_id="coach-1") == 8
        assert ledger.get_available_credits("coach-1", "client-1") == 8

        amounts = [t.amount for t in db.query(CreditTransaction).order_by(CreditTransaction.id).all()]
        assert amounts == [10, 2, -4]
    finally:
        db.close()


def test_debit_never_goes_below_zero():
    _clean_db()
    db: Session = SessionLocal()
    try:
        ledger = CreditLedger(db)
        ledger.grant("coach-1", "client-1", 3)

        with pytest.raises(LedgerError):
            ledger.debit("client-1", 4, meeting_id=1, reason="Booking", coach_id="coach-1")

        assert ledger.get_available_credits("coach-1", "client-1") == 3
        assert db.query(CreditTransaction).filter(CreditTransaction.amount < 0).count() == 0
    finally:
        db.close()


def test_grant_rejects_non_positive_amounts():
    _clean_db()
    db: Session = SessionLocal()
    try:
        with pytest.raises(ValidationError):
            CreditLedger(db).grant("coach-1", "client-1", 0)
    finally:
        db.close()


def test_reconcile_debits_full_and_partial_balances():
    _clean_db()
    db: Session = SessionLocal()
    try:
        ledger = CreditLedger(db)
        ledger.grant("coach-1", "rich", 10)
        ledger.grant("coach-1", "short", 5)

        start = datetime(2030, 1, 7, 10, 0)
        created = create_meeting(
            db,
            coach_id="coach-1",
            title="Group session",
            start_time=start,
            # 2 hours -> 8 credits
            end_time=start + timedelta(hours=2),
            guest_ids=["rich", "short", "broke"],
            ledger=ledger,
        )
        plans = {p.person_id: p for p in created.payment_plans}
        assert plans["rich"].payment_status == PaymentStatus.CREDIT_DEDUCTION
        assert plans["short"].payment_status == PaymentStatus.FREE
        assert plans["broke"].payment_status == PaymentStatus.FREE

        outcomes = reconcile_credits(
            ledger,
            meeting_id=created.meeting.id,
            coach_id="coach-1",
            plans=created.payment_plans,
        )
        debited = {o.person_id: o.debited for o in outcomes}
        assert debited == {"rich": 8, "short": 5, "broke": 0}
        assert not any(o.failed for o in outcomes)

        assert ledger.get_available_credits("coach-1", "rich") == 2
        assert ledger.get_available_credits("coach-1", "short") == 0
    finally:
        db.close()


def test_reconcile_skips_partial_debit_when_balance_moved():
    _clean_db()
    db: Session = SessionLocal()
    try:
        ledger = CreditLedger(db)
        ledger.grant("coach-1", "client-1", 5)

        start = datetime(2030, 1, 7, 10, 0)
        created = create_meeting(
            db,
            coach_id="coach-1",
            title="Session",
            start_time=start,
            end_time=start + timedelta(hours=2),
            guest_ids=["client-1"],
            ledger=ledger,
        )
        # Balance spent elsewhere between planning and reconciliation
        ledger.debit("client-1", 4, meeting_id=0, reason="Other booking", coach_id="coach-1")

        outcomes = reconcile_credits(
            ledger,
            meeting_id=created.meeting.id,
            coach_id="coach-1",
            plans=created.payment_plans,
        )
        assert outcomes[0].failed is True
        assert outcomes[0].debited == 0
        assert ledger.get_available_credits("coach-1", "client-1") == 1
    finally:
        db.close()
