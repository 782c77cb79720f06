# tests/test_meeting_service.py
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from meet_engine.db.session import engine, SessionLocal
from meet_engine.models import Base, Meeting, Participant, RescheduleRequest
from meet_engine.models.meeting import MeetingStatus
from meet_engine.models.participant import PaymentStatus, RsvpStatus
from meet_engine.services import meeting_service
from meet_engine.services.errors import NotFoundError, StorageError, ValidationError
from meet_engine.services.meeting_service import (
    MeetingPricing,
    MeetingRelations,
    cancel_meeting,
    create_meeting,
    delete_meeting,
    effective_status,
    meeting_summary,
    remove_guest,
    respond_rsvp,
)
from meet_engine.services.reschedule_service import request_reschedule


START = datetime(2030, 1, 7, 10, 0)
END = START + timedelta(hours=1)


def _clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _new_meeting(db: Session, guests=("client-1",), **kwargs) -> Meeting:
    return create_meeting(
        db,
        coach_id="coach-1",
        title="Coaching session",
        start_time=kwargs.pop("start_time", START),
        end_time=kwargs.pop("end_time", END),
        guest_ids=list(guests),
        **kwargs,
    ).meeting


def test_create_meeting_seeds_host_and_guests():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db, guests=["client-1", "client-2", "client-1"])

        rows = db.query(Participant).filter_by(meeting_id=meeting.id).all()
        assert len(rows) == 3

        host = meeting.host
        assert host.person_id == "coach-1"
        assert host.rsvp_status == RsvpStatus.CONFIRMED.value
        assert host.payment_status == PaymentStatus.FREE.value

        assert sorted(g.person_id for g in meeting.guests) == ["client-1", "client-2"]
        assert all(g.rsvp_status == RsvpStatus.PENDING.value for g in meeting.guests)
        assert meeting.status == MeetingStatus.SCHEDULED.value
        assert meeting.currency == "ARS"
    finally:
        db.close()


def test_create_meeting_stores_pricing_and_relations():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(
            db,
            pricing=MeetingPricing(is_free=False, price=Decimal("2500"), currency="USD"),
            relations=MeetingRelations(activity_id="act-9", max_participants=3),
        )
        assert meeting.is_free is False
        assert meeting.price == Decimal("2500.00")
        assert meeting.currency == "USD"
        assert meeting.activity_id == "act-9"
        assert meeting.max_participants == 3
        # No credits at all on a priced meeting
        assert meeting.guests[0].payment_status == PaymentStatus.UNPAID.value
    finally:
        db.close()


def test_partial_minutes_round_up_into_the_next_credit():
    _clean_db()
    db: Session = SessionLocal()
    try:
        created = create_meeting(
            db,
            coach_id="coach-1",
            title="Coaching session",
            start_time=START,
            end_time=START + timedelta(minutes=15, seconds=30),
            guest_ids=["client-1"],
        )
        assert created.meeting.duration_minutes == 16
        assert created.payment_plans[0].cost == 2
    finally:
        db.close()


@pytest.mark.parametrize(
    "guests,start,end",
    [
        ([], START, END),
        (["client-1"], START, START),
        (["client-1"], END, START),
        (["coach-1"], START, END),
    ],
)
def test_create_meeting_rejects_invalid_input(guests, start, end):
    _clean_db()
    db: Session = SessionLocal()
    try:
        with pytest.raises(ValidationError):
            create_meeting(
                db,
                coach_id="coach-1",
                title="Nope",
                start_time=start,
                end_time=end,
                guest_ids=guests,
            )
        assert db.query(Meeting).count() == 0
    finally:
        db.close()


def test_create_meeting_enforces_max_participants():
    _clean_db()
    db: Session = SessionLocal()
    try:
        with pytest.raises(ValidationError):
            _new_meeting(
                db,
                guests=["a", "b", "c"],
                relations=MeetingRelations(max_participants=2),
            )
    finally:
        db.close()


def test_participant_failure_removes_the_meeting(monkeypatch):
    _clean_db()

    def broken_seed(db, **kwargs):
        raise OperationalError("INSERT INTO meeting_participants", {}, Exception("disk full"))

    monkeypatch.setattr(meeting_service, "seed_participants", broken_seed)

    db: Session = SessionLocal()
    try:
        with pytest.raises(StorageError):
            _new_meeting(db)
    finally:
        db.close()

    db = SessionLocal()
    try:
        assert db.query(Meeting).count() == 0
        assert db.query(Participant).count() == 0
    finally:
        db.close()


def test_rsvp_transitions():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db, guests=["client-1", "client-2"])

        p = respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="confirmed")
        assert p.rsvp_status == RsvpStatus.CONFIRMED.value

        # Same state again: no-op
        p = respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="confirmed")
        assert p.rsvp_status == RsvpStatus.CONFIRMED.value

        p = respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="cancelled")
        assert p.rsvp_status == RsvpStatus.CANCELLED.value

        # Terminal
        with pytest.raises(ValidationError):
            respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="confirmed")

        # Other guest untouched
        other = db.get(Participant, (meeting.id, "client-2"))
        assert other.rsvp_status == RsvpStatus.PENDING.value

        p = respond_rsvp(db, meeting_id=meeting.id, person_id="client-2", decision="declined")
        assert p.rsvp_status == RsvpStatus.DECLINED.value

        # pending -> cancelled is not a transition
        third = _new_meeting(db, guests=["client-3"])
        with pytest.raises(ValidationError):
            respond_rsvp(db, meeting_id=third.id, person_id="client-3", decision="cancelled")
    finally:
        db.close()


def test_rsvp_errors():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db)
        with pytest.raises(ValidationError):
            respond_rsvp(db, meeting_id=meeting.id, person_id="coach-1", decision="declined")
        with pytest.raises(NotFoundError):
            respond_rsvp(db, meeting_id=meeting.id, person_id="stranger", decision="confirmed")
        with pytest.raises(NotFoundError):
            respond_rsvp(db, meeting_id=9999, person_id="client-1", decision="confirmed")
    finally:
        db.close()


def test_cancel_records_actor_and_rejects_pending_requests():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db)
        respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="confirmed")
        outcome = request_reschedule(
            db,
            meeting_id=meeting.id,
            requested_by="client-1",
            start_time=START + timedelta(days=1),
            end_time=END + timedelta(days=1),
        )
        assert outcome.request is not None

        cancelled = cancel_meeting(
            db, meeting_id=meeting.id, cancelled_by="coach-1", reason="Sick"
        )
        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert cancelled.cancelled_by == "coach-1"
        assert cancelled.cancellation_reason == "Sick"
        assert cancelled.cancelled_at is not None

        req = db.get(RescheduleRequest, outcome.request.id)
        assert req.status == "rejected"

        # Twice: no-op
        again = cancel_meeting(db, meeting_id=meeting.id, cancelled_by="client-1")
        assert again.cancelled_by == "coach-1"

        with pytest.raises(ValidationError):
            respond_rsvp(db, meeting_id=meeting.id, person_id="client-1", decision="cancelled")
    finally:
        db.close()


def test_cancel_requires_a_participant_and_an_open_meeting():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db)
        with pytest.raises(ValidationError):
            cancel_meeting(db, meeting_id=meeting.id, cancelled_by="stranger")

        with pytest.raises(ValidationError):
            cancel_meeting(
                db,
                meeting_id=meeting.id,
                cancelled_by="coach-1",
                now=END + timedelta(minutes=1),
            )
    finally:
        db.close()


def test_effective_status_precedence():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db)
        assert effective_status(meeting, now=START - timedelta(days=1)) == MeetingStatus.SCHEDULED
        assert effective_status(meeting, now=END + timedelta(seconds=1)) == MeetingStatus.COMPLETED

        db.add(
            RescheduleRequest(
                meeting_id=meeting.id,
                requested_by="client-1",
                requested_by_role="client",
                from_start_time=START,
                from_end_time=END,
                to_start_time=START,
                to_end_time=END,
                status="accepted",
            )
        )
        db.commit()
        db.refresh(meeting)
        assert effective_status(meeting, now=START - timedelta(days=1)) == MeetingStatus.RESCHEDULED
        assert effective_status(meeting, now=END + timedelta(seconds=1)) == MeetingStatus.COMPLETED

        cancel_meeting(db, meeting_id=meeting.id, cancelled_by="coach-1", now=START - timedelta(days=1))
        db.refresh(meeting)
        assert effective_status(meeting, now=END + timedelta(days=1)) == MeetingStatus.CANCELLED

        summary = meeting_summary(meeting, now=START - timedelta(days=1))
        assert summary["effective_status"] == "cancelled"
        assert summary["cancellation"]["cancelled_by"] == "coach-1"
    finally:
        db.close()


def test_remove_guest_only_while_pending_and_never_the_last():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db, guests=["client-1", "client-2"])
        respond_rsvp(db, meeting_id=meeting.id, person_id="client-2", decision="confirmed")

        with pytest.raises(ValidationError):
            remove_guest(db, meeting_id=meeting.id, person_id="client-2")

        remove_guest(db, meeting_id=meeting.id, person_id="client-1")
        assert db.get(Participant, (meeting.id, "client-1")) is None

        solo = _new_meeting(db, guests=["client-3"])
        with pytest.raises(ValidationError):
            remove_guest(db, meeting_id=solo.id, person_id="client-3")
    finally:
        db.close()


def test_delete_meeting_cascades():
    _clean_db()
    db: Session = SessionLocal()
    try:
        meeting = _new_meeting(db)
        meeting_id = meeting.id
        delete_meeting(db, meeting_id)

        assert db.get(Meeting, meeting_id) is None
        assert db.query(Participant).filter_by(meeting_id=meeting_id).count() == 0

        with pytest.raises(NotFoundError):
            delete_meeting(db, meeting_id)
    finally:
        db.close()
