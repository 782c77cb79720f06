# meet_engine/services/meeting_service.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meet_engine.config import get_settings
from meet_engine.models.meeting import Meeting, MeetingStatus, MeetingType
from meet_engine.models.participant import (
    Participant,
    ParticipantRole,
    PaymentStatus,
    RsvpStatus,
)
from meet_engine.models.reschedule_request import RescheduleRequest, RescheduleStatus
from meet_engine.services.credit_service import (
    CreditLedger,
    PaymentPlan,
    credit_cost,
    plan_payment,
)
from meet_engine.services.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

# Guest RSVP machine; declined/cancelled have no way out
RSVP_TRANSITIONS: Dict[RsvpStatus, set] = {
    RsvpStatus.PENDING: {RsvpStatus.CONFIRMED, RsvpStatus.DECLINED},
    RsvpStatus.CONFIRMED: {RsvpStatus.CANCELLED},
    RsvpStatus.DECLINED: set(),
    RsvpStatus.CANCELLED: set(),
}


@dataclass
class MeetingPricing:
    is_free: bool = True
    price: Optional[Decimal] = None
    currency: Optional[str] = None


@dataclass
class MeetingRelations:
    activity_id: Optional[str] = None
    enrollment_id: Optional[str] = None
    max_participants: Optional[int] = None


@dataclass
class CreatedMeeting:
    meeting: Meeting
    payment_plans: List[PaymentPlan] = field(default_factory=list)


def validate_interval(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError("start_time and end_time are required")
    if end <= start:
        raise ValidationError("end_time must be after start_time")


def _normalize_guest_ids(coach_id: str, guest_ids: Sequence[str]) -> List[str]:
    seen: List[str] = []
    for gid in guest_ids or []:
        gid = (gid or "").strip()
        if gid and gid not in seen:
            seen.append(gid)

    if not seen:
        raise ValidationError("At least one guest is required")
    if coach_id in seen:
        raise ValidationError("The coach cannot be invited as a guest")
    return seen


def create_meeting(
    db: Session,
    *,
    coach_id: str,
    title: str,
    start_time: datetime,
    end_time: datetime,
    guest_ids: Sequence[str],
    pricing: Optional[MeetingPricing] = None,
    relations: Optional[MeetingRelations] = None,
    meeting_type: MeetingType = MeetingType.CONSULTATION,
    description: Optional[str] = None,
    ledger: Optional[CreditLedger] = None,
) -> CreatedMeeting:
    """
    Create a Meeting plus its host and guest Participants.

    Steps:
      1. Commit the Meeting row (status "scheduled").
      2. Seed the host (confirmed / free) and one pending guest per id,
         each with a payment status from plan_payment.
      3. If seeding fails, delete the Meeting again and raise StorageError;
         a Meeting never survives without its participants.

    Credits are not debited here; the returned payment plans say what to
    debit once the caller is ready (see credit_service.reconcile_credits).
    """
    if not coach_id:
        raise ValidationError("coach_id is required")
    if not title or not title.strip():
        raise ValidationError("title is required")
    validate_interval(start_time, end_time)

    guests = _normalize_guest_ids(coach_id, guest_ids)

    pricing = pricing or MeetingPricing()
    relations = relations or MeetingRelations()

    if relations.max_participants is not None and len(guests) > relations.max_participants:
        raise ValidationError(
            f"Too many guests: {len(guests)} > max_participants ({relations.max_participants})"
        )

    price: Optional[Decimal] = None
    if not pricing.is_free:
        price = Decimal(pricing.price if pricing.price is not None else 0)
        if price < 0:
            raise ValidationError("price cannot be negative")

    ledger = ledger or CreditLedger(db)
    balances = ledger.balances_for(coach_id, guests)

    meeting = Meeting(
        coach_id=coach_id,
        title=title.strip(),
        description=(description or "").strip() or None,
        start_time=start_time,
        end_time=end_time,
        meeting_type=MeetingType(meeting_type).value,
        status=MeetingStatus.SCHEDULED.value,
        is_free=pricing.is_free,
        price=price,
        currency=pricing.currency or get_settings().DEFAULT_CURRENCY,
        activity_id=relations.activity_id,
        enrollment_id=relations.enrollment_id,
        max_participants=relations.max_participants,
    )

    cost = credit_cost(meeting.duration_minutes)
    plans = [
        plan_payment(
            person_id=gid,
            cost=cost,
            available=balances.get(gid, 0),
            is_free=pricing.is_free,
            price=price,
        )
        for gid in guests
    ]

    # 1) Meeting row first, so there is something to compensate
    try:
        db.add(meeting)
        db.commit()
        db.refresh(meeting)
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not save meeting: {e}") from e

    # 2) Participants
    meeting_id = meeting.id
    try:
        seed_participants(db, meeting_id=meeting_id, coach_id=coach_id, plans=plans)
        db.commit()
    except Exception as e:
        db.rollback()
        _compensate_meeting_insert(db, meeting_id)
        if isinstance(e, SQLAlchemyError):
            raise StorageError(f"Could not save participants: {e}") from e
        raise

    db.refresh(meeting)
    logger.info(
        f"Meeting {meeting.id} created by coach {coach_id} "
        f"with {len(guests)} guest(s), cost {cost} credit(s) each"
    )
    return CreatedMeeting(meeting=meeting, payment_plans=plans)


def seed_participants(
    db: Session,
    *,
    meeting_id: int,
    coach_id: str,
    plans: Sequence[PaymentPlan],
) -> List[Participant]:
    """
    Insert-if-not-exists the host and guest rows, keyed by (meeting_id, person_id).
    """
    rows = [
        dict(
            person_id=coach_id,
            role=ParticipantRole.COACH.value,
            is_host=True,
            rsvp_status=RsvpStatus.CONFIRMED.value,
            payment_status=PaymentStatus.FREE.value,
        )
    ]
    for plan in plans:
        rows.append(
            dict(
                person_id=plan.person_id,
                role=ParticipantRole.CLIENT.value,
                is_host=False,
                rsvp_status=RsvpStatus.PENDING.value,
                payment_status=plan.payment_status.value,
            )
        )

    seeded: List[Participant] = []
    for row in rows:
        existing = db.get(Participant, (meeting_id, row["person_id"]))
        if existing is not None:
            seeded.append(existing)
            continue
        participant = Participant(meeting_id=meeting_id, invited_by=coach_id, **row)
        db.add(participant)
        seeded.append(participant)

    db.flush()
    return seeded


def _compensate_meeting_insert(db: Session, meeting_id: int) -> None:
    try:
        db.query(Meeting).filter(Meeting.id == meeting_id).delete(synchronize_session=False)
        db.commit()
        logger.warning(f"Meeting {meeting_id} removed after participant seeding failed")
    except SQLAlchemyError as e:
        db.rollback()
        logger.critical(
            f"Compensation failed: meeting {meeting_id} may be left without participants: {e}"
        )


def get_meeting(db: Session, meeting_id: int) -> Meeting:
    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        raise NotFoundError(f"Meeting {meeting_id} not found")
    return meeting


def get_participant(db: Session, meeting_id: int, person_id: str) -> Participant:
    participant = db.get(Participant, (meeting_id, person_id))
    if participant is None:
        raise NotFoundError(f"Participant {person_id} not found in meeting {meeting_id}")
    return participant


def is_completed(meeting: Meeting, now: Optional[datetime] = None) -> bool:
    """Completion is read-time only: the end has passed and nobody cancelled it."""
    now = now or datetime.utcnow()
    return meeting.status != MeetingStatus.CANCELLED.value and now > meeting.end_time


def has_accepted_reschedule(meeting: Meeting) -> bool:
    return any(
        r.status == RescheduleStatus.ACCEPTED.value for r in meeting.reschedule_requests
    )


def effective_status(meeting: Meeting, now: Optional[datetime] = None) -> MeetingStatus:
    """
    Status as shown to users.

    Precedence:
      1. cancelled (stored)
      2. completed (end has passed)
      3. rescheduled, if any reschedule request was accepted
      4. stored status
    """
    if meeting.status == MeetingStatus.CANCELLED.value:
        return MeetingStatus.CANCELLED
    if is_completed(meeting, now):
        return MeetingStatus.COMPLETED
    if has_accepted_reschedule(meeting):
        return MeetingStatus.RESCHEDULED
    return MeetingStatus(meeting.status)


def ensure_open(meeting: Meeting, now: Optional[datetime] = None) -> None:
    """Raise if the meeting is in a terminal state."""
    if meeting.status == MeetingStatus.CANCELLED.value:
        raise ValidationError(f"Meeting {meeting.id} is cancelled")
    if is_completed(meeting, now):
        raise ValidationError(f"Meeting {meeting.id} is already completed")


def respond_rsvp(
    db: Session,
    *,
    meeting_id: int,
    person_id: str,
    decision: str,
    now: Optional[datetime] = None,
) -> Participant:
    """
    Move a guest's RSVP along pending -> confirmed | declined, confirmed -> cancelled.

    Repeating the current state is a no-op. Other guests are unaffected.
    """
    meeting = get_meeting(db, meeting_id)
    ensure_open(meeting, now)

    participant = get_participant(db, meeting_id, person_id)
    if participant.is_host:
        raise ValidationError("The host is always confirmed")

    try:
        target = RsvpStatus(decision)
    except ValueError:
        raise ValidationError(f"Unknown RSVP decision: {decision}")

    current = RsvpStatus(participant.rsvp_status)
    if target == current:
        return participant

    if target not in RSVP_TRANSITIONS[current]:
        raise ValidationError(f"Cannot change RSVP from {current.value} to {target.value}")

    participant.rsvp_status = target.value
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not save RSVP: {e}") from e

    db.refresh(participant)
    logger.info(f"Meeting {meeting_id}: {person_id} RSVP {current.value} -> {target.value}")
    return participant


def cancel_meeting(
    db: Session,
    *,
    meeting_id: int,
    cancelled_by: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Meeting:
    """
    Cancel a scheduled/rescheduled meeting, recording who, why and when.

    Cancelling twice is a no-op. Any pending reschedule request is rejected.
    """
    meeting = get_meeting(db, meeting_id)
    if meeting.status == MeetingStatus.CANCELLED.value:
        return meeting
    if is_completed(meeting, now):
        raise ValidationError(f"Meeting {meeting_id} is already completed")

    if db.get(Participant, (meeting_id, cancelled_by)) is None:
        raise ValidationError("Only a participant can cancel the meeting")

    now = now or datetime.utcnow()
    meeting.status = MeetingStatus.CANCELLED.value
    meeting.cancelled_by = cancelled_by
    meeting.cancellation_reason = reason
    meeting.cancelled_at = now

    pending = (
        db.query(RescheduleRequest)
        .filter(
            RescheduleRequest.meeting_id == meeting_id,
            RescheduleRequest.status == RescheduleStatus.PENDING.value,
        )
        .all()
    )
    for req in pending:
        req.status = RescheduleStatus.REJECTED.value
        req.responded_by = cancelled_by
        req.responded_at = now

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not cancel meeting: {e}") from e

    db.refresh(meeting)
    logger.info(f"Meeting {meeting_id} cancelled by {cancelled_by}")
    return meeting


def delete_meeting(db: Session, meeting_id: int) -> None:
    """Hard delete; participants and reschedule requests go with it."""
    meeting = get_meeting(db, meeting_id)
    try:
        db.delete(meeting)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not delete meeting: {e}") from e
    logger.info(f"Meeting {meeting_id} deleted")


def remove_guest(
    db: Session,
    *,
    meeting_id: int,
    person_id: str,
    now: Optional[datetime] = None,
) -> None:
    """Withdraw a still-pending invitation. The last guest cannot be removed."""
    meeting = get_meeting(db, meeting_id)
    ensure_open(meeting, now)

    participant = get_participant(db, meeting_id, person_id)
    if participant.is_host:
        raise ValidationError("The host cannot be removed")
    if participant.rsvp_status != RsvpStatus.PENDING.value:
        raise ValidationError("Only a pending invitation can be withdrawn")
    if len(meeting.guests) <= 1:
        raise ValidationError("A meeting needs at least one guest")

    try:
        db.delete(participant)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not remove guest: {e}") from e


def meeting_summary(meeting: Meeting, now: Optional[datetime] = None) -> dict:
    """JSON-ready view of a meeting and its participants."""
    return {
        "id": meeting.id,
        "coach_id": meeting.coach_id,
        "title": meeting.title,
        "description": meeting.description,
        "start_time": meeting.start_time.isoformat(),
        "end_time": meeting.end_time.isoformat(),
        "meeting_type": meeting.meeting_type,
        "status": meeting.status,
        "effective_status": effective_status(meeting, now).value,
        "pricing": {
            "is_free": meeting.is_free,
            "price": str(meeting.price) if meeting.price is not None else None,
            "currency": meeting.currency,
        },
        "relations": {
            "activity_id": meeting.activity_id,
            "enrollment_id": meeting.enrollment_id,
            "max_participants": meeting.max_participants,
        },
        "video_link": meeting.video_link,
        "cancellation": (
            {
                "cancelled_by": meeting.cancelled_by,
                "reason": meeting.cancellation_reason,
                "cancelled_at": meeting.cancelled_at.isoformat() if meeting.cancelled_at else None,
            }
            if meeting.status == MeetingStatus.CANCELLED.value
            else None
        ),
        "participants": [
            {
                "person_id": p.person_id,
                "role": p.role,
                "is_host": p.is_host,
                "rsvp_status": p.rsvp_status,
                "payment_status": p.payment_status,
                "payment_id": p.payment_id,
            }
            for p in meeting.participants
        ],
    }


def with_current_status(summary: dict, now: Optional[datetime] = None) -> dict:
    """
    Apply read-time completion to a summary built earlier (e.g. a cached one).

    Cancellation and accepted reschedules only change through writes, which
    drop the cached month, so only the completed state needs the clock.
    """
    if summary["effective_status"] == MeetingStatus.CANCELLED.value:
        return summary
    now = now or datetime.utcnow()
    if now > datetime.fromisoformat(summary["end_time"]):
        return {**summary, "effective_status": MeetingStatus.COMPLETED.value}
    return summary
