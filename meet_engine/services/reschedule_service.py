# meet_engine/services/reschedule_service.py
"""
Reschedule negotiation.

Rule: once every invited guest has answered (nobody is still "pending"),
nobody may move the meeting on their own. The move becomes a proposal
(RescheduleRequest) that the other side accepts or rejects, and the
meeting is flagged "rescheduled" while the proposal is open.

While at least one guest is still pending, the consent to protect does
not exist yet, so the interval is changed in place.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from meet_engine.models.meeting import Meeting, MeetingStatus
from meet_engine.models.participant import Participant, RsvpStatus
from meet_engine.models.reschedule_request import RescheduleRequest, RescheduleStatus
from meet_engine.services.errors import NotFoundError, StorageError, ValidationError
from meet_engine.services.meeting_service import ensure_open, get_meeting, validate_interval

logger = logging.getLogger(__name__)


@dataclass
class RescheduleOutcome:
    meeting: Meeting
    # Set when the move became a proposal
    request: Optional[RescheduleRequest] = None
    applied_directly: bool = False
    # Interval before the change, for cache invalidation / notifications
    previous_interval: Optional[Tuple[datetime, datetime]] = None
    superseded_request_ids: List[int] = field(default_factory=list)


def get_request(db: Session, request_id: int) -> RescheduleRequest:
    req = db.get(RescheduleRequest, request_id)
    if req is None:
        raise NotFoundError(f"RescheduleRequest {request_id} not found")
    return req


def pending_requests(db: Session, meeting_id: int) -> List[RescheduleRequest]:
    return (
        db.query(RescheduleRequest)
        .filter(
            RescheduleRequest.meeting_id == meeting_id,
            RescheduleRequest.status == RescheduleStatus.PENDING.value,
        )
        .order_by(RescheduleRequest.created_at.asc(), RescheduleRequest.id.asc())
        .all()
    )


def _participant_or_error(db: Session, meeting_id: int, person_id: str) -> Participant:
    participant = db.get(Participant, (meeting_id, person_id))
    if participant is None:
        raise ValidationError(f"{person_id} is not a participant of meeting {meeting_id}")
    return participant


def request_reschedule(
    db: Session,
    *,
    meeting_id: int,
    requested_by: str,
    start_time: datetime,
    end_time: datetime,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RescheduleOutcome:
    """
    Move a meeting, or propose the move if every guest has already answered.

    - some guest still pending  -> interval updated now, open proposals rejected
    - nobody pending            -> pending RescheduleRequest, meeting "rescheduled",
                                   interval untouched until accepted
    """
    validate_interval(start_time, end_time)
    meeting = get_meeting(db, meeting_id)
    ensure_open(meeting, now)
    requester = _participant_or_error(db, meeting_id, requested_by)

    participants = db.query(Participant).filter(Participant.meeting_id == meeting_id).all()
    any_pending = any(p.rsvp_status == RsvpStatus.PENDING.value for p in participants)

    previous = (meeting.start_time, meeting.end_time)
    now = now or datetime.utcnow()

    if any_pending:
        superseded = pending_requests(db, meeting_id)
        for req in superseded:
            req.status = RescheduleStatus.REJECTED.value
            req.responded_by = requested_by
            req.responded_at = now

        meeting.start_time = start_time
        meeting.end_time = end_time
        meeting.revision = Meeting.revision + 1
        if meeting.status == MeetingStatus.RESCHEDULED.value:
            meeting.status = MeetingStatus.SCHEDULED.value

        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not move meeting: {e}") from e

        db.refresh(meeting)
        logger.info(
            f"Meeting {meeting_id} moved directly by {requested_by} "
            f"({previous[0].isoformat()} -> {start_time.isoformat()})"
        )
        return RescheduleOutcome(
            meeting=meeting,
            applied_directly=True,
            previous_interval=previous,
            superseded_request_ids=[r.id for r in superseded],
        )

    # Everyone has answered: negotiate
    existing = pending_requests(db, meeting_id)
    if existing:
        current = existing[0]
        if current.requested_by != requested_by:
            raise ValidationError(
                f"Meeting {meeting_id} already has a pending reschedule request"
            )
        # Same requester revising their own proposal
        current.to_start_time = start_time
        current.to_end_time = end_time
        current.reason = reason
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not update reschedule request: {e}") from e
        db.refresh(current)
        db.refresh(meeting)
        return RescheduleOutcome(meeting=meeting, request=current, previous_interval=previous)

    req = RescheduleRequest(
        meeting_id=meeting_id,
        requested_by=requested_by,
        requested_by_role=requester.role,
        from_start_time=meeting.start_time,
        from_end_time=meeting.end_time,
        to_start_time=start_time,
        to_end_time=end_time,
        status=RescheduleStatus.PENDING.value,
        reason=reason,
        created_at=now,
    )
    meeting.status = MeetingStatus.RESCHEDULED.value

    try:
        db.add(req)
        db.commit()
    except IntegrityError:
        # Lost the race against another proposal for the same meeting
        db.rollback()
        winner = pending_requests(db, meeting_id)
        if not winner:
            raise StorageError("Could not save reschedule request")
        db.refresh(meeting)
        logger.info(f"Meeting {meeting_id}: concurrent proposal kept request {winner[0].id}")
        return RescheduleOutcome(meeting=meeting, request=winner[0], previous_interval=previous)
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not save reschedule request: {e}") from e

    req = _resolve_duplicate_pending(db, meeting_id, req)

    db.refresh(meeting)
    logger.info(
        f"Meeting {meeting_id}: reschedule request {req.id} by {requested_by} "
        f"-> {start_time.isoformat()}"
    )
    return RescheduleOutcome(meeting=meeting, request=req, previous_interval=previous)


def _resolve_duplicate_pending(
    db: Session, meeting_id: int, inserted: RescheduleRequest
) -> RescheduleRequest:
    """
    Post-insert re-check for stores without the partial unique index:
    keep the earliest pending request and reject the rest.
    """
    rows = pending_requests(db, meeting_id)
    if len(rows) <= 1:
        db.refresh(inserted)
        return inserted

    keep, extra = rows[0], rows[1:]
    for req in extra:
        req.status = RescheduleStatus.REJECTED.value
        req.responded_at = datetime.utcnow()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not resolve duplicate reschedule requests: {e}") from e

    logger.warning(
        f"Meeting {meeting_id}: {len(extra)} duplicate pending request(s) rejected, kept {keep.id}"
    )
    db.refresh(keep)
    return keep


def accept_reschedule(
    db: Session,
    *,
    request_id: int,
    accepted_by: str,
    now: Optional[datetime] = None,
) -> RescheduleRequest:
    """
    Commit the proposed interval into the meeting and set it back to "scheduled".

    Accepting an already accepted request is a no-op.
    """
    req = get_request(db, request_id)
    if req.status == RescheduleStatus.ACCEPTED.value:
        return req
    if req.status != RescheduleStatus.PENDING.value:
        raise ValidationError(f"RescheduleRequest {request_id} is {req.status}, not pending")

    meeting = get_meeting(db, req.meeting_id)
    ensure_open(meeting, now)
    _participant_or_error(db, meeting.id, accepted_by)
    if accepted_by == req.requested_by:
        raise ValidationError("The requester cannot accept their own reschedule request")

    now = now or datetime.utcnow()
    req.status = RescheduleStatus.ACCEPTED.value
    req.responded_by = accepted_by
    req.responded_at = now

    meeting.start_time = req.to_start_time
    meeting.end_time = req.to_end_time
    meeting.revision = Meeting.revision + 1
    meeting.status = MeetingStatus.SCHEDULED.value

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not accept reschedule request: {e}") from e

    db.refresh(req)
    logger.info(f"RescheduleRequest {request_id} accepted by {accepted_by}")
    return req


def reject_reschedule(
    db: Session,
    *,
    request_id: int,
    rejected_by: str,
    now: Optional[datetime] = None,
) -> RescheduleRequest:
    """
    Turn the proposal down (or withdraw it, when called by the requester).

    The meeting keeps its interval and goes back to "scheduled".
    Rejecting an already rejected request is a no-op.
    """
    req = get_request(db, request_id)
    if req.status == RescheduleStatus.REJECTED.value:
        return req
    if req.status != RescheduleStatus.PENDING.value:
        raise ValidationError(f"RescheduleRequest {request_id} is {req.status}, not pending")

    meeting = get_meeting(db, req.meeting_id)
    _participant_or_error(db, meeting.id, rejected_by)

    req.status = RescheduleStatus.REJECTED.value
    req.responded_by = rejected_by
    req.responded_at = now or datetime.utcnow()

    if meeting.status == MeetingStatus.RESCHEDULED.value:
        meeting.status = MeetingStatus.SCHEDULED.value

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not reject reschedule request: {e}") from e

    db.refresh(req)
    logger.info(f"RescheduleRequest {request_id} rejected by {rejected_by}")
    return req


def request_summary(req: RescheduleRequest) -> dict:
    return {
        "id": req.id,
        "meeting_id": req.meeting_id,
        "requested_by": req.requested_by,
        "requested_by_role": req.requested_by_role,
        "from_start_time": req.from_start_time.isoformat(),
        "from_end_time": req.from_end_time.isoformat(),
        "to_start_time": req.to_start_time.isoformat(),
        "to_end_time": req.to_end_time.isoformat(),
        "status": req.status,
        "reason": req.reason,
        "responded_by": req.responded_by,
        "responded_at": req.responded_at.isoformat() if req.responded_at else None,
        "created_at": req.created_at.isoformat() if req.created_at else None,
    }
