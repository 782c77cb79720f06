# meet_engine/services/conflict_service.py
"""
Conflict detection between a candidate interval and existing commitments.

Intervals are half-open: [start, end). Two intervals overlap iff
    candidate_start < existing_end AND candidate_end > existing_start
so meetings that merely touch (10:00–11:00 and 11:00–12:00) do not clash.

The result is advisory: callers decide whether to go ahead.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from meet_engine.models.meeting import Meeting, MeetingStatus
from meet_engine.models.participant import Participant, RsvpStatus
from meet_engine.services.calendar_sync import CalendarSync, safe_busy_intervals


@dataclass
class Interval:
    start: datetime
    end: datetime
    # Meeting id for our own commitments, None for external busy time
    id: Optional[int] = None


@dataclass
class OverlapResult:
    has_overlap: bool
    conflicting_meeting_ids: List[int] = field(default_factory=list)
    external_conflicts: int = 0


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    return a_start < b_end and a_end > b_start


def find_overlapping(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_intervals: Iterable[Interval],
    exclude_id: Optional[int] = None,
) -> List[Interval]:
    hits: List[Interval] = []
    for iv in existing_intervals:
        if exclude_id is not None and iv.id == exclude_id:
            continue
        if intervals_overlap(candidate_start, candidate_end, iv.start, iv.end):
            hits.append(iv)
    return hits


def has_overlap(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_intervals: Iterable[Interval],
    exclude_id: Optional[int] = None,
) -> bool:
    return bool(
        find_overlapping(candidate_start, candidate_end, existing_intervals, exclude_id)
    )


def coach_commitments(
    db: Session,
    coach_id: str,
    window_start: datetime,
    window_end: datetime,
) -> List[Interval]:
    """Coach's own non-cancelled meetings overlapping the window."""
    rows = (
        db.query(Meeting.id, Meeting.start_time, Meeting.end_time)
        .filter(
            Meeting.coach_id == coach_id,
            Meeting.status != MeetingStatus.CANCELLED.value,
            Meeting.start_time < window_end,
            Meeting.end_time > window_start,
        )
        .all()
    )
    return [Interval(start=r.start_time, end=r.end_time, id=r.id) for r in rows]


def client_commitments(
    db: Session,
    client_id: str,
    window_start: datetime,
    window_end: datetime,
) -> List[Interval]:
    """Meetings the client has confirmed, with any coach, overlapping the window."""
    rows = (
        db.query(Meeting.id, Meeting.start_time, Meeting.end_time)
        .join(Participant, Participant.meeting_id == Meeting.id)
        .filter(
            Participant.person_id == client_id,
            Participant.rsvp_status == RsvpStatus.CONFIRMED.value,
            Meeting.status != MeetingStatus.CANCELLED.value,
            Meeting.start_time < window_end,
            Meeting.end_time > window_start,
        )
        .all()
    )
    return [Interval(start=r.start_time, end=r.end_time, id=r.id) for r in rows]


def check_overlap(
    db: Session,
    *,
    coach_id: str,
    start: datetime,
    end: datetime,
    exclude_meeting_id: Optional[int] = None,
    client_ids: Sequence[str] = (),
    calendar_sync: Optional[CalendarSync] = None,
) -> OverlapResult:
    """
    Detect overlaps for [start, end).

    - always: the coach's meetings + the coach's external busy time
    - when client_ids is given (reschedule negotiation): each client's
      confirmed meetings + their external busy time

    Returns:
        OverlapResult with the ids of our clashing meetings and how many
        external busy blocks clash.
    """
    internal: List[Interval] = list(coach_commitments(db, coach_id, start, end))
    for client_id in client_ids:
        internal.extend(client_commitments(db, client_id, start, end))

    hits = find_overlapping(start, end, internal, exclude_id=exclude_meeting_id)
    meeting_ids = sorted({iv.id for iv in hits if iv.id is not None})

    external = 0
    for person_id in [coach_id, *client_ids]:
        busy = [
            Interval(start=b.start, end=b.end)
            for b in safe_busy_intervals(calendar_sync, person_id, start, end)
        ]
        external += len(find_overlapping(start, end, busy))

    return OverlapResult(
        has_overlap=bool(meeting_ids) or external > 0,
        conflicting_meeting_ids=meeting_ids,
        external_conflicts=external,
    )
