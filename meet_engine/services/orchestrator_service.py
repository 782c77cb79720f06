# meet_engine/services/orchestrator_service.py

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from meet_engine.models.meeting import Meeting, MeetingType
from meet_engine.models.participant import Participant
from meet_engine.models.reschedule_request import RescheduleRequest
from meet_engine.services import availability_service, meeting_service, reschedule_service
from meet_engine.services.calendar_sync import CalendarSync
from meet_engine.services.conflict_service import OverlapResult, check_overlap
from meet_engine.services.credit_service import (
    CreditLedger,
    CreditReconciliation,
    PaymentPlan,
    reconcile_credits,
)
from meet_engine.services.errors import ConflictWarning, OverlapAbortedError, ValidationError
from meet_engine.services.events_cache import MonthEventsCache
from meet_engine.services.meeting_service import MeetingPricing, MeetingRelations
from meet_engine.services.task_queue import (
    ATTACH_VIDEO_LINK,
    NOTIFY_PARTICIPANTS,
    PUSH_CALENDAR,
    enqueue,
)

logger = logging.getLogger(__name__)


@dataclass
class MeetingCreation:
    meeting: Meeting
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    payment_plans: List[PaymentPlan] = field(default_factory=list)
    credits: List[CreditReconciliation] = field(default_factory=list)


@dataclass
class RescheduleResult:
    meeting: Meeting
    request: Optional[RescheduleRequest] = None
    applied_directly: bool = False
    warnings: List[Dict[str, Any]] = field(default_factory=list)


class SchedulingOrchestrator:
    """
    Entry point for every scheduling write.

    Responsibility:
    - validate, run the (advisory) overlap check, then hand over to the
      meeting aggregate or the reschedule negotiator
    - reconcile credits after the participants exist
    - record side effects in the outbox (video link, calendar push, SMS)
    - drop the cached months the write touched

    Collaborators are never called inline; the outbox drains after the
    response.
    """

    def __init__(
        self,
        db: Session,
        *,
        ledger: CreditLedger | None = None,
        calendar_sync: CalendarSync | None = None,
        events_cache: MonthEventsCache | None = None,
        now: datetime | None = None,
    ):
        self.db = db
        self.ledger = ledger or CreditLedger(db)
        self.calendar_sync = calendar_sync
        self.events_cache = events_cache
        self.now = now

    # --- reads -------------------------------------------------------------

    def check_overlap(
        self,
        *,
        coach_id: str,
        start: datetime,
        end: datetime,
        exclude_meeting_id: int | None = None,
        client_ids: Sequence[str] = (),
    ) -> OverlapResult:
        meeting_service.validate_interval(start, end)
        return check_overlap(
            self.db,
            coach_id=coach_id,
            start=start,
            end=end,
            exclude_meeting_id=exclude_meeting_id,
            client_ids=client_ids,
            calendar_sync=self.calendar_sync,
        )

    def list_month_events(self, coach_id: str, year: int, month: int) -> List[Dict[str, Any]]:
        """A coach's meetings starting or running in the given month, cached."""
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")

        def load() -> List[Dict[str, Any]]:
            window_start = datetime(year, month, 1)
            window_end = window_start + timedelta(days=calendar.monthrange(year, month)[1])
            rows = (
                self.db.query(Meeting)
                .filter(
                    Meeting.coach_id == coach_id,
                    Meeting.start_time < window_end,
                    Meeting.end_time > window_start,
                )
                .order_by(Meeting.start_time.asc())
                .all()
            )
            # Stored without completion; with_current_status adds it on every read
            return [meeting_service.meeting_summary(m, datetime.min) for m in rows]

        if self.events_cache is None:
            events = load()
        else:
            events = self.events_cache.get_or_load(coach_id, year, month, load)
        return [meeting_service.with_current_status(e, self.now) for e in events]

    # --- writes ------------------------------------------------------------

    def create_meeting(
        self,
        *,
        coach_id: str,
        title: str,
        start_time: datetime,
        end_time: datetime,
        guest_ids: Sequence[str],
        pricing: MeetingPricing | None = None,
        relations: MeetingRelations | None = None,
        meeting_type: MeetingType = MeetingType.CONSULTATION,
        description: str | None = None,
        abort_on_conflict: bool = False,
    ) -> MeetingCreation:
        """
        Create a meeting end to end.

        Returns the meeting plus advisory warnings, the payment plan per
        guest and what the ledger actually debited.
        """
        meeting_service.validate_interval(start_time, end_time)

        warnings = self._conflict_warnings(
            coach_id=coach_id,
            start=start_time,
            end=end_time,
            abort_on_conflict=abort_on_conflict,
        )
        if availability_service.is_within_availability(self.db, coach_id, start_time, end_time) is False:
            warnings.append(
                {
                    "type": "availability",
                    "message": "The meeting falls outside the coach's published availability",
                }
            )

        created = meeting_service.create_meeting(
            self.db,
            coach_id=coach_id,
            title=title,
            start_time=start_time,
            end_time=end_time,
            guest_ids=guest_ids,
            pricing=pricing,
            relations=relations,
            meeting_type=meeting_type,
            description=description,
            ledger=self.ledger,
        )
        meeting = created.meeting

        credits = reconcile_credits(
            self.ledger,
            meeting_id=meeting.id,
            coach_id=coach_id,
            plans=created.payment_plans,
        )

        self._enqueue(ATTACH_VIDEO_LINK, {"meeting_id": meeting.id}, f"video:{meeting.id}")
        self._enqueue(PUSH_CALENDAR, {"meeting_id": meeting.id}, f"calendar:{meeting.id}:created")
        self._enqueue(
            NOTIFY_PARTICIPANTS,
            {"meeting_id": meeting.id, "event": "invited", "exclude": [coach_id]},
            f"notify:{meeting.id}:invited",
        )

        self._invalidate(coach_id, start_time, end_time)
        self.db.refresh(meeting)

        return MeetingCreation(
            meeting=meeting,
            warnings=warnings,
            payment_plans=created.payment_plans,
            credits=credits,
        )

    def request_reschedule(
        self,
        *,
        meeting_id: int,
        requested_by: str,
        start_time: datetime,
        end_time: datetime,
        reason: str | None = None,
        abort_on_conflict: bool = False,
    ) -> RescheduleResult:
        """
        Move the meeting or open a proposal (see reschedule_service).

        The overlap check also covers the guests' confirmed meetings.
        """
        meeting_service.validate_interval(start_time, end_time)
        meeting = meeting_service.get_meeting(self.db, meeting_id)

        warnings = self._conflict_warnings(
            coach_id=meeting.coach_id,
            start=start_time,
            end=end_time,
            exclude_meeting_id=meeting.id,
            client_ids=[g.person_id for g in meeting.guests],
            abort_on_conflict=abort_on_conflict,
        )

        outcome = reschedule_service.request_reschedule(
            self.db,
            meeting_id=meeting_id,
            requested_by=requested_by,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            now=self.now,
        )

        if outcome.applied_directly:
            self._after_move(
                outcome.meeting, marker=f"rev:{outcome.meeting.revision}", actor=requested_by
            )
        else:
            req = outcome.request
            self._enqueue(
                NOTIFY_PARTICIPANTS,
                {
                    "meeting_id": meeting_id,
                    "event": "reschedule_requested",
                    "exclude": [requested_by],
                    "proposed_start": req.to_start_time.isoformat(),
                },
                f"notify:{meeting_id}:req:{req.id}:{req.to_start_time.isoformat()}",
            )

        if outcome.previous_interval:
            self._invalidate(outcome.meeting.coach_id, *outcome.previous_interval)
        self._invalidate(outcome.meeting.coach_id, start_time, end_time)

        return RescheduleResult(
            meeting=outcome.meeting,
            request=outcome.request,
            applied_directly=outcome.applied_directly,
            warnings=warnings,
        )

    def accept_reschedule(self, *, request_id: int, accepted_by: str) -> RescheduleRequest:
        req = reschedule_service.get_request(self.db, request_id)
        meeting = meeting_service.get_meeting(self.db, req.meeting_id)
        previous = (meeting.start_time, meeting.end_time)

        req = reschedule_service.accept_reschedule(
            self.db, request_id=request_id, accepted_by=accepted_by, now=self.now
        )

        self.db.refresh(meeting)
        self._after_move(meeting, marker=f"req:{req.id}", actor=accepted_by)
        self._invalidate(meeting.coach_id, *previous)
        self._invalidate(meeting.coach_id, meeting.start_time, meeting.end_time)
        return req

    def reject_reschedule(self, *, request_id: int, rejected_by: str) -> RescheduleRequest:
        req = reschedule_service.reject_reschedule(
            self.db, request_id=request_id, rejected_by=rejected_by, now=self.now
        )
        meeting = meeting_service.get_meeting(self.db, req.meeting_id)
        self._invalidate(meeting.coach_id, meeting.start_time, meeting.end_time)
        return req

    def respond_rsvp(self, *, meeting_id: int, person_id: str, decision: str) -> Participant:
        participant = meeting_service.respond_rsvp(
            self.db,
            meeting_id=meeting_id,
            person_id=person_id,
            decision=decision,
            now=self.now,
        )
        meeting = meeting_service.get_meeting(self.db, meeting_id)
        self._invalidate(meeting.coach_id, meeting.start_time, meeting.end_time)
        return participant

    def cancel_meeting(
        self,
        *,
        meeting_id: int,
        cancelled_by: str,
        reason: str | None = None,
    ) -> Meeting:
        meeting = meeting_service.cancel_meeting(
            self.db,
            meeting_id=meeting_id,
            cancelled_by=cancelled_by,
            reason=reason,
            now=self.now,
        )

        self._enqueue(PUSH_CALENDAR, {"meeting_id": meeting.id}, f"calendar:{meeting.id}:cancelled")
        self._enqueue(
            NOTIFY_PARTICIPANTS,
            {"meeting_id": meeting.id, "event": "cancelled", "exclude": [cancelled_by]},
            f"notify:{meeting.id}:cancelled",
        )
        self._invalidate(meeting.coach_id, meeting.start_time, meeting.end_time)
        return meeting

    def remove_guest(self, *, meeting_id: int, person_id: str) -> None:
        meeting_service.remove_guest(self.db, meeting_id=meeting_id, person_id=person_id, now=self.now)
        meeting = meeting_service.get_meeting(self.db, meeting_id)
        self._invalidate(meeting.coach_id, meeting.start_time, meeting.end_time)

    def delete_meeting(self, meeting_id: int) -> None:
        meeting = meeting_service.get_meeting(self.db, meeting_id)
        coach_id, start, end = meeting.coach_id, meeting.start_time, meeting.end_time
        meeting_service.delete_meeting(self.db, meeting_id)
        self._invalidate(coach_id, start, end)

    # --- helpers -----------------------------------------------------------

    def _conflict_warnings(
        self,
        *,
        coach_id: str,
        start: datetime,
        end: datetime,
        exclude_meeting_id: int | None = None,
        client_ids: Sequence[str] = (),
        abort_on_conflict: bool = False,
    ) -> List[Dict[str, Any]]:
        result = self.check_overlap(
            coach_id=coach_id,
            start=start,
            end=end,
            exclude_meeting_id=exclude_meeting_id,
            client_ids=client_ids,
        )
        if not result.has_overlap:
            return []

        message = (
            f"The slot overlaps {len(result.conflicting_meeting_ids)} meeting(s) "
            f"and {result.external_conflicts} external busy block(s)"
        )
        if abort_on_conflict:
            raise OverlapAbortedError(message, result.conflicting_meeting_ids)

        logger.info(f"Overlap for coach {coach_id} at {start.isoformat()}: {message}")
        warning = ConflictWarning(
            message=message,
            conflicting_meeting_ids=result.conflicting_meeting_ids,
            external_conflicts=result.external_conflicts,
        )
        return [warning.as_dict()]

    def _after_move(self, meeting: Meeting, *, marker: str, actor: str) -> None:
        """Side effects of a committed interval change. `marker` is unique per change."""
        self._enqueue(
            ATTACH_VIDEO_LINK,
            {"meeting_id": meeting.id, "refresh": True},
            f"video:{meeting.id}:{marker}",
        )
        self._enqueue(PUSH_CALENDAR, {"meeting_id": meeting.id}, f"calendar:{meeting.id}:{marker}")
        self._enqueue(
            NOTIFY_PARTICIPANTS,
            {"meeting_id": meeting.id, "event": "rescheduled", "exclude": [actor]},
            f"notify:{meeting.id}:{marker}",
        )

    def _enqueue(self, kind: str, payload: Dict[str, Any], dedupe_key: str) -> None:
        if enqueue(self.db, kind=kind, payload=payload, dedupe_key=dedupe_key) is None:
            logger.warning(f"Side effect {kind} not recorded ({dedupe_key})")

    def _invalidate(self, coach_id: str, start: datetime, end: datetime) -> None:
        if self.events_cache is not None:
            self.events_cache.invalidate_interval(coach_id, start, end)
