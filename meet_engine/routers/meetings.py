# meet_engine/routers/meetings.py
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from meet_engine.dependencies import get_orchestrator
from meet_engine.models.meeting import MeetingType
from meet_engine.schemas.meetings import (
    CancelPayload,
    MeetingCreate,
    OverlapCheck,
    RescheduleCreate,
    RsvpPayload,
)
from meet_engine.services.meeting_service import (
    MeetingPricing,
    MeetingRelations,
    get_meeting,
    meeting_summary,
)
from meet_engine.services.orchestrator_service import SchedulingOrchestrator
from meet_engine.services.reschedule_service import pending_requests, request_summary
from meet_engine.services.task_queue import run_outbox

router = APIRouter()


@router.post("/meetings", status_code=201)
def create_meeting(
        payload: MeetingCreate,
        background_tasks: BackgroundTasks,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """
    Create a meeting with its host and guests.

    Overlaps come back as warnings unless abort_on_conflict is set (409).
    """
    result = orchestrator.create_meeting(
        coach_id=payload.coach_id,
        title=payload.title,
        start_time=payload.start_time,
        end_time=payload.end_time,
        guest_ids=payload.guest_ids,
        pricing=MeetingPricing(
            is_free=payload.pricing.is_free,
            price=payload.pricing.price,
            currency=payload.pricing.currency,
        ),
        relations=MeetingRelations(
            activity_id=payload.relations.activity_id,
            enrollment_id=payload.relations.enrollment_id,
            max_participants=payload.relations.max_participants,
        ),
        meeting_type=MeetingType(payload.meeting_type),
        description=payload.description,
        abort_on_conflict=payload.abort_on_conflict,
    )
    background_tasks.add_task(run_outbox, orchestrator.events_cache)

    return {
        "meeting": meeting_summary(result.meeting),
        "warnings": result.warnings,
        "payment_plans": [p.as_dict() for p in result.payment_plans],
        "credits": [
            {"person_id": c.person_id, "debited": c.debited, "failed": c.failed}
            for c in result.credits
        ],
    }


@router.post("/meetings/check-overlap")
def check_overlap(
        payload: OverlapCheck,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    result = orchestrator.check_overlap(
        coach_id=payload.coach_id,
        start=payload.start_time,
        end=payload.end_time,
        exclude_meeting_id=payload.exclude_meeting_id,
        client_ids=payload.client_ids,
    )
    return {
        "has_overlap": result.has_overlap,
        "conflicting_meeting_ids": result.conflicting_meeting_ids,
        "external_conflicts": result.external_conflicts,
    }


@router.get("/meetings/{meeting_id}")
def read_meeting(
        meeting_id: int,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    meeting = get_meeting(orchestrator.db, meeting_id)
    return {
        "meeting": meeting_summary(meeting),
        "pending_reschedule_requests": [
            request_summary(r) for r in pending_requests(orchestrator.db, meeting_id)
        ],
    }


@router.delete("/meetings/{meeting_id}")
def delete_meeting(
        meeting_id: int,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    orchestrator.delete_meeting(meeting_id)
    return {"id": meeting_id, "deleted": True}


@router.post("/meetings/{meeting_id}/cancel")
def cancel_meeting(
        meeting_id: int,
        payload: CancelPayload,
        background_tasks: BackgroundTasks,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    meeting = orchestrator.cancel_meeting(
        meeting_id=meeting_id,
        cancelled_by=payload.cancelled_by,
        reason=payload.reason,
    )
    background_tasks.add_task(run_outbox, orchestrator.events_cache)
    return {"meeting": meeting_summary(meeting)}


@router.post("/meetings/{meeting_id}/rsvp")
def respond_rsvp(
        meeting_id: int,
        payload: RsvpPayload,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    participant = orchestrator.respond_rsvp(
        meeting_id=meeting_id,
        person_id=payload.person_id,
        decision=payload.decision,
    )
    return {
        "meeting_id": participant.meeting_id,
        "person_id": participant.person_id,
        "rsvp_status": participant.rsvp_status,
        "payment_status": participant.payment_status,
    }


@router.delete("/meetings/{meeting_id}/participants/{person_id}")
def remove_guest(
        meeting_id: int,
        person_id: str,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    orchestrator.remove_guest(meeting_id=meeting_id, person_id=person_id)
    return {"meeting_id": meeting_id, "person_id": person_id, "removed": True}


@router.post("/meetings/{meeting_id}/reschedule")
def request_reschedule(
        meeting_id: int,
        payload: RescheduleCreate,
        background_tasks: BackgroundTasks,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """
    Propose a new time, or move the meeting directly while a guest is
    still pending.
    """
    result = orchestrator.request_reschedule(
        meeting_id=meeting_id,
        requested_by=payload.requested_by,
        start_time=payload.start_time,
        end_time=payload.end_time,
        reason=payload.reason,
        abort_on_conflict=payload.abort_on_conflict,
    )
    background_tasks.add_task(run_outbox, orchestrator.events_cache)

    return {
        "meeting": meeting_summary(result.meeting),
        "applied_directly": result.applied_directly,
        "request": request_summary(result.request) if result.request else None,
        "warnings": result.warnings,
    }


@router.get("/coaches/{coach_id}/meetings")
def list_month_events(
        coach_id: str,
        year: int = Query(..., ge=1970),
        month: int = Query(..., ge=1, le=12),
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return {
        "coach_id": coach_id,
        "year": year,
        "month": month,
        "meetings": orchestrator.list_month_events(coach_id, year, month),
    }
