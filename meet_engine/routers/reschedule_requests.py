# meet_engine/routers/reschedule_requests.py
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends

from meet_engine.dependencies import get_orchestrator
from meet_engine.schemas.meetings import RespondPayload
from meet_engine.services.orchestrator_service import SchedulingOrchestrator
from meet_engine.services.reschedule_service import get_request, request_summary
from meet_engine.services.task_queue import run_outbox

router = APIRouter()


@router.get("/{request_id}")
def read_request(
        request_id: int,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return request_summary(get_request(orchestrator.db, request_id))


@router.post("/{request_id}/accept")
def accept_request(
        request_id: int,
        payload: RespondPayload,
        background_tasks: BackgroundTasks,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Commit the proposed time into the meeting."""
    req = orchestrator.accept_reschedule(request_id=request_id, accepted_by=payload.person_id)
    background_tasks.add_task(run_outbox, orchestrator.events_cache)
    return request_summary(req)


@router.post("/{request_id}/reject")
def reject_request(
        request_id: int,
        payload: RespondPayload,
        orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Turn the proposal down, or withdraw it when called by the requester."""
    req = orchestrator.reject_reschedule(request_id=request_id, rejected_by=payload.person_id)
    return request_summary(req)
