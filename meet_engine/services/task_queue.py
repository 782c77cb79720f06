# meet_engine/services/task_queue.py
"""
Outbox for fire-and-forget side effects.

Scheduling operations only *record* what should happen next (attach a
video link, push to the external calendar, text the participants) in
the outbox_tasks table. A drain pass, run as a FastAPI background task
after the response or by scripts/drain_outbox.py, performs them.

Delivery is at-least-once: a task is marked DONE only after its handler
returns, and failed tasks are retried until OUTBOX_MAX_ATTEMPTS. Every
handler is idempotent.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from meet_engine.config import get_settings
from meet_engine.models.meeting import Meeting, MeetingStatus
from meet_engine.models.outbox_task import OutboxTask, OutboxTaskStatus
from meet_engine.services.calendar_sync import CalendarSync, get_calendar_sync
from meet_engine.services.events_cache import MonthEventsCache
from meet_engine.services.notification_service import notify_participants
from meet_engine.services.twilio_client import TwilioClient, get_twilio_client
from meet_engine.services.video_calls.base import VideoCallAdapter
from meet_engine.services.video_calls.factory import get_adapter

logger = logging.getLogger(__name__)

ATTACH_VIDEO_LINK = "attach_video_link"
PUSH_CALENDAR = "push_calendar"
NOTIFY_PARTICIPANTS = "notify_participants"


@dataclass
class Collaborators:
    video_adapter: Optional[VideoCallAdapter] = None
    calendar_sync: Optional[CalendarSync] = None
    sms_client: Optional[TwilioClient] = None
    events_cache: Optional[MonthEventsCache] = None


def build_collaborators(events_cache: Optional[MonthEventsCache] = None) -> Collaborators:
    settings = get_settings()
    return Collaborators(
        video_adapter=get_adapter(settings.VIDEO_CALL_PROVIDER),
        calendar_sync=get_calendar_sync(),
        sms_client=get_twilio_client(),
        events_cache=events_cache or MonthEventsCache(ttl_seconds=settings.EVENTS_CACHE_TTL_SECONDS),
    )


def enqueue(
    db: Session,
    *,
    kind: str,
    payload: Dict[str, Any],
    dedupe_key: str,
) -> Optional[OutboxTask]:
    """
    Record a side effect. Enqueuing the same dedupe_key twice yields one task.

    Returns None if the outbox write itself failed; the primary operation
    has already committed and must not fail because of it.
    """
    existing = db.query(OutboxTask).filter_by(dedupe_key=dedupe_key).first()
    if existing is not None:
        return existing

    task = OutboxTask(
        kind=kind,
        payload=payload,
        dedupe_key=dedupe_key,
        status=OutboxTaskStatus.PENDING.value,
    )
    try:
        db.add(task)
        db.commit()
        db.refresh(task)
    except IntegrityError:
        db.rollback()
        return db.query(OutboxTask).filter_by(dedupe_key=dedupe_key).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not enqueue {kind} ({dedupe_key}): {e}")
        return None
    return task


# --- handlers -------------------------------------------------------------


def _attach_video_link(db: Session, collaborators: Collaborators, payload: Dict[str, Any]) -> None:
    meeting = db.get(Meeting, payload["meeting_id"])
    if meeting is None or meeting.status == MeetingStatus.CANCELLED.value:
        return
    if meeting.video_link and not payload.get("refresh"):
        return
    if collaborators.video_adapter is None:
        return

    result = collaborators.video_adapter.create_meeting(meeting)
    meeting.video_link = result["meeting_url"]
    meeting.video_meeting_id = result.get("meeting_id")
    db.commit()
    if collaborators.events_cache is not None:
        collaborators.events_cache.invalidate_interval(
            meeting.coach_id, meeting.start_time, meeting.end_time
        )
    logger.info(f"Video link attached to meeting {meeting.id}")


def _push_calendar(db: Session, collaborators: Collaborators, payload: Dict[str, Any]) -> None:
    meeting = db.get(Meeting, payload["meeting_id"])
    if meeting is None or collaborators.calendar_sync is None:
        return
    collaborators.calendar_sync.push_meeting(
        {
            "id": meeting.id,
            "coach_id": meeting.coach_id,
            "title": meeting.title,
            "start_time": meeting.start_time.isoformat(),
            "end_time": meeting.end_time.isoformat(),
            "status": meeting.status,
            "video_link": meeting.video_link,
            "attendees": [p.person_id for p in meeting.participants],
        }
    )


def _notify(db: Session, collaborators: Collaborators, payload: Dict[str, Any]) -> None:
    proposed = payload.get("proposed_start")
    notify_participants(
        db,
        collaborators.sms_client,
        meeting_id=payload["meeting_id"],
        event=payload["event"],
        exclude=payload.get("exclude") or [],
        proposed_start=datetime.fromisoformat(proposed) if proposed else None,
    )


HANDLERS: Dict[str, Callable[[Session, Collaborators, Dict[str, Any]], None]] = {
    ATTACH_VIDEO_LINK: _attach_video_link,
    PUSH_CALENDAR: _push_calendar,
    NOTIFY_PARTICIPANTS: _notify,
}


def process_pending_tasks(
    db: Session,
    collaborators: Collaborators,
    max_tasks: Optional[int] = None,
) -> int:
    """
    Run pending outbox tasks in insertion order.

    Returns how many completed. Failures are logged and retried on a later
    pass; after OUTBOX_MAX_ATTEMPTS the task is parked as FAILED.
    """
    settings = get_settings()
    limit = max_tasks or settings.OUTBOX_BATCH_SIZE

    tasks = (
        db.query(OutboxTask)
        .filter(OutboxTask.status == OutboxTaskStatus.PENDING.value)
        .order_by(OutboxTask.id.asc())
        .limit(limit)
        .all()
    )

    done = 0
    for task in tasks:
        task_id, kind = task.id, task.kind
        handler = HANDLERS.get(kind)
        if handler is None:
            task.status = OutboxTaskStatus.FAILED.value
            task.last_error = f"No handler for {kind}"
            db.commit()
            logger.error(f"Outbox task {task_id}: no handler for {kind}")
            continue

        try:
            handler(db, collaborators, dict(task.payload or {}))
        except Exception as e:
            db.rollback()
            task = db.get(OutboxTask, task_id)
            task.attempts = (task.attempts or 0) + 1
            task.last_error = str(e)[:2000]
            if task.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
                task.status = OutboxTaskStatus.FAILED.value
                logger.error(f"Outbox task {task_id} ({kind}) failed permanently: {e}")
            else:
                logger.warning(f"Outbox task {task_id} ({kind}) failed, will retry: {e}")
            db.commit()
            continue

        task = db.get(OutboxTask, task_id)
        task.status = OutboxTaskStatus.DONE.value
        task.attempts = (task.attempts or 0) + 1
        task.processed_at = datetime.utcnow()
        db.commit()
        done += 1

    return done


def run_outbox(events_cache: Optional[MonthEventsCache] = None) -> int:
    """Drain one batch with a fresh session. Used as a FastAPI background task."""
    from meet_engine.db.session import SessionLocal

    db = SessionLocal()
    try:
        return process_pending_tasks(db, build_collaborators(events_cache))
    finally:
        db.close()
