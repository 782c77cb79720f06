# meet_engine/services/notification_service.py
"""
SMS notifications to meeting participants.

Runs from the outbox, never inside a scheduling request.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from meet_engine.models.meeting import Meeting
from meet_engine.models.participant import Participant
from meet_engine.models.person import Person
from meet_engine.services.twilio_client import TwilioClient

logger = logging.getLogger(__name__)

MESSAGES = {
    "invited": "You're invited to \"{title}\" on {when}. Open the app to confirm.",
    "reschedule_requested": "A new time was proposed for \"{title}\": {when}. Open the app to answer.",
    "rescheduled": "\"{title}\" now takes place on {when}.",
    "cancelled": "\"{title}\" on {when} was cancelled.",
}


def _when(meeting: Meeting, start=None) -> str:
    return (start or meeting.start_time).strftime("%a %d %b %Y %H:%M")


def render_message(meeting: Meeting, event: str, proposed_start=None) -> str:
    try:
        template = MESSAGES[event]
    except KeyError:
        raise ValueError(f"Unknown notification event: {event}")
    return template.format(title=meeting.title, when=_when(meeting, proposed_start))


def notify_participants(
    db: Session,
    sms_client: Optional[TwilioClient],
    *,
    meeting_id: int,
    event: str,
    exclude: Iterable[str] = (),
    proposed_start=None,
) -> int:
    """
    Text every participant with a phone number on file.

    Returns how many messages went out. A missing SMS client or a deleted
    meeting means nothing to do.
    """
    if sms_client is None:
        logger.debug(f"SMS not configured; skipping '{event}' for meeting {meeting_id}")
        return 0

    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        return 0

    skip = set(exclude)
    person_ids = [
        p.person_id
        for p in db.query(Participant).filter(Participant.meeting_id == meeting_id).all()
        if p.person_id not in skip
    ]
    if not person_ids:
        return 0

    body = render_message(meeting, event, proposed_start)
    sent = 0
    for person in db.query(Person).filter(Person.id.in_(person_ids)).all():
        if not person.phone:
            continue
        if not person.phone.startswith("+"):
            logger.warning(f"Phone number not in E.164 format for {person.id}: {person.phone}")
            continue
        # Errors propagate so the outbox retries the task
        sms_client.send_sms(person.phone, body)
        sent += 1

    logger.info(f"Sent {sent} '{event}' SMS for meeting {meeting_id}")
    return sent
