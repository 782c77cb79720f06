# meet_engine/dependencies.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from meet_engine.db.session import get_db
from meet_engine.services.calendar_sync import CalendarSync, get_calendar_sync
from meet_engine.services.events_cache import MonthEventsCache
from meet_engine.services.orchestrator_service import SchedulingOrchestrator


def get_events_cache(request: Request) -> MonthEventsCache:
    """The single cache built in the app lifespan."""
    return request.app.state.events_cache


def get_orchestrator(
    db: Session = Depends(get_db),
    calendar_sync: CalendarSync = Depends(get_calendar_sync),
    events_cache: MonthEventsCache = Depends(get_events_cache),
) -> SchedulingOrchestrator:
    return SchedulingOrchestrator(db, calendar_sync=calendar_sync, events_cache=events_cache)
