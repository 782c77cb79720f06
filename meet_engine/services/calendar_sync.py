# meet_engine/services/calendar_sync.py
"""
External calendar sync.

Two directions:
- read: busy intervals from a person's third-party calendar, merged into
  the conflict detector's input.
- write: push a meeting's current time to the external calendar.

The engine never depends on the external calendar being up; reads degrade
to "no external conflicts known".
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from meet_engine.config import get_settings
from meet_engine.services.errors import CollaboratorError

logger = logging.getLogger(__name__)


@dataclass
class BusyInterval:
    """A window in which a person is busy on an external calendar."""

    start: datetime
    end: datetime


class CalendarSync(ABC):
    @abstractmethod
    def busy_intervals(
        self, person_id: str, start: datetime, end: datetime
    ) -> List[BusyInterval]:
        """Return the person's external busy intervals overlapping [start, end)."""

    @abstractmethod
    def push_meeting(self, meeting: Dict[str, Any]) -> None:
        """Create or update the meeting on the external calendar."""


class NullCalendarSync(CalendarSync):
    """Used when no external calendar is configured."""

    def busy_intervals(self, person_id, start, end):
        return []

    def push_meeting(self, meeting):
        return None


class HttpCalendarSync(CalendarSync):
    """
    Talks to a calendar bridge service over HTTP.

    GET  {base_url}/busy?person_id=..&start=..&end=..  -> {"busy": [{"start", "end"}]}
    POST {base_url}/events                              <- meeting payload
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def busy_intervals(self, person_id, start, end):
        try:
            resp = httpx.get(
                f"{self._base_url}/busy",
                params={
                    "person_id": person_id,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorError(f"calendar busy lookup failed: {e}") from e

        intervals: List[BusyInterval] = []
        for item in data.get("busy") or []:
            try:
                b_start = datetime.fromisoformat(item["start"])
                b_end = datetime.fromisoformat(item["end"])
            except (KeyError, TypeError, ValueError):
                continue
            if b_end > b_start:
                intervals.append(BusyInterval(start=b_start, end=b_end))
        return intervals

    def push_meeting(self, meeting):
        try:
            resp = httpx.post(
                f"{self._base_url}/events",
                json=meeting,
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CollaboratorError(f"calendar push failed: {e}") from e


def safe_busy_intervals(
    calendar_sync: Optional[CalendarSync],
    person_id: str,
    start: datetime,
    end: datetime,
) -> List[BusyInterval]:
    """
    Busy intervals, or [] if the external calendar is unavailable.
    """
    if calendar_sync is None:
        return []
    try:
        return calendar_sync.busy_intervals(person_id, start, end)
    except CollaboratorError as e:
        logger.warning(f"External calendar unavailable for {person_id}: {e}")
        return []


def get_calendar_sync() -> CalendarSync:
    """
    FastAPI dependency to get the configured calendar sync.
    Falls back to NullCalendarSync when CALENDAR_SYNC_URL is unset.
    """
    settings = get_settings()
    if not settings.CALENDAR_SYNC_URL:
        return NullCalendarSync()
    return HttpCalendarSync(
        base_url=settings.CALENDAR_SYNC_URL,
        timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
    )
