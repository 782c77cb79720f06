# meet_engine/services/video_calls/google_meet.py
"""
Google Meet adapter.

Meet rooms only exist once Google Calendar creates them (conferenceData),
which needs the coach's OAuth grant. That lives in a calendar bridge
service; this adapter asks it for the room:

POST {bridge_url}/create-meet  <- {"meeting_id", "coach_id", "title", "start_time", "end_time"}
                               -> {"meet_link", "conference_id"}
"""
from typing import Any, Dict, Optional

import httpx

from meet_engine.services.video_calls.base import VideoCallAdapter, VideoCallError


class GoogleMeetAdapter(VideoCallAdapter):
    def __init__(self, bridge_url: Optional[str], timeout: float = 5.0):
        self._bridge_url = bridge_url.rstrip("/") if bridge_url else None
        self._timeout = timeout

    def create_meeting(self, meeting: Any) -> Dict[str, Any]:
        if self._bridge_url is None:
            raise VideoCallError("GOOGLE_MEET_BRIDGE_URL is not configured")
        if meeting.id is None:
            raise VideoCallError("Meeting must be saved before creating a Meet link")

        try:
            resp = httpx.post(
                f"{self._bridge_url}/create-meet",
                json={
                    "meeting_id": meeting.id,
                    "coach_id": meeting.coach_id,
                    "title": meeting.title,
                    "start_time": meeting.start_time.isoformat(),
                    "end_time": meeting.end_time.isoformat(),
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise VideoCallError(f"Meet creation failed: {e}") from e

        link = data.get("meet_link")
        if not link:
            raise VideoCallError("Calendar bridge returned no meet_link")
        return {
            "meeting_url": link,
            "meeting_id": data.get("conference_id"),
        }
