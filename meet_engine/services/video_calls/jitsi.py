# meet_engine/services/video_calls/jitsi.py
from typing import Any, Dict

from meet_engine.services.video_calls.base import VideoCallAdapter, VideoCallError


class JitsiAdapter(VideoCallAdapter):
    """Jitsi rooms exist as soon as someone opens the URL; no API call needed."""

    def __init__(self, base_url: str = "https://meet.jit.si"):
        self.base_url = base_url.rstrip("/")

    def create_meeting(self, meeting: Any) -> Dict[str, Any]:
        if meeting.id is None:
            raise VideoCallError("Meeting must be saved before creating a Jitsi room")
        room = f"CoachMeet{meeting.id}x{int(meeting.start_time.timestamp())}"
        return {
            "meeting_url": f"{self.base_url}/{room}",
            "meeting_id": room,
        }
