# meet_engine/services/video_calls/base.py
"""
Base video call adapter.

Every provider the engine can attach a conferencing link from
implements this interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from meet_engine.services.errors import CollaboratorError


class VideoCallAdapter(ABC):
    @abstractmethod
    def create_meeting(self, meeting: Any) -> Dict[str, Any]:
        """
        Create (or re-create, after a time change) the provider-side room.

        Returns:
            dict: {"meeting_url": str, "meeting_id": str}

        Raises:
            VideoCallError: if the provider call fails
        """


class VideoCallError(CollaboratorError):
    pass
