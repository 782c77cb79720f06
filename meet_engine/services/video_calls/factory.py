# meet_engine/services/video_calls/factory.py
from meet_engine.config import get_settings
from meet_engine.services.video_calls.base import VideoCallAdapter


def get_adapter(provider: str) -> VideoCallAdapter:
    """
    Adapter for a provider name ("jitsi" or "google_meet").

    Raises:
        ValueError: if the provider is not supported
    """
    if provider == "jitsi":
        from meet_engine.services.video_calls.jitsi import JitsiAdapter
        return JitsiAdapter(get_settings().JITSI_BASE_URL)
    elif provider == "google_meet":
        from meet_engine.services.video_calls.google_meet import GoogleMeetAdapter
        settings = get_settings()
        return GoogleMeetAdapter(
            settings.GOOGLE_MEET_BRIDGE_URL,
            timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
        )
    else:
        raise ValueError(f"Unsupported provider: {provider}")
