# meet_engine/services/twilio_client.py
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioSDKClient

from meet_engine.config import get_settings
from meet_engine.services.errors import CollaboratorError


class TwilioClient:
    """
    Thin wrapper around the Twilio Python SDK for participant SMS.

    This makes it easy to:
    - centralize config (account SID, auth token, from number, timeout)
    - mock in tests by replacing this class with a fake.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 5.0,
    ):
        self._client = TwilioSDKClient(
            account_sid,
            auth_token,
            http_client=TwilioHttpClient(timeout=timeout),
        )
        self._from_number = from_number

    def send_sms(self, to_number: str, body: str) -> str:
        """
        Send an SMS via Twilio and return the Message SID.
        """
        try:
            message = self._client.messages.create(
                to=to_number,
                from_=self._from_number,
                body=body,
            )
        except TwilioException as e:
            raise CollaboratorError(f"Twilio SMS to {to_number} failed: {e}") from e
        return message.sid


def get_twilio_client() -> Optional[TwilioClient]:
    """
    Configured TwilioClient, or None when SMS is not set up
    (notifications are then skipped, never failed).
    """
    settings = get_settings()

    if not (
        settings.TWILIO_ACCOUNT_SID
        and settings.TWILIO_AUTH_TOKEN
        and settings.TWILIO_PHONE_NUMBER
    ):
        return None

    return TwilioClient(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
    )
