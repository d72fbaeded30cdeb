"""Client for the outbound mail relay service."""
import logging
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)


class MailRelayClient:
    """Sends join confirmations and cancellation notices through the relay.

    Every failure is logged and reported as a False return value; callers
    never see an exception from this client.
    """

    def __init__(self, base_url: Optional[str], timeout: int = 10):
        self.base_url = base_url.rstrip('/') if base_url else None
        self.timeout = timeout

    def send_join_email(
        self,
        recipient_email: str,
        event_title: str,
        event_date: Optional[str] = None,
        event_location: Optional[str] = None,
        organizer_email: Optional[str] = None
    ) -> bool:
        """
        Ask the relay to confirm a join to the participant.

        Returns:
            True if the relay accepted the request
        """
        if not recipient_email or not event_title:
            logger.warning("Skipping join email without recipient or title")
            return False

        return self._post('/email/join', {
            'recipientEmail': recipient_email,
            'eventTitle': event_title,
            'eventDate': event_date,
            'eventLocation': event_location,
            'organizerEmail': organizer_email,
        }, description='join event email')

    def send_cancellation_email(
        self,
        recipients: List[str],
        event_title: str,
        event_date: Optional[str] = None,
        event_location: Optional[str] = None,
        organizer_email: Optional[str] = None
    ) -> bool:
        """
        Ask the relay to notify participants that an event was canceled.

        Returns:
            True if the relay accepted the request; False when there is
            nobody to notify or the request failed
        """
        recipients = [email for email in recipients if email and email.strip()]
        if not recipients:
            return False

        return self._post('/email/cancellation', {
            'recipients': recipients,
            'eventTitle': event_title,
            'eventDate': event_date,
            'eventLocation': event_location,
            'organizerEmail': organizer_email,
        }, description='cancellation email')

    def _post(self, path: str, payload: dict, description: str) -> bool:
        if not self.base_url:
            logger.warning(f"Mail relay URL is not configured. Skipping {description}.")
            return False

        body = {key: value for key, value in payload.items() if value is not None}
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=body,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(
                f"Unable to send {description}: {e}",
                extra={'error_type': type(e).__name__}
            )
            return False

        if not response.ok:
            logger.warning(
                f"Failed to send {description}. Status: {response.status_code}. "
                f"Message: {response.text}"
            )
            return False

        logger.info(f"Sent {description} for '{payload.get('eventTitle')}'")
        return True
