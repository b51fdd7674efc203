"""
Notification Service

Sends attendance confirmations through the Resend email API. Template
rendering is minimal; the message only carries the template data fields.
"""

import asyncio
import logging
from typing import Dict, Optional

import requests

from config import (
    RESEND_API_KEY,
    RESEND_API_URL,
    EMAIL_SENDER,
    NOTIFICATION_HTTP_TIMEOUT
)

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a notification cannot be delivered"""
    pass


def build_attendance_message(template_data: Dict) -> Dict[str, str]:
    """Subject and plain-text body for an attendance confirmation"""
    status = template_data.get('status', 'present')
    roll_number = template_data.get('roll_number', '')
    subject = f"Attendance {'Marked' if status == 'present' else 'Alert'} - {roll_number}"

    lines = [
        f"Hello {template_data.get('name', '')},",
        "",
        f"Your attendance has been {'successfully recorded' if status == 'present' else 'marked as absent'}.",
        "",
        f"Status: {status.upper()}",
        f"Roll Number: {roll_number}",
        f"Date & Time: {template_data.get('timestamp', '')}",
    ]
    confidence = template_data.get('confidence_score')
    if confidence:
        lines.append(f"Confidence Score: {round(confidence * 100)}%")
    lines += [
        "",
        "If you didn't mark this attendance, please contact your administrator immediately.",
    ]
    return {'subject': subject, 'text': "\n".join(lines)}


class EmailNotifier:
    """Email notifications over the Resend HTTP API"""

    def __init__(
        self,
        api_key: str = None,
        sender: str = None,
        api_url: str = None,
        timeout: float = None,
        session: requests.Session = None
    ):
        self.api_key = api_key if api_key is not None else RESEND_API_KEY
        self.sender = sender or EMAIL_SENDER
        self.api_url = api_url or RESEND_API_URL
        self.timeout = timeout or NOTIFICATION_HTTP_TIMEOUT
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, payload: Dict) -> Dict:
        response = self._session.post(
            self.api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout
        )
        if response.status_code >= 300:
            raise NotificationError(f"Email API returned {response.status_code}: {response.text[:200]}")
        return response.json()

    async def send(self, address: str, template_data: Dict) -> Dict:
        """
        Send one notification.

        Args:
            address: Recipient email
            template_data: name, roll_number, status, timestamp, confidence_score

        Returns:
            Provider response (contains the message id)

        Raises:
            NotificationError: If not configured or delivery fails
        """
        if not self.configured:
            raise NotificationError("Email API key not configured")

        message = build_attendance_message(template_data)
        payload = {
            "from": self.sender,
            "to": [address],
            "subject": message['subject'],
            "text": message['text'],
        }

        try:
            result = await asyncio.to_thread(self._post, payload)
        except requests.RequestException as e:
            raise NotificationError(f"Email API request failed: {e}") from e

        logger.info(f"Attendance email sent to {address}")
        return result


# Singleton instance for reuse
_notifier_instance: Optional[EmailNotifier] = None


def get_notifier() -> EmailNotifier:
    """
    Get singleton instance of EmailNotifier
    """
    global _notifier_instance
    if _notifier_instance is None:
        _notifier_instance = EmailNotifier()
    return _notifier_instance
