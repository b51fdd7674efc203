import asyncio

import pytest
import requests

from services.notification import EmailNotifier, NotificationError, build_attendance_message


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {"id": "email-1"}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


TEMPLATE = {
    'name': "Student A",
    'roll_number': "R-001",
    'status': "present",
    'timestamp': "2026-10-18T09:00:00+00:00",
    'confidence_score': 0.93,
}


class TestMessage:

    def test_present_message(self):
        message = build_attendance_message(TEMPLATE)
        assert message['subject'] == "Attendance Marked - R-001"
        assert "Status: PRESENT" in message['text']
        assert "Confidence Score: 93%" in message['text']

    def test_absent_message(self):
        message = build_attendance_message(dict(TEMPLATE, status="absent"))
        assert message['subject'] == "Attendance Alert - R-001"
        assert "marked as absent" in message['text']


class TestEmailNotifier:

    def test_send_posts_to_api(self):
        session = FakeSession()
        notifier = EmailNotifier(api_key="re_test", session=session)

        result = asyncio.run(notifier.send("a@example.com", TEMPLATE))

        assert result == {"id": "email-1"}
        sent = session.requests[0]
        assert sent['headers'] == {"Authorization": "Bearer re_test"}
        assert sent['json']['to'] == ["a@example.com"]
        assert sent['json']['subject'] == "Attendance Marked - R-001"

    def test_not_configured(self):
        notifier = EmailNotifier(api_key="", session=FakeSession())
        with pytest.raises(NotificationError):
            asyncio.run(notifier.send("a@example.com", TEMPLATE))

    def test_error_status(self):
        session = FakeSession(response=FakeResponse(status_code=422, payload={"message": "bad"}))
        notifier = EmailNotifier(api_key="re_test", session=session)
        with pytest.raises(NotificationError):
            asyncio.run(notifier.send("a@example.com", TEMPLATE))

    def test_network_error(self):
        session = FakeSession(error=requests.ConnectionError("down"))
        notifier = EmailNotifier(api_key="re_test", session=session)
        with pytest.raises(NotificationError):
            asyncio.run(notifier.send("a@example.com", TEMPLATE))
