"""
Tests for the concrete notification dispatchers.

The webhook dispatcher is exercised with a stub ``requests.Session`` so no
network traffic happens.
"""

import json
from decimal import Decimal
from uuid import uuid4

import pytest
import requests

from commission_kernel.domain.notifications import NotificationEvent, NotificationType
from commission_kernel.exceptions import NotificationDeliveryError
from commission_services.notification_dispatcher import (
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
)

HOOK_URL = "https://hooks.example.com/commission"


class _Response:
    def __init__(self, status_code):
        self.status_code = status_code


class StubSession:
    """Records POSTs; returns ``status_code`` or raises ``error``."""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return _Response(self.status_code)


@pytest.fixture
def event():
    return NotificationEvent(
        notification_type=NotificationType.DENIED,
        commission_id=uuid4(),
        job_name="Birch Lane Gutters",
        job_address="4 Birch Ln",
        submitter_name="Riley Rep",
        submission_type="subcontractor",
        status="denied",
        stage="completed",
        contract_amount=Decimal("9000.00"),
        net_owed=Decimal("700.00"),
        notes="duplicate claim",
    )


class TestWebhookNotificationDispatcher:

    def test_posts_json_payload(self, event):
        session = StubSession()
        dispatcher = WebhookNotificationDispatcher(
            HOOK_URL, timeout_seconds=3, session=session, headers={"X-Token": "abc"},
        )

        dispatcher.dispatch(event)

        call = session.calls[0]
        assert call["url"] == HOOK_URL
        assert call["timeout"] == 3
        assert call["headers"]["Content-Type"] == "application/json"
        assert call["headers"]["X-Token"] == "abc"
        body = json.loads(call["data"])
        assert body["notification_type"] == "denied"
        assert body["net_owed"] == "700.00"
        assert body["notes"] == "duplicate claim"

    @pytest.mark.parametrize("status_code", [400, 404, 500, 503])
    def test_non_2xx_raises(self, event, status_code):
        dispatcher = WebhookNotificationDispatcher(HOOK_URL, session=StubSession(status_code))
        with pytest.raises(NotificationDeliveryError) as exc_info:
            dispatcher.dispatch(event)
        assert exc_info.value.status_code == status_code
        assert exc_info.value.notification_type == "denied"

    def test_accepts_any_2xx(self, event):
        WebhookNotificationDispatcher(HOOK_URL, session=StubSession(202)).dispatch(event)

    def test_timeout_raises(self, event):
        session = StubSession(error=requests.Timeout("slow"))
        dispatcher = WebhookNotificationDispatcher(HOOK_URL, timeout_seconds=2, session=session)
        with pytest.raises(NotificationDeliveryError, match="timed out after 2"):
            dispatcher.dispatch(event)

    def test_connection_error_raises(self, event):
        session = StubSession(error=requests.ConnectionError("refused"))
        dispatcher = WebhookNotificationDispatcher(HOOK_URL, session=session)
        with pytest.raises(NotificationDeliveryError) as exc_info:
            dispatcher.dispatch(event)
        assert exc_info.value.status_code is None
        assert "refused" in exc_info.value.detail

    def test_session_created_lazily(self):
        dispatcher = WebhookNotificationDispatcher(HOOK_URL)
        assert isinstance(dispatcher.session, requests.Session)
        assert dispatcher.session is dispatcher.session


class TestLoggingNotificationDispatcher:

    def test_logs_payload(self, event, captured_logs):
        LoggingNotificationDispatcher().dispatch(event)
        logged = [r for r in captured_logs() if r["message"] == "notification_logged"]
        assert logged[0]["notification"]["commission_id"] == str(event.commission_id)
