"""
Notification dispatchers.

Responsibility:
    Concrete ``NotificationDispatcher`` implementations used by the
    kernel's ``NotificationRelay``.  All outbound HTTP for notifications
    goes through ``WebhookNotificationDispatcher``; email rendering and
    routing happen on the receiving side of the webhook.

Failure modes:
    - ``NotificationDeliveryError`` for network failures, timeouts and
      non-2xx responses.  The relay catches it and schedules a retry; the
      dispatcher itself never retries.

Testability:
    Pass a stub ``requests.Session`` to ``WebhookNotificationDispatcher``
    instead of letting it create a real one.
"""

from __future__ import annotations

import json
import time

import requests

from commission_kernel.domain.notifications import NotificationEvent
from commission_kernel.exceptions import NotificationDeliveryError
from commission_kernel.logging_config import get_logger

logger = get_logger("notifications.dispatcher")

_DEFAULT_TIMEOUT = 10.0


class WebhookNotificationDispatcher:
    """POSTs each event as JSON to a single webhook endpoint."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._session = session
        self._headers = {"Content-Type": "application/json", **(headers or {})}

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def dispatch(self, event: NotificationEvent) -> None:
        notification_type = event.notification_type.value
        body = json.dumps(event.to_payload())
        t0 = time.monotonic()
        try:
            response = self.session.post(
                self._url,
                data=body,
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            raise NotificationDeliveryError(
                notification_type, f"timed out after {self._timeout}s",
            ) from exc
        except requests.RequestException as exc:
            raise NotificationDeliveryError(notification_type, str(exc)) from exc

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        if not 200 <= response.status_code < 300:
            raise NotificationDeliveryError(
                notification_type,
                f"webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            "webhook_notification_sent",
            extra={
                "notification_type": notification_type,
                "commission_id": str(event.commission_id),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )


class LoggingNotificationDispatcher:
    """Writes each event to the structured log instead of sending it.

    Used when no webhook is configured, so local runs still show what
    would have been sent.
    """

    def dispatch(self, event: NotificationEvent) -> None:
        logger.info(
            "notification_logged",
            extra={"notification": event.to_payload()},
        )
