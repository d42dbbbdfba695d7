"""Outer services - notification dispatchers and runtime wiring."""

from commission_services.notification_dispatcher import (
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
)
from commission_services.runtime import WorkflowRuntime, build_runtime

__all__ = [
    "LoggingNotificationDispatcher",
    "WebhookNotificationDispatcher",
    "WorkflowRuntime",
    "build_runtime",
]
