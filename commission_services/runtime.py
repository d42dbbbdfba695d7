"""
commission_services.runtime -- composition root for the workflow.

Responsibility:
    Creates every kernel component exactly once from ``WorkflowSettings``
    and wires them together: database engine and session factory, schema,
    notification dispatcher, relay, workflow engine and submission service.
    Nothing in the kernel constructs its own collaborators.

Usage:
    from commission_config import get_active_config
    from commission_services.runtime import build_runtime

    runtime = build_runtime(get_active_config())
    result = runtime.workflow.apply(
        ApproveCommand(cid, expected_stage=Stage.PENDING_MANAGER), actor,
    )
    runtime.relay.deliver_due()     # periodic sweep for retries
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from commission_config import WorkflowSettings, get_active_config
from commission_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.notifications import NotificationDispatcher
from commission_kernel.logging_config import configure_logging, get_logger
from commission_kernel.selectors.commission_selector import CommissionSelector
from commission_kernel.services.approval_workflow import CommissionWorkflowEngine
from commission_kernel.services.notification_relay import NotificationRelay
from commission_kernel.services.submission_service import SubmissionService
from commission_services.notification_dispatcher import (
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
)

logger = get_logger("runtime")


@dataclass
class WorkflowRuntime:
    """Wired workflow components sharing one engine and clock."""

    settings: WorkflowSettings
    engine: Engine
    session_factory: sessionmaker[Session]
    dispatcher: NotificationDispatcher
    relay: NotificationRelay
    workflow: CommissionWorkflowEngine
    submissions: SubmissionService
    clock: Clock

    @contextmanager
    def selector(self) -> Iterator[CommissionSelector]:
        """Read-only access in a short-lived session."""
        with session_scope(self.session_factory) as session:
            yield CommissionSelector(session)

    def close(self) -> None:
        reset_engine()


def build_dispatcher(settings: WorkflowSettings) -> NotificationDispatcher:
    notifications = settings.notifications
    if notifications.enabled and notifications.webhook_url:
        return WebhookNotificationDispatcher(
            notifications.webhook_url,
            timeout_seconds=notifications.timeout_seconds,
        )
    return LoggingNotificationDispatcher()


def build_runtime(
    settings: WorkflowSettings | None = None,
    clock: Clock | None = None,
    dispatcher: NotificationDispatcher | None = None,
    create_schema: bool = True,
) -> WorkflowRuntime:
    """Build the workflow from settings (single entrypoint for production).

    Args:
        settings: Defaults to ``get_active_config()``.
        clock: Defaults to SystemClock.
        dispatcher: Overrides the dispatcher chosen from settings.
        create_schema: Issue CREATE TABLE for missing tables.
    """
    settings = settings or get_active_config()
    clock = clock or SystemClock()

    configure_logging(level=settings.logging.level)

    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        busy_timeout_seconds=db.busy_timeout_seconds,
    )
    if create_schema:
        create_tables(engine)
    session_factory = get_session_factory()

    dispatcher = dispatcher or build_dispatcher(settings)
    relay = NotificationRelay(
        session_factory,
        dispatcher,
        clock=clock,
        max_attempts=settings.notifications.max_attempts,
        backoff_seconds=settings.notifications.backoff_seconds,
    )

    runtime = WorkflowRuntime(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        dispatcher=dispatcher,
        relay=relay,
        workflow=CommissionWorkflowEngine(session_factory, clock=clock, relay=relay),
        submissions=SubmissionService(session_factory, clock=clock, relay=relay),
        clock=clock,
    )

    logger.info(
        "workflow_runtime_built",
        extra={
            "config_name": settings.name,
            "dialect": engine.dialect.name,
            "dispatcher": type(dispatcher).__name__,
        },
    )
    return runtime
