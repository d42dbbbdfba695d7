"""
Notification outbox and relay.

Responsibility:
    ``NotificationOutboxService`` writes a notification event into the
    outbox inside the workflow transaction (flush-only, like every kernel
    service).  ``NotificationRelay`` delivers outbox rows after that
    transaction has committed, through a ``NotificationDispatcher``, and
    owns retry and backoff.

Architecture position:
    Kernel > Services.  The relay is the one kernel component besides the
    workflow engine that opens its own transactions: a delivery is never
    part of the transition that produced the event.

Delivery protocol (per row):
    1. Claim -- short transaction: lock the row, check it is pending and
       due, push ``next_attempt_at`` out by the lease so no other relay
       picks it up, commit.
    2. Dispatch -- outside any transaction.
    3. Record -- short transaction: mark ``sent``, or count the failure and
       schedule the next attempt from the backoff list; after
       ``max_attempts`` failures the row becomes ``failed``.

Failure modes:
    None surface.  Dispatcher errors and relay database errors are logged
    as warnings and reported as ``False``; the transition that produced the
    event has already committed.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from commission_kernel.db.base import as_utc
from commission_kernel.db.engine import session_scope
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    OutboxStatus,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.notification_outbox import NotificationOutboxModel
from commission_kernel.services.base import BaseService

logger = get_logger("services.notification_relay")

DEFAULT_BACKOFF_SECONDS: tuple[int, ...] = (30, 120, 600, 3600)
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LEASE_SECONDS = 60


class NotificationOutboxService(BaseService[NotificationOutboxModel]):
    """Writes outbox rows inside the caller's transaction."""

    def enqueue(self, event: NotificationEvent) -> UUID:
        row = NotificationOutboxModel.from_event(event, created_at=self.clock.now())
        self.session.add(row)
        self.session.flush()

        logger.debug(
            "notification_enqueued",
            extra={
                "outbox_id": str(row.id),
                "notification_type": event.notification_type.value,
                "commission_id": str(event.commission_id),
            },
        )
        return row.id


@dataclass(frozen=True)
class RelayReport:
    """Summary of one ``deliver_due`` sweep."""

    attempted: int
    sent: int
    failed: int

    @property
    def not_sent(self) -> int:
        return self.attempted - self.sent


@dataclass(frozen=True)
class _Claim:
    outbox_id: UUID
    event: NotificationEvent
    attempt: int


class NotificationRelay:
    """Delivers outbox rows with retry and backoff.

    Contract:
        ``deliver`` and ``deliver_due`` never raise.

    Guarantees:
        - Each delivery attempt increments ``attempts`` exactly once.
        - A row is ``sent`` at most once and never leaves ``sent``/``failed``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: Sequence[int] = DEFAULT_BACKOFF_SECONDS,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._backoff = tuple(backoff_seconds) or (0,)
        self._lease = timedelta(seconds=lease_seconds)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def backoff_for(self, attempts: int) -> timedelta:
        """Delay before the next attempt after ``attempts`` failures."""
        index = min(max(attempts, 1), len(self._backoff)) - 1
        return timedelta(seconds=self._backoff[index])

    def deliver(self, outbox_id: UUID) -> bool:
        """
        Attempt delivery of one outbox row.

        Returns:
            True if the row is (now or already) sent, False otherwise.
        """
        with LogContext.bind(operation="notification_delivery"):
            try:
                return self._deliver(outbox_id)
            except Exception:
                logger.warning(
                    "notification_relay_error",
                    extra={"outbox_id": str(outbox_id)},
                    exc_info=True,
                )
                return False

    def deliver_due(self, now: datetime | None = None, limit: int = 100) -> RelayReport:
        """Attempt every pending row whose ``next_attempt_at`` has passed."""
        now = now or self._clock.now()
        try:
            with session_scope(self._session_factory) as session:
                due_ids = session.execute(
                    select(NotificationOutboxModel.id)
                    .where(NotificationOutboxModel.status == OutboxStatus.PENDING.value)
                    .where(NotificationOutboxModel.next_attempt_at <= now)
                    .order_by(
                        NotificationOutboxModel.next_attempt_at.asc(),
                        NotificationOutboxModel.created_at.asc(),
                    )
                    .limit(limit)
                ).scalars().all()
        except Exception:
            logger.warning("notification_relay_scan_failed", exc_info=True)
            return RelayReport(attempted=0, sent=0, failed=0)

        sent = 0
        for outbox_id in due_ids:
            if self.deliver(outbox_id):
                sent += 1

        try:
            failed = self._count_failed(due_ids)
        except Exception:
            logger.warning("notification_relay_scan_failed", exc_info=True)
            failed = 0
        report = RelayReport(attempted=len(due_ids), sent=sent, failed=failed)
        logger.info(
            "notification_relay_sweep_completed",
            extra={
                "attempted": report.attempted,
                "sent": report.sent,
                "failed": report.failed,
            },
        )
        return report

    # ------------------------------------------------------------------
    # Delivery steps
    # ------------------------------------------------------------------

    def _deliver(self, outbox_id: UUID) -> bool:
        claim = self._claim(outbox_id)
        if claim is None:
            return self._is_sent(outbox_id)

        start = time.monotonic()
        try:
            self._dispatcher.dispatch(claim.event)
        except Exception as exc:
            self._record_failure(claim, exc)
            return False

        self._record_success(claim)
        logger.info(
            "notification_delivered",
            extra={
                "outbox_id": str(outbox_id),
                "notification_type": claim.event.notification_type.value,
                "commission_id": str(claim.event.commission_id),
                "attempt": claim.attempt,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return True

    def _claim(self, outbox_id: UUID) -> _Claim | None:
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            row = self._lock_row(session, outbox_id)
            if row is None or row.status != OutboxStatus.PENDING.value:
                return None
            due = as_utc(row.next_attempt_at)
            if due is not None and due > now:
                return None
            row.next_attempt_at = now + self._lease
            return _Claim(
                outbox_id=row.id,
                event=row.to_event(),
                attempt=row.attempts + 1,
            )

    def _record_success(self, claim: _Claim) -> None:
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            row = self._lock_row(session, claim.outbox_id)
            row.status = OutboxStatus.SENT.value
            row.attempts = claim.attempt
            row.sent_at = now
            row.next_attempt_at = None
            row.last_error = None

    def _record_failure(self, claim: _Claim, exc: Exception) -> None:
        now = self._clock.now()
        exhausted = claim.attempt >= self._max_attempts
        with session_scope(self._session_factory) as session:
            row = self._lock_row(session, claim.outbox_id)
            row.attempts = claim.attempt
            row.last_error = f"{type(exc).__name__}: {exc}"
            if exhausted:
                row.status = OutboxStatus.FAILED.value
                row.next_attempt_at = None
            else:
                row.next_attempt_at = now + self.backoff_for(claim.attempt)
            next_attempt_at = row.next_attempt_at

        logger.warning(
            "notification_delivery_failed",
            extra={
                "outbox_id": str(claim.outbox_id),
                "notification_type": claim.event.notification_type.value,
                "commission_id": str(claim.event.commission_id),
                "attempt": claim.attempt,
                "max_attempts": self._max_attempts,
                "exhausted": exhausted,
                "next_attempt_at": next_attempt_at,
                "error": str(exc),
            },
        )

    def _lock_row(self, session: Session, outbox_id: UUID) -> NotificationOutboxModel | None:
        return session.execute(
            select(NotificationOutboxModel)
            .where(NotificationOutboxModel.id == outbox_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _is_sent(self, outbox_id: UUID) -> bool:
        with session_scope(self._session_factory) as session:
            status = session.execute(
                select(NotificationOutboxModel.status).where(
                    NotificationOutboxModel.id == outbox_id
                )
            ).scalar_one_or_none()
        return status == OutboxStatus.SENT.value

    def _count_failed(self, outbox_ids: Sequence[UUID]) -> int:
        if not outbox_ids:
            return 0
        with session_scope(self._session_factory) as session:
            statuses = session.execute(
                select(NotificationOutboxModel.status).where(
                    NotificationOutboxModel.id.in_(list(outbox_ids))
                )
            ).scalars().all()
        return sum(1 for s in statuses if s == OutboxStatus.FAILED.value)
