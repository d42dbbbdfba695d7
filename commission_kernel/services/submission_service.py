"""
SubmissionService -- entry point for new commission submissions.

Responsibility:
    Validates a new submission, refuses job numbers that were permanently
    denied, creates the commission at ``pending_review``/``pending_manager``,
    writes the creation status-log entry and enqueues a ``submitted``
    notification.  One transaction per submission, like the workflow
    engine.

Failure modes:
    - ValidationError for blank text fields, a malformed job number or a
      negative/non-finite amount.
    - JobNumberLockedError when the job number is in the lock registry.
"""

from __future__ import annotations

import dataclasses
import time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import CommissionSnapshot, NewSubmission
from commission_kernel.domain.job_number import validate_job_number
from commission_kernel.domain.notifications import NotificationEvent, NotificationType
from commission_kernel.domain.workflow import (
    Actor,
    ActorRole,
    Stage,
    Status,
    SubmissionType,
    submission_role_for,
)
from commission_kernel.exceptions import JobNumberLockedError, ValidationError
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.commission import CommissionSubmissionModel
from commission_kernel.services.job_lock_registry import JobNumberLockRegistry
from commission_kernel.services.notification_relay import (
    NotificationOutboxService,
    NotificationRelay,
)
from commission_kernel.services.status_log_service import StatusLogService

logger = get_logger("services.submission")

SUBMITTED_MESSAGE = "Commission submitted"


@dataclasses.dataclass(frozen=True)
class SubmissionResult:
    commission: CommissionSnapshot
    outbox_id: UUID
    delivered: bool | None = None


def _require_text(value: str | None, label: str, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required", field=field)
    return value.strip()


def _require_amount(value: Decimal | None, label: str, field: str, required: bool) -> None:
    if value is None:
        if required:
            raise ValidationError(f"{label} is required", field=field)
        return
    if not isinstance(value, Decimal) or not value.is_finite():
        raise ValidationError(f"{label} must be a finite decimal amount", field=field)
    if value < 0:
        raise ValidationError(f"{label} cannot be negative", field=field)


class SubmissionService:
    """Creates commission submissions.

    Args:
        session_factory: Source of one session per submission.
        clock: Time source for ``created_at``.
        relay: Optional; when given, the ``submitted`` notification is
            delivered right after commit.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        relay: NotificationRelay | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._relay = relay

    def submit(self, submission: NewSubmission, actor: Actor) -> CommissionSnapshot:
        return self.submit_with_result(submission, actor).commission

    def submit_with_result(self, submission: NewSubmission, actor: Actor) -> SubmissionResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.actor_id,
            operation="submit",
        ):
            t0 = time.monotonic()
            job_name = _require_text(submission.job_name, "Job name", "job_name")
            job_address = _require_text(submission.job_address, "Job address", "job_address")
            job_number = validate_job_number(submission.job_number)
            if not job_number.valid:
                raise ValidationError(job_number.message, field="job_number")
            _require_amount(
                submission.requested_amount, "Requested amount", "requested_amount", True,
            )
            _require_amount(
                submission.contract_amount, "Contract amount", "contract_amount", False,
            )
            submission_type = SubmissionType(submission.submission_type)

            session = self._session_factory()
            try:
                locks = JobNumberLockRegistry(session, self._clock)
                if locks.is_locked(job_number.normalized):
                    raise JobNumberLockedError(job_number.normalized)

                now = self._clock.now()
                commission = CommissionSubmissionModel(
                    id=uuid4(),
                    job_number=job_number.normalized,
                    job_name=job_name,
                    job_address=job_address,
                    submitter_id=actor.actor_id,
                    submitter_name=actor.name,
                    submission_type=submission_type.value,
                    submission_role=submission_role_for(actor.role).value,
                    contract_amount=submission.contract_amount,
                    requested_amount=submission.requested_amount,
                    status=Status.PENDING_REVIEW.value,
                    stage=Stage.PENDING_MANAGER.value,
                    revision_count=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(commission)
                session.flush()

                notes = submission.notes.strip() if submission.notes else ""
                StatusLogService(session, self._clock).append(
                    commission_id=commission.id,
                    previous_status=None,
                    new_status=Status.PENDING_REVIEW,
                    previous_stage=None,
                    new_stage=Stage.PENDING_MANAGER,
                    changed_by_id=actor.actor_id,
                    notes=f"{SUBMITTED_MESSAGE}\n\nNotes: {notes}" if notes else SUBMITTED_MESSAGE,
                )
                event = NotificationEvent(
                    notification_type=NotificationType.SUBMITTED,
                    commission_id=commission.id,
                    job_name=commission.job_name,
                    job_address=commission.job_address,
                    submitter_name=commission.submitter_name,
                    submission_type=commission.submission_type,
                    status=commission.status,
                    stage=commission.stage,
                    contract_amount=commission.contract_amount,
                    net_owed=commission.requested_amount,
                    notes=notes or None,
                )
                outbox_id = NotificationOutboxService(session, self._clock).enqueue(event)
                snapshot = commission.to_dto()
                session.commit()
            except Exception:
                session.rollback()
                logger.warning(
                    "commission_submission_failed",
                    extra={"job_number": job_number.normalized},
                    exc_info=True,
                )
                raise
            finally:
                session.close()

            logger.info(
                "commission_submitted",
                extra={
                    "commission_id": str(snapshot.id),
                    "job_number": snapshot.job_number,
                    "submission_role": snapshot.submission_role.value,
                    "actor_role": ActorRole(actor.role).value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

            delivered = None
            if self._relay is not None:
                delivered = self._relay.deliver(outbox_id)
            return SubmissionResult(commission=snapshot, outbox_id=outbox_id, delivered=delivered)
