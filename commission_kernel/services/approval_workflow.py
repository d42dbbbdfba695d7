"""
CommissionWorkflowEngine -- the commission approval state machine.

Responsibility:
    Applies one workflow command (approve, request revision, deny,
    resubmit) to one commission, atomically.  Owns the transaction
    boundary: every command runs in its own session, commits on success and
    rolls back on any error.

Architecture position:
    Kernel > Services -- the only writer of ``commission_submissions``
    after creation.  Composes StatusLogService, RevisionLogService,
    JobNumberLockRegistry and NotificationOutboxService inside its
    transaction; hands the committed outbox row to NotificationRelay.

Per-command sequence:
    1. ``command.validate()`` -- pure input checks, nothing read or written.
    2. Load the commission with SELECT ... FOR UPDATE (BEGIN IMMEDIATE on
       SQLite); missing -> CommissionNotFoundError, terminal ->
       CommissionTerminalError.
    3. ``expected_stage`` check -> StaleStageError.  Every reviewer command
       names the stage it was issued against, so a second writer queued
       behind the row lock never lands on the next stage.
    4. Authority check: submitter never reviews their own commission;
       wrong role for the stage -> AuthorizationError.
    5. Mutate the row, append logs, lock the job number (denials), enqueue
       one notification, flush, commit.
    6. After commit: relay.deliver(outbox_id).  Never raises.

Failure modes:
    - Every CommissionWorkflowError aborts the transaction; nothing partial
      is written.
    - StaleDataError at flush (version counter moved underneath us) becomes
      ConflictError.  The engine never retries.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.commands import (
    ApproveCommand,
    DenyCommand,
    RequestRevisionCommand,
    ResubmitCommand,
    WorkflowCommand,
)
from commission_kernel.domain.dtos import LockOutcome, WorkflowResult
from commission_kernel.domain.job_number import validate_job_number
from commission_kernel.domain.notifications import NotificationEvent, NotificationType
from commission_kernel.domain.workflow import (
    Actor,
    ActorRole,
    Stage,
    Status,
    check_stage_authority,
    next_approval_step,
)
from commission_kernel.exceptions import (
    AuthorizationError,
    CommissionNotFoundError,
    CommissionTerminalError,
    CommissionWorkflowError,
    ConflictError,
    StaleStageError,
    ValidationError,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.commission import CommissionSubmissionModel
from commission_kernel.services.job_lock_registry import JobNumberLockRegistry
from commission_kernel.services.notification_relay import (
    NotificationOutboxService,
    NotificationRelay,
)
from commission_kernel.services.revision_log_service import RevisionLogService
from commission_kernel.services.status_log_service import StatusLogService

logger = get_logger("services.approval_workflow")

AMOUNT_NOTES_REQUIRED = "Notes are required when modifying the approved amount"


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    stripped = text.strip()
    return stripped or None


def _with_notes(message: str, notes: str | None) -> str:
    if notes:
        return f"{message}\n\nNotes: {notes}"
    return message


def _effective_amount(commission: CommissionSubmissionModel) -> Decimal:
    if commission.approved_amount is not None:
        return commission.approved_amount
    return commission.requested_amount


class _Transaction:
    """Kernel services bound to the session of one workflow command."""

    def __init__(self, session: Session, clock: Clock):
        self.session = session
        self.status_log = StatusLogService(session, clock)
        self.revision_log = RevisionLogService(session, clock)
        self.locks = JobNumberLockRegistry(session, clock)
        self.outbox = NotificationOutboxService(session, clock)


class CommissionWorkflowEngine:
    """
    Applies workflow commands to commissions.

    Contract:
        ``apply(command, actor)`` either commits the full transition
        (field updates, status-log entry, revision-log entry, job number
        lock, outbox row) or raises and leaves the store untouched.

    Guarantees:
        - Stage only moves forward on approve and only back to
          ``pending_manager`` on request revision.
        - Approved and denied commissions are never changed again.
        - Notification delivery problems never fail a committed command.
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
        self._handlers: dict[type, Callable[..., WorkflowResult]] = {
            ApproveCommand: self._approve,
            RequestRevisionCommand: self._request_revision,
            DenyCommand: self._deny,
            ResubmitCommand: self._resubmit,
        }

    def apply(self, command: WorkflowCommand, actor: Actor) -> WorkflowResult:
        """
        Apply one command as ``actor``.

        Raises:
            ValidationError: Input failed validation.
            CommissionNotFoundError: No commission with ``command.commission_id``.
            AuthorizationError: ``actor`` may not perform this command now.
            ConflictError: Commission is terminal, moved on, or was changed
                concurrently.  Reload and retry.
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported workflow command: {type(command).__name__}")

        with LogContext.bind(
            correlation_id=str(uuid4()),
            commission_id=str(command.commission_id),
            actor_id=actor.actor_id,
            operation=command.operation.value,
        ):
            logger.info(
                "workflow_operation_started",
                extra={"actor_role": ActorRole(actor.role).value},
            )
            t0 = time.monotonic()

            session = self._session_factory()
            try:
                command.validate()
                tx = _Transaction(session, self._clock)
                commission = self._load_for_update(session, command.commission_id)
                result = handler(tx, commission, command, actor)
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                conflict = ConflictError(
                    "Commission was changed by another reviewer; reload and try again",
                    commission_id=str(command.commission_id),
                )
                self._log_failure(conflict, t0)
                raise conflict from exc
            except Exception as exc:
                session.rollback()
                self._log_failure(exc, t0)
                raise
            finally:
                session.close()

            logger.info(
                "workflow_operation_completed",
                extra={
                    "previous_status": result.previous_status.value,
                    "previous_stage": result.previous_stage.value,
                    "status": result.commission.status.value,
                    "stage": result.commission.stage.value,
                    "lock_outcome": result.lock_outcome.value if result.lock_outcome else None,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

            if self._relay is not None:
                delivered = self._relay.deliver(result.outbox_id)
                result = dataclasses.replace(result, delivered=delivered)
            return result

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    def _approve(
        self,
        tx: _Transaction,
        commission: CommissionSubmissionModel,
        command: ApproveCommand,
        actor: Actor,
    ) -> WorkflowResult:
        self._check_reviewer(commission, command.expected_stage, actor)

        notes = _clean(command.notes)
        if (
            command.approved_amount is not None
            and command.approved_amount != commission.requested_amount
            and notes is None
        ):
            raise ValidationError(AMOUNT_NOTES_REQUIRED, field="notes")

        step = next_approval_step(Stage(commission.stage), commission.submission_role)
        previous_status = Status(commission.status)
        previous_stage = Stage(commission.stage)
        now = self._clock.now()

        if command.approved_amount is not None:
            amount = command.approved_amount
        else:
            amount = _effective_amount(commission)

        commission.approved_amount = amount
        commission.record_stage_approval(step.approver, now, actor.actor_id, amount)
        if notes is not None:
            commission.reviewer_notes = notes
        commission.stage = step.next_stage.value
        if step.terminal:
            commission.status = Status.APPROVED.value
            commission.approved_at = now
            commission.approved_by = actor.actor_id
        else:
            commission.status = Status.PENDING_REVIEW.value
        commission.updated_at = now
        tx.session.flush()

        log_entry = tx.status_log.append(
            commission_id=commission.id,
            previous_status=previous_status,
            new_status=Status(commission.status),
            previous_stage=previous_stage,
            new_stage=step.next_stage,
            changed_by_id=actor.actor_id,
            notes=_with_notes(step.log_message, notes),
        )
        event = self._event(commission, step.notification_type, notes)
        outbox_id = tx.outbox.enqueue(event)

        return WorkflowResult(
            operation=command.operation,
            commission=commission.to_dto(),
            previous_status=previous_status,
            previous_stage=previous_stage,
            status_log=log_entry,
            notification=event,
            outbox_id=outbox_id,
        )

    def _request_revision(
        self,
        tx: _Transaction,
        commission: CommissionSubmissionModel,
        command: RequestRevisionCommand,
        actor: Actor,
    ) -> WorkflowResult:
        self._check_reviewer(commission, command.expected_stage, actor)

        reason = command.reason.strip()
        previous_status = Status(commission.status)
        previous_stage = Stage(commission.stage)
        now = self._clock.now()

        if command.previous_amount is not None:
            previous_amount = command.previous_amount
        else:
            previous_amount = _effective_amount(commission)

        commission.revision_count += 1
        revision_number = commission.revision_count
        commission.status = Status.REVISION_REQUIRED.value
        commission.stage = Stage.PENDING_MANAGER.value
        commission.rejection_reason = reason
        commission.clear_approval_chain()
        commission.updated_at = now
        tx.session.flush()

        revision_entry = tx.revision_log.append(
            commission_id=commission.id,
            revision_number=revision_number,
            requested_by=actor,
            reason=reason,
            previous_amount=previous_amount,
            new_amount=command.suggested_amount,
        )
        log_entry = tx.status_log.append(
            commission_id=commission.id,
            previous_status=previous_status,
            new_status=Status.REVISION_REQUIRED,
            previous_stage=previous_stage,
            new_stage=Stage.PENDING_MANAGER,
            changed_by_id=actor.actor_id,
            notes=f"Revision requested #{revision_number}: {reason}",
        )
        event = self._event(commission, NotificationType.REVISION_REQUIRED, reason)
        outbox_id = tx.outbox.enqueue(event)

        return WorkflowResult(
            operation=command.operation,
            commission=commission.to_dto(),
            previous_status=previous_status,
            previous_stage=previous_stage,
            status_log=log_entry,
            revision_log=revision_entry,
            notification=event,
            outbox_id=outbox_id,
        )

    def _deny(
        self,
        tx: _Transaction,
        commission: CommissionSubmissionModel,
        command: DenyCommand,
        actor: Actor,
    ) -> WorkflowResult:
        self._check_reviewer(commission, command.expected_stage, actor)

        reason = command.reason.strip()
        previous_status = Status(commission.status)
        previous_stage = Stage(commission.stage)
        now = self._clock.now()

        raw_job_number = (
            command.job_number if command.job_number is not None
            else commission.job_number
        )
        job_number = validate_job_number(raw_job_number)

        commission.status = Status.DENIED.value
        commission.stage = Stage.COMPLETED.value
        commission.denied_at = now
        commission.denied_by = actor.actor_id
        commission.rejection_reason = reason
        commission.updated_at = now
        # Flushed before the lock's savepoint so a duplicate cannot discard it.
        tx.session.flush()

        log_entry = tx.status_log.append(
            commission_id=commission.id,
            previous_status=previous_status,
            new_status=Status.DENIED,
            previous_stage=previous_stage,
            new_stage=Stage.COMPLETED,
            changed_by_id=actor.actor_id,
            notes=f"Commission DENIED: {reason}",
        )

        if job_number.valid:
            lock_outcome = tx.locks.lock(
                job_number.normalized, commission.id, actor.actor_id, reason,
            )
        else:
            lock_outcome = LockOutcome.SKIPPED
            logger.warning(
                "job_number_lock_skipped",
                extra={
                    "job_number": raw_job_number,
                    "validation_message": job_number.message,
                },
            )

        event = self._event(commission, NotificationType.DENIED, reason)
        outbox_id = tx.outbox.enqueue(event)

        return WorkflowResult(
            operation=command.operation,
            commission=commission.to_dto(),
            previous_status=previous_status,
            previous_stage=previous_stage,
            status_log=log_entry,
            lock_outcome=lock_outcome,
            notification=event,
            outbox_id=outbox_id,
        )

    def _resubmit(
        self,
        tx: _Transaction,
        commission: CommissionSubmissionModel,
        command: ResubmitCommand,
        actor: Actor,
    ) -> WorkflowResult:
        if actor.actor_id != commission.submitter_id:
            raise AuthorizationError(
                "Only the submitter can resubmit this commission",
                commission_id=str(commission.id),
                actor_role=ActorRole(actor.role).value,
                stage=commission.stage,
            )
        if commission.status != Status.REVISION_REQUIRED.value:
            raise ConflictError(
                f"Only commissions awaiting revision can be resubmitted "
                f"(status is {commission.status})",
                commission_id=str(commission.id),
            )

        notes = _clean(command.notes)
        previous_status = Status(commission.status)
        previous_stage = Stage(commission.stage)
        now = self._clock.now()

        if command.requested_amount is not None:
            commission.requested_amount = command.requested_amount
        commission.status = Status.PENDING_REVIEW.value
        commission.stage = Stage.PENDING_MANAGER.value
        commission.updated_at = now
        tx.session.flush()

        message = f"Commission resubmitted after revision #{commission.revision_count}"
        log_entry = tx.status_log.append(
            commission_id=commission.id,
            previous_status=previous_status,
            new_status=Status.PENDING_REVIEW,
            previous_stage=previous_stage,
            new_stage=Stage.PENDING_MANAGER,
            changed_by_id=actor.actor_id,
            notes=_with_notes(message, notes),
        )
        event = self._event(commission, NotificationType.RESUBMITTED, notes)
        outbox_id = tx.outbox.enqueue(event)

        return WorkflowResult(
            operation=command.operation,
            commission=commission.to_dto(),
            previous_status=previous_status,
            previous_stage=previous_stage,
            status_log=log_entry,
            notification=event,
            outbox_id=outbox_id,
        )

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _load_for_update(
        self, session: Session, commission_id: UUID,
    ) -> CommissionSubmissionModel:
        commission = session.execute(
            select(CommissionSubmissionModel)
            .where(CommissionSubmissionModel.id == commission_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if commission is None:
            raise CommissionNotFoundError(str(commission_id))
        if commission.is_terminal:
            raise CommissionTerminalError(str(commission.id), commission.status)
        return commission

    def _check_reviewer(
        self,
        commission: CommissionSubmissionModel,
        expected_stage: Stage,
        actor: Actor,
    ) -> None:
        stage = Stage(commission.stage)

        if Stage(expected_stage) != stage:
            raise StaleStageError(
                str(commission.id), Stage(expected_stage).value, stage.value,
            )

        if actor.actor_id == commission.submitter_id:
            raise AuthorizationError(
                "You cannot review your own commission",
                commission_id=str(commission.id),
                actor_role=ActorRole(actor.role).value,
                stage=stage.value,
            )

        allowed, reason = check_stage_authority(actor, stage)
        if allowed:
            return
        raise AuthorizationError(
            reason,
            commission_id=str(commission.id),
            actor_role=ActorRole(actor.role).value,
            stage=stage.value,
        )

    def _event(
        self,
        commission: CommissionSubmissionModel,
        notification_type: NotificationType,
        notes: str | None,
    ) -> NotificationEvent:
        return NotificationEvent(
            notification_type=notification_type,
            commission_id=commission.id,
            job_name=commission.job_name,
            job_address=commission.job_address,
            submitter_name=commission.submitter_name,
            submission_type=commission.submission_type,
            status=commission.status,
            stage=commission.stage,
            contract_amount=commission.contract_amount,
            net_owed=_effective_amount(commission),
            notes=notes,
        )

    def _log_failure(self, exc: Exception, t0: float) -> None:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        if isinstance(exc, CommissionWorkflowError):
            logger.warning(
                "workflow_operation_failed",
                extra={
                    "error_code": exc.code,
                    "reason": exc.reason,
                    "duration_ms": duration_ms,
                },
            )
        else:
            logger.error(
                "workflow_operation_failed",
                extra={"duration_ms": duration_ms},
                exc_info=True,
            )
