"""
Read-side value objects (``commission_kernel.domain.dtos``).

Models never leave the kernel.  Services and selectors convert ORM rows
into these frozen snapshots via each model's ``to_dto()`` before
returning, so callers cannot accidentally mutate persisted state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from commission_kernel.domain.commands import WorkflowOperation
from commission_kernel.domain.notifications import NotificationEvent
from commission_kernel.domain.workflow import (
    Stage,
    Status,
    SubmissionRole,
    SubmissionType,
)


class LockOutcome(str, Enum):
    """What a denial did to the job number lock registry."""

    LOCKED = "locked"
    ALREADY_LOCKED = "already_locked"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class NewSubmission:
    """Input for ``SubmissionService.submit``."""

    job_number: str
    job_name: str
    job_address: str
    requested_amount: Decimal
    submission_type: SubmissionType = SubmissionType.EMPLOYEE
    contract_amount: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StageApproval:
    """Approval metadata written by one stage."""

    approved_at: datetime | None
    approved_by: str | None
    amount: Decimal | None


@dataclass(frozen=True)
class CommissionSnapshot:
    id: UUID
    job_number: str
    job_name: str
    job_address: str
    submitter_id: str
    submitter_name: str
    submission_type: SubmissionType
    submission_role: SubmissionRole
    contract_amount: Decimal | None
    requested_amount: Decimal
    approved_amount: Decimal | None
    status: Status
    stage: Stage
    revision_count: int
    version: int
    manager_approval: StageApproval
    accounting_approval: StageApproval
    admin_approval: StageApproval
    approved_at: datetime | None
    approved_by: str | None
    denied_at: datetime | None
    denied_by: str | None
    rejection_reason: str | None
    reviewer_notes: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.stage == Stage.COMPLETED

    @property
    def effective_amount(self) -> Decimal:
        """Amount that would be paid if approved now."""
        if self.approved_amount is not None:
            return self.approved_amount
        return self.requested_amount


@dataclass(frozen=True)
class StatusLogRecord:
    id: UUID
    commission_id: UUID
    sequence: int
    previous_status: Status | None
    new_status: Status
    previous_stage: Stage | None
    new_stage: Stage
    changed_by_id: str
    notes: str
    created_at: datetime


@dataclass(frozen=True)
class RevisionLogRecord:
    id: UUID
    commission_id: UUID
    revision_number: int
    requested_by_id: str
    requested_by_name: str
    requested_by_role: str
    reason: str
    previous_amount: Decimal | None
    new_amount: Decimal | None
    created_at: datetime


@dataclass(frozen=True)
class DeniedJobNumberRecord:
    id: UUID
    job_number: str
    commission_id: UUID
    denied_by_id: str
    denied_at: datetime
    denial_reason: str


@dataclass(frozen=True)
class WorkflowResult:
    """Everything one ``CommissionWorkflowEngine.apply`` call produced.

    ``delivered`` is None when the engine has no relay, otherwise whether
    the first delivery attempt succeeded.
    """

    operation: WorkflowOperation
    commission: CommissionSnapshot
    previous_status: Status
    previous_stage: Stage
    status_log: StatusLogRecord
    notification: NotificationEvent
    outbox_id: UUID
    revision_log: RevisionLogRecord | None = None
    lock_outcome: LockOutcome | None = None
    delivered: bool | None = None
