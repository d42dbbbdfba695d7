"""
Module: commission_kernel.models.commission
Responsibility: ORM persistence for commission submissions, the only
    mutable record in the workflow.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Status and stage values are limited by CHECK constraints.
    - stage = 'completed' exactly when status is approved or denied
      (CHECK constraint).
    - ``version`` is the mapper's version_id_col: every UPDATE carries
      ``WHERE version = :loaded_version`` and a lost race raises
      StaleDataError at flush.
    - Terminal rows are frozen by the before_update listener; no row is
      ever deleted (before_delete listener).

Failure modes:
    - ImmutabilityViolationError on UPDATE of a terminal row or any DELETE.
    - StaleDataError on concurrent modification (mapped to ConflictError by
      the workflow engine).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, as_utc
from commission_kernel.domain.dtos import CommissionSnapshot, StageApproval
from commission_kernel.domain.workflow import (
    TERMINAL_STATUSES,
    Stage,
    Status,
    SubmissionRole,
    SubmissionType,
)
from commission_kernel.exceptions import ImmutabilityViolationError

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)


class CommissionSubmissionModel(Base):
    """Persistent commission submission.

    Contract:
        Mutated only by CommissionWorkflowEngine, inside a transaction
        that holds the row lock.  Approved and denied rows are immutable.
    """

    __tablename__ = "commission_submissions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_review', 'revision_required', 'denied', 'approved')",
            name="ck_commission_submissions_status",
        ),
        CheckConstraint(
            "stage IN ('pending_manager', 'pending_accounting', "
            "'pending_admin', 'completed')",
            name="ck_commission_submissions_stage",
        ),
        CheckConstraint(
            "submission_role IN ('rep', 'manager')",
            name="ck_commission_submissions_role",
        ),
        CheckConstraint(
            "(stage = 'completed') = (status IN ('approved', 'denied'))",
            name="ck_commission_submissions_terminal_stage",
        ),
        CheckConstraint(
            "revision_count >= 0",
            name="ck_commission_submissions_revision_count",
        ),
        Index("ix_commission_submissions_status_stage", "status", "stage", "created_at"),
        Index("ix_commission_submissions_job_number", "job_number"),
    )

    job_number: Mapped[str] = mapped_column(String(16), nullable=False)
    job_name: Mapped[str] = mapped_column(String(255), nullable=False)
    job_address: Mapped[str] = mapped_column(String(500), nullable=False)
    submitter_id: Mapped[str] = mapped_column(String(100), nullable=False)
    submitter_name: Mapped[str] = mapped_column(String(255), nullable=False)
    submission_type: Mapped[str] = mapped_column(String(32), nullable=False)
    submission_role: Mapped[str] = mapped_column(String(16), nullable=False)

    contract_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    requested_amount: Mapped[Decimal] = mapped_column(nullable=False)
    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=Status.PENDING_REVIEW.value,
    )
    stage: Mapped[str] = mapped_column(
        String(32), nullable=False, default=Stage.PENDING_MANAGER.value,
    )
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    manager_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    manager_approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manager_approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    accounting_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accounting_approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    accounting_approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    admin_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    admin_approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    admin_approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    denied_at: Mapped[datetime | None] = mapped_column(nullable=True)
    denied_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<CommissionSubmission {self.id} job={self.job_number} "
            f"status={self.status} stage={self.stage}>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_VALUES

    def record_stage_approval(
        self, approver: str, at: datetime, by: str, amount: Decimal,
    ) -> None:
        """Write ``<approver>_approved_at/by/amount``."""
        setattr(self, f"{approver}_approved_at", at)
        setattr(self, f"{approver}_approved_by", by)
        setattr(self, f"{approver}_approved_amount", amount)

    def clear_approval_chain(self) -> None:
        """Forget every stage approval; the chain restarts from the top."""
        for approver in ("manager", "accounting", "admin"):
            setattr(self, f"{approver}_approved_at", None)
            setattr(self, f"{approver}_approved_by", None)
            setattr(self, f"{approver}_approved_amount", None)
        self.approved_amount = None

    def _stage_approval(self, approver: str) -> StageApproval:
        return StageApproval(
            approved_at=as_utc(getattr(self, f"{approver}_approved_at")),
            approved_by=getattr(self, f"{approver}_approved_by"),
            amount=getattr(self, f"{approver}_approved_amount"),
        )

    def to_dto(self) -> CommissionSnapshot:
        """Convert ORM model to frozen domain DTO."""
        return CommissionSnapshot(
            id=self.id,
            job_number=self.job_number,
            job_name=self.job_name,
            job_address=self.job_address,
            submitter_id=self.submitter_id,
            submitter_name=self.submitter_name,
            submission_type=SubmissionType(self.submission_type),
            submission_role=SubmissionRole(self.submission_role),
            contract_amount=self.contract_amount,
            requested_amount=self.requested_amount,
            approved_amount=self.approved_amount,
            status=Status(self.status),
            stage=Stage(self.stage),
            revision_count=self.revision_count,
            version=self.version,
            manager_approval=self._stage_approval("manager"),
            accounting_approval=self._stage_approval("accounting"),
            admin_approval=self._stage_approval("admin"),
            approved_at=as_utc(self.approved_at),
            approved_by=self.approved_by,
            denied_at=as_utc(self.denied_at),
            denied_by=self.denied_by,
            rejection_reason=self.rejection_reason,
            reviewer_notes=self.reviewer_notes,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


# =============================================================================
# ORM-Level Immutability for Terminal Commissions
# =============================================================================


@event.listens_for(CommissionSubmissionModel, "before_update")
def prevent_terminal_update(mapper, connection, target):
    """Refuse any UPDATE to a commission that was already approved or denied."""
    history = inspect(target).attrs.status.history
    stored_status = history.deleted[0] if history.deleted else target.status
    if stored_status in _TERMINAL_VALUES:
        raise ImmutabilityViolationError(
            entity_type="CommissionSubmission",
            entity_id=str(target.id),
            reason=f"Commission is {stored_status} -- cannot modify",
        )


@event.listens_for(CommissionSubmissionModel, "before_delete")
def prevent_commission_delete(mapper, connection, target):
    """Commissions are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="CommissionSubmission",
        entity_id=str(target.id),
        reason="Commissions cannot be deleted",
    )
