"""
Module: commission_kernel.models.status_log
Responsibility: Append-only audit trail of every status/stage transition,
    including creation, revisions, denials and resubmissions.

Invariants enforced:
    - UNIQUE(commission_id, sequence): per-commission ordering is total even
      when two entries share a timestamp.
    - No UPDATE, no DELETE (ORM listeners).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString, as_utc
from commission_kernel.domain.dtos import StatusLogRecord
from commission_kernel.domain.workflow import Stage, Status
from commission_kernel.exceptions import ImmutabilityViolationError


class StatusLogModel(Base):
    """One status-log entry. Append-only."""

    __tablename__ = "commission_status_log"

    __table_args__ = (
        UniqueConstraint(
            "commission_id", "sequence",
            name="uq_commission_status_log_sequence",
        ),
        Index("ix_commission_status_log_commission", "commission_id", "created_at"),
    )

    commission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commission_submissions.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    previous_stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_stage: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StatusLog {self.commission_id}#{self.sequence} "
            f"{self.previous_status}->{self.new_status}>"
        )

    def to_dto(self) -> StatusLogRecord:
        return StatusLogRecord(
            id=self.id,
            commission_id=self.commission_id,
            sequence=self.sequence,
            previous_status=Status(self.previous_status) if self.previous_status else None,
            new_status=Status(self.new_status),
            previous_stage=Stage(self.previous_stage) if self.previous_stage else None,
            new_stage=Stage(self.new_stage),
            changed_by_id=self.changed_by_id,
            notes=self.notes,
            created_at=as_utc(self.created_at),
        )


@event.listens_for(StatusLogModel, "before_update")
def prevent_status_log_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StatusLogEntry",
        entity_id=str(target.id),
        reason="Status log entries are immutable -- cannot modify",
    )


@event.listens_for(StatusLogModel, "before_delete")
def prevent_status_log_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StatusLogEntry",
        entity_id=str(target.id),
        reason="Status log entries are immutable -- cannot delete",
    )
