"""
Module: commission_kernel.models.revision_log
Responsibility: Append-only history of revision requests.

Invariants enforced:
    - UNIQUE(commission_id, revision_number); revision_number equals the
      commission's revision_count after the request.
    - Non-empty reason (CHECK).
    - No UPDATE, no DELETE (ORM listeners).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString, as_utc
from commission_kernel.domain.dtos import RevisionLogRecord
from commission_kernel.exceptions import ImmutabilityViolationError


class RevisionLogModel(Base):
    """One revision request. Append-only."""

    __tablename__ = "commission_revision_log"

    __table_args__ = (
        UniqueConstraint(
            "commission_id", "revision_number",
            name="uq_commission_revision_log_number",
        ),
        CheckConstraint(
            "length(trim(reason)) > 0",
            name="ck_commission_revision_log_reason",
        ),
        CheckConstraint(
            "revision_number >= 1",
            name="ck_commission_revision_log_number",
        ),
    )

    commission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commission_submissions.id"),
        nullable=False,
    )
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_by_role: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    previous_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<RevisionLog {self.commission_id}#{self.revision_number}>"

    def to_dto(self) -> RevisionLogRecord:
        return RevisionLogRecord(
            id=self.id,
            commission_id=self.commission_id,
            revision_number=self.revision_number,
            requested_by_id=self.requested_by_id,
            requested_by_name=self.requested_by_name,
            requested_by_role=self.requested_by_role,
            reason=self.reason,
            previous_amount=self.previous_amount,
            new_amount=self.new_amount,
            created_at=as_utc(self.created_at),
        )


@event.listens_for(RevisionLogModel, "before_update")
def prevent_revision_log_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RevisionLogEntry",
        entity_id=str(target.id),
        reason="Revision log entries are immutable -- cannot modify",
    )


@event.listens_for(RevisionLogModel, "before_delete")
def prevent_revision_log_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RevisionLogEntry",
        entity_id=str(target.id),
        reason="Revision log entries are immutable -- cannot delete",
    )
