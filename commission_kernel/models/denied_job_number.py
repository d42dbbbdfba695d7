"""
Module: commission_kernel.models.denied_job_number
Responsibility: The permanent job number blacklist written by denials.

Invariants enforced:
    - UNIQUE(job_number): one lock per job number, ever.  A concurrent or
      repeated denial hits IntegrityError, which the registry treats as
      "already locked".
    - No UPDATE, no DELETE (ORM listeners).  There is no unlock.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString, as_utc
from commission_kernel.domain.dtos import DeniedJobNumberRecord
from commission_kernel.exceptions import ImmutabilityViolationError


class DeniedJobNumberModel(Base):
    """A locked job number."""

    __tablename__ = "denied_job_numbers"

    job_number: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    commission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commission_submissions.id"),
        nullable=False,
    )
    denied_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    denied_at: Mapped[datetime] = mapped_column(nullable=False)
    denial_reason: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<DeniedJobNumber {self.job_number}>"

    def to_dto(self) -> DeniedJobNumberRecord:
        return DeniedJobNumberRecord(
            id=self.id,
            job_number=self.job_number,
            commission_id=self.commission_id,
            denied_by_id=self.denied_by_id,
            denied_at=as_utc(self.denied_at),
            denial_reason=self.denial_reason,
        )


@event.listens_for(DeniedJobNumberModel, "before_update")
def prevent_lock_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="DeniedJobNumber",
        entity_id=target.job_number,
        reason="Job number locks are permanent -- cannot modify",
    )


@event.listens_for(DeniedJobNumberModel, "before_delete")
def prevent_lock_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="DeniedJobNumber",
        entity_id=target.job_number,
        reason="Job number locks are permanent -- cannot delete",
    )
