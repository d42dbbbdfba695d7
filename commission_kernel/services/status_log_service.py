"""
StatusLogService -- append-only audit of commission transitions.

Every successful workflow command, and the creation of a submission, adds
exactly one entry.  Entries are numbered per commission; the caller holds
the commission's row lock, so ``max(sequence) + 1`` cannot race.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from commission_kernel.domain.dtos import StatusLogRecord
from commission_kernel.domain.workflow import Stage, Status
from commission_kernel.logging_config import get_logger
from commission_kernel.models.status_log import StatusLogModel
from commission_kernel.services.base import BaseService

logger = get_logger("services.status_log")


class StatusLogService(BaseService[StatusLogModel]):

    def append(
        self,
        commission_id: UUID,
        previous_status: Status | None,
        new_status: Status,
        previous_stage: Stage | None,
        new_stage: Stage,
        changed_by_id: str,
        notes: str,
    ) -> StatusLogRecord:
        sequence = self._next_sequence(commission_id)
        entry = StatusLogModel(
            commission_id=commission_id,
            sequence=sequence,
            previous_status=Status(previous_status).value if previous_status else None,
            new_status=Status(new_status).value,
            previous_stage=Stage(previous_stage).value if previous_stage else None,
            new_stage=Stage(new_stage).value,
            changed_by_id=changed_by_id,
            notes=notes,
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "status_log_appended",
            extra={
                "commission_id": str(commission_id),
                "sequence": sequence,
                "new_status": entry.new_status,
                "new_stage": entry.new_stage,
            },
        )
        return entry.to_dto()

    def list_for_commission(self, commission_id: UUID) -> list[StatusLogRecord]:
        """Entries for one commission, newest first."""
        rows = self.session.execute(
            select(StatusLogModel)
            .where(StatusLogModel.commission_id == commission_id)
            .order_by(
                StatusLogModel.created_at.desc(),
                StatusLogModel.sequence.desc(),
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def count_for_commission(self, commission_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(StatusLogModel)
            .where(StatusLogModel.commission_id == commission_id)
        ).scalar_one()

    def _next_sequence(self, commission_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(StatusLogModel.sequence)).where(
                StatusLogModel.commission_id == commission_id
            )
        ).scalar_one_or_none()
        return (current or 0) + 1
