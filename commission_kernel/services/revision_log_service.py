"""
RevisionLogService -- append-only history of revision requests.

``revision_number`` is the commission's ``revision_count`` after the
request, so numbering starts at 1 and has no gaps.  The UNIQUE
(commission_id, revision_number) constraint backs that up at the
database.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from commission_kernel.domain.dtos import RevisionLogRecord
from commission_kernel.domain.workflow import Actor, ActorRole
from commission_kernel.logging_config import get_logger
from commission_kernel.models.revision_log import RevisionLogModel
from commission_kernel.services.base import BaseService

logger = get_logger("services.revision_log")


class RevisionLogService(BaseService[RevisionLogModel]):

    def append(
        self,
        commission_id: UUID,
        revision_number: int,
        requested_by: Actor,
        reason: str,
        previous_amount: Decimal | None,
        new_amount: Decimal | None = None,
    ) -> RevisionLogRecord:
        entry = RevisionLogModel(
            commission_id=commission_id,
            revision_number=revision_number,
            requested_by_id=requested_by.actor_id,
            requested_by_name=requested_by.name,
            requested_by_role=ActorRole(requested_by.role).value,
            reason=reason,
            previous_amount=previous_amount,
            new_amount=new_amount,
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "revision_log_appended",
            extra={
                "commission_id": str(commission_id),
                "revision_number": revision_number,
            },
        )
        return entry.to_dto()

    def list_for_commission(self, commission_id: UUID) -> list[RevisionLogRecord]:
        """Revisions for one commission, latest revision first."""
        rows = self.session.execute(
            select(RevisionLogModel)
            .where(RevisionLogModel.commission_id == commission_id)
            .order_by(RevisionLogModel.revision_number.desc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def latest(self, commission_id: UUID) -> RevisionLogRecord | None:
        row = self.session.execute(
            select(RevisionLogModel)
            .where(RevisionLogModel.commission_id == commission_id)
            .order_by(RevisionLogModel.revision_number.desc())
            .limit(1)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def count_for_commission(self, commission_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(RevisionLogModel)
            .where(RevisionLogModel.commission_id == commission_id)
        ).scalar_one()
