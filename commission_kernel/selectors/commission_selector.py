"""
Module: commission_kernel.selectors.commission_selector
Responsibility: Read access to commission submissions for review queues
    and detail screens.

The workflow engine does not use this selector for writes; it loads the
row it mutates with SELECT ... FOR UPDATE itself.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from commission_kernel.domain.dtos import CommissionSnapshot
from commission_kernel.domain.workflow import STAGE_APPROVERS, ActorRole, Status
from commission_kernel.exceptions import CommissionNotFoundError
from commission_kernel.models.commission import CommissionSubmissionModel
from commission_kernel.selectors.base import BaseSelector


class CommissionSelector(BaseSelector[CommissionSubmissionModel]):
    """Queries over ``commission_submissions``."""

    def get(self, commission_id: UUID) -> CommissionSnapshot:
        """
        Load one commission.

        Raises:
            CommissionNotFoundError: No commission has this id.
        """
        model = self.session.get(CommissionSubmissionModel, commission_id)
        if model is None:
            raise CommissionNotFoundError(str(commission_id))
        return model.to_dto()

    def find(self, commission_id: UUID) -> CommissionSnapshot | None:
        model = self.session.get(CommissionSubmissionModel, commission_id)
        return model.to_dto() if model is not None else None

    def pending_for_role(self, role: ActorRole) -> list[CommissionSnapshot]:
        """
        Commissions awaiting review that ``role`` may act on, oldest first.

        Only ``pending_review`` rows are returned; a commission sent back for
        revision waits for its submitter, not a reviewer.
        """
        role = ActorRole(role)
        stages = [
            stage.value
            for stage, roles in STAGE_APPROVERS.items()
            if role in roles
        ]
        if not stages:
            return []

        rows = self.session.execute(
            select(CommissionSubmissionModel)
            .where(CommissionSubmissionModel.status == Status.PENDING_REVIEW.value)
            .where(CommissionSubmissionModel.stage.in_(stages))
            .order_by(
                CommissionSubmissionModel.created_at.asc(),
                CommissionSubmissionModel.id.asc(),
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_by_status(self, status: Status) -> list[CommissionSnapshot]:
        """All commissions with ``status``, newest first."""
        rows = self.session.execute(
            select(CommissionSubmissionModel)
            .where(CommissionSubmissionModel.status == Status(status).value)
            .order_by(CommissionSubmissionModel.created_at.desc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_for_submitter(self, submitter_id: str) -> list[CommissionSnapshot]:
        rows = self.session.execute(
            select(CommissionSubmissionModel)
            .where(CommissionSubmissionModel.submitter_id == submitter_id)
            .order_by(CommissionSubmissionModel.created_at.desc())
        ).scalars().all()
        return [row.to_dto() for row in rows]
