"""
JobNumberLockRegistry -- permanent blacklist of denied job numbers.

Responsibility:
    Records job numbers whose commission was denied so that no future
    submission under the same number can enter the workflow.  There is no
    unlock.

Architecture position:
    Kernel > Services -- flush-only, runs inside the caller's transaction.
    The denial path of CommissionWorkflowEngine calls ``lock()`` in the
    same transaction as the status update, so a crash can never leave a
    denied commission with an unlocked job number or the reverse.

Invariants enforced:
    - One row per job number (UNIQUE constraint on denied_job_numbers).
    - Locking is idempotent: a duplicate insert rolls back only its own
      savepoint and reports ALREADY_LOCKED.

Failure modes:
    - DuplicateLockError is raised by ``_insert`` and consumed by ``lock``;
      callers never see it.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from commission_kernel.domain.dtos import DeniedJobNumberRecord, LockOutcome
from commission_kernel.domain.job_number import normalize_job_number
from commission_kernel.exceptions import DuplicateLockError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.denied_job_number import DeniedJobNumberModel
from commission_kernel.services.base import BaseService

logger = get_logger("services.job_lock_registry")


class JobNumberLockRegistry(BaseService[DeniedJobNumberModel]):

    def is_locked(self, job_number: str) -> bool:
        return self._find(job_number) is not None

    def get(self, job_number: str) -> DeniedJobNumberRecord | None:
        model = self._find(job_number)
        return model.to_dto() if model is not None else None

    def list_locked(self) -> list[DeniedJobNumberRecord]:
        """Every lock, most recent denial first."""
        rows = self.session.execute(
            select(DeniedJobNumberModel).order_by(
                DeniedJobNumberModel.denied_at.desc(),
                DeniedJobNumberModel.job_number.asc(),
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def lock(
        self,
        job_number: str,
        commission_id: UUID,
        actor_id: str,
        reason: str,
    ) -> LockOutcome:
        """
        Add ``job_number`` to the registry.

        Preconditions:
            The caller has flushed its own pending changes; the savepoint
            rollback on a duplicate would otherwise discard them.

        Returns:
            LOCKED when this call created the lock, ALREADY_LOCKED when a
            lock for the number already existed.
        """
        normalized = normalize_job_number(job_number)
        try:
            self._insert(normalized, commission_id, actor_id, reason)
        except DuplicateLockError:
            logger.info(
                "job_number_already_locked",
                extra={
                    "job_number": normalized,
                    "commission_id": str(commission_id),
                },
            )
            return LockOutcome.ALREADY_LOCKED

        logger.info(
            "job_number_locked",
            extra={
                "job_number": normalized,
                "commission_id": str(commission_id),
                "denied_by_id": actor_id,
            },
        )
        return LockOutcome.LOCKED

    def _insert(
        self,
        job_number: str,
        commission_id: UUID,
        actor_id: str,
        reason: str,
    ) -> None:
        # Savepoint so a duplicate key only discards this insert, not the denial.
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                DeniedJobNumberModel(
                    job_number=job_number,
                    commission_id=commission_id,
                    denied_by_id=actor_id,
                    denied_at=self.clock.now(),
                    denial_reason=reason,
                )
            )
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateLockError(job_number)

    def _find(self, job_number: str) -> DeniedJobNumberModel | None:
        normalized = normalize_job_number(job_number)
        if not normalized:
            return None
        return self.session.execute(
            select(DeniedJobNumberModel).where(
                DeniedJobNumberModel.job_number == normalized
            )
        ).scalar_one_or_none()
