"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Shared constructor and session contract.  Concrete services receive a
    SQLAlchemy ``Session`` from their caller and persist with
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller (CommissionWorkflowEngine,
    SubmissionService, NotificationRelay or a test).  The status-log insert,
    revision-log insert, lock insert and field updates of one workflow
    command therefore commit or roll back together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commission_kernel.db.base import Base
from commission_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
