"""
Module: commission_kernel.selectors.base
Responsibility: Abstract base for read-only query selectors.

Selectors accept a Session from the caller, never add, flush, delete or
commit, and return frozen DTOs rather than ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commission_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only access through a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session
