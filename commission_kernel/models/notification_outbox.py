"""
Module: commission_kernel.models.notification_outbox
Responsibility: Notification events waiting for delivery.

A row is inserted in the same transaction as the workflow transition that
produced it, so an event exists if and only if its transition committed.
Only NotificationRelay updates rows afterwards (status, attempts,
next_attempt_at, last_error, sent_at); the payload is never changed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString
from commission_kernel.domain.notifications import (
    NotificationEvent,
    NotificationType,
    OutboxStatus,
)


class NotificationOutboxModel(Base):
    __tablename__ = "notification_outbox"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'sent', 'failed')",
            name="ck_notification_outbox_status",
        ),
        Index("ix_notification_outbox_due", "status", "next_attempt_at"),
    )

    commission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("commission_submissions.id"),
        nullable=False,
        index=True,
    )
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OutboxStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<NotificationOutbox {self.id} {self.notification_type} "
            f"status={self.status} attempts={self.attempts}>"
        )

    @classmethod
    def from_event(cls, event: NotificationEvent, created_at: datetime) -> NotificationOutboxModel:
        return cls(
            commission_id=event.commission_id,
            notification_type=event.notification_type.value,
            payload=event.to_payload(),
            status=OutboxStatus.PENDING.value,
            attempts=0,
            next_attempt_at=created_at,
            created_at=created_at,
        )

    def to_event(self) -> NotificationEvent:
        return NotificationEvent.from_payload(self.payload)

    @property
    def type(self) -> NotificationType:
        return NotificationType(self.notification_type)
