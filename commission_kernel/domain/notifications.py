"""
Notification domain types (``commission_kernel.domain.notifications``).

Responsibility
--------------
The outbound event every completed workflow operation emits, and the
``NotificationDispatcher`` protocol the relay delivers it through.  Pure
value objects; delivery lives in ``services/notification_relay.py`` and
the concrete dispatchers in ``commission_services``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


class NotificationType(str, Enum):
    """Kinds of workflow notification."""

    SUBMITTED = "submitted"
    STAGE_ADVANCED = "stage_advanced"
    APPROVED = "approved"
    REVISION_REQUIRED = "revision_required"
    DENIED = "denied"
    RESUBMITTED = "resubmitted"


class OutboxStatus(str, Enum):
    """Delivery state of an outbox row."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def _decimal_text(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class NotificationEvent:
    """One outbound notification, written to the outbox with its transition."""

    notification_type: NotificationType
    commission_id: UUID
    job_name: str
    job_address: str
    submitter_name: str
    submission_type: str
    status: str
    stage: str
    contract_amount: Decimal | None = None
    net_owed: Decimal | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Snake_case JSON-safe payload; decimals travel as strings."""
        return {
            "notification_type": self.notification_type.value,
            "commission_id": str(self.commission_id),
            "job_name": self.job_name,
            "job_address": self.job_address,
            "submitter_name": self.submitter_name,
            "submission_type": self.submission_type,
            "contract_amount": _decimal_text(self.contract_amount),
            "net_owed": _decimal_text(self.net_owed),
            "notes": self.notes,
            "status": self.status,
            "stage": self.stage,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> NotificationEvent:
        contract = payload.get("contract_amount")
        net_owed = payload.get("net_owed")
        return cls(
            notification_type=NotificationType(payload["notification_type"]),
            commission_id=UUID(payload["commission_id"]),
            job_name=payload["job_name"],
            job_address=payload["job_address"],
            submitter_name=payload["submitter_name"],
            submission_type=payload["submission_type"],
            status=payload["status"],
            stage=payload["stage"],
            contract_amount=Decimal(contract) if contract is not None else None,
            net_owed=Decimal(net_owed) if net_owed is not None else None,
            notes=payload.get("notes"),
        )


class NotificationDispatcher(Protocol):
    """Delivers one notification event.

    Implementations raise ``NotificationDeliveryError`` (or any exception)
    on failure; the relay owns retry and backoff.
    """

    def dispatch(self, event: NotificationEvent) -> None: ...
