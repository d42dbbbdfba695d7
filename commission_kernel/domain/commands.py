"""
Workflow commands (``commission_kernel.domain.commands``).

One frozen dataclass per operation, each carrying exactly the fields that
operation may set.  ``CommissionWorkflowEngine.apply`` dispatches on the
command type.

Reviewer commands carry ``expected_stage``, the stage the reviewer was
looking at.  It is keyword-only and has no default: the engine refuses
to act on any other stage, so a reviewer whose role spans several stages
can never approve a stage they did not see.

``validate()`` performs the pure input checks that need no database
access.  It raises ``ValidationError`` with a reason string that can be
shown to the reviewer as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from commission_kernel.domain.workflow import Stage
from commission_kernel.exceptions import ValidationError


class WorkflowOperation(str, Enum):
    APPROVE = "approve"
    REQUEST_REVISION = "request_revision"
    DENY = "deny"
    RESUBMIT = "resubmit"


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _check_stage(value: Stage | str) -> None:
    try:
        Stage(value)
    except ValueError:
        raise ValidationError(
            f"Unknown stage: {value!r}", field="expected_stage",
        ) from None


def _check_amount(value: Decimal | None, name: str) -> None:
    if value is None:
        return
    if not isinstance(value, Decimal) or not value.is_finite():
        raise ValidationError(f"{name} must be a finite decimal amount", field=name)
    if value < 0:
        raise ValidationError(f"{name} cannot be negative", field=name)


@dataclass(frozen=True)
class ApproveCommand:
    """Approve the commission at its current stage."""

    commission_id: UUID
    approved_amount: Decimal | None = None
    notes: str | None = None
    expected_stage: Stage = field(kw_only=True)

    operation = WorkflowOperation.APPROVE

    def validate(self) -> None:
        _check_stage(self.expected_stage)
        _check_amount(self.approved_amount, "approved_amount")


@dataclass(frozen=True)
class RequestRevisionCommand:
    """Send the commission back to the first stage with a reason."""

    commission_id: UUID
    reason: str
    previous_amount: Decimal | None = None
    suggested_amount: Decimal | None = None
    expected_stage: Stage = field(kw_only=True)

    operation = WorkflowOperation.REQUEST_REVISION

    def validate(self) -> None:
        _check_stage(self.expected_stage)
        if _is_blank(self.reason):
            raise ValidationError("Revision reason is required", field="reason")
        _check_amount(self.previous_amount, "previous_amount")
        _check_amount(self.suggested_amount, "suggested_amount")


@dataclass(frozen=True)
class DenyCommand:
    """Permanently deny the commission and lock its job number.

    ``job_number`` defaults to the number stored on the commission.
    """

    commission_id: UUID
    reason: str
    job_number: str | None = None
    expected_stage: Stage = field(kw_only=True)

    operation = WorkflowOperation.DENY

    def validate(self) -> None:
        _check_stage(self.expected_stage)
        if _is_blank(self.reason):
            raise ValidationError("Denial reason is required", field="reason")


@dataclass(frozen=True)
class ResubmitCommand:
    """Submitter sends a revised commission back into review."""

    commission_id: UUID
    requested_amount: Decimal | None = None
    notes: str | None = None

    operation = WorkflowOperation.RESUBMIT

    def validate(self) -> None:
        _check_amount(self.requested_amount, "requested_amount")


WorkflowCommand = ApproveCommand | RequestRevisionCommand | DenyCommand | ResubmitCommand
