"""
Commission workflow domain types (``commission_kernel.domain.workflow``).

Responsibility
--------------
Closed enums for status, stage and roles, the fixed stage-authority map,
and the approval transition table.  Everything the engine decides about
"where does an approval go next" is looked up here; the engine itself
never branches on stage literals.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_STEPS`` has exactly one entry for every
  ``(non-terminal stage, submission role)`` pair.
* ``stage == COMPLETED`` if and only if ``status`` is terminal.
* Approval only moves a commission forward along ``STAGE_ORDER``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from commission_kernel.domain.notifications import NotificationType
from commission_kernel.exceptions import InvalidTransitionError


class Status(str, Enum):
    """Caller-facing outcome classification of a commission."""

    PENDING_REVIEW = "pending_review"
    REVISION_REQUIRED = "revision_required"
    DENIED = "denied"
    APPROVED = "approved"


class Stage(str, Enum):
    """Position in the fixed approval chain."""

    PENDING_MANAGER = "pending_manager"
    PENDING_ACCOUNTING = "pending_accounting"
    PENDING_ADMIN = "pending_admin"
    COMPLETED = "completed"


class SubmissionRole(str, Enum):
    """Who submitted; decides whether the admin stage is required."""

    REP = "rep"
    MANAGER = "manager"


class SubmissionType(str, Enum):
    EMPLOYEE = "employee"
    SUBCONTRACTOR = "subcontractor"


class ActorRole(str, Enum):
    """Portal roles that appear in the workflow."""

    REP = "rep"
    MANAGER = "manager"
    ACCOUNTING = "accounting"
    ADMIN = "admin"


TERMINAL_STATUSES: frozenset[Status] = frozenset({
    Status.APPROVED,
    Status.DENIED,
})

STAGE_ORDER: tuple[Stage, ...] = (
    Stage.PENDING_MANAGER,
    Stage.PENDING_ACCOUNTING,
    Stage.PENDING_ADMIN,
    Stage.COMPLETED,
)

STAGE_APPROVERS: dict[Stage, frozenset[ActorRole]] = {
    Stage.PENDING_MANAGER: frozenset({ActorRole.MANAGER, ActorRole.ADMIN}),
    Stage.PENDING_ACCOUNTING: frozenset({ActorRole.ACCOUNTING, ActorRole.ADMIN}),
    Stage.PENDING_ADMIN: frozenset({ActorRole.ADMIN}),
    Stage.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """The person invoking a workflow command.

    Passed explicitly into every engine call; the engine never reads a
    "current user" from anywhere else.
    """

    actor_id: str
    role: ActorRole
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.actor_id


@dataclass(frozen=True)
class ApprovalStep:
    """One row of the approval transition table.

    ``approver`` names the metadata columns the step writes
    (``<approver>_approved_at/by/amount``).
    """

    stage: Stage
    submission_role: SubmissionRole
    next_stage: Stage
    terminal: bool
    approver: str
    log_message: str
    notification_type: NotificationType


def _advance(stage, role, next_stage, approver, message) -> ApprovalStep:
    return ApprovalStep(
        stage=stage,
        submission_role=role,
        next_stage=next_stage,
        terminal=False,
        approver=approver,
        log_message=message,
        notification_type=NotificationType.STAGE_ADVANCED,
    )


def _complete(stage, role, approver, message) -> ApprovalStep:
    return ApprovalStep(
        stage=stage,
        submission_role=role,
        next_stage=Stage.COMPLETED,
        terminal=True,
        approver=approver,
        log_message=message,
        notification_type=NotificationType.APPROVED,
    )


_MANAGER_APPROVED = "Manager approved - forwarded to accounting"

APPROVAL_STEPS: dict[tuple[Stage, SubmissionRole], ApprovalStep] = {
    (Stage.PENDING_MANAGER, SubmissionRole.REP): _advance(
        Stage.PENDING_MANAGER, SubmissionRole.REP,
        Stage.PENDING_ACCOUNTING, "manager", _MANAGER_APPROVED,
    ),
    (Stage.PENDING_MANAGER, SubmissionRole.MANAGER): _advance(
        Stage.PENDING_MANAGER, SubmissionRole.MANAGER,
        Stage.PENDING_ACCOUNTING, "manager", _MANAGER_APPROVED,
    ),
    (Stage.PENDING_ACCOUNTING, SubmissionRole.REP): _complete(
        Stage.PENDING_ACCOUNTING, SubmissionRole.REP,
        "accounting", "Approved - commission ready for payout",
    ),
    (Stage.PENDING_ACCOUNTING, SubmissionRole.MANAGER): _advance(
        Stage.PENDING_ACCOUNTING, SubmissionRole.MANAGER,
        Stage.PENDING_ADMIN, "accounting",
        "Accounting approved - awaiting admin final approval",
    ),
    (Stage.PENDING_ADMIN, SubmissionRole.REP): _complete(
        Stage.PENDING_ADMIN, SubmissionRole.REP,
        "admin", "Approved by admin - manager commission ready for payout",
    ),
    (Stage.PENDING_ADMIN, SubmissionRole.MANAGER): _complete(
        Stage.PENDING_ADMIN, SubmissionRole.MANAGER,
        "admin", "Approved by admin - manager commission ready for payout",
    ),
}


def next_approval_step(stage: Stage, submission_role: SubmissionRole) -> ApprovalStep:
    """Look up the approval step for a stage.

    Raises:
        InvalidTransitionError: ``stage`` is ``COMPLETED``.
    """
    key = (Stage(stage), SubmissionRole(submission_role))
    step = APPROVAL_STEPS.get(key)
    if step is None:
        raise InvalidTransitionError(key[0].value, key[1].value)
    return step


def is_terminal(status: Status) -> bool:
    return Status(status) in TERMINAL_STATUSES


def stage_index(stage: Stage) -> int:
    return STAGE_ORDER.index(Stage(stage))


def can_act_on_stage(role: ActorRole, stage: Stage) -> bool:
    """Whether ``role`` may approve, deny or request revision at ``stage``."""
    return ActorRole(role) in STAGE_APPROVERS[Stage(stage)]


def check_stage_authority(actor: Actor, stage: Stage) -> tuple[bool, str]:
    """Return ``(allowed, reason)`` for ``actor`` acting at ``stage``."""
    if can_act_on_stage(actor.role, stage):
        return True, f"Role {ActorRole(actor.role).value} may act at {Stage(stage).value}"
    return False, (
        f"Role {ActorRole(actor.role).value} cannot act on a commission at "
        f"{Stage(stage).value}"
    )


def submission_role_for(role: ActorRole) -> SubmissionRole:
    """Managers and admins submit as ``manager``; everyone else as ``rep``."""
    if ActorRole(role) in (ActorRole.MANAGER, ActorRole.ADMIN):
        return SubmissionRole.MANAGER
    return SubmissionRole.REP
