"""Pure domain layer - enums, commands, value objects.  No I/O."""

from commission_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commission_kernel.domain.commands import (
    ApproveCommand,
    DenyCommand,
    RequestRevisionCommand,
    ResubmitCommand,
    WorkflowCommand,
    WorkflowOperation,
)
from commission_kernel.domain.dtos import (
    CommissionSnapshot,
    DeniedJobNumberRecord,
    LockOutcome,
    NewSubmission,
    RevisionLogRecord,
    StageApproval,
    StatusLogRecord,
    WorkflowResult,
)
from commission_kernel.domain.job_number import (
    JobNumberValidation,
    normalize_job_number,
    validate_job_number,
)
from commission_kernel.domain.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationType,
)
from commission_kernel.domain.workflow import (
    APPROVAL_STEPS,
    STAGE_APPROVERS,
    Actor,
    ActorRole,
    ApprovalStep,
    Stage,
    Status,
    SubmissionRole,
    SubmissionType,
    next_approval_step,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ApproveCommand",
    "DenyCommand",
    "RequestRevisionCommand",
    "ResubmitCommand",
    "WorkflowCommand",
    "WorkflowOperation",
    "CommissionSnapshot",
    "DeniedJobNumberRecord",
    "LockOutcome",
    "NewSubmission",
    "RevisionLogRecord",
    "StageApproval",
    "StatusLogRecord",
    "WorkflowResult",
    "JobNumberValidation",
    "normalize_job_number",
    "validate_job_number",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationType",
    "APPROVAL_STEPS",
    "STAGE_APPROVERS",
    "Actor",
    "ActorRole",
    "ApprovalStep",
    "Stage",
    "Status",
    "SubmissionRole",
    "SubmissionType",
    "next_approval_step",
]
