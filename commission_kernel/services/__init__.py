"""Kernel services - the imperative shell around the workflow domain."""

from commission_kernel.services.approval_workflow import CommissionWorkflowEngine
from commission_kernel.services.job_lock_registry import JobNumberLockRegistry
from commission_kernel.services.notification_relay import (
    NotificationOutboxService,
    NotificationRelay,
    RelayReport,
)
from commission_kernel.services.revision_log_service import RevisionLogService
from commission_kernel.services.status_log_service import StatusLogService
from commission_kernel.services.submission_service import (
    SubmissionResult,
    SubmissionService,
)

__all__ = [
    "CommissionWorkflowEngine",
    "JobNumberLockRegistry",
    "NotificationOutboxService",
    "NotificationRelay",
    "RelayReport",
    "RevisionLogService",
    "StatusLogService",
    "SubmissionResult",
    "SubmissionService",
]
