"""ORM models.  Importing this package registers every table on Base.metadata."""

from commission_kernel.models.commission import CommissionSubmissionModel
from commission_kernel.models.denied_job_number import DeniedJobNumberModel
from commission_kernel.models.notification_outbox import NotificationOutboxModel
from commission_kernel.models.revision_log import RevisionLogModel
from commission_kernel.models.status_log import StatusLogModel

__all__ = [
    "CommissionSubmissionModel",
    "DeniedJobNumberModel",
    "NotificationOutboxModel",
    "RevisionLogModel",
    "StatusLogModel",
]
