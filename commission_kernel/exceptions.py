"""
Typed Exception Hierarchy for the Commission Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval screens render workflow failures directly to reviewers.  Callers
must be able to tell a missing reason from a stale screen from a permission
problem without parsing message text, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has a REASON attribute (human-readable, render as-is)
  4. Exceptions carry structured DATA (commission id, stage, role, ...)

Example:
    try:
        engine.apply(ApproveCommand(cid, expected_stage=seen_stage), actor)
    except ConflictError as e:
        show_banner(e.reason)          # "Commission is no longer at ..."
        reload_commission(e.commission_id)
    except CommissionWorkflowError as e:
        api_response(code=e.code, message=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommissionWorkflowError (base)
    |
    +-- ValidationError
    |   +-- JobNumberLockedError
    |
    +-- NotFoundError
    |   +-- CommissionNotFoundError
    |
    +-- AuthorizationError
    |
    +-- ConflictError
    |   +-- CommissionTerminalError
    |   +-- StaleStageError
    |
    +-- InvalidTransitionError
    |
    +-- DuplicateLockError
    |
    +-- ImmutabilityViolationError
    |
    +-- NotificationDeliveryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|------------------------------------------------
VALIDATION_FAILED           | Missing reason/notes, malformed input
JOB_NUMBER_LOCKED           | Submission for a permanently denied job number
COMMISSION_NOT_FOUND        | Commission id does not exist
NOT_AUTHORIZED              | Actor's role cannot act on the current stage
WORKFLOW_CONFLICT           | Concurrent transition detected (retry by reload)
COMMISSION_TERMINAL         | Commission already approved or denied
STALE_STAGE                 | Caller's view of the stage is out of date
INVALID_TRANSITION          | No approval step exists from a stage
JOB_NUMBER_ALREADY_LOCKED   | Duplicate lock insert (idempotent, never surfaced)
IMMUTABILITY_VIOLATION      | UPDATE/DELETE on an append-only record
NOTIFICATION_DELIVERY_FAILED| Dispatcher could not deliver an event

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ConflictError is the only category a caller should retry, and only after
   re-reading the commission.  The engine never retries on its own.

2. DuplicateLockError is raised by the lock registry's insert path and
   consumed by the registry itself; a second denial of the same job number
   is success.

3. NotificationDeliveryError never crosses the workflow boundary: the relay
   catches it, logs a warning and schedules a retry.
"""


class CommissionWorkflowError(Exception):
    """
    Base exception for all commission workflow errors.

    All subclasses carry a class-level ``code`` and an instance-level
    ``reason`` suitable for direct display.
    """

    code: str = "COMMISSION_WORKFLOW_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# Validation errors


class ValidationError(CommissionWorkflowError):
    """Command input failed validation. Nothing was written."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, reason: str, field: str | None = None):
        self.field = field
        super().__init__(reason)


class JobNumberLockedError(ValidationError):
    """Job number has been permanently denied and cannot be submitted again."""

    code: str = "JOB_NUMBER_LOCKED"

    def __init__(self, job_number: str):
        self.job_number = job_number
        super().__init__(
            f"Job number {job_number} was permanently denied and cannot be resubmitted",
            field="job_number",
        )


# Lookup errors


class NotFoundError(CommissionWorkflowError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class CommissionNotFoundError(NotFoundError):
    """Commission with given ID was not found."""

    code: str = "COMMISSION_NOT_FOUND"

    def __init__(self, commission_id: str):
        self.commission_id = commission_id
        super().__init__(f"Commission not found: {commission_id}")


# Authorization errors


class AuthorizationError(CommissionWorkflowError):
    """Actor is not allowed to perform the operation at the current stage."""

    code: str = "NOT_AUTHORIZED"

    def __init__(
        self,
        reason: str,
        commission_id: str | None = None,
        actor_role: str | None = None,
        stage: str | None = None,
    ):
        self.commission_id = commission_id
        self.actor_role = actor_role
        self.stage = stage
        super().__init__(reason)


# Conflict errors


class ConflictError(CommissionWorkflowError):
    """Commission changed underneath the caller. Reload and retry."""

    code: str = "WORKFLOW_CONFLICT"

    def __init__(self, reason: str, commission_id: str | None = None):
        self.commission_id = commission_id
        super().__init__(reason)


class CommissionTerminalError(ConflictError):
    """Commission already reached approved or denied."""

    code: str = "COMMISSION_TERMINAL"

    def __init__(self, commission_id: str, status: str):
        self.status = status
        super().__init__(
            f"Commission is already {status}; no further changes are allowed",
            commission_id=commission_id,
        )


class StaleStageError(ConflictError):
    """The stage the caller acted on is no longer the commission's stage."""

    code: str = "STALE_STAGE"

    def __init__(self, commission_id: str, expected_stage: str, actual_stage: str):
        self.expected_stage = expected_stage
        self.actual_stage = actual_stage
        super().__init__(
            f"Commission is no longer at {expected_stage} (now {actual_stage}); "
            "reload and try again",
            commission_id=commission_id,
        )


# Transition table errors


class InvalidTransitionError(CommissionWorkflowError):
    """No approval step is defined from the given stage."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, stage: str, submission_role: str):
        self.stage = stage
        self.submission_role = submission_role
        super().__init__(
            f"No approval step from stage {stage} for {submission_role} submissions"
        )


# Lock registry errors


class DuplicateLockError(CommissionWorkflowError):
    """Job number is already in the denial lock registry."""

    code: str = "JOB_NUMBER_ALREADY_LOCKED"

    def __init__(self, job_number: str):
        self.job_number = job_number
        super().__init__(f"Job number {job_number} is already locked")


# Immutability errors


class ImmutabilityViolationError(CommissionWorkflowError):
    """Attempted to modify or delete an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Notification errors


class NotificationDeliveryError(CommissionWorkflowError):
    """The dispatcher could not deliver a notification event."""

    code: str = "NOTIFICATION_DELIVERY_FAILED"

    def __init__(self, notification_type: str, detail: str, status_code: int | None = None):
        self.notification_type = notification_type
        self.detail = detail
        self.status_code = status_code
        super().__init__(
            f"Failed to deliver {notification_type} notification: {detail}"
        )
