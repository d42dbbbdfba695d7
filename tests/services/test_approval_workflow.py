"""
Tests for CommissionWorkflowEngine -- the commission approval state machine.

Covers:
- Approve: rep two-stage path, manager three-stage path, amount override
  gate, amount carry-forward, approval metadata per stage
- Request revision: reason required, no writes on validation failure,
  approval chain reset, revision log numbering
- Deny: terminal state, job number lock, already-locked and skipped
  outcomes
- Resubmit: submitter only, only from revision_required
- Authority: stage/role matrix, self-review, stale screens, expected_stage
- Terminal and not-found guards
- Notifications: one per operation, delivery failure never fails a command
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from commission_kernel.domain.commands import (
    ApproveCommand,
    DenyCommand,
    RequestRevisionCommand,
    ResubmitCommand,
    WorkflowOperation,
)
from commission_kernel.domain.dtos import LockOutcome
from commission_kernel.domain.workflow import (
    Actor,
    ActorRole,
    Stage,
    Status,
    SubmissionRole,
)
from commission_kernel.exceptions import (
    AuthorizationError,
    CommissionNotFoundError,
    CommissionTerminalError,
    ConflictError,
    JobNumberLockedError,
    StaleStageError,
    ValidationError,
)
from commission_kernel.services.approval_workflow import AMOUNT_NOTES_REQUIRED


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


class TestApprove:

    def test_rep_submission_completes_in_two_approvals(
        self, workflow_engine, submit_commission, manager_actor, accounting_actor,
        read_commission,
    ):
        commission = submit_commission()
        assert commission.submission_role == SubmissionRole.REP

        first = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        assert first.commission.status == Status.PENDING_REVIEW
        assert first.commission.stage == Stage.PENDING_ACCOUNTING

        second = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )
        assert second.commission.status == Status.APPROVED
        assert second.commission.stage == Stage.COMPLETED

        stored = read_commission(commission.id)
        assert stored.status == Status.APPROVED
        assert stored.approved_by == "acct-1"
        assert stored.approved_at is not None
        assert stored.admin_approval.approved_by is None

    def test_manager_submission_requires_admin(
        self, workflow_engine, submit_commission, manager_actor, second_manager,
        accounting_actor, admin_actor,
    ):
        commission = submit_commission(actor=manager_actor)
        assert commission.submission_role == SubmissionRole.MANAGER

        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            second_manager,
        )
        after_accounting = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )
        assert after_accounting.commission.stage == Stage.PENDING_ADMIN
        assert after_accounting.commission.status == Status.PENDING_REVIEW

        final = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ADMIN),
            admin_actor,
        )
        assert final.commission.status == Status.APPROVED
        assert final.commission.stage == Stage.COMPLETED
        assert final.commission.admin_approval.approved_by == "admin-1"

    def test_stage_approval_metadata_recorded(
        self, workflow_engine, submit_commission, manager_actor, deterministic_clock,
    ):
        commission = submit_commission()
        result = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        approval = result.commission.manager_approval
        assert approval.approved_by == "mgr-1"
        assert approval.approved_at == deterministic_clock.now()
        assert approval.amount == Decimal("5000.00")
        assert result.commission.accounting_approval.approved_by is None

    def test_amount_change_requires_notes(
        self, workflow_engine, submit_commission, manager_actor, read_commission,
        read_status_log,
    ):
        commission = submit_commission(requested_amount=Decimal("5000.00"))

        with pytest.raises(ValidationError) as exc_info:
            workflow_engine.apply(
                ApproveCommand(
                    commission.id,
                    approved_amount=Decimal("4500.00"),
                    expected_stage=Stage.PENDING_MANAGER,
                ),
                manager_actor,
            )
        assert exc_info.value.reason == AMOUNT_NOTES_REQUIRED

        stored = read_commission(commission.id)
        assert stored.stage == Stage.PENDING_MANAGER
        assert stored.approved_amount is None
        assert len(read_status_log(commission.id)) == 1

    def test_whitespace_notes_do_not_satisfy_amount_gate(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission()
        with pytest.raises(ValidationError, match=AMOUNT_NOTES_REQUIRED):
            workflow_engine.apply(
                ApproveCommand(
                    commission.id,
                    approved_amount=Decimal("1.00"),
                    notes="   ",
                    expected_stage=Stage.PENDING_MANAGER,
                ),
                manager_actor,
            )

    def test_same_amount_needs_no_notes(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission(requested_amount=Decimal("5000.00"))
        result = workflow_engine.apply(
            ApproveCommand(
                commission.id,
                approved_amount=Decimal("5000.00"),
                expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )
        assert result.commission.stage == Stage.PENDING_ACCOUNTING

    def test_override_carries_forward_to_next_stage(
        self, workflow_engine, submit_commission, manager_actor, accounting_actor,
    ):
        commission = submit_commission(requested_amount=Decimal("5000.00"))
        workflow_engine.apply(
            ApproveCommand(
                commission.id,
                approved_amount=Decimal("4500.00"),
                notes="Material overage deducted",
                expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )
        final = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )

        assert final.commission.approved_amount == Decimal("4500.00")
        assert final.commission.manager_approval.amount == Decimal("4500.00")
        assert final.commission.accounting_approval.amount == Decimal("4500.00")
        assert final.commission.reviewer_notes == "Material overage deducted"
        assert final.notification.net_owed == Decimal("4500.00")

    def test_status_log_message_includes_notes(
        self, workflow_engine, submit_commission, manager_actor, read_status_log,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(
                commission.id, notes="Looks good", expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )

        latest = read_status_log(commission.id)[0]
        assert latest.notes == "Manager approved - forwarded to accounting\n\nNotes: Looks good"
        assert latest.previous_stage == Stage.PENDING_MANAGER
        assert latest.new_stage == Stage.PENDING_ACCOUNTING
        assert latest.changed_by_id == "mgr-1"
        assert latest.sequence == 2

    def test_admin_may_approve_any_stage(
        self, workflow_engine, submit_commission, admin_actor,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            admin_actor,
        )
        final = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            admin_actor,
        )
        assert final.commission.status == Status.APPROVED


# ---------------------------------------------------------------------------
# Request revision
# ---------------------------------------------------------------------------


class TestRequestRevision:

    def test_empty_reason_writes_nothing(
        self, workflow_engine, submit_commission, manager_actor, read_commission,
        read_status_log, read_revision_log, dispatcher,
    ):
        commission = submit_commission()
        before = read_commission(commission.id)

        with pytest.raises(ValidationError, match="Revision reason is required"):
            workflow_engine.apply(
                RequestRevisionCommand(commission.id, "", expected_stage=Stage.PENDING_MANAGER),
                manager_actor,
            )

        assert read_commission(commission.id) == before
        assert len(read_status_log(commission.id)) == 1
        assert read_revision_log(commission.id) == []
        assert dispatcher.types == ["submitted"]

    def test_revision_resets_chain_and_logs(
        self, workflow_engine, submit_commission, manager_actor, accounting_actor,
        read_revision_log,
    ):
        commission = submit_commission(requested_amount=Decimal("5000.00"))
        workflow_engine.apply(
            ApproveCommand(
                commission.id,
                approved_amount=Decimal("4000.00"),
                notes="trim",
                expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )

        result = workflow_engine.apply(
            RequestRevisionCommand(
                commission.id,
                reason="  Missing signed contract  ",
                suggested_amount=Decimal("3800.00"),
                expected_stage=Stage.PENDING_ACCOUNTING,
            ),
            accounting_actor,
        )

        snapshot = result.commission
        assert snapshot.status == Status.REVISION_REQUIRED
        assert snapshot.stage == Stage.PENDING_MANAGER
        assert snapshot.revision_count == 1
        assert snapshot.rejection_reason == "Missing signed contract"
        assert snapshot.manager_approval.approved_by is None
        assert snapshot.manager_approval.amount is None
        assert snapshot.approved_amount is None

        assert result.status_log.notes == "Revision requested #1: Missing signed contract"
        revisions = read_revision_log(commission.id)
        assert len(revisions) == 1
        entry = revisions[0]
        assert entry.revision_number == 1
        assert entry.requested_by_id == "acct-1"
        assert entry.requested_by_role == "accounting"
        assert entry.previous_amount == Decimal("4000.00")
        assert entry.new_amount == Decimal("3800.00")

    def test_revision_numbers_increase(
        self, workflow_engine, submit_commission, manager_actor, rep_actor,
        read_revision_log,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            RequestRevisionCommand(commission.id, "first", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        workflow_engine.apply(ResubmitCommand(commission.id), rep_actor)
        result = workflow_engine.apply(
            RequestRevisionCommand(commission.id, "second", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        assert result.commission.revision_count == 2
        numbers = [r.revision_number for r in read_revision_log(commission.id)]
        assert numbers == [2, 1]


# ---------------------------------------------------------------------------
# Deny
# ---------------------------------------------------------------------------


class TestDeny:

    def test_deny_is_terminal_and_locks_job_number(
        self, workflow_engine, submit_commission, manager_actor, read_locks,
        read_status_log,
    ):
        commission = submit_commission(job_number="4821")
        result = workflow_engine.apply(
            DenyCommand(
                commission.id, reason="duplicate claim", expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )

        assert result.commission.status == Status.DENIED
        assert result.commission.stage == Stage.COMPLETED
        assert result.commission.denied_by == "mgr-1"
        assert result.commission.rejection_reason == "duplicate claim"
        assert result.lock_outcome == LockOutcome.LOCKED
        assert result.status_log.notes == "Commission DENIED: duplicate claim"

        locks = read_locks()
        assert [lock.job_number for lock in locks] == ["4821"]
        assert locks[0].commission_id == commission.id
        assert locks[0].denial_reason == "duplicate claim"
        assert len(read_status_log(commission.id)) == 2

    def test_second_denial_of_same_job_number_does_not_raise(
        self, workflow_engine, submit_commission, manager_actor, read_locks,
    ):
        first = submit_commission(job_number="4821")
        second = submit_commission(job_number="4821")

        workflow_engine.apply(
            DenyCommand(first.id, reason="duplicate claim", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        result = workflow_engine.apply(
            DenyCommand(second.id, reason="duplicate claim", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        assert result.lock_outcome == LockOutcome.ALREADY_LOCKED
        assert result.commission.status == Status.DENIED
        locks = read_locks()
        assert len(locks) == 1
        assert locks[0].commission_id == first.id

    def test_explicit_job_number_is_normalized(
        self, workflow_engine, submit_commission, manager_actor, read_locks,
    ):
        commission = submit_commission(job_number="1111")
        workflow_engine.apply(
            DenyCommand(
                commission.id,
                reason="wrong job",
                job_number="Job #2222",
                expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )
        assert [lock.job_number for lock in read_locks()] == ["2222"]

    def test_malformed_job_number_skips_lock_but_denies(
        self, workflow_engine, submit_commission, manager_actor, read_locks,
        captured_logs,
    ):
        commission = submit_commission()
        result = workflow_engine.apply(
            DenyCommand(
                commission.id,
                reason="bad data",
                job_number="12",
                expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )

        assert result.lock_outcome == LockOutcome.SKIPPED
        assert result.commission.status == Status.DENIED
        assert read_locks() == []
        skipped = [r for r in captured_logs() if r["message"] == "job_number_lock_skipped"]
        assert skipped[0]["validation_message"] == "Job number must be exactly 4 digits"

    def test_locked_job_number_refuses_new_submissions(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission(job_number="4821")
        workflow_engine.apply(
            DenyCommand(commission.id, reason="fraud", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        with pytest.raises(JobNumberLockedError):
            submit_commission(job_number="48-21")


# ---------------------------------------------------------------------------
# Resubmit
# ---------------------------------------------------------------------------


class TestResubmit:

    def test_submitter_resubmits_with_new_amount(
        self, workflow_engine, submit_commission, manager_actor, rep_actor, dispatcher,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            RequestRevisionCommand(commission.id, "too high", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        result = workflow_engine.apply(
            ResubmitCommand(commission.id, requested_amount=Decimal("4200.00"), notes="fixed"),
            rep_actor,
        )

        assert result.operation == WorkflowOperation.RESUBMIT
        assert result.commission.status == Status.PENDING_REVIEW
        assert result.commission.stage == Stage.PENDING_MANAGER
        assert result.commission.requested_amount == Decimal("4200.00")
        assert result.status_log.notes == (
            "Commission resubmitted after revision #1\n\nNotes: fixed"
        )
        assert dispatcher.types[-1] == "resubmitted"

    def test_only_submitter_may_resubmit(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            RequestRevisionCommand(commission.id, "why", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        other_rep = Actor(actor_id="rep-2", role=ActorRole.REP)
        with pytest.raises(AuthorizationError, match="Only the submitter"):
            workflow_engine.apply(ResubmitCommand(commission.id), other_rep)

    def test_resubmit_requires_revision_required(
        self, workflow_engine, submit_commission, rep_actor,
    ):
        commission = submit_commission()
        with pytest.raises(ConflictError, match="awaiting revision"):
            workflow_engine.apply(ResubmitCommand(commission.id), rep_actor)

    def test_approve_from_revision_required_resumes_review(
        self, workflow_engine, submit_commission, manager_actor, second_manager,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            RequestRevisionCommand(commission.id, "check", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        result = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            second_manager,
        )
        assert result.previous_status == Status.REVISION_REQUIRED
        assert result.commission.status == Status.PENDING_REVIEW
        assert result.commission.stage == Stage.PENDING_ACCOUNTING


# ---------------------------------------------------------------------------
# Authority
# ---------------------------------------------------------------------------


class TestAuthority:

    @pytest.mark.parametrize("role", [ActorRole.REP, ActorRole.ACCOUNTING])
    def test_wrong_role_at_manager_stage(
        self, workflow_engine, submit_commission, role, read_status_log,
    ):
        commission = submit_commission()
        actor = Actor(actor_id="someone", role=role)

        with pytest.raises(AuthorizationError) as exc_info:
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER), actor,
            )
        assert exc_info.value.reason == (
            f"Role {role.value} cannot act on a commission at pending_manager"
        )
        assert exc_info.value.code == "NOT_AUTHORIZED"
        assert len(read_status_log(commission.id)) == 1

    def test_accounting_screen_stale_after_accounting_approved(
        self, workflow_engine, submit_commission, manager_actor, second_manager,
        accounting_actor,
    ):
        commission = submit_commission(actor=manager_actor)
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            second_manager,
        )
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )

        other_accountant = Actor(actor_id="acct-2", role=ActorRole.ACCOUNTING)
        with pytest.raises(StaleStageError, match="no longer at pending_accounting"):
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
                other_accountant,
            )

    def test_accounting_cannot_act_at_admin_stage(
        self, workflow_engine, submit_commission, manager_actor, second_manager,
        accounting_actor,
    ):
        commission = submit_commission(actor=manager_actor)
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            second_manager,
        )
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )

        other_accountant = Actor(actor_id="acct-2", role=ActorRole.ACCOUNTING)
        with pytest.raises(AuthorizationError, match="cannot act on a commission at pending_admin"):
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_ADMIN),
                other_accountant,
            )

    def test_self_review_refused(self, workflow_engine, submit_commission, manager_actor):
        commission = submit_commission(actor=manager_actor)
        with pytest.raises(AuthorizationError, match="cannot review your own commission"):
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
                manager_actor,
            )

    def test_self_review_refused_for_deny(self, workflow_engine, submit_commission, admin_actor):
        commission = submit_commission(actor=admin_actor)
        with pytest.raises(AuthorizationError):
            workflow_engine.apply(
                DenyCommand(commission.id, "mine", expected_stage=Stage.PENDING_MANAGER),
                admin_actor,
            )

    def test_stale_manager_screen_gets_conflict(
        self, workflow_engine, submit_commission, manager_actor, second_manager,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        with pytest.raises(ConflictError) as exc_info:
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
                second_manager,
            )
        assert isinstance(exc_info.value, StaleStageError)
        assert exc_info.value.commission_id == str(commission.id)

    def test_expected_stage_mismatch(
        self, workflow_engine, submit_commission, admin_actor, manager_actor,
        read_commission,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        with pytest.raises(StaleStageError) as exc_info:
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
                admin_actor,
            )
        assert exc_info.value.code == "STALE_STAGE"
        assert exc_info.value.expected_stage == "pending_manager"
        assert exc_info.value.actual_stage == "pending_accounting"
        assert read_commission(commission.id).stage == Stage.PENDING_ACCOUNTING

    def test_admin_repeat_does_not_skip_accounting(
        self, workflow_engine, submit_commission, admin_actor, read_commission,
        read_status_log,
    ):
        commission = submit_commission()
        command = ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER)
        workflow_engine.apply(command, admin_actor)

        with pytest.raises(StaleStageError):
            workflow_engine.apply(command, admin_actor)

        stored = read_commission(commission.id)
        assert stored.status == Status.PENDING_REVIEW
        assert stored.stage == Stage.PENDING_ACCOUNTING
        assert stored.accounting_approval.approved_by is None
        assert len(read_status_log(commission.id)) == 2

    def test_expected_stage_match_proceeds(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission()
        result = workflow_engine.apply(
            DenyCommand(commission.id, "nope", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        assert result.commission.status == Status.DENIED


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


class TestGuards:

    def test_unknown_commission(self, workflow_engine, manager_actor, db_engine):
        missing = uuid4()
        with pytest.raises(CommissionNotFoundError) as exc_info:
            workflow_engine.apply(
                ApproveCommand(missing, expected_stage=Stage.PENDING_MANAGER), manager_actor,
            )
        assert exc_info.value.commission_id == str(missing)

    @pytest.mark.parametrize(
        "command_factory",
        [
            lambda cid: ApproveCommand(cid, expected_stage=Stage.COMPLETED),
            lambda cid: RequestRevisionCommand(cid, "late", expected_stage=Stage.COMPLETED),
            lambda cid: DenyCommand(cid, "late", expected_stage=Stage.COMPLETED),
            lambda cid: ResubmitCommand(cid),
        ],
        ids=["approve", "revision", "deny", "resubmit"],
    )
    def test_denied_commission_is_frozen(
        self, workflow_engine, submit_commission, manager_actor, admin_actor,
        rep_actor, command_factory, read_commission,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            DenyCommand(commission.id, "fraud", expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        before = read_commission(commission.id)

        for actor in (admin_actor, rep_actor):
            with pytest.raises(CommissionTerminalError) as exc_info:
                workflow_engine.apply(command_factory(commission.id), actor)
            assert exc_info.value.code == "COMMISSION_TERMINAL"

        assert read_commission(commission.id) == before

    def test_approved_commission_is_frozen(
        self, workflow_engine, submit_commission, admin_actor,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            admin_actor,
        )
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            admin_actor,
        )

        with pytest.raises(CommissionTerminalError):
            workflow_engine.apply(
                DenyCommand(commission.id, "too late", expected_stage=Stage.COMPLETED),
                admin_actor,
            )

    def test_version_increments_per_command(
        self, workflow_engine, submit_commission, manager_actor,
    ):
        commission = submit_commission()
        result = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        assert result.commission.version == commission.version + 1


# ---------------------------------------------------------------------------
# Notifications and logging
# ---------------------------------------------------------------------------


class TestNotifications:

    def test_one_notification_per_operation(
        self, workflow_engine, submit_commission, manager_actor, accounting_actor,
        dispatcher,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        result = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
            accounting_actor,
        )

        assert dispatcher.types == ["submitted", "stage_advanced", "approved"]
        assert result.delivered is True
        approved = dispatcher.events[-1]
        assert approved.commission_id == commission.id
        assert approved.status == "approved"
        assert approved.stage == "completed"
        assert approved.job_name == "Maple Street Reroof"
        assert approved.submitter_name == "Riley Rep"
        assert approved.contract_amount == Decimal("42000.00")

    def test_delivery_outage_does_not_fail_command(
        self, workflow_engine, submit_commission, manager_actor, dispatcher,
        read_commission,
    ):
        commission = submit_commission()
        dispatcher.fail_always = True

        result = workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )

        assert result.delivered is False
        assert read_commission(commission.id).stage == Stage.PENDING_ACCOUNTING

    def test_revision_notification_carries_reason(
        self, workflow_engine, submit_commission, manager_actor, dispatcher,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            RequestRevisionCommand(
                commission.id, "Need photos", expected_stage=Stage.PENDING_MANAGER,
            ),
            manager_actor,
        )
        event = dispatcher.events[-1]
        assert event.notification_type.value == "revision_required"
        assert event.notes == "Need photos"

    def test_operation_logs(
        self, workflow_engine, submit_commission, manager_actor, captured_logs,
    ):
        commission = submit_commission()
        workflow_engine.apply(
            ApproveCommand(commission.id, expected_stage=Stage.PENDING_MANAGER),
            manager_actor,
        )
        with pytest.raises(AuthorizationError):
            workflow_engine.apply(
                ApproveCommand(commission.id, expected_stage=Stage.PENDING_ACCOUNTING),
                Actor("rep-9", ActorRole.REP),
            )

        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "workflow_operation_completed"]
        assert completed[0]["commission_id"] == str(commission.id)
        assert completed[0]["operation"] == "approve"
        assert completed[0]["stage"] == "pending_accounting"
        assert "duration_ms" in completed[0]

        failed = [r for r in logs if r["message"] == "workflow_operation_failed"]
        assert failed[0]["level"] == "WARNING"
        assert failed[0]["error_code"] == "NOT_AUTHORIZED"
        assert failed[0]["actor_id"] == "rep-9"


# ---------------------------------------------------------------------------
# Property: random command sequences keep the state machine consistent
# ---------------------------------------------------------------------------


_OPS = st.lists(
    st.sampled_from(["approve", "revise", "deny", "resubmit"]),
    min_size=1,
    max_size=8,
)


class TestRandomSequences:

    @settings(
        max_examples=15,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(ops=_OPS, by_manager=st.booleans())
    def test_state_stays_consistent(
        self, ops, by_manager, workflow_engine, submit_commission, manager_actor,
        admin_actor, rep_actor, read_commission, read_status_log,
    ):
        submitter = manager_actor if by_manager else rep_actor
        commission = submit_commission(actor=submitter)
        successes = 0

        for op in ops:
            seen = read_commission(commission.id).stage
            if op == "approve":
                command = ApproveCommand(commission.id, expected_stage=seen)
                actor = admin_actor
            elif op == "revise":
                command = RequestRevisionCommand(commission.id, "again", expected_stage=seen)
                actor = admin_actor
            elif op == "deny":
                command = DenyCommand(commission.id, "stop", expected_stage=seen)
                actor = admin_actor
            else:
                command, actor = ResubmitCommand(commission.id), submitter
            try:
                workflow_engine.apply(command, actor)
                successes += 1
            except (ConflictError, AuthorizationError):
                pass

            state = read_commission(commission.id)
            assert (state.stage == Stage.COMPLETED) == (
                state.status in (Status.APPROVED, Status.DENIED)
            )
            if state.status == Status.REVISION_REQUIRED:
                assert state.stage == Stage.PENDING_MANAGER

        assert len(read_status_log(commission.id)) == successes + 1
