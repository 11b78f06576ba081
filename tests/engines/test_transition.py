"""
Tests for io_engines.transition -- the insertion order transition validator.

Covers the edge table, role gates, administrator bypass, self-review ban,
reject reason and totals-match preconditions, side effects of
apply_transition, and the create/copy/edit gates.
"""

from decimal import Decimal
from itertools import product
from uuid import uuid4

import pytest

from io_kernel.domain.orders import (
    Actor,
    ActorRole,
    ApprovalStatus,
    BudgetOverride,
    EditorSet,
    ExecutionChannel,
)
from io_kernel.domain.policy import TransitionPolicy
from io_kernel.exceptions import (
    EditNotPermittedError,
    IllegalTransitionError,
    RejectReasonError,
    RoleNotPermittedError,
    SelfReviewError,
    TotalsMismatchError,
)
from io_engines.transition import (
    IO_APPROVAL_WORKFLOW,
    apply_transition,
    can_transition,
    check_copy_permitted,
    check_create_permitted,
    check_edit_permitted,
    copy_order,
    has_elevated_privilege,
    totals_match,
)

S = ApprovalStatus

LEGAL_EDGES = {
    (S.DRAFT, S.SUBMITTED_FOR_REVIEW, ActorRole.ANALYST),
    (S.SUBMITTED_FOR_REVIEW, S.REVIEWED_PENDING_APPROVAL, ActorRole.ANALYST),
    (S.SUBMITTED_FOR_REVIEW, S.REJECTED, ActorRole.ANALYST),
    (S.REVIEWED_PENDING_APPROVAL, S.APPROVED, ActorRole.MANAGER),
    (S.REVIEWED_PENDING_APPROVAL, S.REJECTED, ActorRole.MANAGER),
    (S.REJECTED, S.SUBMITTED_FOR_REVIEW, ActorRole.ANALYST),
}


class TestWorkflowTable:

    def test_every_edge_declared(self):
        declared = {
            (S(t.from_state), S(t.to_state), ActorRole(t.allowed_roles[0]))
            for t in IO_APPROVAL_WORKFLOW.transitions
        }
        assert declared == LEGAL_EDGES

    def test_elevated_privilege_is_admin_only(self):
        assert has_elevated_privilege(ActorRole.ADMINISTRATOR)
        assert not has_elevated_privilege(ActorRole.ANALYST)
        assert not has_elevated_privilege(ActorRole.MANAGER)


class TestCanTransition:

    @pytest.mark.parametrize(
        "from_status,to_status,role",
        [
            (f, t, r)
            for f, t, r in product(S, S, (ActorRole.ANALYST, ActorRole.MANAGER))
            if (f, t, r) not in LEGAL_EDGES
        ],
    )
    def test_off_table_denied_for_non_admin(self, make_order, from_status, to_status, role):
        order = make_order(approval_status=from_status)
        actor = Actor(uuid4(), role)
        decision = can_transition(from_status, to_status, actor, order, reject_reason="valid reason")
        assert not decision.allowed
        assert isinstance(decision.error, (IllegalTransitionError, RoleNotPermittedError))

    @pytest.mark.parametrize("from_status,to_status,role", sorted(LEGAL_EDGES, key=str))
    def test_table_edges_allowed(self, make_order, from_status, to_status, role):
        order = make_order(approval_status=from_status)
        actor = Actor(uuid4(), role)
        decision = can_transition(from_status, to_status, actor, order, reject_reason="valid reason")
        assert decision.allowed, decision.reason

    def test_wrong_role_on_legal_edge(self, make_order, manager):
        order = make_order()
        decision = can_transition(S.DRAFT, S.SUBMITTED_FOR_REVIEW, manager, order)
        assert isinstance(decision.error, RoleNotPermittedError)

    def test_same_status_denied_even_for_admin(self, make_order, admin):
        order = make_order(approval_status=S.APPROVED)
        decision = can_transition(S.APPROVED, S.APPROVED, admin, order)
        assert isinstance(decision.error, IllegalTransitionError)

    def test_admin_bypasses_table(self, make_order, admin):
        order = make_order()
        decision = can_transition(S.DRAFT, S.APPROVED, admin, order)
        assert decision.allowed
        assert decision.transition is None

    def test_admin_still_needs_totals_match(self, make_order, admin):
        order = make_order(external_opportunity_total=Decimal("999"))
        decision = can_transition(S.DRAFT, S.APPROVED, admin, order)
        assert isinstance(decision.error, TotalsMismatchError)

    def test_admin_still_needs_reject_reason(self, make_order, admin):
        order = make_order(approval_status=S.APPROVED)
        decision = can_transition(S.APPROVED, S.REJECTED, admin, order, reject_reason="no")
        assert isinstance(decision.error, RejectReasonError)

    def test_admin_may_review_own_order(self, make_order, admin):
        order = make_order(owner=admin, approval_status=S.SUBMITTED_FOR_REVIEW)
        decision = can_transition(S.SUBMITTED_FOR_REVIEW, S.REVIEWED_PENDING_APPROVAL, admin, order)
        assert decision.allowed

    def test_owner_review_denied_regardless_of_totals(self, make_order, analyst):
        for opportunity_total in (Decimal("1000"), Decimal("5")):
            order = make_order(
                owner=analyst,
                approval_status=S.SUBMITTED_FOR_REVIEW,
                external_opportunity_total=opportunity_total,
            )
            decision = can_transition(
                S.SUBMITTED_FOR_REVIEW, S.REVIEWED_PENDING_APPROVAL, analyst, order,
            )
            assert isinstance(decision.error, SelfReviewError)
            assert str(decision.error) == "Cannot review IO that you created."

    def test_editor_reject_denied(self, make_order, analyst):
        order = make_order(
            approval_status=S.SUBMITTED_FOR_REVIEW,
            editors=EditorSet.of([analyst.user_id]),
        )
        decision = can_transition(
            S.SUBMITTED_FOR_REVIEW, S.REJECTED, analyst, order, reject_reason="bad pricing",
        )
        assert isinstance(decision.error, SelfReviewError)
        assert not decision.error.is_owner
        assert str(decision.error) == "Cannot review IO that you edited."

    @pytest.mark.parametrize("reason,allowed", [
        ("oops", False),
        ("oops!", True),
        ("   oops   ", False),
        ("", False),
        (None, False),
    ])
    def test_reject_reason_length(self, make_order, manager, reason, allowed):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        decision = can_transition(
            S.REVIEWED_PENDING_APPROVAL, S.REJECTED, manager, order, reject_reason=reason,
        )
        assert decision.allowed is allowed
        if not allowed:
            assert isinstance(decision.error, RejectReasonError)

    def test_missing_reason_message(self, make_order, manager):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        decision = can_transition(S.REVIEWED_PENDING_APPROVAL, S.REJECTED, manager, order)
        assert decision.reason == "Reject reason is mandatory when rejecting an Insertion Order."

    def test_reject_reason_policy_threshold(self, make_order, manager):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        policy = TransitionPolicy(reject_reason_min_length=10)
        decision = can_transition(
            S.REVIEWED_PENDING_APPROVAL, S.REJECTED, manager, order,
            reject_reason="too short", policy=policy,
        )
        assert isinstance(decision.error, RejectReasonError)

    def test_submit_needs_totals_match(self, make_order, analyst):
        order = make_order(external_opportunity_total=Decimal("1000.01"))
        decision = can_transition(S.DRAFT, S.SUBMITTED_FOR_REVIEW, analyst, order)
        assert isinstance(decision.error, TotalsMismatchError)

    def test_totals_compared_by_amount_not_scale(self, make_order, analyst):
        order = make_order(external_opportunity_total=Decimal("1000.00"))
        assert order.order_total == Decimal("1000")
        assert totals_match(order)
        decision = can_transition(S.DRAFT, S.SUBMITTED_FOR_REVIEW, analyst, order)
        assert decision.allowed

    def test_missing_opportunity_total_is_mismatch(self, make_order, analyst):
        order = make_order(external_opportunity_total=None)
        decision = can_transition(S.DRAFT, S.SUBMITTED_FOR_REVIEW, analyst, order)
        assert isinstance(decision.error, TotalsMismatchError)

    def test_manager_reject_from_reviewed_skips_totals(self, make_order, manager):
        order = make_order(
            approval_status=S.REVIEWED_PENDING_APPROVAL,
            external_opportunity_total=Decimal("1"),
        )
        decision = can_transition(
            S.REVIEWED_PENDING_APPROVAL, S.REJECTED, manager, order, reject_reason="numbers off",
        )
        assert decision.allowed

    def test_resubmit_from_rejected_skips_totals(self, make_order, analyst):
        order = make_order(approval_status=S.REJECTED, external_opportunity_total=Decimal("1"))
        decision = can_transition(S.REJECTED, S.SUBMITTED_FOR_REVIEW, analyst, order)
        assert decision.allowed

    def test_self_review_checked_before_reason(self, make_order, analyst):
        order = make_order(owner=analyst, approval_status=S.SUBMITTED_FOR_REVIEW)
        decision = can_transition(S.SUBMITTED_FOR_REVIEW, S.REJECTED, analyst, order)
        assert isinstance(decision.error, SelfReviewError)

    def test_accepts_raw_status_values(self, make_order, analyst):
        order = make_order()
        decision = can_transition("draft", "submitted_for_review", analyst, order)
        assert decision.allowed


class TestApplyTransition:

    def test_submit(self, make_order, analyst):
        order = make_order(owner=analyst)
        result = apply_transition(order, S.SUBMITTED_FOR_REVIEW, analyst)
        assert result.success
        assert result.order.approval_status is S.SUBMITTED_FOR_REVIEW
        assert result.action == "submit"
        assert order.approval_status is S.DRAFT

    def test_review_stamps_reviewer(self, make_order, reviewer):
        order = make_order(approval_status=S.SUBMITTED_FOR_REVIEW)
        result = apply_transition(order, S.REVIEWED_PENDING_APPROVAL, reviewer)
        assert result.order.reviewed_by == reviewer.user_id

    def test_approve_stamps_approver(self, make_order, manager, reviewer):
        order = make_order(
            approval_status=S.REVIEWED_PENDING_APPROVAL, reviewed_by=reviewer.user_id,
        )
        result = apply_transition(order, S.APPROVED, manager)
        assert result.order.approved_by == manager.user_id
        assert result.order.reviewed_by == reviewer.user_id

    def test_reject_stores_trimmed_reason(self, make_order, manager):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        result = apply_transition(order, S.REJECTED, manager, reject_reason="  wrong rate card  ")
        assert result.order.reject_reason == "wrong rate card"

    def test_resubmit_clears_reason(self, make_order, analyst):
        order = make_order(approval_status=S.REJECTED, reject_reason="wrong rate card")
        result = apply_transition(order, S.SUBMITTED_FOR_REVIEW, analyst)
        assert result.order.reject_reason is None

    def test_admin_reject_from_approved_drops_approver(self, make_order, admin, manager):
        order = make_order(approval_status=S.APPROVED, approved_by=manager.user_id)
        result = apply_transition(order, S.REJECTED, admin, reject_reason="contract cancelled")
        assert result.success
        assert result.order.approved_by is None
        assert result.action == "set_status"

    def test_admin_back_to_submitted_clears_stamps(self, make_order, admin, manager, reviewer):
        order = make_order(
            approval_status=S.APPROVED,
            reviewed_by=reviewer.user_id,
            approved_by=manager.user_id,
        )
        result = apply_transition(order, S.SUBMITTED_FOR_REVIEW, admin)
        assert result.order.reviewed_by is None
        assert result.order.approved_by is None

    @pytest.mark.parametrize("from_status", [S.REVIEWED_PENDING_APPROVAL, S.APPROVED])
    def test_admin_back_to_draft_clears_stamps(
        self, make_order, admin, manager, reviewer, from_status,
    ):
        order = make_order(
            approval_status=from_status,
            reviewed_by=reviewer.user_id,
            approved_by=manager.user_id,
        )
        result = apply_transition(order, S.DRAFT, admin)
        assert result.success
        assert result.order.approval_status is S.DRAFT
        assert result.order.reviewed_by is None
        assert result.order.approved_by is None

    def test_denied_returns_original(self, make_order, manager):
        order = make_order()
        result = apply_transition(order, S.APPROVED, manager)
        assert not result.success
        assert result.order is order
        with pytest.raises(IllegalTransitionError):
            result.unwrap()

    def test_logs_decisions(self, make_order, analyst, manager, captured_logs):
        order = make_order(owner=analyst)
        apply_transition(order, S.SUBMITTED_FOR_REVIEW, analyst)
        apply_transition(order, S.APPROVED, manager)
        messages = [r["message"] for r in captured_logs()]
        assert "transition_applied" in messages
        denied = [r for r in captured_logs() if r["message"] == "transition_denied"]
        assert denied[0]["error_code"] == "ILLEGAL_TRANSITION"


class TestGates:

    def test_manager_cannot_create_or_copy(self, manager, analyst):
        assert isinstance(check_create_permitted(manager).error, RoleNotPermittedError)
        assert isinstance(check_copy_permitted(manager).error, RoleNotPermittedError)
        assert check_create_permitted(analyst).allowed

    @pytest.mark.parametrize("status", list(S))
    def test_manager_direct_edit_blocked(self, make_order, manager, status):
        order = make_order(approval_status=status)
        decision = check_edit_permitted(order, manager)
        assert isinstance(decision.error, EditNotPermittedError)

    def test_manager_edit_allowed_when_policy_relaxed(self, make_order, manager):
        order = make_order(approval_status=S.APPROVED)
        policy = TransitionPolicy(manager_edit_blocked=False)
        assert check_edit_permitted(order, manager, policy).allowed

    def test_reviewed_blocks_analyst_edit(self, make_order, analyst):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        decision = check_edit_permitted(order, analyst)
        assert "pending manager approval" in decision.reason
        assert not check_edit_permitted(order, analyst.via(ExecutionChannel.IMPORT)).allowed

    def test_programmatic_and_admin_allowed(self, make_order, manager, admin):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        assert check_edit_permitted(order, manager.via(ExecutionChannel.PROGRAMMATIC)).allowed
        assert check_edit_permitted(order, admin).allowed

    def test_analyst_may_edit_approved(self, make_order, analyst):
        assert check_edit_permitted(make_order(approval_status=S.APPROVED), analyst).allowed


class TestCopyOrder:

    def test_copy_resets_workflow(self, make_order, analyst, reviewer, manager, clock):
        order = make_order(
            approval_status=S.APPROVED,
            reviewed_by=reviewer.user_id,
            approved_by=manager.user_id,
            editors=EditorSet.of([reviewer.user_id]),
            override=BudgetOverride(
                active=True, amount=Decimal("50"), reason="uplift",
                start_date=clock.today(),
            ),
            order_total=Decimal("1"),
        )
        new_id = uuid4()
        line_ids = [uuid4() for _ in order.lines]
        copy = copy_order(order, analyst, new_id, line_ids)

        assert copy.id == new_id
        assert copy.owner_id == analyst.user_id
        assert copy.approval_status is S.DRAFT
        assert copy.reviewed_by is None and copy.approved_by is None
        assert len(copy.editors) == 0
        assert not copy.override.active
        assert copy.external_opportunity_id is None
        assert copy.external_opportunity_total is None
        assert copy.order_total == Decimal("1000")
        assert [line.id for line in copy.lines] == line_ids
        assert all(line.parent_io_id == new_id for line in copy.lines)
        assert all(line.external_line_id is None for line in copy.lines)

    def test_copy_denied_for_manager(self, make_order, manager):
        with pytest.raises(RoleNotPermittedError):
            copy_order(make_order(), manager, uuid4())

    def test_line_id_count_must_match(self, make_order, analyst):
        with pytest.raises(ValueError):
            copy_order(make_order(), analyst, uuid4(), [uuid4()])
