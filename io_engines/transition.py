"""
io_engines.transition -- Insertion order transition validator.

Responsibility:
    Decide whether an actor may move an insertion order from one approval
    status to another, and apply the status change with its tracking-field
    side effects.  Also gates direct edits, creation and copying by role
    and execution channel.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only io_kernel domain types and exceptions.

Invariants enforced:
    - Only edges of ``IO_APPROVAL_WORKFLOW`` are legal, each limited to the
      roles it lists.  ``has_elevated_privilege`` is the single capability
      check that lifts the table, role gate and self-review ban.
    - Self-review ban: the owner, or anyone in ``editors``, may not review
      or reject from SubmittedForReview.
    - Entering Rejected needs a trimmed reject reason of the configured
      minimum length.
    - Leaving Draft or SubmittedForReview, and entering Approved, needs
      ``order_total == external_opportunity_total``.

Failure modes:
    - Returns ``TransitionDecision.deny(...)`` carrying a typed
      ``TransitionError``/``ValidationError``.  Nothing is raised unless
      the caller asks via ``unwrap()`` / ``raise_for_error()``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID

from io_kernel.domain.fields import TOTALS_FIELDS
from io_kernel.domain.orders import (
    Actor,
    ActorRole,
    ApprovalStatus,
    BudgetOverride,
    EditorSet,
    InsertionOrder,
)
from io_kernel.domain.policy import DEFAULT_TRANSITION_POLICY, TransitionPolicy
from io_kernel.domain.workflow import Guard, Transition, Workflow
from io_kernel.exceptions import (
    EditNotPermittedError,
    IllegalTransitionError,
    IOKernelError,
    RejectReasonError,
    RoleNotPermittedError,
    SelfReviewError,
    TotalsMismatchError,
)
from io_kernel.logging_config import get_logger

logger = get_logger("engines.transition")

S = ApprovalStatus

# =========================================================================
# Workflow table
# =========================================================================

TOTALS_MATCH_GUARD = Guard(
    "totals_match", "IO total must equal the external opportunity total",
)
NO_SELF_REVIEW_GUARD = Guard(
    "no_self_review", "Creator and editors may not review their own order",
)
REJECT_REASON_GUARD = Guard(
    "reject_reason_present", "A reject reason of the minimum length is required",
)

_ANALYST = (ActorRole.ANALYST.value,)
_MANAGER = (ActorRole.MANAGER.value,)

IO_APPROVAL_WORKFLOW = Workflow(
    name="insertion_order_approval",
    description="Analyst submit/review, manager approve, reject from either stage",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in ApprovalStatus),
    transitions=(
        Transition(S.DRAFT.value, S.SUBMITTED_FOR_REVIEW.value, "submit",
                   _ANALYST, (TOTALS_MATCH_GUARD,)),
        Transition(S.SUBMITTED_FOR_REVIEW.value, S.REVIEWED_PENDING_APPROVAL.value, "review",
                   _ANALYST, (NO_SELF_REVIEW_GUARD, TOTALS_MATCH_GUARD)),
        Transition(S.SUBMITTED_FOR_REVIEW.value, S.REJECTED.value, "reject",
                   _ANALYST, (NO_SELF_REVIEW_GUARD, REJECT_REASON_GUARD, TOTALS_MATCH_GUARD)),
        Transition(S.REVIEWED_PENDING_APPROVAL.value, S.APPROVED.value, "approve",
                   _MANAGER, (TOTALS_MATCH_GUARD,)),
        Transition(S.REVIEWED_PENDING_APPROVAL.value, S.REJECTED.value, "reject",
                   _MANAGER, (REJECT_REASON_GUARD,)),
        Transition(S.REJECTED.value, S.SUBMITTED_FOR_REVIEW.value, "resubmit",
                   _ANALYST),
    ),
)

_TOTALS_SOURCE_STATUSES = frozenset({S.DRAFT, S.SUBMITTED_FOR_REVIEW})
_SELF_REVIEW_TARGETS = frozenset({S.REVIEWED_PENDING_APPROVAL, S.REJECTED})
# Moving back to one of these from a later stage drops reviewer and approver
_STAMP_CLEARING_TARGETS = frozenset({S.DRAFT, S.SUBMITTED_FOR_REVIEW})


def has_elevated_privilege(role: ActorRole) -> bool:
    """The one capability check for administrative bypass."""
    return role is ActorRole.ADMINISTRATOR


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class TransitionDecision:
    """Allow/Deny verdict of ``can_transition`` and the edit gates."""

    allowed: bool
    transition: Transition | None = None
    error: IOKernelError | None = None

    @classmethod
    def allow(cls, transition: Transition | None = None) -> TransitionDecision:
        return cls(allowed=True, transition=transition)

    @classmethod
    def deny(cls, error: IOKernelError) -> TransitionDecision:
        return cls(allowed=False, error=error)

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``apply_transition``."""

    success: bool
    order: InsertionOrder
    from_status: ApprovalStatus
    to_status: ApprovalStatus
    action: str | None = None
    error: IOKernelError | None = None

    def unwrap(self) -> InsertionOrder:
        if self.error is not None:
            raise self.error
        return self.order


# =========================================================================
# Preconditions
# =========================================================================


def check_reject_reason(
    reason: str | None, policy: TransitionPolicy = DEFAULT_TRANSITION_POLICY,
) -> RejectReasonError | None:
    trimmed = (reason or "").strip()
    if len(trimmed) < max(policy.reject_reason_min_length, 1):
        return RejectReasonError(reason, policy.reject_reason_min_length)
    return None


def totals_match(order: InsertionOrder) -> bool:
    order_total, opportunity_total = (f.read(order) for f in TOTALS_FIELDS)
    if opportunity_total is None:
        return False
    return order_total == opportunity_total


def requires_totals_match(from_status: ApprovalStatus, to_status: ApprovalStatus) -> bool:
    return from_status in _TOTALS_SOURCE_STATUSES or to_status is S.APPROVED


def _self_review_error(actor: Actor, order: InsertionOrder) -> SelfReviewError | None:
    if actor.user_id == order.owner_id:
        return SelfReviewError(str(actor.user_id), is_owner=True)
    if actor.user_id in order.editors:
        return SelfReviewError(str(actor.user_id), is_owner=False)
    return None


def can_transition(
    from_status: ApprovalStatus,
    to_status: ApprovalStatus,
    actor: Actor,
    order: InsertionOrder,
    reject_reason: str | None = None,
    policy: TransitionPolicy | None = None,
) -> TransitionDecision:
    """Decide whether ``actor`` may move ``order`` from ``from_status`` to ``to_status``.

    Checks run in order: edge table and role, self-review ban, reject
    reason, totals match.  The first failure is returned.
    """
    policy = policy or DEFAULT_TRANSITION_POLICY
    from_status = ApprovalStatus(from_status)
    to_status = ApprovalStatus(to_status)
    elevated = has_elevated_privilege(actor.role)

    if from_status is to_status:
        return TransitionDecision.deny(
            IllegalTransitionError(from_status.display_name, to_status.display_name)
        )

    transition = IO_APPROVAL_WORKFLOW.find(from_status.value, to_status.value)
    if not elevated:
        if transition is None:
            return TransitionDecision.deny(
                IllegalTransitionError(from_status.display_name, to_status.display_name)
            )
        if transition.allowed_roles and actor.role.value not in transition.allowed_roles:
            return TransitionDecision.deny(
                RoleNotPermittedError(actor.role.value, transition.action)
            )
        if from_status is S.SUBMITTED_FOR_REVIEW and to_status in _SELF_REVIEW_TARGETS:
            err = _self_review_error(actor, order)
            if err is not None:
                return TransitionDecision.deny(err)

    if to_status is S.REJECTED:
        err = check_reject_reason(reject_reason, policy)
        if err is not None:
            return TransitionDecision.deny(err)

    if requires_totals_match(from_status, to_status) and not totals_match(order):
        return TransitionDecision.deny(
            TotalsMismatchError(order.order_total, order.external_opportunity_total)
        )

    return TransitionDecision.allow(transition)


def apply_transition(
    order: InsertionOrder,
    to_status: ApprovalStatus,
    actor: Actor,
    reject_reason: str | None = None,
    policy: TransitionPolicy | None = None,
) -> TransitionResult:
    """Validate and apply a status change, returning the new snapshot.

    Tracking fields follow the destination: Reviewed stamps ``reviewed_by``,
    Approved stamps ``approved_by``, Rejected stores the trimmed reason
    (and drops ``approved_by`` when leaving Approved), moving back to
    SubmittedForReview or Draft from a later stage clears both stamps.
    """
    from_status = order.approval_status
    to_status = ApprovalStatus(to_status)
    decision = can_transition(from_status, to_status, actor, order, reject_reason, policy)
    action = decision.transition.action if decision.transition else "set_status"

    if not decision.allowed:
        logger.info(
            "transition_denied",
            extra={
                "order_id": str(order.id),
                "from_status": from_status.value,
                "to_status": to_status.value,
                "role": actor.role.value,
                "error_code": decision.error.code if decision.error else None,
            },
        )
        return TransitionResult(
            success=False,
            order=order,
            from_status=from_status,
            to_status=to_status,
            action=action,
            error=decision.error,
        )

    changes: dict = {"approval_status": to_status}
    if to_status is S.REVIEWED_PENDING_APPROVAL:
        changes["reviewed_by"] = actor.user_id
    elif to_status is S.APPROVED:
        changes["approved_by"] = actor.user_id
    elif to_status in _STAMP_CLEARING_TARGETS and from_status in (
        S.REVIEWED_PENDING_APPROVAL, S.APPROVED,
    ):
        changes["reviewed_by"] = None
        changes["approved_by"] = None

    if to_status is S.REJECTED:
        changes["reject_reason"] = (reject_reason or "").strip()
        if from_status is S.APPROVED:
            changes["approved_by"] = None
    else:
        changes["reject_reason"] = None

    new_order = replace(order, **changes)
    logger.info(
        "transition_applied",
        extra={
            "order_id": str(order.id),
            "action": action,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "role": actor.role.value,
        },
    )
    return TransitionResult(
        success=True,
        order=new_order,
        from_status=from_status,
        to_status=to_status,
        action=action,
    )


# =========================================================================
# Create / edit / copy gates
# =========================================================================


def check_create_permitted(actor: Actor) -> TransitionDecision:
    if actor.role is ActorRole.MANAGER:
        return TransitionDecision.deny(RoleNotPermittedError(actor.role.value, "create"))
    return TransitionDecision.allow()


def check_copy_permitted(actor: Actor) -> TransitionDecision:
    if actor.role is ActorRole.MANAGER:
        return TransitionDecision.deny(RoleNotPermittedError(actor.role.value, "copy"))
    return TransitionDecision.allow()


def check_edit_permitted(
    order: InsertionOrder,
    actor: Actor,
    policy: TransitionPolicy | None = None,
) -> TransitionDecision:
    """Gate a direct (interactive or import) edit of ``order``."""
    policy = policy or DEFAULT_TRANSITION_POLICY
    if has_elevated_privilege(actor.role) or not actor.channel.is_direct_edit:
        return TransitionDecision.allow()
    if actor.role is ActorRole.MANAGER and policy.manager_edit_blocked:
        return TransitionDecision.deny(EditNotPermittedError(
            "Managers cannot edit Insertion Orders directly. Use Approve/Reject buttons."
        ))
    if order.approval_status is S.REVIEWED_PENDING_APPROVAL:
        return TransitionDecision.deny(EditNotPermittedError(
            "Direct editing not allowed when pending manager approval. "
            "Use Approve/Reject buttons."
        ))
    return TransitionDecision.allow()


def copy_order(
    order: InsertionOrder,
    actor: Actor,
    new_id: UUID,
    line_ids: list[UUID] | None = None,
) -> InsertionOrder:
    """Draft copy of ``order`` owned by ``actor``.

    Workflow tracking, override, editors, external opportunity data and
    totals are reset.  ``line_ids`` supplies fresh ids for the copied lines.
    """
    check_copy_permitted(actor).raise_for_error()
    ids = list(line_ids) if line_ids is not None else None
    if ids is not None and len(ids) != len(order.lines):
        raise ValueError("line_ids must supply one id per line")

    lines = tuple(
        replace(
            line,
            id=ids[i] if ids is not None else line.id,
            parent_io_id=new_id,
            external_line_id=None,
        )
        for i, line in enumerate(order.lines)
    )
    return replace(
        order,
        id=new_id,
        owner_id=actor.user_id,
        approval_status=S.DRAFT,
        editors=EditorSet(),
        reviewed_by=None,
        approved_by=None,
        reject_reason=None,
        closed=False,
        close_reason=None,
        external_opportunity_id=None,
        external_opportunity_total=None,
        override=BudgetOverride(),
        lines=lines,
    ).with_recomputed_total()
