"""
io_engines.override -- Budget override lifecycle.

Responsibility:
    Activate and revoke the temporary budget increase on an approved
    insertion order.

Architecture position:
    Engines -- pure, zero I/O.  Dates come from the injected clock.

Invariants enforced:
    - Only Manager or Administrator activates, only on an Approved order,
      only when no override is active.
    - Amount is non-negative; reason meets the configured minimum length
      after trimming.
    - Revoking clears amount, reason and start date, stamps the end date
      and records who revoked it.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from io_kernel.domain.clock import Clock
from io_kernel.domain.orders import (
    Actor,
    ActorRole,
    ApprovalStatus,
    BudgetOverride,
    InsertionOrder,
)
from io_kernel.domain.policy import DEFAULT_TRANSITION_POLICY, TransitionPolicy
from io_kernel.exceptions import (
    InvalidOverrideAmountError,
    OverrideReasonError,
    OverrideStateError,
)

_OVERRIDE_ROLES = frozenset({ActorRole.MANAGER, ActorRole.ADMINISTRATOR})


def clear_override(actor: Actor, clock: Clock) -> BudgetOverride:
    return BudgetOverride(
        active=False,
        end_date=clock.today(),
        user_id=actor.user_id,
    )


def activate_override(
    order: InsertionOrder,
    actor: Actor,
    amount: Decimal,
    reason: str,
    clock: Clock,
    policy: TransitionPolicy | None = None,
) -> InsertionOrder:
    """Return ``order`` with an active override.

    Raises:
        OverrideStateError: wrong role, order not Approved, or already active.
        InvalidOverrideAmountError: negative amount.
        OverrideReasonError: reason too short.
    """
    policy = policy or DEFAULT_TRANSITION_POLICY
    if actor.role not in _OVERRIDE_ROLES:
        raise OverrideStateError("Only Managers and Administrators can override budget.")
    if order.approval_status is not ApprovalStatus.APPROVED:
        raise OverrideStateError("Budget override is only available for Approved orders.")
    if order.override.active:
        raise OverrideStateError("Budget override is already active.")
    amount = Decimal(amount)
    if amount < 0:
        raise InvalidOverrideAmountError(amount)
    trimmed = (reason or "").strip()
    if len(trimmed) < policy.override_reason_min_length:
        raise OverrideReasonError(policy.override_reason_min_length)

    override = BudgetOverride(
        active=True,
        amount=amount,
        reason=trimmed,
        start_date=clock.today(),
        end_date=None,
        user_id=actor.user_id,
    )
    return replace(order, override=override)


def revoke_override(order: InsertionOrder, actor: Actor, clock: Clock) -> InsertionOrder:
    """Return ``order`` with its override deactivated.

    Raises:
        OverrideStateError: wrong role or no active override.
    """
    if actor.role not in _OVERRIDE_ROLES:
        raise OverrideStateError("Only Managers and Administrators can revoke budget override.")
    if not order.override.active:
        raise OverrideStateError("No active budget override to revoke.")
    return replace(order, override=clear_override(actor, clock))
