"""
io_engines.admission -- Invoice admission check.

Responsibility:
    Decide whether an invoice may be issued against its insertion order:
    gating scope, order resolution and status, header match, line match,
    then the budget ledger.

Architecture position:
    Engines -- pure, zero I/O.  The host resolves the order and computes
    aggregates; this module only decides.

Invariants enforced:
    - Checks short-circuit in a fixed order; the first failure is the
      verdict.
    - Invoices outside the gated scope (customer not requiring an order,
      or any line in a sub-BU outside the enforced list) are admitted as
      skipped without consulting the order.
    - No side effects beyond the returned verdict.
"""

from __future__ import annotations

from dataclasses import dataclass

from io_kernel.domain.billing import BudgetAggregates, InvoiceCandidate
from io_kernel.domain.orders import ApprovalStatus, InsertionOrder
from io_kernel.domain.policy import DEFAULT_GATING_POLICY, GatingPolicy
from io_kernel.exceptions import (
    CurrencyMismatchError,
    CustomerMismatchError,
    EmptyInvoiceError,
    IOKernelError,
    MissingLineIdError,
    MissingOpportunityIdError,
    NoMatchingOrderError,
    OrderClosedError,
    OrderNotApprovedError,
    UnmatchedInvoiceLineError,
)
from io_kernel.logging_config import get_logger

from io_engines.budget import BudgetCheckResult, check_budget
from io_engines.tracer import traced_engine

logger = get_logger("engines.admission")


@dataclass(frozen=True)
class AdmissionResult:
    """Ok/Reject verdict for an invoice candidate."""

    admitted: bool
    skipped: bool = False
    error: IOKernelError | None = None
    budget: BudgetCheckResult | None = None

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def _reject(error: IOKernelError, budget: BudgetCheckResult | None = None) -> AdmissionResult:
    return AdmissionResult(admitted=False, error=error, budget=budget)


def is_gated(candidate: InvoiceCandidate, policy: GatingPolicy) -> bool:
    if not policy.requires_order(candidate.customer_requires_order):
        return False
    return all(policy.is_enforced(line.sub_bu) for line in candidate.lines)


def match_lines(candidate: InvoiceCandidate, order: InsertionOrder) -> IOKernelError | None:
    """Every invoice line must match exactly one order line by id and item."""
    if not candidate.lines:
        return EmptyInvoiceError()
    for number, inv_line in enumerate(candidate.lines, start=1):
        if not inv_line.external_line_id:
            return MissingLineIdError(number)
        matches = [
            line for line in order.lines
            if line.external_line_id == inv_line.external_line_id
            and line.item == inv_line.item
        ]
        if len(matches) != 1:
            return UnmatchedInvoiceLineError(
                number, inv_line.external_line_id, inv_line.item or "",
            )
    return None


@traced_engine("invoice_admission", "1.0", fingerprint_fields=("candidate",))
def admit(
    candidate: InvoiceCandidate,
    resolved_order: InsertionOrder | None,
    aggregates: BudgetAggregates,
    policy: GatingPolicy | None = None,
) -> AdmissionResult:
    """Run the admission checks for ``candidate`` against ``resolved_order``."""
    policy = policy or DEFAULT_GATING_POLICY

    if not is_gated(candidate, policy):
        logger.debug("invoice_gating_skipped")
        return AdmissionResult(admitted=True, skipped=True)

    if not candidate.external_opportunity_id:
        return _reject(MissingOpportunityIdError())

    order = resolved_order
    if order is None:
        return _reject(NoMatchingOrderError(candidate.external_opportunity_id))
    if order.approval_status is not ApprovalStatus.APPROVED:
        return _reject(
            OrderNotApprovedError(str(order.id), order.approval_status.display_name)
        )
    if order.closed:
        return _reject(OrderClosedError(str(order.id)))

    if candidate.customer_id != order.customer_id:
        return _reject(
            CustomerMismatchError(order.customer_id or "", candidate.customer_id or "")
        )
    if candidate.currency != order.currency:
        return _reject(
            CurrencyMismatchError(order.currency or "", candidate.currency or "")
        )

    line_error = match_lines(candidate, order)
    if line_error is not None:
        return _reject(line_error)

    budget = check_budget(order, candidate, aggregates)
    if not budget.ok:
        return _reject(budget.error, budget)

    logger.info(
        "invoice_admitted",
        extra={
            "order_id": str(order.id),
            "mode": budget.mode.value,
            "requested": budget.requested,
            "remaining": budget.remaining,
        },
    )
    return AdmissionResult(admitted=True, budget=budget)
