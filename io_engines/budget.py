"""
io_engines.budget -- Budget ledger for insertion orders.

Responsibility:
    Decide whether an invoice candidate fits in the remaining budget of an
    insertion order under the order's budget mode.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  All invoiced/credited
    figures arrive pre-computed in ``BudgetAggregates``.

Modes:
    FLUID          remaining = order_total - (invoiced - credited) + override
    MONTHLY_FLUID  budget = sum of line amounts whose recognition period
                   overlaps the invoice month;
                   remaining = budget - (month invoiced - month credited) + override
    MONTHLY_FIXED  per external line id: remaining = line amount -
                   (line-month invoiced - line-month credited); no override

Invariants enforced:
    - Admission requires remaining >= requested.
    - Monthly modes reject an invoice spanning two calendar months before
      doing any arithmetic.
    - MONTHLY_FIXED evaluates every line group and reports every failure.
    - A missing aggregate fails the check; it is never read as zero.

Failure modes:
    - Returns ``BudgetCheckResult(ok=False, error=...)``.  Raises only via
      ``raise_for_error()``.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal

from io_kernel.domain.billing import (
    ZERO,
    BudgetAggregates,
    CalendarMonth,
    InvoiceCandidate,
)
from io_kernel.domain.orders import BudgetType, InsertionOrder
from io_kernel.exceptions import (
    AggregationError,
    BudgetExceededError,
    IOKernelError,
    LineMonthMismatchError,
    MissingInvoicePeriodError,
    MultiMonthInvoiceError,
    NoMonthlyBudgetError,
    UnmatchedInvoiceLineError,
)
from io_kernel.logging_config import get_logger

from io_engines.tracer import traced_engine

logger = get_logger("engines.budget")


@dataclass(frozen=True)
class LineBudgetResult:
    """MONTHLY_FIXED verdict for one external line id."""

    external_line_id: str
    requested: Decimal
    remaining: Decimal | None
    error: IOKernelError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BudgetCheckResult:
    """Verdict of ``check_budget``.

    ``error`` is the first failure; ``errors`` holds all of them (more than
    one only in MONTHLY_FIXED).
    """

    ok: bool
    mode: BudgetType
    requested: Decimal
    remaining: Decimal | None = None
    month: CalendarMonth | None = None
    line_results: tuple[LineBudgetResult, ...] = ()
    errors: tuple[IOKernelError, ...] = ()

    @property
    def error(self) -> IOKernelError | None:
        return self.errors[0] if self.errors else None

    def raise_for_error(self) -> None:
        if self.errors:
            raise self.errors[0]


def _invoice_month(candidate: InvoiceCandidate) -> CalendarMonth:
    if candidate.start_date is None or candidate.end_date is None:
        raise MissingInvoicePeriodError()
    start = CalendarMonth.of(candidate.start_date)
    if CalendarMonth.of(candidate.end_date) != start:
        raise MultiMonthInvoiceError(
            candidate.start_date.isoformat(), candidate.end_date.isoformat()
        )
    return start


def _fluid(order: InsertionOrder, candidate: InvoiceCandidate,
           aggregates: BudgetAggregates) -> BudgetCheckResult:
    requested = candidate.total
    remaining = order.order_total - aggregates.net_invoiced + order.override.effective_amount
    errors: tuple[IOKernelError, ...] = ()
    if remaining < requested:
        errors = (BudgetExceededError(remaining, requested, "order lifetime"),)
    return BudgetCheckResult(
        ok=not errors, mode=BudgetType.FLUID, requested=requested,
        remaining=remaining, errors=errors,
    )


def _monthly_fluid(order: InsertionOrder, candidate: InvoiceCandidate,
                   aggregates: BudgetAggregates) -> BudgetCheckResult:
    requested = candidate.total
    month = _invoice_month(candidate)
    budget_lines = [
        line for line in order.lines
        if month.overlaps(line.recognition_start, line.recognition_end)
    ]
    if not budget_lines:
        return BudgetCheckResult(
            ok=False, mode=BudgetType.MONTHLY_FLUID, requested=requested,
            month=month, errors=(NoMonthlyBudgetError(month.label),),
        )

    monthly_budget = sum((line.amount for line in budget_lines), ZERO)
    consumed = aggregates.invoiced_in(month) - aggregates.credited_in(month)
    remaining = monthly_budget - consumed + order.override.effective_amount
    errors: tuple[IOKernelError, ...] = ()
    if remaining < requested:
        errors = (BudgetExceededError(remaining, requested, f"month {month.label}"),)
    return BudgetCheckResult(
        ok=not errors, mode=BudgetType.MONTHLY_FLUID, requested=requested,
        remaining=remaining, month=month, errors=errors,
    )


def _monthly_fixed(order: InsertionOrder, candidate: InvoiceCandidate,
                   aggregates: BudgetAggregates) -> BudgetCheckResult:
    month = _invoice_month(candidate)

    groups: OrderedDict[str, Decimal] = OrderedDict()
    items: dict[str, str | None] = {}
    for inv_line in candidate.lines:
        key = inv_line.external_line_id or ""
        groups[key] = groups.get(key, ZERO) + inv_line.amount
        items.setdefault(key, inv_line.item)

    results: list[LineBudgetResult] = []
    for number, (line_id, requested) in enumerate(groups.items(), start=1):
        io_line = order.line_by_external_id(line_id) if line_id else None
        if io_line is None:
            results.append(LineBudgetResult(
                line_id, requested, None,
                UnmatchedInvoiceLineError(number, line_id, items[line_id] or ""),
            ))
            continue
        if not month.overlaps(io_line.recognition_start, io_line.recognition_end):
            results.append(LineBudgetResult(
                line_id, requested, None, LineMonthMismatchError(line_id, month.label),
            ))
            continue
        consumed = (
            aggregates.line_invoiced_in(line_id, month)
            - aggregates.line_credited_in(line_id, month)
        )
        remaining = io_line.amount - consumed
        error = None
        if remaining < requested:
            error = BudgetExceededError(
                remaining, requested, f"line {line_id} month {month.label}",
            )
        results.append(LineBudgetResult(line_id, requested, remaining, error))

    errors = tuple(r.error for r in results if r.error is not None)
    return BudgetCheckResult(
        ok=not errors,
        mode=BudgetType.MONTHLY_FIXED,
        requested=candidate.total,
        month=month,
        line_results=tuple(results),
        errors=errors,
    )


_MODE_HANDLERS = {
    BudgetType.FLUID: _fluid,
    BudgetType.MONTHLY_FLUID: _monthly_fluid,
    BudgetType.MONTHLY_FIXED: _monthly_fixed,
}


@traced_engine("budget_ledger", "1.0", fingerprint_fields=("candidate",))
def check_budget(
    order: InsertionOrder,
    candidate: InvoiceCandidate,
    aggregates: BudgetAggregates,
) -> BudgetCheckResult:
    """Check ``candidate`` against the remaining budget of ``order``.

    ``aggregates`` must exclude ``candidate`` itself when it is an edit of
    an existing invoice.
    """
    mode = BudgetType(order.budget_type)
    try:
        result = _MODE_HANDLERS[mode](order, candidate, aggregates)
    except (AggregationError, MissingInvoicePeriodError, MultiMonthInvoiceError) as exc:
        result = BudgetCheckResult(
            ok=False, mode=mode, requested=candidate.total, errors=(exc,),
        )

    if not result.ok:
        logger.info(
            "budget_check_failed",
            extra={
                "order_id": str(order.id),
                "mode": mode.value,
                "requested": result.requested,
                "remaining": result.remaining,
                "error_codes": [e.code for e in result.errors],
            },
        )
    return result


def amount_invoiced(aggregates: BudgetAggregates) -> Decimal:
    """Net invoiced figure for display; 0 when the aggregate is missing."""
    try:
        return aggregates.net_invoiced
    except AggregationError as exc:
        logger.warning(
            "amount_invoiced_unavailable",
            extra={"figure": exc.figure},
        )
        return ZERO
