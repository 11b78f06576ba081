"""
io_engines.ledger_aggregation -- Invoice/credit figures for the budget ledger.

Responsibility:
    Fold the invoice and credit references linked to one insertion order
    into a ``BudgetAggregates`` value.

Architecture position:
    Engines -- pure, zero I/O.  The host (``LedgerSelector``) loads the
    references; this module only does arithmetic.

Invariants enforced:
    - Voided documents are excluded.
    - The invoice being validated (``exclude_invoice_id``) is excluded so
      an edit does not count against itself.
    - Credits are summed by absolute value.
    - A document counts toward a month when its [start, end] range
      overlaps that month; line-month figures key on ``linked_line_id``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from io_kernel.domain.billing import (
    ZERO,
    BudgetAggregates,
    CalendarMonth,
    CreditRef,
    InvoiceRef,
)


def months_spanned(start, end) -> list[CalendarMonth]:
    """Every calendar month touched by ``[start, end]``."""
    if start is None or end is None or end < start:
        return []
    months = []
    current = CalendarMonth.of(start)
    last = CalendarMonth.of(end)
    while current <= last:
        months.append(current)
        if current.month == 12:
            current = CalendarMonth(current.year + 1, 1)
        else:
            current = CalendarMonth(current.year, current.month + 1)
    return months


def _fold(
    docs: Iterable[InvoiceRef | CreditRef],
    absolute: bool,
) -> tuple[Decimal, dict, dict]:
    total = ZERO
    by_month: dict[CalendarMonth, Decimal] = defaultdict(lambda: ZERO)
    by_line_month: dict[tuple[str, CalendarMonth], Decimal] = defaultdict(lambda: ZERO)
    for doc in docs:
        amount = abs(doc.amount) if absolute else doc.amount
        total += amount
        for month in months_spanned(doc.start_date, doc.end_date):
            by_month[month] += amount
            if doc.linked_line_id:
                by_line_month[(doc.linked_line_id, month)] += amount
    return total, dict(by_month), dict(by_line_month)


def aggregate_documents(
    order_id: UUID,
    invoices: Iterable[InvoiceRef],
    credits: Iterable[CreditRef],
    exclude_invoice_id: UUID | None = None,
) -> BudgetAggregates:
    """Build the aggregates the budget ledger reads for ``order_id``."""
    live_invoices = [
        inv for inv in invoices
        if inv.linked_io_id == order_id
        and not inv.voided
        and (exclude_invoice_id is None or inv.document_id != exclude_invoice_id)
    ]
    live_credits = [
        cr for cr in credits
        if cr.linked_io_id == order_id and not cr.voided
    ]

    inv_total, inv_month, inv_line = _fold(live_invoices, absolute=False)
    cr_total, cr_month, cr_line = _fold(live_credits, absolute=True)
    return BudgetAggregates(
        total_invoiced=inv_total,
        total_credited=cr_total,
        month_invoiced=inv_month,
        month_credited=cr_month,
        line_month_invoiced=inv_line,
        line_month_credited=cr_line,
    )
