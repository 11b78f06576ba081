"""
Billing domain types (``io_kernel.domain.billing``).

Responsibility
--------------
Invoice and credit references linked to an insertion order, the invoice
candidate presented for admission, calendar month arithmetic and the
pre-computed aggregate figures the budget ledger consumes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``BudgetAggregates`` distinguishes "not supplied" (None, reading it
  raises ``AggregationError``) from "supplied but empty for this key"
  (reads as zero).  The ledger never defaults a missing credit figure.
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from io_kernel.exceptions import AggregationError

ZERO = Decimal("0")


@dataclass(frozen=True, order=True)
class CalendarMonth:
    """A (year, month) pair."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1..12, got {self.month}")

    @classmethod
    def of(cls, day: date) -> CalendarMonth:
        return cls(day.year, day.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def overlaps(self, start: date | None, end: date | None) -> bool:
        """True when ``[start, end]`` shares at least one day with this month."""
        if start is None or end is None:
            return False
        return start <= self.last_day and end >= self.first_day

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class InvoiceRef:
    """An issued invoice linked to an order."""

    document_id: UUID
    linked_io_id: UUID
    amount: Decimal
    linked_line_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    voided: bool = False
    document_number: str | None = None


@dataclass(frozen=True)
class CreditRef:
    """An issued credit memo linked to an order.

    Amounts may be stored negative; the ledger uses the absolute value.
    ``rebill_invoice_numbers`` lists the invoices issued to replace it.
    """

    document_id: UUID
    linked_io_id: UUID
    amount: Decimal
    linked_line_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    voided: bool = False
    document_number: str | None = None
    rebill_invoice_numbers: tuple[str, ...] = ()


def split_document_numbers(text: str | None) -> tuple[str, ...]:
    """Semicolon-separated document numbers, trimmed, blanks and repeats dropped."""
    numbers: list[str] = []
    for part in (text or "").split(";"):
        part = part.strip()
        if part and part not in numbers:
            numbers.append(part)
    return tuple(numbers)


@dataclass(frozen=True)
class InvoiceLine:
    """One line of an invoice candidate."""

    external_line_id: str | None
    item: str | None
    amount: Decimal
    sub_bu: str | None = None


@dataclass(frozen=True)
class InvoiceCandidate:
    """An invoice presented for admission against an order."""

    external_opportunity_id: str | None
    customer_id: str | None
    currency: str | None
    lines: tuple[InvoiceLine, ...] = ()
    start_date: date | None = None
    end_date: date | None = None
    invoice_id: UUID | None = None
    customer_requires_order: bool | None = None
    document_number: str | None = None
    is_credit_rebill: bool = False
    original_credit_numbers: tuple[str, ...] = ()

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


LineMonthKey = tuple[str, CalendarMonth]


def _lookup(figure: str, mapping: Mapping | None, key) -> Decimal:
    if mapping is None:
        raise AggregationError(figure)
    return mapping.get(key, ZERO)


@dataclass(frozen=True)
class BudgetAggregates:
    """Pre-computed invoiced and credited figures for one order.

    Figures exclude the invoice currently being validated.  Credited
    figures are absolute values.
    """

    total_invoiced: Decimal | None = None
    total_credited: Decimal | None = None
    month_invoiced: Mapping[CalendarMonth, Decimal] | None = None
    month_credited: Mapping[CalendarMonth, Decimal] | None = None
    line_month_invoiced: Mapping[LineMonthKey, Decimal] | None = None
    line_month_credited: Mapping[LineMonthKey, Decimal] | None = None

    def require_total_invoiced(self) -> Decimal:
        if self.total_invoiced is None:
            raise AggregationError("total_invoiced")
        return self.total_invoiced

    def require_total_credited(self) -> Decimal:
        if self.total_credited is None:
            raise AggregationError("total_credited")
        return self.total_credited

    def invoiced_in(self, month: CalendarMonth) -> Decimal:
        return _lookup("month_invoiced", self.month_invoiced, month)

    def credited_in(self, month: CalendarMonth) -> Decimal:
        return _lookup("month_credited", self.month_credited, month)

    def line_invoiced_in(self, line_id: str, month: CalendarMonth) -> Decimal:
        return _lookup("line_month_invoiced", self.line_month_invoiced, (line_id, month))

    def line_credited_in(self, line_id: str, month: CalendarMonth) -> Decimal:
        return _lookup("line_month_credited", self.line_month_credited, (line_id, month))

    @property
    def net_invoiced(self) -> Decimal:
        return self.require_total_invoiced() - self.require_total_credited()


@dataclass(frozen=True)
class KeyClaim:
    """External keys held by one order, used for duplicate detection."""

    order_id: UUID
    closed: bool
    external_opportunity_id: str | None = None
    external_line_ids: tuple[str, ...] = field(default_factory=tuple)
