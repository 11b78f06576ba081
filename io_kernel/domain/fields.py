"""
Field descriptor tables (``io_kernel.domain.fields``).

Responsibility
--------------
Declares which insertion order and line fields are compared when deciding
whether an edit needs re-approval, and how each one is compared.  Date
fields are compared by instant rather than by their textual form, so a
``date`` and the equivalent midnight-UTC ``datetime`` read as equal.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Consumed by ``io_engines.retrigger``
(re-approval tables), ``io_engines.transition`` (``TOTALS_FIELDS`` for the
totals-match precondition) and ``io_engines.integrity``
(``LINE_PERIOD_FIELDS`` and ``CAMPAIGN_PERIOD_FIELDS``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class FieldKind(str, Enum):
    DATE = "date"
    SCALAR = "scalar"


def normalize_instant(value: Any) -> datetime | None:
    """Return ``value`` as an aware UTC datetime, or None when empty.

    Naive datetimes and plain dates are read as UTC.  ISO strings are
    parsed first.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Cannot read {value!r} as a date")


def _normalize_scalar(value: Any) -> Any:
    if value == "":
        return None
    if isinstance(value, Decimal):
        # 100 and 100.00 are the same amount
        return value.normalize()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class FieldDescriptor:
    """A named field with its comparison kind."""

    name: str
    kind: FieldKind
    label: str

    def read(self, obj: Any) -> Any:
        raw = getattr(obj, self.name)
        if self.kind is FieldKind.DATE:
            return normalize_instant(raw)
        return _normalize_scalar(raw)

    def differs(self, old: Any, new: Any) -> bool:
        return self.read(old) != self.read(new)


def _d(name: str, label: str) -> FieldDescriptor:
    return FieldDescriptor(name, FieldKind.DATE, label)


def _s(name: str, label: str) -> FieldDescriptor:
    return FieldDescriptor(name, FieldKind.SCALAR, label)


HEADER_RETRIGGER_FIELDS: tuple[FieldDescriptor, ...] = (
    _s("customer_id", "Customer"),
    _d("order_date", "Date"),
    _s("currency", "Currency"),
    _s("payment_terms", "Payment Terms"),
    _s("external_opportunity_id", "Salesforce Opportunity ID"),
    _s("opportunity_name", "Opportunity Name"),
    _s("parent_opportunity_id", "Parent Opportunity ID"),
    _s("advertiser", "Advertiser"),
    _s("advertiser_id", "Advertiser ID"),
    _s("campaign_id", "Campaign ID"),
    _s("campaign_name", "Campaign Name"),
    _d("campaign_start", "Campaign Start Date"),
    _d("campaign_end", "Campaign End Date"),
    _s("agency_name", "Agency Name"),
    _s("salesperson", "Salesperson"),
    _s("account_manager", "Account Manager"),
    _s("external_opportunity_total", "SalesForce Opportunity Total"),
    _s("budget_type", "Budget Type"),
    _s("order_type", "Order Type"),
)

LINE_RETRIGGER_FIELDS: tuple[FieldDescriptor, ...] = (
    _s("item", "Item"),
    _s("description", "Description"),
    _s("quantity", "Quantity"),
    _s("rate", "Rate"),
    _s("amount", "Amount"),
    _s("sub_bu", "Sub BU"),
    _s("fin_section", "Financial Section"),
    _s("department", "Department"),
    _s("location", "Location"),
    _s("cost_center", "Cost Center"),
    _d("recognition_start", "Rev Rec Start Date"),
    _d("recognition_end", "Rev Rec End Date"),
    _s("external_line_id", "Salesforce Order Line ID"),
    _s("product_code", "Product Code"),
)

TOTALS_FIELDS: tuple[FieldDescriptor, ...] = (
    _s("order_total", "IO Total"),
    _s("external_opportunity_total", "SalesForce Opportunity Total"),
)

LINE_PERIOD_FIELDS: tuple[FieldDescriptor, ...] = (
    _d("recognition_start", "Rev Rec Start Date"),
    _d("recognition_end", "Rev Rec End Date"),
)

CAMPAIGN_PERIOD_FIELDS: tuple[FieldDescriptor, ...] = (
    _d("campaign_start", "Campaign Start Date"),
    _d("campaign_end", "Campaign End Date"),
)
