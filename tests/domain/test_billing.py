"""Tests for billing value objects and the aggregate contract."""

from datetime import date
from decimal import Decimal

import pytest

from io_kernel.domain.billing import BudgetAggregates, CalendarMonth, InvoiceCandidate, InvoiceLine
from io_kernel.exceptions import AggregationError


class TestCalendarMonth:

    def test_bounds(self):
        feb = CalendarMonth(2028, 2)
        assert feb.first_day == date(2028, 2, 1)
        assert feb.last_day == date(2028, 2, 29)
        assert feb.label == "2028-02"
        assert str(feb) == "2028-02"

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            CalendarMonth(2026, 13)

    def test_ordering(self):
        assert CalendarMonth(2025, 12) < CalendarMonth(2026, 1)

    def test_overlaps(self):
        march = CalendarMonth(2026, 3)
        assert march.overlaps(date(2026, 2, 15), date(2026, 3, 1))
        assert march.overlaps(date(2026, 3, 31), date(2026, 5, 1))
        assert not march.overlaps(date(2026, 4, 1), date(2026, 4, 30))
        assert not march.overlaps(None, date(2026, 3, 5))


class TestInvoiceCandidate:

    def test_total(self):
        candidate = InvoiceCandidate(
            external_opportunity_id="OPP-1",
            customer_id="C",
            currency="USD",
            lines=(
                InvoiceLine("L1", "X", Decimal("10.10")),
                InvoiceLine("L2", "X", Decimal("5")),
            ),
        )
        assert candidate.total == Decimal("15.10")

    def test_empty_total(self):
        assert InvoiceCandidate("OPP-1", "C", "USD").total == Decimal("0")


class TestBudgetAggregates:

    def test_missing_total_raises(self):
        aggregates = BudgetAggregates(total_invoiced=Decimal("10"))
        with pytest.raises(AggregationError) as exc_info:
            aggregates.net_invoiced
        assert exc_info.value.figure == "total_credited"

    def test_net_invoiced(self):
        aggregates = BudgetAggregates(
            total_invoiced=Decimal("400"), total_credited=Decimal("100"),
        )
        assert aggregates.net_invoiced == Decimal("300")

    def test_supplied_mapping_defaults_missing_key_to_zero(self):
        aggregates = BudgetAggregates(month_invoiced={}, month_credited={})
        assert aggregates.invoiced_in(CalendarMonth(2026, 3)) == Decimal("0")

    def test_unsupplied_mapping_raises(self):
        aggregates = BudgetAggregates(month_invoiced={})
        with pytest.raises(AggregationError):
            aggregates.credited_in(CalendarMonth(2026, 3))

    def test_line_month_lookup(self):
        march = CalendarMonth(2026, 3)
        aggregates = BudgetAggregates(
            line_month_invoiced={("L1", march): Decimal("75")},
            line_month_credited={},
        )
        assert aggregates.line_invoiced_in("L1", march) == Decimal("75")
        assert aggregates.line_credited_in("L1", march) == Decimal("0")
