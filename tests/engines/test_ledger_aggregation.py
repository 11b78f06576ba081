"""
Tests for folding invoice and credit references into BudgetAggregates.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from io_kernel.domain.billing import CalendarMonth, CreditRef, InvoiceRef
from io_engines.ledger_aggregation import aggregate_documents, months_spanned

MARCH = CalendarMonth(2026, 3)
APRIL = CalendarMonth(2026, 4)


def _invoice(order_id, amount, line_id="L-1", start=date(2026, 3, 1), end=date(2026, 3, 31), **kw):
    return InvoiceRef(
        document_id=kw.pop("document_id", uuid4()),
        linked_io_id=order_id,
        amount=Decimal(amount),
        linked_line_id=line_id,
        start_date=start,
        end_date=end,
        **kw,
    )


def _credit(order_id, amount, line_id="L-1", start=date(2026, 3, 1), end=date(2026, 3, 31), **kw):
    return CreditRef(
        document_id=uuid4(),
        linked_io_id=order_id,
        amount=Decimal(amount),
        linked_line_id=line_id,
        start_date=start,
        end_date=end,
        **kw,
    )


class TestMonthsSpanned:

    def test_single_month(self):
        assert months_spanned(date(2026, 3, 5), date(2026, 3, 6)) == [MARCH]

    def test_year_boundary(self):
        assert months_spanned(date(2025, 12, 20), date(2026, 1, 10)) == [
            CalendarMonth(2025, 12), CalendarMonth(2026, 1),
        ]

    def test_missing_or_inverted_range(self):
        assert months_spanned(None, date(2026, 3, 1)) == []
        assert months_spanned(date(2026, 4, 1), date(2026, 3, 1)) == []


class TestAggregateDocuments:

    def test_totals_and_net(self):
        order_id = uuid4()
        aggregates = aggregate_documents(
            order_id,
            [_invoice(order_id, "400"), _invoice(order_id, "100")],
            [_credit(order_id, "-75")],
        )
        assert aggregates.total_invoiced == Decimal("500")
        assert aggregates.total_credited == Decimal("75")
        assert aggregates.net_invoiced == Decimal("425")

    def test_voided_and_foreign_documents_excluded(self):
        order_id = uuid4()
        aggregates = aggregate_documents(
            order_id,
            [
                _invoice(order_id, "100"),
                _invoice(order_id, "999", voided=True),
                _invoice(uuid4(), "999"),
            ],
            [_credit(order_id, "50", voided=True)],
        )
        assert aggregates.total_invoiced == Decimal("100")
        assert aggregates.total_credited == Decimal("0")

    def test_candidate_excluded_from_its_own_figures(self):
        order_id = uuid4()
        editing = uuid4()
        aggregates = aggregate_documents(
            order_id,
            [
                _invoice(order_id, "300", document_id=editing),
                _invoice(order_id, "200", line_id="L-2", document_id=editing),
                _invoice(order_id, "40"),
            ],
            [],
            exclude_invoice_id=editing,
        )
        assert aggregates.total_invoiced == Decimal("40")
        assert aggregates.line_invoiced_in("L-2", MARCH) == Decimal("0")

    def test_month_and_line_month_buckets(self):
        order_id = uuid4()
        aggregates = aggregate_documents(
            order_id,
            [
                _invoice(order_id, "100"),
                _invoice(order_id, "60", line_id="L-2",
                         start=date(2026, 3, 20), end=date(2026, 4, 10)),
            ],
            [_credit(order_id, "-10", line_id="L-2", start=date(2026, 4, 1), end=date(2026, 4, 30))],
        )
        assert aggregates.invoiced_in(MARCH) == Decimal("160")
        assert aggregates.invoiced_in(APRIL) == Decimal("60")
        assert aggregates.credited_in(APRIL) == Decimal("10")
        assert aggregates.credited_in(MARCH) == Decimal("0")
        assert aggregates.line_invoiced_in("L-1", MARCH) == Decimal("100")
        assert aggregates.line_invoiced_in("L-2", APRIL) == Decimal("60")
        assert aggregates.line_credited_in("L-2", APRIL) == Decimal("10")

    def test_undated_document_counts_only_in_total(self):
        order_id = uuid4()
        aggregates = aggregate_documents(
            order_id, [_invoice(order_id, "80", start=None, end=None)], [],
        )
        assert aggregates.total_invoiced == Decimal("80")
        assert aggregates.month_invoiced == {}

    def test_empty_inputs_supply_zero_figures(self):
        aggregates = aggregate_documents(uuid4(), [], [])
        assert aggregates.net_invoiced == Decimal("0")
        assert aggregates.invoiced_in(MARCH) == Decimal("0")
