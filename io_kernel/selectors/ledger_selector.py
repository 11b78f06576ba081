"""
Module: io_kernel.selectors.ledger_selector
Responsibility: Invoice and credit references linked to an insertion order.
Architecture position: Kernel > Selectors.  Returns raw references; the
    aggregation arithmetic lives in io_engines.ledger_aggregation.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from io_kernel.domain.billing import CreditRef, InvoiceRef
from io_kernel.models.billing import BillingDocumentModel, DocumentKind
from io_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[BillingDocumentModel]):
    """Queries over billing documents."""

    def _documents(self, order_id: UUID, kind: DocumentKind) -> list:
        rows = self.session.execute(
            select(BillingDocumentModel)
            .where(
                BillingDocumentModel.linked_io_id == order_id,
                BillingDocumentModel.kind == kind.value,
            )
            .order_by(BillingDocumentModel.start_date, BillingDocumentModel.id)
        ).scalars().all()
        return [row.to_ref() for row in rows]

    def invoices_for(self, order_id: UUID) -> list[InvoiceRef]:
        return self._documents(order_id, DocumentKind.INVOICE)

    def credits_for(self, order_id: UUID) -> list[CreditRef]:
        return self._documents(order_id, DocumentKind.CREDIT)
