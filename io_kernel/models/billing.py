"""
ORM model for invoices and credit memos linked to insertion orders.

Only the figures the budget ledger needs are stored: link, amount,
service period and voided flag.  An invoice with several lines is stored
as several rows sharing one ``document_id``.  Rows convert to ``InvoiceRef`` /
``CreditRef`` via ``to_ref()``.

A credit memo that was credited and rebilled keeps the replacing invoice
numbers in ``rebill_invoice_numbers`` as one semicolon-joined string.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from io_kernel.db.base import TrackedBase, UUIDString
from io_kernel.domain.billing import CreditRef, InvoiceRef, split_document_numbers


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    CREDIT = "credit"


class BillingDocumentModel(TrackedBase):
    """Invoice or credit memo linked to an insertion order."""

    __tablename__ = "billing_documents"

    __table_args__ = (
        Index("ix_billing_documents_order", "linked_io_id", "kind"),
        Index("ix_billing_documents_document", "document_id"),
        Index("ix_billing_documents_number", "kind", "document_number"),
    )

    document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    document_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    linked_io_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    linked_line_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rebill_invoice_numbers: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_ref(self) -> InvoiceRef | CreditRef:
        fields = dict(
            document_id=self.document_id,
            linked_io_id=self.linked_io_id,
            amount=self.amount,
            linked_line_id=self.linked_line_id,
            start_date=self.start_date,
            end_date=self.end_date,
            voided=self.voided,
            document_number=self.document_number,
        )
        if self.kind == DocumentKind.INVOICE.value:
            return InvoiceRef(**fields)
        return CreditRef(
            rebill_invoice_numbers=split_document_numbers(self.rebill_invoice_numbers),
            **fields,
        )

    @classmethod
    def from_ref(cls, ref: InvoiceRef | CreditRef, created_by_id: UUID) -> BillingDocumentModel:
        kind = DocumentKind.CREDIT if isinstance(ref, CreditRef) else DocumentKind.INVOICE
        rebills = getattr(ref, "rebill_invoice_numbers", ())
        return cls(
            document_id=ref.document_id,
            kind=kind.value,
            document_number=ref.document_number,
            linked_io_id=ref.linked_io_id,
            linked_line_id=ref.linked_line_id,
            amount=ref.amount,
            start_date=ref.start_date,
            end_date=ref.end_date,
            voided=ref.voided,
            rebill_invoice_numbers=";".join(rebills) or None,
            created_by_id=created_by_id,
        )

    def add_rebill_invoice(self, invoice_number: str) -> bool:
        """Append ``invoice_number`` unless already listed; True when added."""
        numbers = split_document_numbers(self.rebill_invoice_numbers)
        if invoice_number in numbers:
            return False
        self.rebill_invoice_numbers = ";".join(numbers + (invoice_number,))
        return True
