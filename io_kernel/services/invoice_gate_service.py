"""
InvoiceGateService -- Admission of invoices against insertion orders.

Responsibility:
    Resolves the order an invoice candidate names, folds the billing
    documents already linked to it into ``BudgetAggregates`` and runs the
    admission engine.  Also records and voids billing documents so the
    ledger stays current.

Architecture position:
    Kernel > Services.  Reads through ``OrderSelector`` / ``LedgerSelector``;
    decisions are made by ``io_engines.admission`` and
    ``io_engines.budget``.

Invariants enforced:
    - The candidate invoice never counts against itself: aggregates exclude
      ``candidate.invoice_id``.
    - ``record_invoice`` admits before writing; a rejected invoice writes
      nothing.  A skipped invoice still drops rows stored under its id.
    - Linking a rebill invoice to its credit memos never blocks the invoice.
    - Every mutating method commits on success and rolls back on failure.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from io_kernel.domain.billing import (
    BudgetAggregates,
    CreditRef,
    InvoiceCandidate,
    InvoiceRef,
)
from io_kernel.domain.orders import Actor
from io_kernel.domain.policy import DEFAULT_GATING_POLICY, GatingPolicy
from io_kernel.logging_config import LogContext, get_logger
from io_kernel.models.billing import BillingDocumentModel, DocumentKind
from io_kernel.selectors.ledger_selector import LedgerSelector
from io_kernel.selectors.order_selector import OrderSelector

from io_engines.admission import AdmissionResult, admit
from io_engines.budget import amount_invoiced
from io_engines.ledger_aggregation import aggregate_documents

logger = get_logger("services.invoice_gate")


class InvoiceGateService:
    """Host for the invoice admission check."""

    def __init__(self, session: Session, policy: GatingPolicy | None = None):
        self._session = session
        self._policy = policy or DEFAULT_GATING_POLICY
        self._orders = OrderSelector(session)
        self._ledger = LedgerSelector(session)

    def aggregates_for(
        self, order_id: UUID, exclude_invoice_id: UUID | None = None,
    ) -> BudgetAggregates:
        return aggregate_documents(
            order_id,
            self._ledger.invoices_for(order_id),
            self._ledger.credits_for(order_id),
            exclude_invoice_id=exclude_invoice_id,
        )

    def admit(self, candidate: InvoiceCandidate) -> AdmissionResult:
        """Ok/Reject verdict for ``candidate``; nothing is written."""
        with LogContext.bind(
            invoice_id=str(candidate.invoice_id) if candidate.invoice_id else None,
        ):
            order = self._orders.resolve_by_opportunity(candidate.external_opportunity_id or "")
            if order is None:
                aggregates = BudgetAggregates()
            else:
                aggregates = self.aggregates_for(order.id, candidate.invoice_id)
            result = admit(candidate, order, aggregates, self._policy)
            logger.info(
                "invoice_admission_decided",
                extra={
                    "admitted": result.admitted,
                    "skipped": result.skipped,
                    "order_id": str(order.id) if order else None,
                    "error_code": result.error.code if result.error else None,
                },
            )
            return result

    def record_invoice(self, candidate: InvoiceCandidate, actor: Actor) -> UUID:
        """Admit ``candidate`` and store it as billing rows; returns the invoice id.

        An existing ``invoice_id`` is treated as an edit: its previous rows
        are replaced.  An edit that is no longer gated only drops the old
        rows.  Raises the admission error on rejection.

        A gated credit-and-rebill invoice is then linked to the credit memos
        it replaces.  Linking runs after the invoice is committed and never
        fails the call.
        """
        invoice_id = candidate.invoice_id or uuid4()
        with LogContext.bind(invoice_id=str(invoice_id), actor_id=str(actor.user_id)):
            try:
                result = self.admit(candidate)
                result.raise_for_error()

                removed = self._session.execute(
                    delete(BillingDocumentModel).where(
                        BillingDocumentModel.document_id == invoice_id,
                        BillingDocumentModel.kind == DocumentKind.INVOICE.value,
                    )
                ).rowcount
                if result.skipped:
                    self._session.flush()
                    self._session.commit()
                    logger.info("invoice_not_gated", extra={"rows_removed": removed})
                    return invoice_id

                order = self._orders.resolve_by_opportunity(candidate.external_opportunity_id)
                for line in candidate.lines:
                    ref = InvoiceRef(
                        document_id=invoice_id,
                        linked_io_id=order.id,
                        amount=line.amount,
                        linked_line_id=line.external_line_id,
                        start_date=candidate.start_date,
                        end_date=candidate.end_date,
                        document_number=candidate.document_number,
                    )
                    self._session.add(BillingDocumentModel.from_ref(ref, actor.user_id))
                self._session.flush()
                self._session.commit()
                logger.info(
                    "invoice_recorded",
                    extra={"order_id": str(order.id), "amount": candidate.total},
                )
            except Exception:
                self._session.rollback()
                raise

            if candidate.is_credit_rebill:
                self._link_rebill(candidate, actor)
            return invoice_id

    def _link_rebill(self, candidate: InvoiceCandidate, actor: Actor) -> None:
        """Append the invoice number to every credit memo it rebills."""
        if not candidate.document_number:
            logger.error("rebill_invoice_number_missing")
            return
        try:
            linked: list[str] = []
            for credit_number in candidate.original_credit_numbers:
                rows = self._session.execute(
                    select(BillingDocumentModel).where(
                        BillingDocumentModel.kind == DocumentKind.CREDIT.value,
                        BillingDocumentModel.document_number == credit_number,
                    )
                ).scalars().all()
                if not rows:
                    logger.warning(
                        "rebill_credit_not_found", extra={"credit_number": credit_number},
                    )
                    continue
                for row in rows:
                    if row.add_rebill_invoice(candidate.document_number):
                        row.updated_by_id = actor.user_id
                linked.append(credit_number)
            self._session.flush()
            self._session.commit()
            logger.info(
                "credit_rebill_linked",
                extra={"invoice_number": candidate.document_number, "credits": linked},
            )
        except Exception:
            self._session.rollback()
            logger.error("rebill_link_failed", exc_info=True)

    def record_credit(self, ref: CreditRef, actor: Actor) -> None:
        with LogContext.bind(actor_id=str(actor.user_id)):
            try:
                self._session.add(BillingDocumentModel.from_ref(ref, actor.user_id))
                self._session.flush()
                self._session.commit()
                logger.info(
                    "credit_recorded",
                    extra={"order_id": str(ref.linked_io_id), "amount": ref.amount},
                )
            except Exception:
                self._session.rollback()
                raise

    def void_document(self, document_id: UUID, actor: Actor) -> int:
        """Mark every row of ``document_id`` voided; returns the row count."""
        try:
            rows = self._session.execute(
                select(BillingDocumentModel).where(
                    BillingDocumentModel.document_id == document_id,
                )
            ).scalars().all()
            for row in rows:
                row.voided = True
                row.updated_by_id = actor.user_id
            self._session.flush()
            self._session.commit()
            logger.info(
                "billing_document_voided",
                extra={"document_id": str(document_id), "rows": len(rows)},
            )
            return len(rows)
        except Exception:
            self._session.rollback()
            raise

    def amount_invoiced(self, order_id: UUID) -> Decimal:
        """Informational net invoiced amount for an order."""
        return amount_invoiced(self.aggregates_for(order_id))
