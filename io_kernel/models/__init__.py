"""SQLAlchemy ORM models for insertion orders and billing documents."""

from io_kernel.models.billing import BillingDocumentModel, DocumentKind
from io_kernel.models.insertion_order import InsertionOrderLineModel, InsertionOrderModel

__all__ = [
    "BillingDocumentModel",
    "DocumentKind",
    "InsertionOrderLineModel",
    "InsertionOrderModel",
]
