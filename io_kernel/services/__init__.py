"""Services for the insertion order kernel (write side)."""

from io_kernel.services.invoice_gate_service import InvoiceGateService
from io_kernel.services.order_service import OrderService

__all__ = [
    "InvoiceGateService",
    "OrderService",
]
