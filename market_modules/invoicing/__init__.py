"""
Invoicing Module.

Partial invoices over selected deliveries, their lifecycle and the
scheduled overdue job.  Totals come from ``market_engines.invoicing``.
"""

from market_modules.invoicing.models import (
    Invoice,
    InvoiceableDelivery,
    InvoiceLine,
    InvoicePreview,
    InvoiceStatus,
    InvoiceSummary,
)
from market_modules.invoicing.numbering import (
    InvoiceNumberAuthority,
    SequenceInvoiceNumberAuthority,
)
from market_modules.invoicing.workflows import INVOICE_WORKFLOW

__all__ = [
    "Invoice",
    "InvoiceableDelivery",
    "InvoiceLine",
    "InvoicePreview",
    "InvoiceStatus",
    "InvoiceSummary",
    "InvoiceNumberAuthority",
    "SequenceInvoiceNumberAuthority",
    "INVOICE_WORKFLOW",
]
