"""
Invoicing Domain Models (``market_modules.invoicing.models``).

Frozen value objects for partial invoices, their lines, previews and the
invoiceable-deliveries view.  All money is ``Decimal``.
"""

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from uuid import UUID


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    VOID = "void"


@dataclass(frozen=True)
class InvoiceLine:
    """One invoiced delivery."""
    order_item_id: UUID
    delivery_id: UUID
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    delivery_cost: Decimal
    line_total: Decimal
    delivery_date: date
    delivery_time: time | None = None
    id: UUID | None = None


@dataclass(frozen=True)
class Invoice:
    """A partial invoice over a set of deliveries of one order."""
    id: UUID
    order_id: UUID
    invoice_number: str
    status: InvoiceStatus
    currency: str
    subtotal: Decimal
    delivery_total: Decimal
    gst_tax: Decimal
    discount: Decimal
    total_amount: Decimal
    issued_date: date
    due_date: date
    created_by_id: UUID
    notes: str | None = None
    lines: tuple[InvoiceLine, ...] = field(default_factory=tuple)

    @property
    def delivery_ids(self) -> tuple[UUID, ...]:
        return tuple(line.delivery_id for line in self.lines)


@dataclass(frozen=True)
class InvoicePreview:
    """Side-effect-free invoice computation for a delivery selection."""
    order_id: UUID
    currency: str
    lines: tuple[InvoiceLine, ...]
    subtotal: Decimal
    delivery_total: Decimal
    gst_tax: Decimal
    discount: Decimal
    total_amount: Decimal
    clamped: bool = False


@dataclass(frozen=True)
class InvoiceSummary:
    """List view of an order's invoices."""
    id: UUID
    invoice_number: str
    status: InvoiceStatus
    total_amount: Decimal
    issued_date: date
    due_date: date
    items_count: int
    created_by_id: UUID


@dataclass(frozen=True)
class InvoiceableDelivery:
    """A delivery with its invoicing state and per-delivery pricing."""
    delivery_id: UUID
    order_item_id: UUID
    product_name: str
    quantity: Decimal
    delivery_date: date
    is_invoiced: bool
    delivery_time: time | None = None
    invoice_id: UUID | None = None
    unit_price: Decimal | None = None
    delivery_cost: Decimal | None = None
