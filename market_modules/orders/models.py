"""
Order Domain Models (``market_modules.orders.models``).

Responsibility
--------------
Frozen dataclass value objects for orders, order items, scheduled
deliveries, payment-status proposals and the order activity log.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
ORM ``to_dto()`` methods and returned to callers by ``OrderService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary and quantity fields use ``Decimal`` -- NEVER ``float``.
* Stored state is tagged (``SupplierConfirmation``, ``ItemPaymentState``,
  ``InvoiceLock``); the familiar booleans are derived properties.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from market_engines.pricing import PricingInput


class OrderWorkflow(str, Enum):
    """Coarse order lifecycle stage."""
    REQUESTED = "requested"
    SUPPLIER_MISSING = "supplier_missing"
    SUPPLIER_ASSIGNED = "supplier_assigned"
    PAYMENT_REQUESTED = "payment_requested"
    ON_HOLD = "on_hold"
    DELIVERED = "delivered"


class PaymentStatus(str, Enum):
    """Client payment state, independent of the workflow stage."""
    PENDING = "pending"
    REQUESTED = "requested"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    PARTIAL_REFUNDED = "partial_refunded"
    REFUNDED = "refunded"


class SupplierConfirmation(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"


class ItemPaymentState(str, Enum):
    """Whether the supplier has been paid for the item."""
    UNPAID = "unpaid"
    PAID = "paid"


class InvoiceLock(str, Enum):
    """Delivery invoicing state. ``invoiced`` is permanent."""
    OPEN = "open"
    INVOICED = "invoiced"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewOrderItem:
    """An item line on a client order placement."""
    product_id: UUID
    product_name: str
    quantity: Decimal
    unit_of_measure: str = "unit"


@dataclass(frozen=True)
class NewDelivery:
    """One leg of a delivery schedule."""
    quantity: Decimal
    delivery_date: date
    delivery_time: time | None = None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Delivery:
    """One scheduled fulfilment of part of an item's quantity."""
    id: UUID
    order_item_id: UUID
    delivery_date: date
    quantity: Decimal
    delivery_time: time | None = None
    invoice_lock: InvoiceLock = InvoiceLock.OPEN
    invoice_id: UUID | None = None
    confirmation: SupplierConfirmation = SupplierConfirmation.UNCONFIRMED

    @property
    def is_invoiced(self) -> bool:
        return self.invoice_lock == InvoiceLock.INVOICED

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation == SupplierConfirmation.CONFIRMED


@dataclass(frozen=True)
class OrderItem:
    """A product line on an order with its supplier pricing."""
    id: UUID
    order_id: UUID
    product_id: UUID
    product_name: str
    quantity: Decimal
    unit_of_measure: str = "unit"
    supplier_id: UUID | None = None
    chosen_offer_id: UUID | None = None
    supplier_unit_cost: Decimal | None = None
    supplier_discount: Decimal = Decimal("0")
    supplier_delivery_cost: Decimal = Decimal("0")
    quoted_price: Decimal | None = None
    confirmation: SupplierConfirmation = SupplierConfirmation.UNCONFIRMED
    payment_state: ItemPaymentState = ItemPaymentState.UNPAID
    deliveries: tuple[Delivery, ...] = field(default_factory=tuple)

    @property
    def has_supplier(self) -> bool:
        return self.supplier_id is not None

    @property
    def is_priced(self) -> bool:
        return self.has_supplier and self.supplier_unit_cost is not None

    @property
    def is_quoted(self) -> bool:
        return self.quoted_price is not None

    @property
    def supplier_confirms(self) -> bool:
        return self.confirmation == SupplierConfirmation.CONFIRMED

    @property
    def is_paid(self) -> bool:
        return self.payment_state == ItemPaymentState.PAID

    @property
    def scheduled_quantity(self) -> Decimal:
        return sum((d.quantity for d in self.deliveries), Decimal("0"))

    @property
    def invoiced_quantity(self) -> Decimal:
        return sum(
            (d.quantity for d in self.deliveries if d.is_invoiced), Decimal("0")
        )

    @property
    def outstanding_quantity(self) -> Decimal:
        return self.quantity - self.scheduled_quantity

    @property
    def is_balanced(self) -> bool:
        return self.scheduled_quantity == self.quantity

    def pricing_input(self) -> PricingInput:
        return PricingInput(
            item_id=self.id,
            quantity=self.quantity,
            supplier_unit_cost=self.supplier_unit_cost,
            supplier_discount=self.supplier_discount,
            supplier_delivery_cost=self.supplier_delivery_cost,
            quoted_price=self.quoted_price,
            has_supplier=self.has_supplier,
        )


@dataclass(frozen=True)
class PaymentProposal:
    """A pending two-phase payment status change."""
    id: UUID
    from_status: PaymentStatus
    to_status: PaymentStatus
    proposed_by_id: UUID
    proposed_at: datetime | None = None


@dataclass(frozen=True)
class Order:
    """A client order."""
    id: UUID
    po_number: str
    client_id: UUID
    delivery_address: str
    workflow: OrderWorkflow
    payment_status: PaymentStatus
    discount: Decimal = Decimal("0")
    other_charges: Decimal = Decimal("0")
    project_id: UUID | None = None
    delivery_lat: float | None = None
    delivery_long: float | None = None
    held_from: OrderWorkflow | None = None
    payment_proposal: PaymentProposal | None = None
    archived_at: datetime | None = None
    archived_by_id: UUID | None = None
    items: tuple[OrderItem, ...] = field(default_factory=tuple)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def is_delivered(self) -> bool:
        return self.workflow == OrderWorkflow.DELIVERED

    @property
    def can_edit(self) -> bool:
        from market_modules.orders.workflows import can_edit

        return can_edit(self)

    @property
    def pricing_visible(self) -> bool:
        from market_modules.orders.workflows import pricing_visible

        return pricing_visible(self.workflow)

    @property
    def has_coordinates(self) -> bool:
        return self.delivery_lat is not None and self.delivery_long is not None

    def item(self, item_id: UUID) -> OrderItem | None:
        for i in self.items:
            if i.id == item_id:
                return i
        return None


@dataclass(frozen=True)
class OrderLogEntry:
    """One entry of the append-only order activity trail."""
    id: UUID
    order_id: UUID
    action: str
    actor_id: UUID
    logged_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
