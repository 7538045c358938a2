"""
Supplier Domain Models.

Directory records (suppliers, their delivery zones and product offers)
and the result of assigning a supplier to an order item.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from market_modules.orders.models import Order


@dataclass(frozen=True)
class Supplier:
    """A materials supplier."""
    id: UUID
    name: str
    active: bool = True


@dataclass(frozen=True)
class DeliveryZone:
    """A circle (centre plus radius) a supplier delivers into, with its flat delivery cost."""
    id: UUID
    supplier_id: UUID
    address: str
    lat: float
    long: float
    radius_km: float
    delivery_cost: Decimal = Decimal("0")


@dataclass(frozen=True)
class SupplierOffer:
    """A supplier's unit cost for one product."""
    id: UUID
    supplier_id: UUID
    product_id: UUID
    unit_cost: Decimal
    active: bool = True


@dataclass(frozen=True)
class AssignmentResult:
    """
    Outcome of ``assign_supplier``.

    ``reconfirmation_required`` is set when a previously assigned supplier
    had confirmed the item or any of its deliveries; those confirmations
    were cleared and the new supplier must confirm again.
    """
    order: Order
    item_id: UUID
    supplier_id: UUID
    offer_id: UUID
    previous_supplier_id: UUID | None
    reconfirmation_required: bool
    deliveries_reset: int = 0
    workflow_advanced: bool = False
