"""
Order Pricing Engine.

Pure functions with deterministic behavior. No I/O.

Computes the supplier cost, customer price, admin margin, GST and discount
for every line item of an order and for the order as a whole.  The same
per-item helpers are used by the invoice engine so that an invoice line
and the order costing can never disagree about a unit price.

Formulas (admin_margin m, gst_rate g):

    base_material_cost     = supplier_unit_cost * quantity
    item_customer_price    = quoted_price * quantity            (quoted)
                           = base_material_cost * (1 + m)       (otherwise)
    item_supplier_cost     = base_material_cost - supplier_discount
    delivery_customer_cost = supplier_delivery_cost * (1 + m)

    gst            = (items + delivery) * g
    customer_total = items + delivery + gst + other_charges - discount
    supplier_total = sum(item_supplier_cost) + sum(supplier_delivery_cost)
    profit         = customer_total - supplier_total - gst
    profit_margin  = profit / supplier_total   (0 when supplier_total is 0)

Supplier discounts lower what we pay the supplier; they are never passed
on to the customer.

Rounding: full precision internally, ROUND_HALF_UP to the cent on the
final totals only.

Usage:
    from market_engines.pricing import (
        PricingConfig,
        PricingInput,
        compute_order_costing,
    )

    items = [
        PricingInput(item_id=item_id, quantity=Decimal("5"),
                     supplier_unit_cost=Decimal("10")),
    ]
    costing = compute_order_costing(
        items=items,
        discount=Decimal("0"),
        other_charges=Decimal("0"),
        config=PricingConfig(),
    )
    costing.customer_total  # Decimal("82.50")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from market_engines.tracer import traced_engine
from market_kernel.db.types import ZERO, round_money, round_storage
from market_kernel.exceptions import NegativeTotalError, ValidationError
from market_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")


# ============================================================================
# Configuration
# ============================================================================

_ONE = Decimal("1")
_MARGIN_PLACES = 4


class NegativeTotalPolicy(str, Enum):
    """What to do when a discount drives a customer total below zero."""

    REJECT = "reject"
    CLAMP = "clamp"


@dataclass(frozen=True)
class PricingConfig:
    """
    Rates injected into every pricing call.

    Contract:
        One value per request; the engine never reads module-level rates.

    Guarantees:
        - admin_margin >= 0
        - 0 <= gst_rate < 1
        - currency is a 3-letter code
    """

    admin_margin: Decimal = Decimal("0.50")
    gst_rate: Decimal = Decimal("0.10")
    currency: str = "AUD"
    negative_total_policy: NegativeTotalPolicy = NegativeTotalPolicy.REJECT

    def __post_init__(self) -> None:
        if self.admin_margin < 0:
            raise ValueError("admin_margin must be non-negative")
        if not (ZERO <= self.gst_rate < _ONE):
            raise ValueError("gst_rate must be in [0, 1)")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code: {self.currency!r}")
        if not isinstance(self.negative_total_policy, NegativeTotalPolicy):
            object.__setattr__(
                self,
                "negative_total_policy",
                NegativeTotalPolicy(self.negative_total_policy),
            )

    @property
    def markup_factor(self) -> Decimal:
        return _ONE + self.admin_margin


# ============================================================================
# Value Objects
# ============================================================================


@dataclass(frozen=True)
class PricingInput:
    """
    Pricing inputs for one order item.

    An item is *priced* when it has a supplier and a supplier unit cost.
    Unpriced items are excluded from every total.
    """

    item_id: Any
    quantity: Decimal
    supplier_unit_cost: Decimal | None = None
    supplier_discount: Decimal = ZERO
    supplier_delivery_cost: Decimal = ZERO
    quoted_price: Decimal | None = None
    has_supplier: bool = True

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError(
                f"Item {self.item_id}: quantity must be positive", field="quantity"
            )
        if self.supplier_unit_cost is not None and self.supplier_unit_cost < 0:
            raise ValidationError(
                f"Item {self.item_id}: unit cost must be non-negative",
                field="supplier_unit_cost",
            )
        if self.supplier_discount < 0:
            raise ValidationError(
                f"Item {self.item_id}: supplier discount must be non-negative",
                field="supplier_discount",
            )
        if self.supplier_delivery_cost < 0:
            raise ValidationError(
                f"Item {self.item_id}: delivery cost must be non-negative",
                field="supplier_delivery_cost",
            )
        if self.quoted_price is not None and self.quoted_price < 0:
            raise ValidationError(
                f"Item {self.item_id}: quoted price must be non-negative",
                field="quoted_price",
            )

    @property
    def is_priced(self) -> bool:
        return self.has_supplier and self.supplier_unit_cost is not None

    @property
    def is_quoted(self) -> bool:
        return self.quoted_price is not None


@dataclass(frozen=True)
class ItemCosting:
    """Per-item breakdown at storage precision (9 dp)."""

    item_id: Any
    quantity: Decimal
    is_quoted: bool
    customer_unit_price: Decimal
    customer_price: Decimal
    supplier_cost: Decimal
    supplier_discount: Decimal
    supplier_delivery_cost: Decimal
    delivery_customer_cost: Decimal


@dataclass(frozen=True)
class OrderCosting:
    """
    Whole-order pricing result.

    Totals are rounded half-up to the cent.  ``unpriced_item_ids`` lists
    items left out of every total.
    """

    currency: str
    item_total: Decimal
    delivery_total: Decimal
    gst: Decimal
    other_charges: Decimal
    discount: Decimal
    customer_total: Decimal
    supplier_item_total: Decimal
    supplier_delivery_total: Decimal
    supplier_discount_total: Decimal
    supplier_total: Decimal
    profit: Decimal
    profit_margin: Decimal
    clamped: bool = False
    items: tuple[ItemCosting, ...] = field(default_factory=tuple)
    unpriced_item_ids: tuple[Any, ...] = field(default_factory=tuple)

    @property
    def pre_discount_total(self) -> Decimal:
        return round_money(
            self.item_total + self.delivery_total + self.gst + self.other_charges
        )


# ============================================================================
# Per-item helpers
# ============================================================================


def _require_priced(item: PricingInput) -> Decimal:
    if not item.is_priced:
        raise ValidationError(
            f"Item {item.item_id} has no supplier unit cost", field="supplier_unit_cost"
        )
    return item.supplier_unit_cost


def base_material_cost(item: PricingInput) -> Decimal:
    """supplier_unit_cost * quantity."""
    return _require_priced(item) * item.quantity


def customer_unit_price(item: PricingInput, config: PricingConfig) -> Decimal:
    """Quoted price verbatim, otherwise unit cost marked up by the admin margin."""
    if item.quoted_price is not None:
        return item.quoted_price
    return _require_priced(item) * config.markup_factor


def item_customer_price(item: PricingInput, config: PricingConfig) -> Decimal:
    if item.quoted_price is not None:
        return item.quoted_price * item.quantity
    return base_material_cost(item) * config.markup_factor


def item_supplier_cost(item: PricingInput) -> Decimal:
    return base_material_cost(item) - item.supplier_discount


def delivery_customer_cost(item: PricingInput, config: PricingConfig) -> Decimal:
    return item.supplier_delivery_cost * config.markup_factor


def apply_discount(
    pre_discount_total: Decimal,
    discount: Decimal,
    policy: NegativeTotalPolicy,
) -> tuple[Decimal, bool]:
    """
    Subtract a discount under the negative-total policy.

    Returns:
        (total, clamped)

    Raises:
        ValidationError: discount is negative.
        NegativeTotalError: total < 0 under the reject policy.
    """
    if discount < 0:
        raise ValidationError("Discount must be non-negative", field="discount")
    total = pre_discount_total - discount
    if total >= 0:
        return total, False
    if policy == NegativeTotalPolicy.CLAMP:
        logger.warning(
            "negative_total_clamped",
            extra={"total": str(total), "discount": str(discount)},
        )
        return ZERO, True
    raise NegativeTotalError(total=str(round_money(total)), discount=str(discount))


def cost_item(item: PricingInput, config: PricingConfig) -> ItemCosting:
    """Full breakdown for a single priced item."""
    return ItemCosting(
        item_id=item.item_id,
        quantity=item.quantity,
        is_quoted=item.is_quoted,
        customer_unit_price=round_storage(customer_unit_price(item, config)),
        customer_price=round_storage(item_customer_price(item, config)),
        supplier_cost=round_storage(item_supplier_cost(item)),
        supplier_discount=item.supplier_discount,
        supplier_delivery_cost=item.supplier_delivery_cost,
        delivery_customer_cost=round_storage(delivery_customer_cost(item, config)),
    )


# ============================================================================
# Order costing
# ============================================================================


@traced_engine(
    "pricing", "1.0", fingerprint_fields=("items", "discount", "other_charges")
)
def compute_order_costing(
    *,
    items: Sequence[PricingInput],
    discount: Decimal,
    other_charges: Decimal,
    config: PricingConfig,
) -> OrderCosting:
    """
    Price a whole order.

    Preconditions:
        discount >= 0.

    Postconditions:
        customer_total + discount - other_charges - gst - delivery_total
        - item_total == 0 within one cent per rounded component.

    Raises:
        ValidationError: negative discount.
        NegativeTotalError: discount exceeds the pre-discount total and
            the policy is reject.
    """
    item_total = ZERO
    delivery_total = ZERO
    supplier_item_total = ZERO
    supplier_delivery_total = ZERO
    supplier_discount_total = ZERO
    costed: list[ItemCosting] = []
    unpriced: list[Any] = []

    for item in items:
        if not item.is_priced:
            unpriced.append(item.item_id)
            continue
        item_total += item_customer_price(item, config)
        delivery_total += delivery_customer_cost(item, config)
        supplier_item_total += base_material_cost(item)
        supplier_delivery_total += item.supplier_delivery_cost
        supplier_discount_total += item.supplier_discount
        costed.append(cost_item(item, config))

    gst = (item_total + delivery_total) * config.gst_rate
    pre_discount = item_total + delivery_total + gst + other_charges
    customer_total, clamped = apply_discount(
        pre_discount, discount, config.negative_total_policy
    )

    supplier_total = supplier_item_total - supplier_discount_total + supplier_delivery_total
    profit = customer_total - supplier_total - gst
    if supplier_total == 0:
        profit_margin = ZERO
    else:
        profit_margin = round_money(profit / supplier_total, _MARGIN_PLACES)

    if unpriced:
        logger.debug(
            "unpriced_items_excluded",
            extra={"unpriced_count": len(unpriced)},
        )

    return OrderCosting(
        currency=config.currency,
        item_total=round_money(item_total),
        delivery_total=round_money(delivery_total),
        gst=round_money(gst),
        other_charges=round_money(other_charges),
        discount=round_money(discount),
        customer_total=round_money(customer_total),
        supplier_item_total=round_money(supplier_item_total),
        supplier_delivery_total=round_money(supplier_delivery_total),
        supplier_discount_total=round_money(supplier_discount_total),
        supplier_total=round_money(supplier_total),
        profit=round_money(profit),
        profit_margin=profit_margin,
        clamped=clamped,
        items=tuple(costed),
        unpriced_item_ids=tuple(unpriced),
    )
