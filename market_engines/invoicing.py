"""
Invoice Aggregation Engine.

Pure functions with deterministic behavior. No I/O.

Turns a selection of deliveries (with their parent item's pricing inputs)
into invoice lines and totals.  Used both for the read-only preview and,
unchanged, inside invoice creation, so a created invoice always equals
the preview taken against the same data.

Per delivery line:

    unit_price    = customer unit price of the parent item
    delivery_cost = delivery_customer_cost(item) * delivery.quantity / item.quantity
    line_total    = unit_price * delivery.quantity + delivery_cost

Totals:

    subtotal       = sum(unit_price * quantity)
    delivery_total = sum(delivery_cost)
    gst_tax        = (subtotal + delivery_total) * gst_rate
    total_amount   = subtotal + delivery_total + gst_tax - discount
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Any, Sequence

from market_engines.pricing import (
    PricingConfig,
    PricingInput,
    apply_discount,
    customer_unit_price,
    delivery_customer_cost,
)
from market_engines.tracer import traced_engine
from market_kernel.db.types import ZERO, round_money, round_storage
from market_kernel.exceptions import EmptySelectionError, ValidationError


@dataclass(frozen=True)
class DeliverySelection:
    """One delivery chosen for invoicing, with its parent item's pricing inputs."""

    delivery_id: Any
    order_item_id: Any
    product_name: str
    quantity: Decimal
    delivery_date: date
    delivery_time: time | None
    item: PricingInput


@dataclass(frozen=True)
class InvoiceLineDraft:
    order_item_id: Any
    delivery_id: Any
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    delivery_cost: Decimal
    line_total: Decimal
    delivery_date: date
    delivery_time: time | None


@dataclass(frozen=True)
class InvoiceDraft:
    """
    Computed invoice content.

    Line values are at storage precision; totals are rounded to the cent.
    """

    currency: str
    lines: tuple[InvoiceLineDraft, ...]
    subtotal: Decimal
    delivery_total: Decimal
    gst_tax: Decimal
    discount: Decimal
    total_amount: Decimal
    clamped: bool = False

    @property
    def delivery_ids(self) -> tuple[Any, ...]:
        return tuple(line.delivery_id for line in self.lines)


def prorated_delivery_cost(
    item: PricingInput,
    delivery_quantity: Decimal,
    config: PricingConfig,
) -> Decimal:
    """The item's customer delivery cost apportioned by delivery quantity."""
    return delivery_customer_cost(item, config) * delivery_quantity / item.quantity


def build_line(selection: DeliverySelection, config: PricingConfig) -> InvoiceLineDraft:
    item = selection.item
    if not item.is_priced:
        raise ValidationError(
            f"Order item {selection.order_item_id} is not priced", field="delivery_ids"
        )
    unit_price = customer_unit_price(item, config)
    delivery_cost = prorated_delivery_cost(item, selection.quantity, config)
    return InvoiceLineDraft(
        order_item_id=selection.order_item_id,
        delivery_id=selection.delivery_id,
        product_name=selection.product_name,
        quantity=selection.quantity,
        unit_price=round_storage(unit_price),
        delivery_cost=round_storage(delivery_cost),
        line_total=round_storage(unit_price * selection.quantity + delivery_cost),
        delivery_date=selection.delivery_date,
        delivery_time=selection.delivery_time,
    )


@traced_engine("invoicing", "1.0", fingerprint_fields=("selections", "discount"))
def build_invoice_draft(
    *,
    selections: Sequence[DeliverySelection],
    discount: Decimal,
    config: PricingConfig,
) -> InvoiceDraft:
    """
    Aggregate the selected deliveries into invoice lines and totals.

    Lines keep the order of ``selections``.

    Raises:
        EmptySelectionError: nothing selected.
        ValidationError: duplicate delivery, unpriced parent item, or
            negative discount.
        NegativeTotalError: discount above the pre-discount total under
            the reject policy.
    """
    if not selections:
        raise EmptySelectionError()

    seen: set[str] = set()
    for s in selections:
        key = str(s.delivery_id)
        if key in seen:
            raise ValidationError(
                f"Delivery {s.delivery_id} selected more than once", field="delivery_ids"
            )
        seen.add(key)

    lines = tuple(build_line(s, config) for s in selections)

    subtotal = ZERO
    delivery_total = ZERO
    for s in selections:
        subtotal += customer_unit_price(s.item, config) * s.quantity
        delivery_total += prorated_delivery_cost(s.item, s.quantity, config)

    gst = (subtotal + delivery_total) * config.gst_rate
    total, clamped = apply_discount(
        subtotal + delivery_total + gst, discount, config.negative_total_policy
    )

    return InvoiceDraft(
        currency=config.currency,
        lines=lines,
        subtotal=round_money(subtotal),
        delivery_total=round_money(delivery_total),
        gst_tax=round_money(gst),
        discount=round_money(discount),
        total_amount=round_money(total),
        clamped=clamped,
    )
