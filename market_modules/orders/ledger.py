"""
DeliveryLedger -- per-item delivery schedule and balance.

Responsibility:
    Maintain the ordered deliveries of an order item and the balance
    invariant ``sum(delivery.quantity) == item.quantity``.  Deliveries are
    the unit of invoicing: once a delivery is invoiced it is frozen here.

Architecture position:
    Modules > Orders.  Flush-only (``BaseService``).  Called by
    ``OrderService``, which locks the order row and checks the delivered
    lock before any ledger change.

Invariants enforced:
    - Scheduled quantity never exceeds the item quantity.
    - Invoiced deliveries cannot be rescheduled, resized or removed.
    - An item with an invoiced delivery keeps its quantity, delivery cost
      and supplier.
    - Items without a supplier cannot be scheduled.

Failure modes:
    - ValidationError: non-positive quantity, quantity above outstanding.
    - LedgerImbalanceError: replacement split does not cover the item.
    - DeliveryAlreadyInvoicedError: change to an invoiced delivery.
    - UnassignedItemError: scheduling an item with no supplier.
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from market_kernel.db.types import ZERO, to_decimal
from market_kernel.exceptions import (
    DeliveryAlreadyInvoicedError,
    LedgerImbalanceError,
    UnassignedItemError,
    ValidationError,
)
from market_kernel.logging_config import get_logger
from market_kernel.services.base import BaseService
from market_modules.orders.models import (
    InvoiceLock,
    NewDelivery,
    SupplierConfirmation,
)
from market_modules.orders.orm import DeliveryModel, OrderItemModel

logger = get_logger("modules.orders.ledger")


def scheduled_quantity(item: OrderItemModel) -> Decimal:
    return sum((d.quantity for d in item.deliveries), ZERO)


def invoiced_quantity(item: OrderItemModel) -> Decimal:
    return sum((d.quantity for d in item.deliveries if d.is_invoiced), ZERO)


def outstanding_quantity(item: OrderItemModel) -> Decimal:
    """Item quantity not yet covered by any delivery."""
    return item.quantity - scheduled_quantity(item)


def is_balanced(item: OrderItemModel) -> bool:
    return scheduled_quantity(item) == item.quantity


def uninvoiced_deliveries(item: OrderItemModel) -> list[DeliveryModel]:
    return [d for d in item.deliveries if not d.is_invoiced]


def ensure_split_open(item: OrderItemModel, change: str) -> None:
    """
    Refuse ``change`` once any of the item's deliveries is invoiced.

    Each invoice line carries its share of the item's delivery cost,
    ``delivery_cost * delivery.quantity / item.quantity``.  Changing the
    quantity, the delivery cost or the supplier afterwards would make the
    invoiced shares stop adding up to the item's delivery cost.
    """
    invoiced = [str(d.id) for d in item.deliveries if d.is_invoiced]
    if invoiced:
        logger.info(
            "item_change_rejected_invoiced",
            extra={"order_item_id": str(item.id), "change": change},
        )
        raise DeliveryAlreadyInvoicedError(invoiced)


class DeliveryLedger(BaseService[DeliveryModel]):
    """
    Delivery schedule operations for one order item at a time.

    Non-goals:
        - Does NOT check the delivered lock; the caller does.
        - Does NOT flip deliveries to invoiced; only InvoiceService does.
    """

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require_supplier(item: OrderItemModel, operation: str) -> None:
        if item.supplier_id is None:
            raise UnassignedItemError(str(item.id), operation)

    @staticmethod
    def _require_open(delivery: DeliveryModel) -> None:
        if delivery.is_invoiced:
            raise DeliveryAlreadyInvoicedError([str(delivery.id)])

    @staticmethod
    def _positive(quantity: Decimal | int | str) -> Decimal:
        q = to_decimal(quantity)
        if q <= 0:
            raise ValidationError("Delivery quantity must be positive", field="quantity")
        return q

    @staticmethod
    def _next_position(item: OrderItemModel) -> int:
        return max((d.position for d in item.deliveries), default=0) + 1

    def _new_row(
        self,
        item: OrderItemModel,
        quantity: Decimal,
        delivery_date: date,
        delivery_time: time | None,
        actor_id: UUID,
    ) -> DeliveryModel:
        if delivery_date is None:
            raise ValidationError("Delivery date is required", field="delivery_date")
        row = DeliveryModel(
            order_id=item.order_id,
            position=self._next_position(item),
            delivery_date=delivery_date,
            delivery_time=delivery_time,
            quantity=quantity,
            invoice_lock=InvoiceLock.OPEN.value,
            confirmation=SupplierConfirmation.UNCONFIRMED.value,
            created_by_id=actor_id,
        )
        item.deliveries.append(row)
        return row

    # =========================================================================
    # Operations
    # =========================================================================

    def add_delivery(
        self,
        item: OrderItemModel,
        quantity: Decimal,
        delivery_date: date,
        actor_id: UUID,
        delivery_time: time | None = None,
    ) -> DeliveryModel:
        """Schedule part of the item's outstanding quantity."""
        self._require_supplier(item, "schedule a delivery")
        q = self._positive(quantity)
        outstanding = outstanding_quantity(item)
        if q > outstanding:
            raise ValidationError(
                f"Delivery quantity {q} exceeds outstanding quantity {outstanding}",
                field="quantity",
            )
        row = self._new_row(item, q, delivery_date, delivery_time, actor_id)
        self.session.flush()
        logger.info(
            "delivery_added",
            extra={
                "order_item_id": str(item.id),
                "delivery_id": str(row.id),
                "quantity": str(q),
                "delivery_date": delivery_date,
            },
        )
        return row

    def schedule_deliveries(
        self,
        item: OrderItemModel,
        splits: Sequence[NewDelivery],
        actor_id: UUID,
    ) -> list[DeliveryModel]:
        """
        Replace every open delivery of the item with ``splits``.

        The split must cover exactly the quantity not already invoiced.
        """
        self._require_supplier(item, "schedule deliveries")
        if not splits:
            raise ValidationError("At least one delivery is required", field="deliveries")

        quantities = [self._positive(s.quantity) for s in splits]
        required = item.quantity - invoiced_quantity(item)
        scheduled = sum(quantities, ZERO)
        if scheduled != required:
            raise LedgerImbalanceError(str(item.id), str(required), str(scheduled))

        for d in uninvoiced_deliveries(item):
            item.deliveries.remove(d)
        self.session.flush()

        rows = [
            self._new_row(item, q, s.delivery_date, s.delivery_time, actor_id)
            for q, s in zip(quantities, splits)
        ]
        self.session.flush()
        logger.info(
            "deliveries_scheduled",
            extra={
                "order_item_id": str(item.id),
                "delivery_count": len(rows),
                "scheduled_quantity": str(scheduled),
            },
        )
        return rows

    def reschedule_delivery(
        self,
        item: OrderItemModel,
        delivery: DeliveryModel,
        actor_id: UUID,
        delivery_date: date | None = None,
        delivery_time: time | None = None,
        quantity: Decimal | None = None,
    ) -> DeliveryModel:
        """Move an open delivery to a new date/time and optionally resize it."""
        self._require_open(delivery)
        if quantity is not None:
            q = self._positive(quantity)
            available = outstanding_quantity(item) + delivery.quantity
            if q > available:
                raise ValidationError(
                    f"Delivery quantity {q} exceeds available quantity {available}",
                    field="quantity",
                )
            delivery.quantity = q
        if delivery_date is not None:
            delivery.delivery_date = delivery_date
        if delivery_time is not None:
            delivery.delivery_time = delivery_time
        delivery.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "delivery_rescheduled",
            extra={
                "delivery_id": str(delivery.id),
                "delivery_date": delivery.delivery_date,
                "quantity": str(delivery.quantity),
            },
        )
        return delivery

    def remove_delivery(self, item: OrderItemModel, delivery: DeliveryModel) -> None:
        self._require_open(delivery)
        item.deliveries.remove(delivery)
        self.session.flush()
        logger.info(
            "delivery_removed",
            extra={"order_item_id": str(item.id), "delivery_id": str(delivery.id)},
        )

    def confirm_delivery(self, delivery: DeliveryModel, actor_id: UUID) -> DeliveryModel:
        """Supplier confirms one delivery slot. Only reassignment clears it."""
        delivery.confirmation = SupplierConfirmation.CONFIRMED.value
        delivery.updated_by_id = actor_id
        self.session.flush()
        return delivery

    def reset_confirmations(self, item: OrderItemModel, actor_id: UUID) -> int:
        """Clear every delivery confirmation on the item; dates and quantities stay."""
        reset = 0
        for d in item.deliveries:
            if d.confirmation != SupplierConfirmation.UNCONFIRMED.value:
                d.confirmation = SupplierConfirmation.UNCONFIRMED.value
                d.updated_by_id = actor_id
                reset += 1
        return reset
