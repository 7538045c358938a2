"""
Order Module Service - Orchestrates the order lifecycle, pricing edits and
delivery ledger.

Thin glue layer that:
1. Locks the order row and checks the editing gates (OrderStateMachine)
2. Calls the pricing engine for order costing and discount validation
3. Calls DeliveryLedger for schedule changes
4. Records every change in the order activity log

All computation lives in engines.  This service owns the transaction
boundary: it commits on success and rolls back on any failure.

Usage:
    service = OrderService(session, config=get_active_config(), clock=clock)
    order = service.place_order(
        client_id=client_id,
        delivery_address="1 George St, Sydney",
        delivery_lat=-33.8688, delivery_long=151.2093,
        items=[NewOrderItem(product_id, "Concrete 32MPa", Decimal("6"), "m3")],
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_config.schema import EngineConfig
from market_engines.pricing import OrderCosting, compute_order_costing
from market_kernel.db.types import ZERO, to_decimal
from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.exceptions import (
    PaymentProposalConflictError,
    StateError,
    SupplierConfirmationError,
    UnassignedItemError,
    ValidationError,
)
from market_kernel.logging_config import LogContext, get_logger
from market_kernel.services.sequence_service import SequenceService
from market_modules.orders.ledger import (
    DeliveryLedger,
    ensure_split_open,
    is_balanced,
    scheduled_quantity,
    uninvoiced_deliveries,
)
from market_modules.orders.models import (
    Delivery,
    ItemPaymentState,
    NewDelivery,
    NewOrderItem,
    Order,
    OrderLogEntry,
    OrderWorkflow,
    PaymentProposal,
    PaymentStatus,
    SupplierConfirmation,
)
from market_modules.orders.orm import OrderItemModel, OrderLogModel, OrderModel
from market_modules.orders.state_machine import OrderStateMachine

logger = get_logger("modules.orders.service")


class OrderService:
    """
    Orchestrates order operations through the state machine, ledger and
    pricing engine.

    Every mutating method takes an explicit ``actor_id``; role checks are
    the caller's responsibility.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._machine = OrderStateMachine(session, clock=self._clock)
        self._ledger = DeliveryLedger(session)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: UUID) -> Order:
        return self._machine.load_order(order_id).to_dto()

    def order_costing(self, order_id: UUID) -> OrderCosting:
        """Full pricing breakdown of the order's current state."""
        order = self._machine.load_order(order_id).to_dto()
        return self._cost(order, order.discount, order.other_charges)

    def order_history(self, order_id: UUID) -> tuple[OrderLogEntry, ...]:
        """The order's activity trail, oldest first."""
        self._machine.load_order(order_id)
        rows = self._session.execute(
            select(OrderLogModel)
            .where(OrderLogModel.order_id == order_id)
            .order_by(OrderLogModel.sequence)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def _cost(self, order: Order, discount: Decimal, other_charges: Decimal) -> OrderCosting:
        return compute_order_costing(
            items=[item.pricing_input() for item in order.items],
            discount=discount,
            other_charges=other_charges,
            config=self._config.pricing,
        )

    # =========================================================================
    # Placement and archive
    # =========================================================================

    def place_order(
        self,
        client_id: UUID,
        delivery_address: str,
        items: Sequence[NewOrderItem],
        actor_id: UUID,
        delivery_lat: float | None = None,
        delivery_long: float | None = None,
        project_id: UUID | None = None,
    ) -> Order:
        """Create an order in ``requested`` with a fresh PO number."""
        try:
            order = self._create_order(
                client_id,
                delivery_address,
                items,
                actor_id,
                delivery_lat=delivery_lat,
                delivery_long=delivery_long,
                project_id=project_id,
            )
            self._session.commit()
            logger.info(
                "order_placed",
                extra={
                    "order_id": str(order.id),
                    "po_number": order.po_number,
                    "item_count": len(items),
                },
            )
            return order.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def repeat_order(self, order_id: UUID, actor_id: UUID) -> Order:
        """
        Place a new ``requested`` order with the same client, site and items.

        Only products and quantities are copied.  Suppliers, prices,
        deliveries, discount and payment state start afresh.  Archived
        orders may be repeated.
        """
        try:
            source = self._machine.load_order(order_id)
            items = [
                NewOrderItem(i.product_id, i.product_name, i.quantity, i.unit_of_measure)
                for i in source.items
            ]
            order = self._create_order(
                source.client_id,
                source.delivery_address,
                items,
                actor_id,
                delivery_lat=source.delivery_lat,
                delivery_long=source.delivery_long,
                project_id=source.project_id,
                details={"repeated_from": str(source.id), "repeated_po_number": source.po_number},
            )
            self._machine.append_log(
                source, "order_repeated", actor_id, {"new_order_id": str(order.id)}
            )
            self._session.commit()
            logger.info(
                "order_repeated",
                extra={
                    "order_id": str(order.id),
                    "source_order_id": str(source.id),
                    "item_count": len(items),
                },
            )
            return order.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _create_order(
        self,
        client_id: UUID,
        delivery_address: str,
        items: Sequence[NewOrderItem],
        actor_id: UUID,
        delivery_lat: float | None = None,
        delivery_long: float | None = None,
        project_id: UUID | None = None,
        details: dict[str, str] | None = None,
    ) -> OrderModel:
        if not items:
            raise ValidationError("An order needs at least one item", field="items")
        if not delivery_address or not delivery_address.strip():
            raise ValidationError("Delivery address is required", field="delivery_address")

        po_number = self._config.orders.format_po_number(
            self._sequences.next_value(SequenceService.PURCHASE_ORDER)
        )
        order = OrderModel(
            po_number=po_number,
            client_id=client_id,
            project_id=project_id,
            delivery_address=delivery_address.strip(),
            delivery_lat=delivery_lat,
            delivery_long=delivery_long,
            workflow=OrderWorkflow.REQUESTED.value,
            payment_status=PaymentStatus.PENDING.value,
            discount=ZERO,
            other_charges=ZERO,
            created_by_id=actor_id,
        )
        for position, new_item in enumerate(items, start=1):
            order.items.append(self._new_item(position, new_item, actor_id))
        self._session.add(order)
        self._session.flush()
        self._machine.append_log(
            order,
            "order_placed",
            actor_id,
            {"po_number": po_number, "item_count": len(items), **(details or {})},
        )
        return order

    @staticmethod
    def _new_item(position: int, new_item: NewOrderItem, actor_id: UUID) -> OrderItemModel:
        quantity = to_decimal(new_item.quantity)
        if quantity <= 0:
            raise ValidationError(
                f"Item {new_item.product_name}: quantity must be positive",
                field="quantity",
            )
        return OrderItemModel(
            position=position,
            product_id=new_item.product_id,
            product_name=new_item.product_name,
            unit_of_measure=new_item.unit_of_measure,
            quantity=quantity,
            created_by_id=actor_id,
        )

    def archive_order(self, order_id: UUID, actor_id: UUID) -> Order:
        """Hide the order from active lists. Orders are never deleted."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            order.archived_at = self._clock.now()
            order.archived_by_id = actor_id
            order.updated_by_id = actor_id
            self._machine.append_log(order, "order_archived", actor_id)
            self._session.commit()
            logger.info("order_archived", extra={"order_id": str(order_id)})
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def restore_order(self, order_id: UUID, actor_id: UUID) -> Order:
        try:
            order = self._machine.lock_order(order_id)
            if order.archived_at is None:
                raise StateError(f"Order {order_id} is not archived")
            order.archived_at = None
            order.archived_by_id = None
            order.updated_by_id = actor_id
            self._machine.append_log(order, "order_restored", actor_id)
            self._session.commit()
            logger.info("order_restored", extra={"order_id": str(order_id)})
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Workflow transitions
    # =========================================================================

    def _run_transition(
        self,
        order_id: UUID,
        to_state: OrderWorkflow,
        action: str,
        actor_id: UUID,
    ) -> Order:
        try:
            with LogContext.bind(order_id=order_id, actor_id=actor_id):
                order = self._machine.lock_order(order_id)
                self._machine.ensure_not_archived(order)
                self._machine.transition(order, to_state, action, actor_id)
                if action == "request_payment" and order.payment_status == PaymentStatus.PENDING.value:
                    self._machine.change_payment_status(order, PaymentStatus.REQUESTED, actor_id)
                self._session.commit()
                return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def flag_supplier_missing(self, order_id: UUID, actor_id: UUID) -> Order:
        return self._run_transition(
            order_id, OrderWorkflow.SUPPLIER_MISSING, "flag_supplier_missing", actor_id
        )

    def mark_suppliers_assigned(self, order_id: UUID, actor_id: UUID) -> Order:
        """Advance to ``supplier_assigned``; guarded by every item having a supplier."""
        return self._run_transition(
            order_id, OrderWorkflow.SUPPLIER_ASSIGNED, "assign_suppliers", actor_id
        )

    def request_payment(self, order_id: UUID, actor_id: UUID) -> Order:
        """Advance to ``payment_requested`` and move payment_status to ``requested``."""
        return self._run_transition(
            order_id, OrderWorkflow.PAYMENT_REQUESTED, "request_payment", actor_id
        )

    def mark_delivered(self, order_id: UUID, actor_id: UUID) -> Order:
        """Terminal transition; every item must be assigned and balanced."""
        return self._run_transition(
            order_id, OrderWorkflow.DELIVERED, "mark_delivered", actor_id
        )

    def hold_order(self, order_id: UUID, actor_id: UUID) -> Order:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            held_from = order.workflow
            self._machine.transition(order, OrderWorkflow.ON_HOLD, "hold", actor_id)
            order.held_from = held_from
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def resume_order(self, order_id: UUID, actor_id: UUID) -> Order:
        """Return an on-hold order to the state it was held from."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            if order.workflow != OrderWorkflow.ON_HOLD.value or order.held_from is None:
                raise StateError(f"Order {order_id} is not on hold")
            self._machine.transition(
                order, OrderWorkflow(order.held_from), "resume", actor_id
            )
            order.held_from = None
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Payment status
    # =========================================================================

    def update_payment_status(
        self, order_id: UUID, to_status: PaymentStatus, actor_id: UUID
    ) -> Order:
        """
        Direct payment status change.

        Refund statuses raise ConfirmationRequiredError; use
        propose_payment_status / confirm_payment_status for those.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            self._machine.change_payment_status(order, PaymentStatus(to_status), actor_id)
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def propose_payment_status(
        self, order_id: UUID, to_status: PaymentStatus, actor_id: UUID
    ) -> PaymentProposal:
        """First phase of a refund: record the intended change."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            target = PaymentStatus(to_status)
            if not self._machine.is_sensitive_payment_transition(order.payment_status, target):
                raise ValidationError(
                    f"Payment status '{target.value}' does not need confirmation; "
                    f"use update_payment_status",
                    field="to_status",
                )
            if order.proposal_id is not None:
                logger.info(
                    "payment_proposal_replaced",
                    extra={"order_id": str(order_id), "proposal_id": str(order.proposal_id)},
                )
            order.proposal_id = uuid4()
            order.proposal_from_status = order.payment_status
            order.proposal_to_status = target.value
            order.proposal_by_id = actor_id
            order.proposal_at = self._clock.now()
            order.updated_by_id = actor_id
            self._machine.append_log(
                order,
                "payment_status_proposed",
                actor_id,
                {
                    "proposal_id": str(order.proposal_id),
                    "from_status": order.payment_status,
                    "to_status": target.value,
                },
            )
            self._session.commit()
            logger.info(
                "payment_status_proposed",
                extra={
                    "order_id": str(order_id),
                    "proposal_id": str(order.proposal_id),
                    "to_status": target.value,
                },
            )
            return order.to_dto().payment_proposal
        except Exception:
            self._session.rollback()
            raise

    def _matching_proposal(self, order: OrderModel, proposal_id: UUID) -> None:
        if order.proposal_id is None:
            raise PaymentProposalConflictError(
                str(order.id), str(proposal_id), "no proposal is pending"
            )
        if order.proposal_id != proposal_id:
            raise PaymentProposalConflictError(
                str(order.id), str(proposal_id), "a newer proposal replaced it"
            )

    def confirm_payment_status(
        self, order_id: UUID, proposal_id: UUID, actor_id: UUID
    ) -> Order:
        """Second phase: apply the proposal if the order has not moved on."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            self._matching_proposal(order, proposal_id)
            if order.payment_status != order.proposal_from_status:
                raise PaymentProposalConflictError(
                    str(order_id),
                    str(proposal_id),
                    f"payment status moved from {order.proposal_from_status} "
                    f"to {order.payment_status}",
                )
            target = PaymentStatus(order.proposal_to_status)
            order.clear_proposal()
            self._machine.change_payment_status(order, target, actor_id, confirmed=True)
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def cancel_payment_proposal(
        self, order_id: UUID, proposal_id: UUID, actor_id: UUID
    ) -> Order:
        try:
            order = self._machine.lock_order(order_id)
            self._matching_proposal(order, proposal_id)
            order.clear_proposal()
            order.updated_by_id = actor_id
            self._machine.append_log(
                order, "payment_proposal_cancelled", actor_id, {"proposal_id": str(proposal_id)}
            )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Order-level pricing
    # =========================================================================

    def update_discount(
        self, order_id: UUID, discount: Decimal, actor_id: UUID
    ) -> Order:
        """Set the order discount, validated against the pre-discount total."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "change the discount")
            new_discount = to_decimal(discount)
            if new_discount < 0:
                raise ValidationError("Discount must be non-negative", field="discount")
            # Raises NegativeTotalError under the reject policy
            self._cost(order.to_dto(), new_discount, order.other_charges)
            previous = order.discount
            order.discount = new_discount
            order.updated_by_id = actor_id
            self._machine.append_log(
                order,
                "discount_updated",
                actor_id,
                {"previous": str(previous), "discount": str(new_discount)},
            )
            self._session.commit()
            logger.info(
                "order_discount_updated",
                extra={"order_id": str(order_id), "discount": str(new_discount)},
            )
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def update_other_charges(
        self, order_id: UUID, other_charges: Decimal, actor_id: UUID
    ) -> Order:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "change other charges")
            charges = to_decimal(other_charges)
            self._cost(order.to_dto(), order.discount, charges)
            previous = order.other_charges
            order.other_charges = charges
            order.updated_by_id = actor_id
            self._machine.append_log(
                order,
                "other_charges_updated",
                actor_id,
                {"previous": str(previous), "other_charges": str(charges)},
            )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Item-level pricing and supplier state
    # =========================================================================

    def set_quoted_price(
        self,
        order_id: UUID,
        item_id: UUID,
        quoted_price: Decimal | None,
        actor_id: UUID,
    ) -> Order:
        """Override the customer unit price; ``None`` clears the quote."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "set a quoted price")
            item = self._machine.find_item(order, item_id)
            if item.supplier_id is None:
                raise UnassignedItemError(str(item_id), "set a quoted price")
            price = None if quoted_price is None else to_decimal(quoted_price)
            if price is not None and price < 0:
                raise ValidationError("Quoted price must be non-negative", field="quoted_price")
            item.quoted_price = price
            item.updated_by_id = actor_id
            self._session.flush()
            self._cost(order.to_dto(), order.discount, order.other_charges)
            self._machine.append_log(
                order,
                "quoted_price_set" if price is not None else "quoted_price_cleared",
                actor_id,
                {"order_item_id": str(item_id), "quoted_price": None if price is None else str(price)},
            )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def update_item_pricing(
        self,
        order_id: UUID,
        item_id: UUID,
        actor_id: UUID,
        supplier_unit_cost: Decimal | None = None,
        supplier_discount: Decimal | None = None,
        supplier_delivery_cost: Decimal | None = None,
        supplier_confirms: bool | None = None,
        quantity: Decimal | None = None,
    ) -> Order:
        """
        Admin edit of an item's supplier pricing.

        Only the arguments that are not None are applied.  Confirmation is
        monotonic: ``supplier_confirms=False`` on a confirmed item raises
        SupplierConfirmationError.  Quantity may not drop below what is
        already scheduled, and neither quantity nor delivery cost may
        change once one of the item's deliveries is invoiced.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "edit item pricing")
            item = self._machine.find_item(order, item_id)
            if item.supplier_id is None:
                raise UnassignedItemError(str(item_id), "edit item pricing")

            changes: dict[str, str] = {}
            if supplier_unit_cost is not None:
                value = to_decimal(supplier_unit_cost)
                if value < 0:
                    raise ValidationError("Unit cost must be non-negative", field="supplier_unit_cost")
                item.supplier_unit_cost = value
                changes["supplier_unit_cost"] = str(value)
            if supplier_discount is not None:
                value = to_decimal(supplier_discount)
                if value < 0:
                    raise ValidationError("Supplier discount must be non-negative", field="supplier_discount")
                item.supplier_discount = value
                changes["supplier_discount"] = str(value)
            if supplier_delivery_cost is not None:
                value = to_decimal(supplier_delivery_cost)
                if value < 0:
                    raise ValidationError("Delivery cost must be non-negative", field="supplier_delivery_cost")
                if value != item.supplier_delivery_cost:
                    ensure_split_open(item, "supplier_delivery_cost")
                item.supplier_delivery_cost = value
                changes["supplier_delivery_cost"] = str(value)
            if quantity is not None:
                value = to_decimal(quantity)
                if value <= 0:
                    raise ValidationError("Quantity must be positive", field="quantity")
                if value != item.quantity:
                    ensure_split_open(item, "quantity")
                scheduled = scheduled_quantity(item)
                if value < scheduled:
                    raise ValidationError(
                        f"Quantity {value} is below the scheduled quantity {scheduled}",
                        field="quantity",
                    )
                item.quantity = value
                changes["quantity"] = str(value)
            if supplier_confirms is not None:
                if supplier_confirms:
                    item.confirmation = SupplierConfirmation.CONFIRMED.value
                elif item.confirmation == SupplierConfirmation.CONFIRMED.value:
                    raise SupplierConfirmationError(
                        str(item_id), "confirmation can only be cleared by reassigning the supplier"
                    )
                changes["supplier_confirms"] = str(supplier_confirms).lower()

            item.updated_by_id = actor_id
            self._session.flush()
            self._cost(order.to_dto(), order.discount, order.other_charges)
            self._machine.append_log(
                order, "item_pricing_updated", actor_id, {"order_item_id": str(item_id), **changes}
            )
            self._session.commit()
            logger.info(
                "item_pricing_updated",
                extra={"order_id": str(order_id), "order_item_id": str(item_id), "fields": sorted(changes)},
            )
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def confirm_supplier(self, order_id: UUID, item_id: UUID, actor_id: UUID) -> Order:
        """Supplier confirms the item. Only a reassignment clears this."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "confirm a supplier")
            item = self._machine.find_item(order, item_id)
            if item.supplier_id is None:
                raise UnassignedItemError(str(item_id), "confirm a supplier")
            item.confirmation = SupplierConfirmation.CONFIRMED.value
            item.updated_by_id = actor_id
            self._machine.append_log(
                order, "supplier_confirmed", actor_id, {"order_item_id": str(item_id)}
            )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def mark_item_paid(self, order_id: UUID, item_id: UUID, actor_id: UUID) -> Order:
        """
        Record that the supplier has been paid for the item.

        Allowed on delivered orders: supplier settlement usually follows
        delivery and changes no price.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            item = self._machine.find_item(order, item_id)
            if item.supplier_id is None:
                raise UnassignedItemError(str(item_id), "mark the item paid")
            if item.payment_state != ItemPaymentState.PAID.value:
                item.payment_state = ItemPaymentState.PAID.value
                item.updated_by_id = actor_id
                self._machine.append_log(
                    order, "item_marked_paid", actor_id, {"order_item_id": str(item_id)}
                )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Item list edits
    # =========================================================================

    def add_item(self, order_id: UUID, new_item: NewOrderItem, actor_id: UUID) -> Order:
        """
        Append an unassigned item to the order.

        The workflow is left where it is; the new item blocks
        request_payment until a supplier is assigned.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "add an item")
            position = max((i.position for i in order.items), default=0) + 1
            item = self._new_item(position, new_item, actor_id)
            order.items.append(item)
            order.updated_by_id = actor_id
            self._session.flush()
            self._machine.append_log(
                order,
                "item_added",
                actor_id,
                {
                    "order_item_id": str(item.id),
                    "product_id": str(item.product_id),
                    "quantity": str(item.quantity),
                },
            )
            self._session.commit()
            logger.info(
                "order_item_added",
                extra={"order_id": str(order_id), "order_item_id": str(item.id)},
            )
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def remove_item(self, order_id: UUID, item_id: UUID, actor_id: UUID) -> Order:
        """
        Drop an item together with its uninvoiced deliveries.

        Raises:
            ValidationError: The item is the order's last one.
            DeliveryAlreadyInvoicedError: One of its deliveries is invoiced.
            NegativeTotalError: The discount would exceed the smaller total.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "remove an item")
            item = self._machine.find_item(order, item_id)
            if len(order.items) == 1:
                raise ValidationError("An order needs at least one item", field="items")
            ensure_split_open(item, "remove")
            product_id = item.product_id
            order.items.remove(item)
            order.updated_by_id = actor_id
            self._session.flush()
            self._cost(order.to_dto(), order.discount, order.other_charges)
            self._machine.append_log(
                order,
                "item_removed",
                actor_id,
                {"order_item_id": str(item_id), "product_id": str(product_id)},
            )
            self._session.commit()
            logger.info(
                "order_item_removed",
                extra={"order_id": str(order_id), "order_item_id": str(item_id)},
            )
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Delivery ledger
    # =========================================================================

    def add_delivery(
        self,
        order_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        delivery_date: date,
        actor_id: UUID,
        delivery_time: time | None = None,
    ) -> Delivery:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "add a delivery")
            item = self._machine.find_item(order, item_id)
            row = self._ledger.add_delivery(
                item, quantity, delivery_date, actor_id, delivery_time=delivery_time
            )
            self._machine.append_log(
                order,
                "delivery_added",
                actor_id,
                {"order_item_id": str(item_id), "delivery_id": str(row.id), "quantity": str(row.quantity)},
            )
            self._session.commit()
            return row.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def schedule_deliveries(
        self,
        order_id: UUID,
        item_id: UUID,
        splits: Sequence[NewDelivery],
        actor_id: UUID,
    ) -> tuple[Delivery, ...]:
        """Atomically replace the item's open deliveries with ``splits``."""
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "schedule deliveries")
            item = self._machine.find_item(order, item_id)
            rows = self._ledger.schedule_deliveries(item, splits, actor_id)
            self._machine.append_log(
                order,
                "deliveries_scheduled",
                actor_id,
                {"order_item_id": str(item_id), "delivery_count": len(rows)},
            )
            self._session.commit()
            return tuple(r.to_dto() for r in rows)
        except Exception:
            self._session.rollback()
            raise

    def reschedule_delivery(
        self,
        order_id: UUID,
        delivery_id: UUID,
        actor_id: UUID,
        delivery_date: date | None = None,
        delivery_time: time | None = None,
        quantity: Decimal | None = None,
    ) -> Delivery:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "reschedule a delivery")
            delivery = self._machine.find_delivery(order, delivery_id)
            self._ledger.reschedule_delivery(
                delivery.item,
                delivery,
                actor_id,
                delivery_date=delivery_date,
                delivery_time=delivery_time,
                quantity=quantity,
            )
            self._machine.append_log(
                order, "delivery_rescheduled", actor_id, {"delivery_id": str(delivery_id)}
            )
            self._session.commit()
            return delivery.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def remove_delivery(self, order_id: UUID, delivery_id: UUID, actor_id: UUID) -> Order:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "remove a delivery")
            delivery = self._machine.find_delivery(order, delivery_id)
            self._ledger.remove_delivery(delivery.item, delivery)
            self._machine.append_log(
                order, "delivery_removed", actor_id, {"delivery_id": str(delivery_id)}
            )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def confirm_delivery(self, order_id: UUID, delivery_id: UUID, actor_id: UUID) -> Delivery:
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_editable(order, "confirm a delivery")
            delivery = self._machine.find_delivery(order, delivery_id)
            self._ledger.confirm_delivery(delivery, actor_id)
            self._machine.append_log(
                order, "delivery_confirmed", actor_id, {"delivery_id": str(delivery_id)}
            )
            self._session.commit()
            return delivery.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def uninvoiced_deliveries(self, order_id: UUID, item_id: UUID) -> tuple[Delivery, ...]:
        order = self._machine.load_order(order_id)
        item = self._machine.find_item(order, item_id)
        return tuple(d.to_dto() for d in uninvoiced_deliveries(item))

    def is_balanced(self, order_id: UUID, item_id: UUID) -> bool:
        order = self._machine.load_order(order_id)
        return is_balanced(self._machine.find_item(order, item_id))
