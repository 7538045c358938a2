"""
OrderStateMachine -- flush-only order locking, editing gates and transitions.

Responsibility:
    Shared by ``OrderService``, ``SupplierAssignmentService`` and
    ``InvoiceService``: lock the order row, reject edits of delivered or
    archived orders, apply order and payment transitions through the
    workflow tables, and append to the order activity log.

Architecture position:
    Modules > Orders.  Flush-only (``BaseService``); the calling module
    service owns commit/rollback.

Invariants enforced:
    - Delivered orders reject every edit (``OrderLockedError``).
    - Transitions only follow ``ORDER_WORKFLOW`` / ``PAYMENT_WORKFLOW``;
      guards are evaluated against the order's current DTO.
    - Refund statuses are only reachable with ``confirmed=True``.

Failure modes:
    - OrderNotFoundError, OrderItemNotFoundError, DeliveryNotFoundError.
    - IllegalTransitionError, GuardFailedError, ConfirmationRequiredError.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.exceptions import (
    ConfirmationRequiredError,
    DeliveryNotFoundError,
    GuardFailedError,
    IllegalTransitionError,
    OrderArchivedError,
    OrderItemNotFoundError,
    OrderLockedError,
    OrderNotFoundError,
)
from market_kernel.logging_config import get_logger
from market_kernel.services.base import BaseService
from market_kernel.services.guard_executor import GuardExecutor
from market_modules.orders.models import OrderWorkflow, PaymentStatus
from market_modules.orders.orm import (
    DeliveryModel,
    OrderItemModel,
    OrderLogModel,
    OrderModel,
)
from market_modules.orders.workflows import (
    ORDER_WORKFLOW,
    PAYMENT_WORKFLOW,
    order_guard_executor,
)

logger = get_logger("modules.orders.state_machine")


class OrderStateMachine(BaseService[OrderModel]):
    """
    Order row access and lifecycle transitions inside the caller's transaction.

    Non-goals:
        - Does NOT commit.
        - Does NOT price anything; see ``market_engines.pricing``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        guards: GuardExecutor | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._guards = guards or order_guard_executor()

    # =========================================================================
    # Row access
    # =========================================================================

    def lock_order(self, order_id: UUID) -> OrderModel:
        """SELECT ... FOR UPDATE the order row, refreshing any cached state."""
        # Sessions outlive requests (expire_on_commit=False), so drop
        # cached items and deliveries that another transaction may have changed.
        self.session.flush()
        self.session.expire_all()
        order = self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def load_order(self, order_id: UUID) -> OrderModel:
        order = self.session.get(OrderModel, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def find_item(self, order: OrderModel, item_id: UUID) -> OrderItemModel:
        for item in order.items:
            if item.id == item_id:
                return item
        raise OrderItemNotFoundError(str(item_id))

    def find_delivery(self, order: OrderModel, delivery_id: UUID) -> DeliveryModel:
        for item in order.items:
            for delivery in item.deliveries:
                if delivery.id == delivery_id:
                    return delivery
        raise DeliveryNotFoundError(str(delivery_id))

    # =========================================================================
    # Editing gates
    # =========================================================================

    def ensure_not_archived(self, order: OrderModel) -> None:
        if order.archived_at is not None:
            raise OrderArchivedError(str(order.id))

    def ensure_editable(self, order: OrderModel, operation: str) -> None:
        """Reject edits of archived or delivered orders."""
        self.ensure_not_archived(order)
        if order.workflow == OrderWorkflow.DELIVERED.value:
            logger.info(
                "order_edit_rejected",
                extra={"order_id": str(order.id), "operation": operation},
            )
            raise OrderLockedError(str(order.id), operation)

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        order: OrderModel,
        to_state: OrderWorkflow,
        action: str,
        actor_id: UUID,
    ) -> None:
        """Move the order along ORDER_WORKFLOW, evaluating the guard first."""
        from_state = order.workflow
        t = ORDER_WORKFLOW.find(from_state, to_state.value)
        if t is None or t.action != action:
            raise IllegalTransitionError(ORDER_WORKFLOW.name, from_state, to_state.value)

        if t.guard is not None:
            self.session.flush()
            if not self._guards.evaluate(t.guard, order.to_dto()):
                logger.info(
                    "order_transition_guard_failed",
                    extra={
                        "order_id": str(order.id),
                        "action": action,
                        "guard_name": t.guard.name,
                    },
                )
                raise GuardFailedError(ORDER_WORKFLOW.name, action, t.guard.name)

        order.workflow = to_state.value
        order.updated_by_id = actor_id
        self.append_log(
            order,
            action,
            actor_id,
            {"from_state": from_state, "to_state": to_state.value},
        )
        logger.info(
            "order_workflow_transition",
            extra={
                "order_id": str(order.id),
                "action": action,
                "from_state": from_state,
                "to_state": to_state.value,
            },
        )

    def change_payment_status(
        self,
        order: OrderModel,
        to_status: PaymentStatus,
        actor_id: UUID,
        confirmed: bool = False,
    ) -> None:
        """Move payment_status along PAYMENT_WORKFLOW."""
        from_status = order.payment_status
        t = PAYMENT_WORKFLOW.find(from_status, to_status.value)
        if t is None:
            raise IllegalTransitionError(PAYMENT_WORKFLOW.name, from_status, to_status.value)
        if t.requires_confirmation and not confirmed:
            raise ConfirmationRequiredError(str(order.id), to_status.value)

        order.payment_status = to_status.value
        order.updated_by_id = actor_id
        self.append_log(
            order,
            "payment_status_changed",
            actor_id,
            {"from_status": from_status, "to_status": to_status.value},
        )
        logger.info(
            "order_payment_status_changed",
            extra={
                "order_id": str(order.id),
                "from_status": from_status,
                "to_status": to_status.value,
                "confirmed": confirmed,
            },
        )

    def is_sensitive_payment_transition(
        self, from_status: str, to_status: PaymentStatus
    ) -> bool:
        t = PAYMENT_WORKFLOW.find(from_status, to_status.value)
        if t is None:
            raise IllegalTransitionError(PAYMENT_WORKFLOW.name, from_status, to_status.value)
        return t.requires_confirmation

    # =========================================================================
    # Activity log
    # =========================================================================

    def append_log(
        self,
        order: OrderModel,
        action: str,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> OrderLogModel:
        """Append one entry to the order's activity trail."""
        self.session.flush()
        last = self.session.execute(
            select(func.max(OrderLogModel.sequence)).where(
                OrderLogModel.order_id == order.id
            )
        ).scalar()
        entry = OrderLogModel(
            order_id=order.id,
            action=action,
            details=details or {},
            logged_at=self._clock.now(),
            sequence=(last or 0) + 1,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()
        return entry
