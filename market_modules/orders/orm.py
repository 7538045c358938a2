"""
Order ORM Models (``market_modules.orders.orm``).

Responsibility
--------------
SQLAlchemy persistence models for orders, order items, scheduled
deliveries and the order activity log.  Maps the frozen dataclasses in
``models.py`` to database tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``market_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``market_kernel``.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from market_kernel.db.base import TrackedBase, UUIDString
from market_modules.orders.models import (
    InvoiceLock,
    ItemPaymentState,
    OrderWorkflow,
    PaymentStatus,
    SupplierConfirmation,
)


# ---------------------------------------------------------------------------
# 1. OrderModel
# ---------------------------------------------------------------------------


class OrderModel(TrackedBase):
    """
    ORM model for client orders.

    Guarantees:
        - po_number is unique (uq_orders_po_number).
        - workflow and payment_status stored as string enum values.
        - discount is non-negative (ck_orders_discount_non_negative).
        - Orders are archived, never deleted.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_orders_po_number"),
        CheckConstraint("discount >= 0", name="ck_orders_discount_non_negative"),
        Index("idx_orders_client_id", "client_id"),
        Index("idx_orders_workflow", "workflow"),
        Index("idx_orders_archived_at", "archived_at"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    delivery_long: Mapped[float | None] = mapped_column(Float, nullable=True)
    workflow: Mapped[str] = mapped_column(
        String(30), nullable=False, default=OrderWorkflow.REQUESTED.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentStatus.PENDING.value
    )
    discount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    held_from: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Pending two-phase payment status change
    proposal_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    proposal_from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    proposal_to_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    proposal_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    proposal_at: Mapped[datetime | None] = mapped_column(nullable=True)

    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    items: Mapped[list["OrderItemModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.orders.models import Order, PaymentProposal

        proposal = None
        if self.proposal_id is not None:
            proposal = PaymentProposal(
                id=self.proposal_id,
                from_status=PaymentStatus(self.proposal_from_status),
                to_status=PaymentStatus(self.proposal_to_status),
                proposed_by_id=self.proposal_by_id,
                proposed_at=self.proposal_at,
            )

        return Order(
            id=self.id,
            po_number=self.po_number,
            client_id=self.client_id,
            project_id=self.project_id,
            delivery_address=self.delivery_address,
            delivery_lat=self.delivery_lat,
            delivery_long=self.delivery_long,
            workflow=OrderWorkflow(self.workflow),
            payment_status=PaymentStatus(self.payment_status),
            discount=self.discount,
            other_charges=self.other_charges,
            held_from=OrderWorkflow(self.held_from) if self.held_from else None,
            payment_proposal=proposal,
            archived_at=self.archived_at,
            archived_by_id=self.archived_by_id,
            items=tuple(item.to_dto() for item in self.items),
        )

    def clear_proposal(self) -> None:
        self.proposal_id = None
        self.proposal_from_status = None
        self.proposal_to_status = None
        self.proposal_by_id = None
        self.proposal_at = None

    def __repr__(self) -> str:
        return f"<OrderModel {self.po_number}: {self.workflow}>"


# ---------------------------------------------------------------------------
# 2. OrderItemModel
# ---------------------------------------------------------------------------


class OrderItemModel(TrackedBase):
    """
    ORM model for order items.

    Guarantees:
        - quantity is positive (ck_order_items_quantity_positive).
        - supplier_id / chosen_offer_id reference the supplier directory
          by id only; the directory may archive suppliers independently.
        - confirmation and payment_state stored as string enum values.
    """

    __tablename__ = "order_items"

    __table_args__ = (
        UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        Index("idx_order_items_order_id", "order_id"),
        Index("idx_order_items_supplier_id", "supplier_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(30), default="unit")
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    chosen_offer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    supplier_discount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    supplier_delivery_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quoted_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    confirmation: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SupplierConfirmation.UNCONFIRMED.value
    )
    payment_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ItemPaymentState.UNPAID.value
    )

    order: Mapped[OrderModel] = relationship(back_populates="items")
    deliveries: Mapped[list["DeliveryModel"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="DeliveryModel.position",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.orders.models import OrderItem

        return OrderItem(
            id=self.id,
            order_id=self.order_id,
            product_id=self.product_id,
            product_name=self.product_name,
            unit_of_measure=self.unit_of_measure,
            quantity=self.quantity,
            supplier_id=self.supplier_id,
            chosen_offer_id=self.chosen_offer_id,
            supplier_unit_cost=self.supplier_unit_cost,
            supplier_discount=self.supplier_discount,
            supplier_delivery_cost=self.supplier_delivery_cost,
            quoted_price=self.quoted_price,
            confirmation=SupplierConfirmation(self.confirmation),
            payment_state=ItemPaymentState(self.payment_state),
            deliveries=tuple(d.to_dto() for d in self.deliveries),
        )

    def __repr__(self) -> str:
        return f"<OrderItemModel {self.product_name} x {self.quantity}>"


# ---------------------------------------------------------------------------
# 3. DeliveryModel
# ---------------------------------------------------------------------------


class DeliveryModel(TrackedBase):
    """
    ORM model for scheduled deliveries.

    ``order_id`` is denormalized from the parent item so the invoice
    claim can filter by order without a join.

    Guarantees:
        - quantity is positive (ck_order_item_deliveries_quantity_positive).
        - invoice_lock is 'open' or 'invoiced'; only the invoice claim
          UPDATE moves it to 'invoiced' and nothing moves it back.
    """

    __tablename__ = "order_item_deliveries"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_deliveries_quantity_positive"),
        CheckConstraint(
            "invoice_lock IN ('open', 'invoiced')",
            name="ck_order_item_deliveries_invoice_lock",
        ),
        Index("idx_order_item_deliveries_item_id", "order_item_id"),
        Index("idx_order_item_deliveries_order_lock", "order_id", "invoice_lock"),
        Index("idx_order_item_deliveries_invoice_id", "invoice_id"),
    )

    order_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("order_items.id"), nullable=False
    )
    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    delivery_date: Mapped[date] = mapped_column(nullable=False)
    delivery_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    invoice_lock: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceLock.OPEN.value
    )
    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    confirmation: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SupplierConfirmation.UNCONFIRMED.value
    )

    item: Mapped[OrderItemModel] = relationship(back_populates="deliveries")

    @property
    def is_invoiced(self) -> bool:
        return self.invoice_lock == InvoiceLock.INVOICED.value

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.orders.models import Delivery

        return Delivery(
            id=self.id,
            order_item_id=self.order_item_id,
            delivery_date=self.delivery_date,
            delivery_time=self.delivery_time,
            quantity=self.quantity,
            invoice_lock=InvoiceLock(self.invoice_lock),
            invoice_id=self.invoice_id,
            confirmation=SupplierConfirmation(self.confirmation),
        )

    def __repr__(self) -> str:
        return f"<DeliveryModel {self.delivery_date} x {self.quantity} [{self.invoice_lock}]>"


# ---------------------------------------------------------------------------
# 4. OrderLogModel
# ---------------------------------------------------------------------------


class OrderLogModel(TrackedBase):
    """
    ORM model for the append-only order activity trail.

    ``created_by_id`` is the acting operator.
    """

    __tablename__ = "order_logs"

    __table_args__ = (
        Index("idx_order_logs_order_id", "order_id", "logged_at"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    logged_at: Mapped[datetime] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.orders.models import OrderLogEntry

        return OrderLogEntry(
            id=self.id,
            order_id=self.order_id,
            action=self.action,
            actor_id=self.created_by_id,
            logged_at=self.logged_at,
            details=dict(self.details or {}),
        )

    def __repr__(self) -> str:
        return f"<OrderLogModel {self.action} @ {self.logged_at}>"
