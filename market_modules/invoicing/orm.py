"""
Invoicing ORM Models (``market_modules.invoicing.orm``).

Responsibility
--------------
SQLAlchemy persistence for partial invoices and their lines.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``market_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``market_kernel``.

Invariants enforced
-------------------
* ``invoice_number`` is globally unique (uq_invoices_number).
* ``invoice_lines.delivery_id`` is UNIQUE: a delivery can appear on at
  most one invoice, whatever the service layer does.
* Invoice content never changes after insert; only ``status`` is updated.
"""

from datetime import date, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from market_kernel.db.base import TrackedBase
from market_modules.invoicing.models import InvoiceStatus


class InvoiceModel(TrackedBase):
    """
    ORM model for partial invoices.

    ``created_by_id`` is the operator who issued the invoice.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_number"),
        Index("idx_invoices_order_id", "order_id"),
        Index("idx_invoices_status_due", "status", "due_date"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.DRAFT.value
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    delivery_total: Mapped[Decimal] = mapped_column(nullable=False)
    gst_tax: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    issued_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineModel.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.invoicing.models import Invoice

        return Invoice(
            id=self.id,
            order_id=self.order_id,
            invoice_number=self.invoice_number,
            status=InvoiceStatus(self.status),
            currency=self.currency,
            subtotal=self.subtotal,
            delivery_total=self.delivery_total,
            gst_tax=self.gst_tax,
            discount=self.discount,
            total_amount=self.total_amount,
            issued_date=self.issued_date,
            due_date=self.due_date,
            created_by_id=self.created_by_id,
            notes=self.notes,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number}: {self.status}>"


class InvoiceLineModel(TrackedBase):
    """ORM model for invoice lines, one per invoiced delivery."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("delivery_id", name="uq_invoice_lines_delivery_id"),
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_lines_invoice_line"),
        Index("idx_invoice_lines_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(nullable=False)
    order_item_id: Mapped[UUID] = mapped_column(ForeignKey("order_items.id"), nullable=False)
    delivery_id: Mapped[UUID] = mapped_column(
        ForeignKey("order_item_deliveries.id"), nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    delivery_cost: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)
    delivery_date: Mapped[date] = mapped_column(nullable=False)
    delivery_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from market_modules.invoicing.models import InvoiceLine

        return InvoiceLine(
            id=self.id,
            order_item_id=self.order_item_id,
            delivery_id=self.delivery_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            delivery_cost=self.delivery_cost,
            line_total=self.line_total,
            delivery_date=self.delivery_date,
            delivery_time=self.delivery_time,
        )
