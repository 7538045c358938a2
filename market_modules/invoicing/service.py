"""
Invoicing Module Service - Partial invoices over selected deliveries.

Thin glue layer that:
1. Validates the delivery selection against the order
2. Calls the invoice aggregation engine (same call for preview and create)
3. Claims the deliveries so each is invoiced at most once
4. Applies admin status changes along INVOICE_WORKFLOW

All computation lives in ``market_engines.invoicing``.  This service owns
the transaction boundary: it commits on success and rolls back on any
failure.

Claim protocol (create_invoice):
    lock order row
    -> SELECT deliveries FOR UPDATE (fresh from the database)
    -> reject if any is already invoiced
    -> build the draft, allocate the invoice number
    -> INSERT invoice + lines (UNIQUE delivery_id)
    -> UPDATE deliveries SET invoice_lock='invoiced' WHERE invoice_lock='open'
       (row count must equal the selection size)
    -> COMMIT

Usage:
    service = InvoiceService(session, config=get_active_config(), clock=clock)
    preview = service.preview_invoice(order_id, [d1, d2])
    invoice = service.create_invoice(order_id, [d1, d2], actor_id=actor_id)
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from market_config.schema import EngineConfig
from market_engines.invoicing import (
    DeliverySelection,
    InvoiceDraft,
    build_invoice_draft,
    prorated_delivery_cost,
)
from market_engines.pricing import customer_unit_price
from market_kernel.db.types import ZERO, round_money, to_decimal
from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.exceptions import (
    DeliveryAlreadyInvoicedError,
    DeliveryClaimConflictError,
    DeliveryNotFoundError,
    EmptySelectionError,
    IllegalTransitionError,
    InvoiceNotFoundError,
    ValidationError,
)
from market_kernel.logging_config import LogContext, get_logger
from market_modules.invoicing.models import (
    Invoice,
    InvoiceableDelivery,
    InvoiceLine,
    InvoicePreview,
    InvoiceStatus,
    InvoiceSummary,
)
from market_modules.invoicing.numbering import (
    InvoiceNumberAuthority,
    SequenceInvoiceNumberAuthority,
)
from market_modules.invoicing.orm import InvoiceLineModel, InvoiceModel
from market_modules.invoicing.workflows import INVOICE_WORKFLOW
from market_modules.orders.models import InvoiceLock
from market_modules.orders.orm import DeliveryModel, OrderModel
from market_modules.orders.state_machine import OrderStateMachine

logger = get_logger("modules.invoicing.service")


def _line_from_draft(line) -> InvoiceLine:
    return InvoiceLine(
        order_item_id=line.order_item_id,
        delivery_id=line.delivery_id,
        product_name=line.product_name,
        quantity=line.quantity,
        unit_price=line.unit_price,
        delivery_cost=line.delivery_cost,
        line_total=line.line_total,
        delivery_date=line.delivery_date,
        delivery_time=line.delivery_time,
    )


class InvoiceService:
    """
    Orchestrates invoice preview, creation, listing and status changes.

    Contract:
        A created invoice equals the preview of the same selection taken
        against the same data, and each delivery appears on at most one
        invoice.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        numbering: InvoiceNumberAuthority | None = None,
    ):
        self._session = session
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._numbering = numbering or SequenceInvoiceNumberAuthority(
            session, self._config.invoicing
        )
        self._machine = OrderStateMachine(session, clock=self._clock)

    # =========================================================================
    # Selection
    # =========================================================================

    @staticmethod
    def _check_selection(delivery_ids: Sequence[UUID]) -> list[UUID]:
        if not delivery_ids:
            raise EmptySelectionError()
        ids = list(delivery_ids)
        if len(set(ids)) != len(ids):
            raise ValidationError("Delivery ids must be distinct", field="delivery_ids")
        return ids

    def _load_deliveries(
        self, order_id: UUID, ids: list[UUID], for_update: bool
    ) -> list[DeliveryModel]:
        stmt = select(DeliveryModel).where(DeliveryModel.id.in_(ids))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        rows = list(self._session.execute(stmt).scalars())

        found = {row.id for row in rows}
        for delivery_id in ids:
            if delivery_id not in found:
                raise DeliveryNotFoundError(str(delivery_id))
        for row in rows:
            if row.order_id != order_id:
                raise ValidationError(
                    f"Delivery {row.id} does not belong to order {order_id}",
                    field="delivery_ids",
                )
        # Line order: item position, then delivery position
        rows.sort(key=lambda d: (d.item.position, d.position))
        return rows

    def _draft(self, rows: list[DeliveryModel], discount: Decimal) -> InvoiceDraft:
        selections = [
            DeliverySelection(
                delivery_id=row.id,
                order_item_id=row.order_item_id,
                product_name=row.item.product_name,
                quantity=row.quantity,
                delivery_date=row.delivery_date,
                delivery_time=row.delivery_time,
                item=row.item.to_dto().pricing_input(),
            )
            for row in rows
        ]
        return build_invoice_draft(
            selections=selections,
            discount=to_decimal(discount),
            config=self._config.pricing,
        )

    # =========================================================================
    # Preview and create
    # =========================================================================

    def preview_invoice(
        self,
        order_id: UUID,
        delivery_ids: Sequence[UUID],
        discount: Decimal = ZERO,
    ) -> InvoicePreview:
        """
        Compute an invoice for the selection without writing anything.

        Raises:
            EmptySelectionError, DeliveryNotFoundError, ValidationError,
            DeliveryAlreadyInvoicedError, NegativeTotalError.
        """
        ids = self._check_selection(delivery_ids)
        self._machine.load_order(order_id)
        rows = self._load_deliveries(order_id, ids, for_update=False)
        invoiced = [str(row.id) for row in rows if row.is_invoiced]
        if invoiced:
            raise DeliveryAlreadyInvoicedError(invoiced)

        draft = self._draft(rows, discount)
        return InvoicePreview(
            order_id=order_id,
            currency=draft.currency,
            lines=tuple(_line_from_draft(line) for line in draft.lines),
            subtotal=draft.subtotal,
            delivery_total=draft.delivery_total,
            gst_tax=draft.gst_tax,
            discount=draft.discount,
            total_amount=draft.total_amount,
            clamped=draft.clamped,
        )

    def create_invoice(
        self,
        order_id: UUID,
        delivery_ids: Sequence[UUID],
        actor_id: UUID,
        notes: str | None = None,
        due_date: date | None = None,
        discount: Decimal = ZERO,
    ) -> Invoice:
        """
        Create a draft invoice and claim its deliveries, all or nothing.

        Raises:
            DeliveryClaimConflictError: a selected delivery is (or became)
                invoiced.
            ValidationError: due date before the issue date, or a bad
                selection.
        """
        try:
            ids = self._check_selection(delivery_ids)
            with LogContext.bind(order_id=order_id, actor_id=actor_id):
                order = self._machine.lock_order(order_id)
                self._machine.ensure_not_archived(order)

                rows = self._load_deliveries(order_id, ids, for_update=True)
                taken = [str(row.id) for row in rows if row.is_invoiced]
                if taken:
                    raise DeliveryClaimConflictError(str(order_id), taken)

                draft = self._draft(rows, discount)

                issued = self._clock.today()
                due = due_date or issued + timedelta(
                    days=self._config.invoicing.payment_terms_days
                )
                if due < issued:
                    raise ValidationError(
                        f"Due date {due} is before the issue date {issued}",
                        field="due_date",
                    )

                invoice_number = self._numbering.next_number()
                invoice = InvoiceModel(
                    order_id=order_id,
                    invoice_number=invoice_number,
                    status=InvoiceStatus.DRAFT.value,
                    currency=draft.currency,
                    subtotal=draft.subtotal,
                    delivery_total=draft.delivery_total,
                    gst_tax=draft.gst_tax,
                    discount=draft.discount,
                    total_amount=draft.total_amount,
                    issued_date=issued,
                    due_date=due,
                    notes=notes,
                    created_by_id=actor_id,
                )
                for number, line in enumerate(draft.lines, start=1):
                    invoice.lines.append(
                        InvoiceLineModel(
                            line_number=number,
                            order_item_id=line.order_item_id,
                            delivery_id=line.delivery_id,
                            product_name=line.product_name,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            delivery_cost=line.delivery_cost,
                            line_total=line.line_total,
                            delivery_date=line.delivery_date,
                            delivery_time=line.delivery_time,
                            created_by_id=actor_id,
                        )
                    )
                self._session.add(invoice)
                try:
                    self._session.flush()
                except IntegrityError as exc:
                    raise DeliveryClaimConflictError(
                        str(order_id), [str(i) for i in ids]
                    ) from exc

                claimed = self._session.execute(
                    update(DeliveryModel)
                    .where(
                        DeliveryModel.id.in_(ids),
                        DeliveryModel.invoice_lock == InvoiceLock.OPEN.value,
                    )
                    .values(
                        invoice_lock=InvoiceLock.INVOICED.value,
                        invoice_id=invoice.id,
                        updated_by_id=actor_id,
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                if claimed != len(ids):
                    logger.warning(
                        "invoice_claim_short",
                        extra={"expected": len(ids), "claimed": claimed},
                    )
                    raise DeliveryClaimConflictError(str(order_id), [str(i) for i in ids])
                for row in rows:
                    self._session.expire(row)

                self._machine.append_log(
                    order,
                    "invoice_created",
                    actor_id,
                    {
                        "invoice_id": str(invoice.id),
                        "invoice_number": invoice_number,
                        "delivery_count": len(ids),
                        "total_amount": str(draft.total_amount),
                    },
                )

                self._session.commit()
                logger.info(
                    "invoice_created",
                    extra={
                        "invoice_id": str(invoice.id),
                        "invoice_number": invoice_number,
                        "delivery_count": len(ids),
                        "total_amount": str(draft.total_amount),
                        "clamped": draft.clamped,
                    },
                )
                return invoice.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Reads
    # =========================================================================

    def invoiceable_deliveries(self, order_id: UUID) -> tuple[InvoiceableDelivery, ...]:
        """Every delivery of the order with its invoice state and pricing."""
        order = self._machine.load_order(order_id)
        pricing = self._config.pricing
        result: list[InvoiceableDelivery] = []
        for item in order.items:
            item_input = item.to_dto().pricing_input()
            for d in item.deliveries:
                unit_price = delivery_cost = None
                if item_input.is_priced:
                    unit_price = round_money(customer_unit_price(item_input, pricing))
                    delivery_cost = round_money(
                        prorated_delivery_cost(item_input, d.quantity, pricing)
                    )
                result.append(
                    InvoiceableDelivery(
                        delivery_id=d.id,
                        order_item_id=item.id,
                        product_name=item.product_name,
                        quantity=d.quantity,
                        delivery_date=d.delivery_date,
                        delivery_time=d.delivery_time,
                        is_invoiced=d.is_invoiced,
                        invoice_id=d.invoice_id,
                        unit_price=unit_price,
                        delivery_cost=delivery_cost,
                    )
                )
        return tuple(result)

    def list_invoices(self, order_id: UUID) -> tuple[InvoiceSummary, ...]:
        self._machine.load_order(order_id)
        invoices = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.order_id == order_id)
            .order_by(InvoiceModel.issued_date, InvoiceModel.invoice_number)
        ).scalars()
        return tuple(
            InvoiceSummary(
                id=inv.id,
                invoice_number=inv.invoice_number,
                status=InvoiceStatus(inv.status),
                total_amount=inv.total_amount,
                issued_date=inv.issued_date,
                due_date=inv.due_date,
                items_count=len(inv.lines),
                created_by_id=inv.created_by_id,
            )
            for inv in invoices
        )

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self._session.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice.to_dto()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def change_status(
        self, invoice_id: UUID, to_status: InvoiceStatus, actor_id: UUID
    ) -> Invoice:
        """
        Move the invoice along INVOICE_WORKFLOW.

        Cancelling or voiding does not release the invoice's deliveries.
        """
        try:
            with LogContext.bind(invoice_id=invoice_id, actor_id=actor_id):
                invoice = self._session.execute(
                    select(InvoiceModel)
                    .where(InvoiceModel.id == invoice_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if invoice is None:
                    raise InvoiceNotFoundError(str(invoice_id))

                target = InvoiceStatus(to_status)
                from_status = invoice.status
                if INVOICE_WORKFLOW.find(from_status, target.value) is None:
                    raise IllegalTransitionError(
                        INVOICE_WORKFLOW.name, from_status, target.value
                    )
                invoice.status = target.value
                invoice.updated_by_id = actor_id

                order = self._session.get(OrderModel, invoice.order_id)
                self._machine.append_log(
                    order,
                    "invoice_status_changed",
                    actor_id,
                    {
                        "invoice_id": str(invoice_id),
                        "invoice_number": invoice.invoice_number,
                        "from_status": from_status,
                        "to_status": target.value,
                    },
                )
                self._session.commit()
                logger.info(
                    "invoice_status_changed",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "from_status": from_status,
                        "to_status": target.value,
                    },
                )
                return invoice.to_dto()
        except Exception:
            self._session.rollback()
            raise
