"""
Tests for the delivery ledger through OrderService.

Validates:
- Incremental scheduling never exceeds the item quantity
- Replacement splits must cover the quantity not yet invoiced
- Reschedule / resize / remove of open deliveries
- Invoiced deliveries are frozen
"""

from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest

from market_kernel.exceptions import (
    DeliveryAlreadyInvoicedError,
    DeliveryNotFoundError,
    LedgerImbalanceError,
    ValidationError,
)
from market_modules.orders.models import InvoiceLock, NewDelivery


class TestAddDelivery:

    def test_add_within_outstanding(self, assigned_order, order_service, actor_id):
        item = assigned_order.items[0]
        delivery = order_service.add_delivery(
            assigned_order.id, item.id, Decimal("3"), date(2024, 2, 1), actor_id,
            delivery_time=time(7, 30),
        )
        assert delivery.quantity == Decimal("3")
        assert delivery.delivery_time == time(7, 30)
        assert delivery.invoice_lock == InvoiceLock.OPEN

        order = order_service.get_order(assigned_order.id)
        assert order.items[0].outstanding_quantity == Decimal("2")
        assert not order_service.is_balanced(assigned_order.id, item.id)

    def test_add_above_outstanding_rejected(self, assigned_order, order_service, actor_id):
        item = assigned_order.items[0]
        order_service.add_delivery(
            assigned_order.id, item.id, Decimal("3"), date(2024, 2, 1), actor_id
        )
        with pytest.raises(ValidationError):
            order_service.add_delivery(
                assigned_order.id, item.id, Decimal("3"), date(2024, 2, 8), actor_id
            )
        assert len(order_service.get_order(assigned_order.id).items[0].deliveries) == 1

    def test_non_positive_quantity_rejected(self, assigned_order, order_service, actor_id):
        item = assigned_order.items[0]
        with pytest.raises(ValidationError):
            order_service.add_delivery(
                assigned_order.id, item.id, Decimal("0"), date(2024, 2, 1), actor_id
            )

    def test_fill_to_balance(self, assigned_order, order_service, actor_id):
        item = assigned_order.items[0]
        order_service.add_delivery(
            assigned_order.id, item.id, Decimal("3"), date(2024, 2, 1), actor_id
        )
        order_service.add_delivery(
            assigned_order.id, item.id, Decimal("2"), date(2024, 2, 8), actor_id
        )
        assert order_service.is_balanced(assigned_order.id, item.id)


class TestScheduleDeliveries:

    def test_fixture_schedule(self, scheduled_order):
        deliveries = scheduled_order.items[0].deliveries
        assert [d.quantity for d in deliveries] == [Decimal("3"), Decimal("2")]
        assert [d.delivery_date for d in deliveries] == [date(2024, 2, 1), date(2024, 2, 8)]

    def test_imbalanced_split_rejected(self, assigned_order, order_service, actor_id):
        item = assigned_order.items[0]
        with pytest.raises(LedgerImbalanceError) as exc_info:
            order_service.schedule_deliveries(
                assigned_order.id,
                item.id,
                [NewDelivery(Decimal("2"), date(2024, 2, 1)), NewDelivery(Decimal("2"), date(2024, 2, 8))],
                actor_id,
            )
        assert Decimal(exc_info.value.expected) == Decimal("5")
        assert Decimal(exc_info.value.scheduled) == Decimal("4")

    def test_split_replaces_open_deliveries(self, scheduled_order, order_service, actor_id):
        item = scheduled_order.items[0]
        rows = order_service.schedule_deliveries(
            scheduled_order.id, item.id, [NewDelivery(Decimal("5"), date(2024, 3, 1))], actor_id
        )
        assert len(rows) == 1
        deliveries = order_service.get_order(scheduled_order.id).items[0].deliveries
        assert [(d.quantity, d.delivery_date) for d in deliveries] == [
            (Decimal("5"), date(2024, 3, 1))
        ]

    def test_empty_split_rejected(self, assigned_order, order_service, actor_id):
        with pytest.raises(ValidationError):
            order_service.schedule_deliveries(
                assigned_order.id, assigned_order.items[0].id, [], actor_id
            )


class TestRescheduleAndRemove:

    def test_reschedule_date(self, scheduled_order, order_service, actor_id):
        first = scheduled_order.items[0].deliveries[0]
        moved = order_service.reschedule_delivery(
            scheduled_order.id, first.id, actor_id, delivery_date=date(2024, 2, 3)
        )
        assert moved.delivery_date == date(2024, 2, 3)
        assert moved.quantity == Decimal("3")

    def test_shrink_unbalances(self, scheduled_order, order_service, actor_id):
        first = scheduled_order.items[0].deliveries[0]
        order_service.reschedule_delivery(
            scheduled_order.id, first.id, actor_id, quantity=Decimal("2")
        )
        item = scheduled_order.items[0]
        assert not order_service.is_balanced(scheduled_order.id, item.id)

    def test_grow_beyond_item_rejected(self, scheduled_order, order_service, actor_id):
        first = scheduled_order.items[0].deliveries[0]
        with pytest.raises(ValidationError):
            order_service.reschedule_delivery(
                scheduled_order.id, first.id, actor_id, quantity=Decimal("4")
            )

    def test_remove(self, scheduled_order, order_service, actor_id):
        second = scheduled_order.items[0].deliveries[1]
        order = order_service.remove_delivery(scheduled_order.id, second.id, actor_id)
        assert [d.id for d in order.items[0].deliveries] == [
            scheduled_order.items[0].deliveries[0].id
        ]

    def test_unknown_delivery(self, scheduled_order, order_service, actor_id):
        with pytest.raises(DeliveryNotFoundError):
            order_service.remove_delivery(scheduled_order.id, uuid4(), actor_id)

    def test_confirm_delivery(self, scheduled_order, order_service, actor_id):
        first = scheduled_order.items[0].deliveries[0]
        confirmed = order_service.confirm_delivery(scheduled_order.id, first.id, actor_id)
        assert confirmed.is_confirmed


class TestInvoicedDeliveriesFrozen:

    @pytest.fixture
    def partly_invoiced(self, scheduled_order, invoice_service, actor_id):
        first = scheduled_order.items[0].deliveries[0]
        invoice_service.create_invoice(scheduled_order.id, [first.id], actor_id)
        return scheduled_order

    def test_reschedule_rejected(self, partly_invoiced, order_service, actor_id):
        first = partly_invoiced.items[0].deliveries[0]
        with pytest.raises(DeliveryAlreadyInvoicedError):
            order_service.reschedule_delivery(
                partly_invoiced.id, first.id, actor_id, delivery_date=date(2024, 2, 2)
            )

    def test_remove_rejected(self, partly_invoiced, order_service, actor_id):
        first = partly_invoiced.items[0].deliveries[0]
        with pytest.raises(DeliveryAlreadyInvoicedError):
            order_service.remove_delivery(partly_invoiced.id, first.id, actor_id)

    def test_uninvoiced_deliveries(self, partly_invoiced, order_service):
        item = partly_invoiced.items[0]
        open_ids = [d.id for d in order_service.uninvoiced_deliveries(partly_invoiced.id, item.id)]
        assert open_ids == [item.deliveries[1].id]

    def test_resplit_keeps_invoiced_delivery(self, partly_invoiced, order_service, actor_id):
        item = partly_invoiced.items[0]
        with pytest.raises(LedgerImbalanceError):
            order_service.schedule_deliveries(
                partly_invoiced.id, item.id, [NewDelivery(Decimal("5"), date(2024, 3, 1))], actor_id
            )

        order_service.schedule_deliveries(
            partly_invoiced.id,
            item.id,
            [NewDelivery(Decimal("1"), date(2024, 3, 1)), NewDelivery(Decimal("1"), date(2024, 3, 8))],
            actor_id,
        )
        deliveries = order_service.get_order(partly_invoiced.id).items[0].deliveries
        assert len(deliveries) == 3
        assert deliveries[0].id == item.deliveries[0].id
        assert deliveries[0].is_invoiced
        assert order_service.is_balanced(partly_invoiced.id, item.id)
