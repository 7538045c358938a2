"""
Concurrent invoice creation over the same deliveries.

Two operators preview and invoice the same order from separate sessions.
Whatever the interleaving, each delivery ends up on exactly one invoice,
the loser gets DeliveryClaimConflictError, and nothing from the losing
attempt persists.

SQLite serializes writers with BEGIN IMMEDIATE; under PostgreSQL the
claim relies on SELECT ... FOR UPDATE.  Each step below ends its session's
transaction before the next session starts so the SQLite lock is free.
"""

import threading
from threading import Barrier

import pytest

from market_kernel.db.engine import get_session_factory
from market_kernel.exceptions import (
    DeliveryAlreadyInvoicedError,
    DeliveryClaimConflictError,
)
from market_modules.invoicing.service import InvoiceService
from market_modules.orders.service import OrderService


def _ids(order):
    return [d.id for d in order.items[0].deliveries]


@pytest.fixture
def released_order(scheduled_order, session):
    """``scheduled_order`` with the fixture session's transaction closed."""
    session.close()
    return scheduled_order


@pytest.fixture
def make_invoice_service(config, deterministic_clock):
    factory = get_session_factory()
    sessions = []

    def _make():
        s = factory()
        sessions.append(s)
        return s, InvoiceService(s, config=config, clock=deterministic_clock)

    yield _make
    for s in sessions:
        s.close()


class TestInterleavedClaims:

    def test_stale_preview_loses(self, released_order, make_invoice_service, actor_id):
        ids = _ids(released_order)
        session_a, service_a = make_invoice_service()
        session_b, service_b = make_invoice_service()

        preview = service_a.preview_invoice(released_order.id, ids)
        session_a.rollback()

        winner = service_b.create_invoice(released_order.id, ids, actor_id)
        assert winner.total_amount == preview.total_amount

        with pytest.raises(DeliveryClaimConflictError):
            service_a.create_invoice(released_order.id, ids, actor_id)

        assert len(service_a.list_invoices(released_order.id)) == 1
        session_a.rollback()

    def test_overlap_leaves_unclaimed_delivery_open(
        self, released_order, make_invoice_service, actor_id,
    ):
        first, second = _ids(released_order)
        session_a, service_a = make_invoice_service()
        session_b, service_b = make_invoice_service()

        service_a.preview_invoice(released_order.id, [first, second])
        session_a.rollback()
        service_b.create_invoice(released_order.id, [first], actor_id)

        with pytest.raises(DeliveryClaimConflictError) as exc_info:
            service_a.create_invoice(released_order.id, [first, second], actor_id)
        assert exc_info.value.delivery_ids == [str(first)]

        rows = {r.delivery_id: r for r in service_a.invoiceable_deliveries(released_order.id)}
        session_a.rollback()
        assert rows[first].is_invoiced
        assert not rows[second].is_invoiced

        retry = service_a.create_invoice(released_order.id, [second], actor_id)
        assert retry.invoice_number == "INV-00002"

    def test_disjoint_selections_both_succeed(
        self, released_order, make_invoice_service, actor_id,
    ):
        first, second = _ids(released_order)
        _, service_a = make_invoice_service()
        _, service_b = make_invoice_service()

        one = service_a.create_invoice(released_order.id, [first], actor_id)
        two = service_b.create_invoice(released_order.id, [second], actor_id)
        assert {one.invoice_number, two.invoice_number} == {"INV-00001", "INV-00002"}

    def test_ledger_edit_after_claim_sees_invoiced_state(
        self, released_order, make_invoice_service, config, deterministic_clock, actor_id,
    ):
        first = _ids(released_order)[0]
        order_session = get_session_factory()()
        orders = OrderService(order_session, config=config, clock=deterministic_clock)
        try:
            # Load the order into the second session before the claim
            orders.get_order(released_order.id)
            order_session.rollback()

            _, invoices = make_invoice_service()
            invoices.create_invoice(released_order.id, [first], actor_id)

            with pytest.raises(DeliveryAlreadyInvoicedError):
                orders.remove_delivery(released_order.id, first, actor_id)
        finally:
            order_session.close()


class TestThreadedClaims:

    def test_same_deliveries_exactly_one_wins(
        self, released_order, config, deterministic_clock, actor_id,
    ):
        ids = _ids(released_order)
        factory = get_session_factory()
        barrier = Barrier(2)
        lock = threading.Lock()
        results: list[str] = []
        conflicts: list[DeliveryClaimConflictError] = []
        errors: list[BaseException] = []

        def claim():
            s = factory()
            try:
                service = InvoiceService(s, config=config, clock=deterministic_clock)
                barrier.wait(timeout=10)
                invoice = service.create_invoice(released_order.id, ids, actor_id)
                with lock:
                    results.append(invoice.invoice_number)
            except DeliveryClaimConflictError as exc:
                with lock:
                    conflicts.append(exc)
            except BaseException as exc:
                with lock:
                    errors.append(exc)
            finally:
                s.close()

        threads = [threading.Thread(target=claim) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert not errors, errors
        assert results == ["INV-00001"]
        assert len(conflicts) == 1

        check = factory()
        try:
            service = InvoiceService(check, config=config, clock=deterministic_clock)
            invoices = service.list_invoices(released_order.id)
            assert len(invoices) == 1
            assert invoices[0].items_count == 2
            assert all(r.is_invoiced for r in service.invoiceable_deliveries(released_order.id))
        finally:
            check.close()
