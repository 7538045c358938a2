"""
Pytest fixtures for the market engine test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Services wired with a deterministic clock and default configuration
- Builders for suppliers, orders and delivery schedules

Environment Variables:
- MARKET_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL)
  instead of a temporary SQLite file.  Tables are dropped after each test.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest

from market_config.schema import EngineConfig
from market_kernel.db.engine import (
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from market_kernel.domain.clock import DeterministicClock
from market_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from market_modules._orm_registry import create_all_tables
from market_modules.invoicing.service import InvoiceService
from market_modules.orders.models import NewDelivery, NewOrderItem
from market_modules.orders.service import OrderService
from market_modules.suppliers.service import SupplierAssignmentService, SupplierService
from tests.factories import (
    PRODUCT_CONCRETE,
    SITE_LAT,
    SITE_LONG,
    TEST_ACTOR_ID,
    TEST_CLIENT_ID,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture market_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, order_service):
            order_service.place_order(...)
            logs = captured_logs()
            assert any(r["message"] == "order_placed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("market_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh schema for every test."""
    url = os.environ.get("MARKET_TEST_DATABASE_URL")
    external = url is not None
    if not external:
        url = f"sqlite:///{tmp_path / 'market.db'}"

    engine = init_engine_from_url(url)
    create_all_tables()
    yield engine
    if external:
        drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine):
    s = get_session()
    yield s
    s.close()


# =============================================================================
# Common values
# =============================================================================


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def order_service(session, config, deterministic_clock):
    return OrderService(session, config=config, clock=deterministic_clock)


@pytest.fixture
def supplier_service(session):
    return SupplierService(session)


@pytest.fixture
def assignment_service(session, config, deterministic_clock):
    return SupplierAssignmentService(session, config=config, clock=deterministic_clock)


@pytest.fixture
def invoice_service(session, config, deterministic_clock):
    return InvoiceService(session, config=config, clock=deterministic_clock)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_supplier(supplier_service, actor_id):
    """
    Register a supplier with one zone and one offer.

    Returns ``(supplier, offer, zone)``.
    """

    def _make(
        name: str,
        unit_cost: Decimal,
        product_id: UUID = PRODUCT_CONCRETE,
        lat: float = SITE_LAT,
        long: float = SITE_LONG,
        radius_km: float = 50.0,
        delivery_cost: Decimal = Decimal("20"),
    ):
        supplier = supplier_service.register_supplier(name, actor_id)
        zone = supplier_service.add_delivery_zone(
            supplier.id,
            address=f"{name} depot",
            lat=lat,
            long=long,
            radius_km=radius_km,
            delivery_cost=delivery_cost,
            actor_id=actor_id,
        )
        offer = supplier_service.add_offer(supplier.id, product_id, unit_cost, actor_id)
        return supplier, offer, zone

    return _make


@pytest.fixture
def make_order(order_service, actor_id):
    """Place an order at the Sydney site. ``items`` are (product_id, name, quantity)."""

    def _make(items=None, lat: float | None = SITE_LAT, long: float | None = SITE_LONG):
        items = items or [(PRODUCT_CONCRETE, "Concrete 32MPa", Decimal("5"))]
        return order_service.place_order(
            client_id=TEST_CLIENT_ID,
            delivery_address="1 George St, Sydney NSW",
            items=[NewOrderItem(pid, name, qty, "m3") for pid, name, qty in items],
            actor_id=actor_id,
            delivery_lat=lat,
            delivery_long=long,
        )

    return _make


@pytest.fixture
def assigned_order(make_supplier, make_order, assignment_service, actor_id):
    """
    One item (concrete x 5) assigned to a supplier at unit cost 10 with
    delivery cost 20.  Workflow is ``supplier_assigned``.
    """
    supplier, offer, _ = make_supplier("Acme Concrete", Decimal("10"))
    order = make_order()
    item = order.items[0]
    result = assignment_service.assign_supplier(
        order.id, item.id, supplier.id, offer.id, actor_id
    )
    return result.order


@pytest.fixture
def scheduled_order(assigned_order, order_service, actor_id):
    """``assigned_order`` with deliveries of 3 and 2."""
    item = assigned_order.items[0]
    order_service.schedule_deliveries(
        assigned_order.id,
        item.id,
        [
            NewDelivery(Decimal("3"), date(2024, 2, 1)),
            NewDelivery(Decimal("2"), date(2024, 2, 8)),
        ],
        actor_id,
    )
    return order_service.get_order(assigned_order.id)
