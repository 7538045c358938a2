"""
Tests for the supplier directory and supplier assignment.

Validates:
- Eligibility: zone coverage, active offers, ranking by distance then cost
- Assignment prices the item from the offer and the covering zone
- Reassignment resets confirmations and the quote, keeps the schedule
- Assignment gates: editable order, payment still pending
- Coverage evaluation flags orders nobody can supply
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from market_kernel.exceptions import (
    NegativeTotalError,
    OfferNotFoundError,
    OrderLockedError,
    StateError,
    SupplierNotEligibleError,
    SupplierNotFoundError,
    ValidationError,
)
from market_modules.orders.models import (
    NewDelivery,
    OrderWorkflow,
    SupplierConfirmation,
)
from market_modules.suppliers.directory import SqlSupplierDirectory, SupplierDirectory
from tests.factories import (
    PARRAMATTA_LAT,
    PARRAMATTA_LONG,
    PRODUCT_CONCRETE,
    PRODUCT_STEEL,
)


class TestSupplierDirectory:

    def test_register_requires_name(self, supplier_service, actor_id):
        with pytest.raises(ValidationError):
            supplier_service.register_supplier("  ", actor_id)

    def test_zone_radius_must_be_positive(self, supplier_service, actor_id):
        supplier = supplier_service.register_supplier("Zero Radius", actor_id)
        with pytest.raises(ValidationError):
            supplier_service.add_delivery_zone(
                supplier.id, "Depot", -33.87, 151.21, 0, actor_id
            )

    def test_zone_coordinates_validated(self, supplier_service, actor_id):
        supplier = supplier_service.register_supplier("Bad Coordinates", actor_id)
        with pytest.raises(ValidationError):
            supplier_service.add_delivery_zone(
                supplier.id, "Depot", 95.0, 151.21, 10, actor_id
            )

    def test_zones_and_offers_listed(self, make_supplier, supplier_service):
        supplier, offer, zone = make_supplier("Listed Supply", Decimal("9"))
        assert [z.id for z in supplier_service.list_zones(supplier.id)] == [zone.id]
        assert [o.id for o in supplier_service.list_offers(supplier.id)] == [offer.id]

    def test_sql_directory_satisfies_port(self, session):
        assert isinstance(SqlSupplierDirectory(session), SupplierDirectory)

    def test_unknown_supplier(self, supplier_service):
        with pytest.raises(SupplierNotFoundError):
            supplier_service.get_supplier(uuid4())


class TestEligibleSuppliers:

    def test_ranked_by_distance_then_cost(self, make_supplier, make_order, assignment_service):
        near, _, _ = make_supplier("Harbour Concrete", Decimal("14"))
        far, _, _ = make_supplier(
            "Western Concrete", Decimal("8"), lat=PARRAMATTA_LAT, long=PARRAMATTA_LONG
        )
        order = make_order()
        ranked = assignment_service.eligible_suppliers(order.id, order.items[0].id)
        assert [e.supplier_id for e in ranked] == [near.id, far.id]
        assert ranked[0].distance_km == 0.0
        assert 15 < ranked[1].distance_km < 25

    def test_equal_distance_ranked_by_cost(self, make_supplier, make_order, assignment_service):
        dear, _, _ = make_supplier("Dear Concrete", Decimal("12"))
        cheap, _, _ = make_supplier("Cheap Concrete", Decimal("11"))
        order = make_order()
        ranked = assignment_service.eligible_suppliers(order.id, order.items[0].id)
        assert [e.supplier_id for e in ranked] == [cheap.id, dear.id]

    def test_zone_must_cover_site(self, make_supplier, make_order, assignment_service):
        make_supplier(
            "Parramatta Local", Decimal("8"),
            lat=PARRAMATTA_LAT, long=PARRAMATTA_LONG, radius_km=5,
        )
        order = make_order()
        assert assignment_service.eligible_suppliers(order.id, order.items[0].id) == ()

    def test_offer_must_match_product(self, make_supplier, make_order, assignment_service):
        make_supplier("Steel Only", Decimal("3"), product_id=PRODUCT_STEEL)
        order = make_order()
        assert assignment_service.eligible_suppliers(order.id, order.items[0].id) == ()

    def test_inactive_supplier_excluded(
        self, make_supplier, make_order, assignment_service, supplier_service, actor_id,
    ):
        supplier, _, _ = make_supplier("Closed Concrete", Decimal("10"))
        supplier_service.deactivate_supplier(supplier.id, actor_id)
        order = make_order()
        assert assignment_service.eligible_suppliers(order.id, order.items[0].id) == ()

    def test_order_without_coordinates(self, make_order, assignment_service):
        order = make_order(lat=None, long=None)
        with pytest.raises(ValidationError):
            assignment_service.eligible_suppliers(order.id, order.items[0].id)


class TestAssignSupplier:

    def test_first_assignment(self, make_supplier, make_order, assignment_service, actor_id):
        supplier, offer, zone = make_supplier("Acme Concrete", Decimal("10"))
        order = make_order()
        item_id = order.items[0].id
        result = assignment_service.assign_supplier(
            order.id, item_id, supplier.id, offer.id, actor_id
        )
        item = result.order.item(item_id)
        assert item.supplier_id == supplier.id
        assert item.chosen_offer_id == offer.id
        assert item.supplier_unit_cost == Decimal("10")
        assert item.supplier_delivery_cost == zone.delivery_cost
        assert result.previous_supplier_id is None
        assert result.reconfirmation_required is False
        assert result.workflow_advanced is True
        assert result.order.workflow == OrderWorkflow.SUPPLIER_ASSIGNED

    def test_partial_assignment_keeps_requested(
        self, make_supplier, make_order, assignment_service, actor_id,
    ):
        concrete, concrete_offer, _ = make_supplier("Acme Concrete", Decimal("10"))
        steel, steel_offer, _ = make_supplier("Acme Steel", Decimal("2"), product_id=PRODUCT_STEEL)
        order = make_order(items=[
            (PRODUCT_CONCRETE, "Concrete 32MPa", Decimal("5")),
            (PRODUCT_STEEL, "Reo bar N12", Decimal("40")),
        ])
        first = assignment_service.assign_supplier(
            order.id, order.items[0].id, concrete.id, concrete_offer.id, actor_id
        )
        assert first.order.workflow == OrderWorkflow.REQUESTED
        assert first.workflow_advanced is False

        second = assignment_service.assign_supplier(
            order.id, order.items[1].id, steel.id, steel_offer.id, actor_id
        )
        assert second.order.workflow == OrderWorkflow.SUPPLIER_ASSIGNED

    def test_not_eligible(self, make_supplier, make_order, assignment_service, actor_id):
        supplier, offer, _ = make_supplier(
            "Parramatta Local", Decimal("8"),
            lat=PARRAMATTA_LAT, long=PARRAMATTA_LONG, radius_km=5,
        )
        order = make_order()
        with pytest.raises(SupplierNotEligibleError):
            assignment_service.assign_supplier(
                order.id, order.items[0].id, supplier.id, offer.id, actor_id
            )
        assert not assignment_service.eligible_suppliers(order.id, order.items[0].id)

    def test_unknown_supplier(self, make_order, assignment_service, actor_id):
        order = make_order()
        with pytest.raises(SupplierNotFoundError):
            assignment_service.assign_supplier(
                order.id, order.items[0].id, uuid4(), uuid4(), actor_id
            )

    def test_offer_of_another_supplier(self, make_supplier, make_order, assignment_service, actor_id):
        first, _, _ = make_supplier("First Concrete", Decimal("10"))
        _, other_offer, _ = make_supplier("Second Concrete", Decimal("11"))
        order = make_order()
        with pytest.raises(OfferNotFoundError):
            assignment_service.assign_supplier(
                order.id, order.items[0].id, first.id, other_offer.id, actor_id
            )

    def test_offer_for_other_product(self, make_supplier, supplier_service, make_order,
                                     assignment_service, actor_id):
        supplier, _, _ = make_supplier("Mixed Supply", Decimal("10"))
        steel_offer = supplier_service.add_offer(supplier.id, PRODUCT_STEEL, Decimal("2"), actor_id)
        order = make_order()
        with pytest.raises(SupplierNotEligibleError):
            assignment_service.assign_supplier(
                order.id, order.items[0].id, supplier.id, steel_offer.id, actor_id
            )

    def test_payment_requested_blocks_assignment(
        self, assigned_order, make_supplier, order_service, assignment_service, actor_id,
    ):
        other, other_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        order_service.request_payment(assigned_order.id, actor_id)
        with pytest.raises(StateError):
            assignment_service.assign_supplier(
                assigned_order.id, assigned_order.items[0].id, other.id, other_offer.id, actor_id
            )

    def test_delivered_order_locked(
        self, scheduled_order, make_supplier, order_service, assignment_service, actor_id,
    ):
        other, other_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        order_service.request_payment(scheduled_order.id, actor_id)
        order_service.mark_delivered(scheduled_order.id, actor_id)
        with pytest.raises(OrderLockedError):
            assignment_service.assign_supplier(
                scheduled_order.id, scheduled_order.items[0].id, other.id, other_offer.id, actor_id
            )


class TestReassignment:

    @pytest.fixture
    def confirmed_order(self, scheduled_order, order_service, actor_id):
        item = scheduled_order.items[0]
        order_service.set_quoted_price(scheduled_order.id, item.id, Decimal("18"), actor_id)
        order_service.confirm_supplier(scheduled_order.id, item.id, actor_id)
        order_service.confirm_delivery(scheduled_order.id, item.deliveries[0].id, actor_id)
        return order_service.get_order(scheduled_order.id)

    def test_reassignment_resets_confirmation(
        self, confirmed_order, make_supplier, assignment_service, actor_id,
    ):
        before = confirmed_order.items[0]
        assert before.supplier_confirms
        bravo, bravo_offer, _ = make_supplier(
            "Bravo Concrete", Decimal("12"), delivery_cost=Decimal("25")
        )
        result = assignment_service.assign_supplier(
            confirmed_order.id, before.id, bravo.id, bravo_offer.id, actor_id
        )
        after = result.order.item(before.id)

        assert result.previous_supplier_id == before.supplier_id
        assert result.reconfirmation_required is True
        assert result.deliveries_reset == 1
        assert result.workflow_advanced is False

        assert after.supplier_id == bravo.id
        assert after.supplier_unit_cost == Decimal("12")
        assert after.supplier_delivery_cost == Decimal("25")
        assert after.quoted_price is None
        assert after.confirmation == SupplierConfirmation.UNCONFIRMED
        assert all(not d.is_confirmed for d in after.deliveries)

    def test_reassignment_keeps_schedule(
        self, confirmed_order, make_supplier, assignment_service, actor_id,
    ):
        before = confirmed_order.items[0]
        bravo, bravo_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        result = assignment_service.assign_supplier(
            confirmed_order.id, before.id, bravo.id, bravo_offer.id, actor_id
        )
        after = result.order.item(before.id)
        assert [(d.id, d.quantity, d.delivery_date) for d in after.deliveries] == [
            (d.id, d.quantity, d.delivery_date) for d in before.deliveries
        ]

    def test_unconfirmed_reassignment(
        self, assigned_order, make_supplier, assignment_service, actor_id,
    ):
        bravo, bravo_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        result = assignment_service.assign_supplier(
            assigned_order.id, assigned_order.items[0].id, bravo.id, bravo_offer.id, actor_id
        )
        assert result.reconfirmation_required is False

    def test_reassignment_logged(
        self, confirmed_order, make_supplier, assignment_service, order_service, actor_id,
    ):
        bravo, bravo_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        assignment_service.assign_supplier(
            confirmed_order.id, confirmed_order.items[0].id, bravo.id, bravo_offer.id, actor_id
        )
        entries = [
            e for e in order_service.order_history(confirmed_order.id)
            if e.action == "supplier_assigned"
        ]
        assert len(entries) == 2
        assert entries[-1].details["supplier_id"] == str(bravo.id)
        assert entries[-1].details["previous_supplier_id"] == str(confirmed_order.items[0].supplier_id)


    def test_reassignment_cannot_leave_discount_above_total(
        self, assigned_order, make_supplier, assignment_service, order_service, actor_id,
    ):
        item = assigned_order.items[0]
        order_service.update_discount(assigned_order.id, Decimal("100"), actor_id)
        budget, budget_offer, _ = make_supplier(
            "Budget Concrete", Decimal("1"), delivery_cost=Decimal("0")
        )

        with pytest.raises(NegativeTotalError):
            assignment_service.assign_supplier(
                assigned_order.id, item.id, budget.id, budget_offer.id, actor_id
            )

        order = order_service.get_order(assigned_order.id)
        assert order.item(item.id).supplier_id == item.supplier_id
        assert order.item(item.id).supplier_unit_cost == Decimal("10")
        assert order_service.order_costing(assigned_order.id).customer_total >= 0


class TestSupplierCoverage:

    def test_uncovered_order_flagged(self, make_supplier, make_order, assignment_service, actor_id):
        make_supplier("Acme Concrete", Decimal("10"))
        order = make_order(items=[
            (PRODUCT_CONCRETE, "Concrete 32MPa", Decimal("5")),
            (PRODUCT_STEEL, "Reo bar N12", Decimal("40")),
        ])
        updated = assignment_service.evaluate_supplier_coverage(order.id, actor_id)
        assert updated.workflow == OrderWorkflow.SUPPLIER_MISSING

    def test_covered_order_unchanged(self, make_supplier, make_order, assignment_service, actor_id):
        make_supplier("Acme Concrete", Decimal("10"))
        order = make_order()
        updated = assignment_service.evaluate_supplier_coverage(order.id, actor_id)
        assert updated.workflow == OrderWorkflow.REQUESTED

    def test_missing_then_assigned(
        self, make_supplier, make_order, assignment_service, actor_id,
    ):
        order = make_order()
        flagged = assignment_service.evaluate_supplier_coverage(order.id, actor_id)
        assert flagged.workflow == OrderWorkflow.SUPPLIER_MISSING

        supplier, offer, _ = make_supplier("Late Concrete", Decimal("10"))
        result = assignment_service.assign_supplier(
            order.id, order.items[0].id, supplier.id, offer.id, actor_id
        )
        assert result.workflow_advanced is True
        assert result.order.workflow == OrderWorkflow.SUPPLIER_ASSIGNED

    def test_reassignment_allowed_while_supplier_assigned(
        self, scheduled_order, make_supplier, assignment_service, order_service, actor_id,
    ):
        bravo, bravo_offer, _ = make_supplier("Bravo Concrete", Decimal("12"))
        assignment_service.assign_supplier(
            scheduled_order.id, scheduled_order.items[0].id, bravo.id, bravo_offer.id, actor_id
        )
        order_service.schedule_deliveries(
            scheduled_order.id,
            scheduled_order.items[0].id,
            [NewDelivery(Decimal("5"), date(2024, 2, 15))],
            actor_id,
        )
        assert order_service.is_balanced(scheduled_order.id, scheduled_order.items[0].id)
