"""
Supplier Module Services.

``SupplierService`` maintains the supplier directory.
``SupplierAssignmentService`` resolves and assigns suppliers to order
items:

1. Reads eligible suppliers from the SupplierDirectory (eligibility engine)
2. Locks the order and checks the editing and payment gates
3. Re-prices the item from the chosen offer and nearest covering zone
4. Re-costs the order so the stored discount still fits the new total
5. Resets supplier confirmations and advances the order workflow

Both services own their transaction: commit on success, roll back on failure.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from market_config.schema import EngineConfig
from market_engines.eligibility import (
    EligibleSupplier,
    find_covering_zone,
    validate_coordinates,
)
from market_engines.pricing import compute_order_costing
from market_kernel.db.types import ZERO, to_decimal
from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.exceptions import (
    OfferNotFoundError,
    StateError,
    SupplierNotEligibleError,
    SupplierNotFoundError,
    ValidationError,
)
from market_kernel.logging_config import LogContext, get_logger
from market_modules.orders.ledger import DeliveryLedger, ensure_split_open
from market_modules.orders.models import (
    Order,
    OrderWorkflow,
    PaymentStatus,
    SupplierConfirmation,
)
from market_modules.orders.orm import OrderItemModel, OrderModel
from market_modules.orders.state_machine import OrderStateMachine
from market_modules.suppliers.directory import SqlSupplierDirectory, SupplierDirectory
from market_modules.suppliers.models import (
    AssignmentResult,
    DeliveryZone,
    Supplier,
    SupplierOffer,
)
from market_modules.suppliers.orm import (
    DeliveryZoneModel,
    SupplierModel,
    SupplierOfferModel,
)

logger = get_logger("modules.suppliers.service")


class SupplierService:
    """
    Supplier directory maintenance.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(self, session: Session):
        self._session = session

    def _supplier(self, supplier_id: UUID) -> SupplierModel:
        supplier = self._session.get(SupplierModel, supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(str(supplier_id))
        return supplier

    def get_supplier(self, supplier_id: UUID) -> Supplier:
        return self._supplier(supplier_id).to_dto()

    def list_zones(self, supplier_id: UUID) -> tuple[DeliveryZone, ...]:
        return tuple(z.to_dto() for z in self._supplier(supplier_id).zones)

    def list_offers(self, supplier_id: UUID) -> tuple[SupplierOffer, ...]:
        return tuple(o.to_dto() for o in self._supplier(supplier_id).offers)

    def register_supplier(self, name: str, actor_id: UUID) -> Supplier:
        try:
            if not name or not name.strip():
                raise ValidationError("Supplier name is required", field="name")
            supplier = SupplierModel(name=name.strip(), active=True, created_by_id=actor_id)
            self._session.add(supplier)
            self._session.flush()
            self._session.commit()
            logger.info(
                "supplier_registered",
                extra={"supplier_id": str(supplier.id), "supplier_name": supplier.name},
            )
            return supplier.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def add_delivery_zone(
        self,
        supplier_id: UUID,
        address: str,
        lat: float,
        long: float,
        radius_km: float,
        actor_id: UUID,
        delivery_cost: Decimal = ZERO,
    ) -> DeliveryZone:
        """Add a circular delivery zone with a flat delivery cost."""
        try:
            supplier = self._supplier(supplier_id)
            validate_coordinates(lat, long)
            if radius_km is None or radius_km <= 0:
                raise ValidationError("Zone radius must be positive", field="radius_km")
            cost = to_decimal(delivery_cost)
            if cost < 0:
                raise ValidationError("Delivery cost must be non-negative", field="delivery_cost")
            zone = DeliveryZoneModel(
                address=address,
                lat=lat,
                long=long,
                radius_km=radius_km,
                delivery_cost=cost,
                created_by_id=actor_id,
            )
            supplier.zones.append(zone)
            self._session.flush()
            self._session.commit()
            logger.info(
                "supplier_zone_added",
                extra={
                    "supplier_id": str(supplier_id),
                    "zone_id": str(zone.id),
                    "radius_km": radius_km,
                },
            )
            return zone.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def add_offer(
        self,
        supplier_id: UUID,
        product_id: UUID,
        unit_cost: Decimal,
        actor_id: UUID,
    ) -> SupplierOffer:
        try:
            supplier = self._supplier(supplier_id)
            cost = to_decimal(unit_cost)
            if cost < 0:
                raise ValidationError("Unit cost must be non-negative", field="unit_cost")
            offer = SupplierOfferModel(
                product_id=product_id,
                unit_cost=cost,
                active=True,
                created_by_id=actor_id,
            )
            supplier.offers.append(offer)
            self._session.flush()
            self._session.commit()
            logger.info(
                "supplier_offer_added",
                extra={
                    "supplier_id": str(supplier_id),
                    "offer_id": str(offer.id),
                    "product_id": str(product_id),
                    "unit_cost": str(cost),
                },
            )
            return offer.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def deactivate_offer(self, offer_id: UUID, actor_id: UUID) -> SupplierOffer:
        try:
            offer = self._session.get(SupplierOfferModel, offer_id)
            if offer is None:
                raise OfferNotFoundError(str(offer_id))
            offer.active = False
            offer.updated_by_id = actor_id
            self._session.commit()
            return offer.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def deactivate_supplier(self, supplier_id: UUID, actor_id: UUID) -> Supplier:
        """Hide the supplier from eligibility. Existing assignments stay."""
        try:
            supplier = self._supplier(supplier_id)
            supplier.active = False
            supplier.updated_by_id = actor_id
            self._session.commit()
            logger.info("supplier_deactivated", extra={"supplier_id": str(supplier_id)})
            return supplier.to_dto()
        except Exception:
            self._session.rollback()
            raise


class SupplierAssignmentService:
    """
    Resolves eligible suppliers and assigns them to order items.

    Assignment is only possible while the client has not been asked to
    pay (``payment_status == pending``) and the order is editable.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        directory: SupplierDirectory | None = None,
    ):
        self._session = session
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._directory = directory or SqlSupplierDirectory(session)
        self._machine = OrderStateMachine(session, clock=self._clock)
        self._ledger = DeliveryLedger(session)

    def eligible_suppliers(
        self, order_id: UUID, item_id: UUID
    ) -> tuple[EligibleSupplier, ...]:
        """
        Suppliers able to deliver the item's product to the order site.

        Raises:
            ValidationError: the order has no delivery coordinates.
        """
        order = self._machine.load_order(order_id)
        item = self._machine.find_item(order, item_id)
        return self._directory.suppliers_near(
            order.delivery_lat, order.delivery_long, item.product_id
        )

    def assign_supplier(
        self,
        order_id: UUID,
        item_id: UUID,
        supplier_id: UUID,
        offer_id: UUID,
        actor_id: UUID,
    ) -> AssignmentResult:
        """
        Assign (or reassign) a supplier and offer to an order item.

        Unit cost comes from the offer and delivery cost from the supplier's
        nearest covering zone.  Supplier discount, quoted price and every
        confirmation on the item and its deliveries are reset; delivery
        dates and quantities are untouched.

        Raises:
            DeliveryAlreadyInvoicedError: one of the item's deliveries is
                already invoiced.
            NegativeTotalError: the new prices would leave the order
                discount above the order total.
        """
        try:
            with LogContext.bind(order_id=order_id, actor_id=actor_id):
                order = self._machine.lock_order(order_id)
                self._machine.ensure_editable(order, "assign a supplier")
                if order.payment_status != PaymentStatus.PENDING.value:
                    raise StateError(
                        f"Order {order_id}: suppliers cannot change once payment "
                        f"is {order.payment_status}"
                    )
                item = self._machine.find_item(order, item_id)
                ensure_split_open(item, "supplier")

                supplier = self._session.get(SupplierModel, supplier_id)
                if supplier is None:
                    raise SupplierNotFoundError(str(supplier_id))
                offer = self._session.get(SupplierOfferModel, offer_id)
                if offer is None or offer.supplier_id != supplier.id:
                    raise OfferNotFoundError(str(offer_id))
                if (
                    not supplier.active
                    or not offer.active
                    or offer.product_id != item.product_id
                ):
                    raise SupplierNotEligibleError(str(supplier_id), str(item_id))

                zone = find_covering_zone(
                    lat=order.delivery_lat,
                    long=order.delivery_long,
                    candidates=[
                        c
                        for c in self._directory.candidates_for(item.product_id)
                        if c.supplier_id == supplier.id and c.offer_id == offer.id
                    ],
                )
                if zone is None:
                    raise SupplierNotEligibleError(str(supplier_id), str(item_id))

                previous_supplier_id = item.supplier_id
                reconfirmation_required = previous_supplier_id is not None and (
                    item.confirmation == SupplierConfirmation.CONFIRMED.value
                    or any(
                        d.confirmation == SupplierConfirmation.CONFIRMED.value
                        for d in item.deliveries
                    )
                )

                item.supplier_id = supplier.id
                item.chosen_offer_id = offer.id
                item.supplier_unit_cost = offer.unit_cost
                item.supplier_discount = ZERO
                item.supplier_delivery_cost = zone.delivery_cost
                item.quoted_price = None
                item.confirmation = SupplierConfirmation.UNCONFIRMED.value
                item.updated_by_id = actor_id
                deliveries_reset = self._ledger.reset_confirmations(item, actor_id)

                self._session.flush()
                priced = order.to_dto()
                # Raises NegativeTotalError when the stored discount no longer fits
                compute_order_costing(
                    items=[i.pricing_input() for i in priced.items],
                    discount=priced.discount,
                    other_charges=priced.other_charges,
                    config=self._config.pricing,
                )

                self._machine.append_log(
                    order,
                    "supplier_assigned",
                    actor_id,
                    {
                        "order_item_id": str(item_id),
                        "supplier_id": str(supplier_id),
                        "offer_id": str(offer_id),
                        "previous_supplier_id": (
                            str(previous_supplier_id) if previous_supplier_id else None
                        ),
                    },
                )

                advanced = False
                if order.workflow in (
                    OrderWorkflow.REQUESTED.value,
                    OrderWorkflow.SUPPLIER_MISSING.value,
                ) and all(i.supplier_id is not None for i in order.items):
                    self._machine.transition(
                        order, OrderWorkflow.SUPPLIER_ASSIGNED, "assign_suppliers", actor_id
                    )
                    advanced = True

                self._session.commit()
                logger.info(
                    "supplier_assigned",
                    extra={
                        "order_item_id": str(item_id),
                        "supplier_id": str(supplier_id),
                        "offer_id": str(offer_id),
                        "reconfirmation_required": reconfirmation_required,
                        "deliveries_reset": deliveries_reset,
                    },
                )
                return AssignmentResult(
                    order=order.to_dto(),
                    item_id=item_id,
                    supplier_id=supplier_id,
                    offer_id=offer_id,
                    previous_supplier_id=previous_supplier_id,
                    reconfirmation_required=reconfirmation_required,
                    deliveries_reset=deliveries_reset,
                    workflow_advanced=advanced,
                )
        except Exception:
            self._session.rollback()
            raise

    def evaluate_supplier_coverage(self, order_id: UUID, actor_id: UUID) -> Order:
        """
        Flag a ``requested`` order as ``supplier_missing`` when some
        unassigned item has no eligible supplier at all.

        Orders in any other state are returned unchanged.
        """
        try:
            order = self._machine.lock_order(order_id)
            self._machine.ensure_not_archived(order)
            if order.workflow != OrderWorkflow.REQUESTED.value:
                return order.to_dto()

            uncovered = [
                item
                for item in order.items
                if item.supplier_id is None and not self._has_coverage(order, item)
            ]
            if uncovered:
                self._machine.transition(
                    order, OrderWorkflow.SUPPLIER_MISSING, "flag_supplier_missing", actor_id
                )
                logger.info(
                    "order_supplier_missing",
                    extra={
                        "order_id": str(order_id),
                        "uncovered_item_ids": [str(i.id) for i in uncovered],
                    },
                )
            self._session.commit()
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def _has_coverage(self, order: OrderModel, item: OrderItemModel) -> bool:
        if order.delivery_lat is None or order.delivery_long is None:
            return False
        return bool(
            self._directory.suppliers_near(
                order.delivery_lat, order.delivery_long, item.product_id
            )
        )
