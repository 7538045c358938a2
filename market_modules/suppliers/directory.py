"""
Supplier directory lookup.

``SupplierDirectory`` is the port the assignment resolver depends on;
``SqlSupplierDirectory`` answers it from the supplier tables.  Distance
and ranking are computed by ``market_engines.eligibility``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_engines.eligibility import (
    EligibleSupplier,
    SupplierCandidate,
    rank_eligible_suppliers,
)
from market_modules.suppliers.orm import (
    DeliveryZoneModel,
    SupplierModel,
    SupplierOfferModel,
)


@runtime_checkable
class SupplierDirectory(Protocol):
    """Answers "who can deliver this product to this point"."""

    def suppliers_near(
        self, lat: float | None, long: float | None, product_id: UUID
    ) -> tuple[EligibleSupplier, ...]:
        """Eligible suppliers for the product at the point, best first."""
        ...

    def candidates_for(self, product_id: UUID) -> list[SupplierCandidate]:
        """Every active (supplier, offer, zone) combination for the product."""
        ...


class SqlSupplierDirectory:
    """SupplierDirectory over the suppliers / zones / offers tables."""

    def __init__(self, session: Session):
        self._session = session

    def candidates_for(self, product_id: UUID) -> list[SupplierCandidate]:
        """Every (active supplier, active offer, zone) row for the product."""
        rows = self._session.execute(
            select(SupplierModel, SupplierOfferModel, DeliveryZoneModel)
            .join(SupplierOfferModel, SupplierOfferModel.supplier_id == SupplierModel.id)
            .join(DeliveryZoneModel, DeliveryZoneModel.supplier_id == SupplierModel.id)
            .where(
                SupplierModel.active.is_(True),
                SupplierOfferModel.active.is_(True),
                SupplierOfferModel.product_id == product_id,
            )
        ).all()
        return [
            SupplierCandidate(
                supplier_id=supplier.id,
                supplier_name=supplier.name,
                offer_id=offer.id,
                unit_cost=offer.unit_cost,
                zone_id=zone.id,
                zone_lat=zone.lat,
                zone_long=zone.long,
                radius_km=zone.radius_km,
                delivery_cost=zone.delivery_cost,
            )
            for supplier, offer, zone in rows
        ]

    def suppliers_near(
        self, lat: float | None, long: float | None, product_id: UUID
    ) -> tuple[EligibleSupplier, ...]:
        return rank_eligible_suppliers(
            lat=lat, long=long, candidates=self.candidates_for(product_id)
        )
