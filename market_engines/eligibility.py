"""
Supplier Eligibility Engine.

Pure functions with deterministic behavior. No I/O.

Decides which suppliers can serve a delivery point and ranks them.  A
supplier is eligible for an item when it holds an active offer for the
item's product AND one of its delivery zones (centre plus radius) covers
the order's delivery coordinates.  Distance is great-circle (haversine)
distance in kilometres from the zone centre to the delivery point.

When a supplier has several covering zones the nearest one wins; when it
has several active offers for the product the cheapest one wins.

Ranking: distance ascending, then unit cost, then supplier name.

Usage:
    from market_engines.eligibility import SupplierCandidate, rank_eligible_suppliers

    ranked = rank_eligible_suppliers(lat=-33.86, long=151.21, candidates=candidates)
    best = ranked[0] if ranked else None
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from market_engines.tracer import traced_engine
from market_kernel.exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0088


@dataclass(frozen=True)
class SupplierCandidate:
    """One (supplier, offer, zone) combination from the supplier directory."""

    supplier_id: Any
    supplier_name: str
    offer_id: Any
    unit_cost: Decimal
    zone_id: Any
    zone_lat: float
    zone_long: float
    radius_km: float
    delivery_cost: Decimal


@dataclass(frozen=True)
class EligibleSupplier:
    """A supplier able to serve the delivery point, with the winning offer and zone."""

    supplier_id: Any
    supplier_name: str
    offer_id: Any
    distance_km: float
    unit_cost: Decimal
    delivery_cost: Decimal
    zone_id: Any


def validate_coordinates(lat: float | None, long: float | None) -> None:
    if lat is None or long is None:
        raise ValidationError("Delivery coordinates are required", field="coordinates")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude out of range: {lat}", field="lat")
    if not -180.0 <= long <= 180.0:
        raise ValidationError(f"Longitude out of range: {long}", field="long")


def haversine_km(lat1: float, long1: float, lat2: float, long2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(long2 - long1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def zone_covers(candidate: SupplierCandidate, lat: float, long: float) -> bool:
    return haversine_km(candidate.zone_lat, candidate.zone_long, lat, long) <= candidate.radius_km


def _rank_key(e: EligibleSupplier) -> tuple:
    return (e.distance_km, e.unit_cost, e.supplier_name, str(e.supplier_id))


@traced_engine("eligibility", "1.0", fingerprint_fields=("lat", "long", "candidates"))
def rank_eligible_suppliers(
    *,
    lat: float | None,
    long: float | None,
    candidates: Sequence[SupplierCandidate],
) -> tuple[EligibleSupplier, ...]:
    """
    Filter candidates to covering zones and rank one entry per supplier.

    Raises:
        ValidationError: coordinates missing or out of range.
    """
    validate_coordinates(lat, long)

    best_zone: dict[str, tuple[float, SupplierCandidate]] = {}
    best_offer: dict[str, SupplierCandidate] = {}

    for c in candidates:
        distance = haversine_km(c.zone_lat, c.zone_long, lat, long)
        if distance > c.radius_km:
            continue
        key = str(c.supplier_id)
        current = best_zone.get(key)
        if current is None or distance < current[0]:
            best_zone[key] = (distance, c)
        offer = best_offer.get(key)
        if offer is None or (c.unit_cost, str(c.offer_id)) < (offer.unit_cost, str(offer.offer_id)):
            best_offer[key] = c

    eligible = [
        EligibleSupplier(
            supplier_id=zone_c.supplier_id,
            supplier_name=zone_c.supplier_name,
            offer_id=best_offer[key].offer_id,
            distance_km=round(distance, 3),
            unit_cost=best_offer[key].unit_cost,
            delivery_cost=zone_c.delivery_cost,
            zone_id=zone_c.zone_id,
        )
        for key, (distance, zone_c) in best_zone.items()
    ]
    return tuple(sorted(eligible, key=_rank_key))


def find_covering_zone(
    *,
    lat: float | None,
    long: float | None,
    candidates: Sequence[SupplierCandidate],
) -> SupplierCandidate | None:
    """Nearest covering candidate zone, or None when nothing covers the point."""
    validate_coordinates(lat, long)
    covering = [
        (haversine_km(c.zone_lat, c.zone_long, lat, long), str(c.zone_id), c)
        for c in candidates
        if zone_covers(c, lat, long)
    ]
    if not covering:
        return None
    return min(covering, key=lambda t: (t[0], t[1]))[2]
