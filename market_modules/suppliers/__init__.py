"""
Suppliers Module.

Supplier directory (suppliers, delivery zones, offers) and the supplier
assignment resolver.  Distance and ranking come from
``market_engines.eligibility``.
"""

from market_modules.suppliers.directory import SqlSupplierDirectory, SupplierDirectory
from market_modules.suppliers.models import (
    AssignmentResult,
    DeliveryZone,
    Supplier,
    SupplierOffer,
)

__all__ = [
    "AssignmentResult",
    "DeliveryZone",
    "SqlSupplierDirectory",
    "Supplier",
    "SupplierDirectory",
    "SupplierOffer",
]
