"""
Market Engines - pure calculation functions.

Engines perform no I/O.  Every public entry point is wrapped with
``@traced_engine`` and emits a MARKET_ENGINE_TRACE log record.

- pricing: item and order costing, margin, GST, discount policy
- eligibility: supplier zone coverage and ranking
- invoicing: invoice lines and totals from a delivery selection
"""

from market_engines.eligibility import (
    EligibleSupplier,
    SupplierCandidate,
    find_covering_zone,
    haversine_km,
    rank_eligible_suppliers,
)
from market_engines.invoicing import (
    DeliverySelection,
    InvoiceDraft,
    InvoiceLineDraft,
    build_invoice_draft,
)
from market_engines.pricing import (
    ItemCosting,
    NegativeTotalPolicy,
    OrderCosting,
    PricingConfig,
    PricingInput,
    compute_order_costing,
)

__all__ = [
    "EligibleSupplier",
    "SupplierCandidate",
    "find_covering_zone",
    "haversine_km",
    "rank_eligible_suppliers",
    "DeliverySelection",
    "InvoiceDraft",
    "InvoiceLineDraft",
    "build_invoice_draft",
    "ItemCosting",
    "NegativeTotalPolicy",
    "OrderCosting",
    "PricingConfig",
    "PricingInput",
    "compute_order_costing",
]
