"""
Orders Module.

Client orders, their items, the per-item delivery ledger and the order and
payment workflows.  Pricing comes from ``market_engines.pricing``.
"""

from market_modules.orders.models import (
    Delivery,
    InvoiceLock,
    ItemPaymentState,
    NewDelivery,
    NewOrderItem,
    Order,
    OrderItem,
    OrderLogEntry,
    OrderWorkflow,
    PaymentProposal,
    PaymentStatus,
    SupplierConfirmation,
)
from market_modules.orders.workflows import ORDER_WORKFLOW, PAYMENT_WORKFLOW

__all__ = [
    "Delivery",
    "InvoiceLock",
    "ItemPaymentState",
    "NewDelivery",
    "NewOrderItem",
    "Order",
    "OrderItem",
    "OrderLogEntry",
    "OrderWorkflow",
    "PaymentProposal",
    "PaymentStatus",
    "SupplierConfirmation",
    "ORDER_WORKFLOW",
    "PAYMENT_WORKFLOW",
]
