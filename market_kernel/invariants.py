"""
Kernel Invariants Contract.

These invariants are structural law for the order, pricing and invoicing
engine. No configuration value may switch them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across OrderService, DeliveryLedger,
InvoiceService, the pricing engine, and database constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Each value names one structural guarantee. Configuration may influence
    *how much* is charged, but never *whether* these rules apply.
    """

    SINGLE_INVOICE_PER_DELIVERY = "single_invoice_per_delivery"
    """A delivery appears on at most one invoice, ever. Enforced by the
    conditional claim UPDATE in InvoiceService and the UNIQUE constraint
    on invoice_lines.delivery_id."""

    INVOICED_IS_PERMANENT = "invoiced_is_permanent"
    """An invoiced delivery never returns to open, not even when its
    invoice is cancelled or voided."""

    DELIVERED_LOCKS_ORDER = "delivered_locks_order"
    """A delivered order rejects item, discount, supplier and ledger
    mutation. Enforced by OrderService.ensure_editable."""

    FORWARD_ONLY_WORKFLOW = "forward_only_workflow"
    """Order and invoice lifecycles only move along declared transitions.
    Enforced by the workflow tables and GuardExecutor."""

    DETERMINISTIC_PRICING = "deterministic_pricing"
    """Identical inputs produce identical totals. Enforced by the pure
    pricing engine and half-up rounding at final totals only."""

    LEDGER_BALANCE = "ledger_balance"
    """Scheduled delivery quantities never exceed the item quantity, and
    must equal it before an order is marked delivered."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Invoice and purchase-order numbers are strictly monotonic.
    Enforced by SequenceService with a locked counter row."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_layer_boundaries.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "market_engines",
    "market_config",
    "market_modules",
)
