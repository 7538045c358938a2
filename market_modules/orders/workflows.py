"""
Order Workflows.

State machines for the order lifecycle and the client payment status,
plus the guard evaluators they need.
"""

from market_kernel.domain.workflow import Guard, Transition, Workflow
from market_kernel.logging_config import get_logger
from market_kernel.services.guard_executor import GuardExecutor
from market_modules.orders.models import Order, OrderWorkflow, PaymentStatus

logger = get_logger("modules.orders.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SOME_ITEM_UNASSIGNED = Guard(
    name="some_item_unassigned",
    description="At least one order item has no supplier",
)

ALL_ITEMS_ASSIGNED = Guard(
    name="all_items_assigned",
    description="Every order item has a supplier",
)

ALL_ITEMS_PRICED = Guard(
    name="all_items_priced",
    description="Every order item has a supplier and a unit cost",
)

DELIVERIES_BALANCED = Guard(
    name="deliveries_balanced",
    description="Every item is assigned and its deliveries sum to its quantity",
)


# -----------------------------------------------------------------------------
# Order Workflow
# -----------------------------------------------------------------------------

_RESUMABLE = (
    OrderWorkflow.REQUESTED.value,
    OrderWorkflow.SUPPLIER_MISSING.value,
    OrderWorkflow.SUPPLIER_ASSIGNED.value,
    OrderWorkflow.PAYMENT_REQUESTED.value,
)

ORDER_WORKFLOW = Workflow(
    name="order",
    description="Client order lifecycle",
    initial_state=OrderWorkflow.REQUESTED.value,
    states=tuple(s.value for s in OrderWorkflow),
    transitions=(
        Transition("requested", "supplier_missing", action="flag_supplier_missing", guard=SOME_ITEM_UNASSIGNED),
        Transition("requested", "supplier_assigned", action="assign_suppliers", guard=ALL_ITEMS_ASSIGNED),
        Transition("supplier_missing", "supplier_assigned", action="assign_suppliers", guard=ALL_ITEMS_ASSIGNED),
        Transition("supplier_assigned", "payment_requested", action="request_payment", guard=ALL_ITEMS_PRICED),
        Transition("payment_requested", "delivered", action="mark_delivered", guard=DELIVERIES_BALANCED),
        Transition("*", "on_hold", action="hold"),
    ) + tuple(
        Transition("on_hold", state, action="resume") for state in _RESUMABLE
    ),
    terminal_states=(OrderWorkflow.DELIVERED.value,),
)


# -----------------------------------------------------------------------------
# Payment Status Workflow
# -----------------------------------------------------------------------------

PAYMENT_WORKFLOW = Workflow(
    name="order_payment",
    description="Client payment status",
    initial_state=PaymentStatus.PENDING.value,
    states=tuple(s.value for s in PaymentStatus),
    transitions=(
        Transition("pending", "requested", action="request_payment"),
        Transition("requested", "paid", action="record_payment"),
        Transition("requested", "partially_paid", action="record_payment"),
        Transition("partially_paid", "paid", action="record_payment"),
        Transition("paid", "partial_refunded", action="refund", requires_confirmation=True),
        Transition("paid", "refunded", action="refund", requires_confirmation=True),
        Transition("partially_paid", "partial_refunded", action="refund", requires_confirmation=True),
        Transition("partially_paid", "refunded", action="refund", requires_confirmation=True),
        Transition("partial_refunded", "refunded", action="refund", requires_confirmation=True),
    ),
    terminal_states=(PaymentStatus.REFUNDED.value,),
)


# -----------------------------------------------------------------------------
# Derived permissions
# -----------------------------------------------------------------------------


def can_edit(order: Order) -> bool:
    """Items, discount, suppliers and the ledger are editable."""
    return order.workflow != OrderWorkflow.DELIVERED and order.archived_at is None


def pricing_visible(workflow: OrderWorkflow) -> bool:
    """Customer pricing is shown once payment has been requested."""
    return workflow in (OrderWorkflow.PAYMENT_REQUESTED, OrderWorkflow.DELIVERED)


# -----------------------------------------------------------------------------
# Guard evaluators
# -----------------------------------------------------------------------------


def _some_item_unassigned(order: Order) -> bool:
    return any(not item.has_supplier for item in order.items)


def _all_items_assigned(order: Order) -> bool:
    return bool(order.items) and all(item.has_supplier for item in order.items)


def _all_items_priced(order: Order) -> bool:
    return bool(order.items) and all(item.is_priced for item in order.items)


def _deliveries_balanced(order: Order) -> bool:
    return _all_items_assigned(order) and all(item.is_balanced for item in order.items)


def order_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the order guards registered."""
    ex = GuardExecutor()
    ex.register(SOME_ITEM_UNASSIGNED.name, _some_item_unassigned)
    ex.register(ALL_ITEMS_ASSIGNED.name, _all_items_assigned)
    ex.register(ALL_ITEMS_PRICED.name, _all_items_priced)
    ex.register(DELIVERIES_BALANCED.name, _deliveries_balanced)
    return ex
