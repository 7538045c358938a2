"""
Typed Exception Hierarchy for the Market Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the API layer, the admin console, scheduled jobs) must react to
failures precisely: a conflict on a delivery claim means "re-preview and
retry", a locked order means "tell the operator the order is delivered".
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        invoice_service.create_invoice(order_id, delivery_ids, actor_id)
    except DeliveryClaimConflictError as e:
        # Another operator invoiced one of these deliveries first.
        api_response(code=e.code, delivery_ids=e.delivery_ids)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from MarketKernelError:

    MarketKernelError (base)
    |
    +-- ValidationError
    |   +-- NegativeTotalError
    |   +-- EmptySelectionError
    |   +-- SupplierNotEligibleError
    |   +-- LedgerImbalanceError
    |
    +-- StateError
    |   +-- OrderLockedError
    |   +-- OrderArchivedError
    |   +-- IllegalTransitionError
    |   +-- GuardFailedError
    |   +-- ConfirmationRequiredError
    |   +-- SupplierConfirmationError
    |   +-- DeliveryAlreadyInvoicedError
    |   +-- UnassignedItemError
    |
    +-- ConflictError
    |   +-- DeliveryClaimConflictError
    |   +-- PaymentProposalConflictError
    |
    +-- NotFoundError
        +-- OrderNotFoundError
        +-- OrderItemNotFoundError
        +-- DeliveryNotFoundError
        +-- SupplierNotFoundError
        +-- OfferNotFoundError
        +-- InvoiceNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------
Validation   | VALIDATION_ERROR              | Malformed or out-of-range input
             | NEGATIVE_TOTAL                | Discount drives a total below zero
             | EMPTY_SELECTION               | Invoice preview/create with no ids
             | SUPPLIER_NOT_ELIGIBLE         | Supplier zone misses the site
             | LEDGER_IMBALANCE              | Delivery split != item quantity
-------------|-------------------------------|-----------------------------------
State        | ORDER_LOCKED                  | Mutation of a delivered order
             | ORDER_ARCHIVED                | Mutation of an archived order
             | ILLEGAL_TRANSITION            | No such workflow transition
             | GUARD_FAILED                  | Transition guard not satisfied
             | CONFIRMATION_REQUIRED         | Refund status without confirm step
             | SUPPLIER_CONFIRMATION_LOCKED  | Un-confirming a confirmed item
             | DELIVERY_ALREADY_INVOICED     | Invoiced delivery targeted again
             | ITEM_UNASSIGNED               | Pricing an item with no supplier
-------------|-------------------------------|-----------------------------------
Conflict     | DELIVERY_CLAIM_CONFLICT       | Concurrent invoice claimed first
             | PAYMENT_PROPOSAL_CONFLICT     | Stale refund proposal
-------------|-------------------------------|-----------------------------------
Not found    | ORDER_NOT_FOUND ... etc.      | Referenced record does not exist

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Nothing in the kernel retries.  Retry is a caller decision.

2. ConflictError is the only category where retry makes sense:

    except ConflictError:
        preview = invoice_service.preview_invoice(order_id, refreshed_ids)

3. StateError and ValidationError are surfaced to the operator as-is.

===============================================================================
"""


class MarketKernelError(Exception):
    """
    Base exception for all market kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MARKET_KERNEL_ERROR"


# Validation errors


class ValidationError(MarketKernelError):
    """Malformed or out-of-range input. Never retried."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NegativeTotalError(ValidationError):
    """A discount would push a customer-facing total below zero."""

    code: str = "NEGATIVE_TOTAL"

    def __init__(self, total: str, discount: str):
        self.total = total
        self.discount = discount
        super().__init__(
            f"Discount {discount} exceeds the pre-discount total; "
            f"resulting total would be {total}",
            field="discount",
        )


class EmptySelectionError(ValidationError):
    """Invoice preview or creation was requested with no deliveries."""

    code: str = "EMPTY_SELECTION"

    def __init__(self):
        super().__init__("At least one delivery must be selected", field="delivery_ids")


class SupplierNotEligibleError(ValidationError):
    """The supplier has no zone covering the delivery point or no offer."""

    code: str = "SUPPLIER_NOT_ELIGIBLE"

    def __init__(self, supplier_id: str, item_id: str):
        self.supplier_id = supplier_id
        self.item_id = item_id
        super().__init__(
            f"Supplier {supplier_id} is not eligible for order item {item_id}",
            field="supplier_id",
        )


class LedgerImbalanceError(ValidationError):
    """Scheduled delivery quantities do not match the item quantity."""

    code: str = "LEDGER_IMBALANCE"

    def __init__(self, item_id: str, expected: str, scheduled: str):
        self.item_id = item_id
        self.expected = expected
        self.scheduled = scheduled
        super().__init__(
            f"Deliveries for item {item_id} total {scheduled}, expected {expected}",
            field="quantity",
        )


# State errors


class StateError(MarketKernelError):
    """Operation not allowed in the current state of the target."""

    code: str = "STATE_ERROR"


class OrderLockedError(StateError):
    """The order is delivered; editing is no longer permitted."""

    code: str = "ORDER_LOCKED"

    def __init__(self, order_id: str, operation: str):
        self.order_id = order_id
        self.operation = operation
        super().__init__(f"Order {order_id} is delivered and locked: cannot {operation}")


class OrderArchivedError(StateError):
    """The order is archived; restore it before editing."""

    code: str = "ORDER_ARCHIVED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} is archived")


class IllegalTransitionError(StateError):
    """No transition exists from the current state to the requested one."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal {workflow} transition: {from_state} -> {to_state}"
        )


class GuardFailedError(StateError):
    """A transition exists but its guard is not satisfied."""

    code: str = "GUARD_FAILED"

    def __init__(self, workflow: str, action: str, guard_name: str):
        self.workflow = workflow
        self.action = action
        self.guard_name = guard_name
        super().__init__(
            f"Guard '{guard_name}' blocked {workflow} action '{action}'"
        )


class ConfirmationRequiredError(StateError):
    """Sensitive payment transition attempted without propose/confirm."""

    code: str = "CONFIRMATION_REQUIRED"

    def __init__(self, order_id: str, to_state: str):
        self.order_id = order_id
        self.to_state = to_state
        super().__init__(
            f"Payment status '{to_state}' on order {order_id} requires "
            f"a proposal and an explicit confirmation"
        )


class SupplierConfirmationError(StateError):
    """A confirmed item cannot be un-confirmed by a normal edit."""

    code: str = "SUPPLIER_CONFIRMATION_LOCKED"

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Order item {item_id}: {reason}")


class DeliveryAlreadyInvoicedError(StateError):
    """One or more deliveries are already on an invoice."""

    code: str = "DELIVERY_ALREADY_INVOICED"

    def __init__(self, delivery_ids: list[str]):
        self.delivery_ids = delivery_ids
        super().__init__(
            f"Deliveries already invoiced: {', '.join(delivery_ids)}"
        )


class UnassignedItemError(StateError):
    """Operation needs a supplier on the item and there is none."""

    code: str = "ITEM_UNASSIGNED"

    def __init__(self, item_id: str, operation: str):
        self.item_id = item_id
        self.operation = operation
        super().__init__(
            f"Order item {item_id} has no supplier: cannot {operation}"
        )


# Conflict errors


class ConflictError(MarketKernelError):
    """A concurrent writer won the race. Whole operation rolled back."""

    code: str = "CONFLICT"


class DeliveryClaimConflictError(ConflictError):
    """Another invoice claimed one of the targeted deliveries first."""

    code: str = "DELIVERY_CLAIM_CONFLICT"

    def __init__(self, order_id: str, delivery_ids: list[str]):
        self.order_id = order_id
        self.delivery_ids = delivery_ids
        super().__init__(
            f"Deliveries on order {order_id} were claimed by another invoice: "
            f"{', '.join(delivery_ids)}"
        )


class PaymentProposalConflictError(ConflictError):
    """The proposal no longer matches the order's payment state."""

    code: str = "PAYMENT_PROPOSAL_CONFLICT"

    def __init__(self, order_id: str, proposal_id: str, reason: str):
        self.order_id = order_id
        self.proposal_id = proposal_id
        self.reason = reason
        super().__init__(
            f"Payment proposal {proposal_id} on order {order_id} is stale: {reason}"
        )


# Not-found errors


class NotFoundError(MarketKernelError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "record"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity: str = "Order"


class OrderItemNotFoundError(NotFoundError):
    code: str = "ORDER_ITEM_NOT_FOUND"
    entity: str = "Order item"


class DeliveryNotFoundError(NotFoundError):
    code: str = "DELIVERY_NOT_FOUND"
    entity: str = "Delivery"


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"
    entity: str = "Supplier"


class OfferNotFoundError(NotFoundError):
    code: str = "OFFER_NOT_FOUND"
    entity: str = "Supplier offer"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity: str = "Invoice"
