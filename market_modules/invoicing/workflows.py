"""
Invoicing Workflows.

Admin-driven invoice status changes.  Content is immutable; only status
moves, and only along these transitions.
"""

from market_kernel.domain.workflow import Transition, Workflow
from market_kernel.logging_config import get_logger
from market_modules.invoicing.models import InvoiceStatus

logger = get_logger("modules.invoicing.workflows")


INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Partial invoice lifecycle",
    initial_state=InvoiceStatus.DRAFT.value,
    states=tuple(s.value for s in InvoiceStatus),
    transitions=(
        Transition("draft", "sent", action="send"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("draft", "void", action="void"),
        Transition("sent", "paid", action="record_payment"),
        Transition("sent", "partially_paid", action="record_payment"),
        Transition("sent", "overdue", action="mark_overdue"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("sent", "void", action="void"),
        Transition("partially_paid", "paid", action="record_payment"),
        Transition("partially_paid", "overdue", action="mark_overdue"),
        Transition("partially_paid", "void", action="void"),
        Transition("overdue", "paid", action="record_payment"),
        Transition("overdue", "partially_paid", action="record_payment"),
        Transition("overdue", "void", action="void"),
        Transition("paid", "void", action="void"),
    ),
    terminal_states=(InvoiceStatus.CANCELLED.value, InvoiceStatus.VOID.value),
)

OVERDUE_ELIGIBLE = (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID)
