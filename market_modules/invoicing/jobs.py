"""
Scheduled invoicing jobs.

Nothing in the engine runs these on its own; an external scheduler calls
them (for example once a day) with an explicit ``as_of`` date and the
system actor.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_config.schema import EngineConfig
from market_kernel.domain.clock import Clock
from market_kernel.exceptions import IllegalTransitionError
from market_kernel.logging_config import get_logger
from market_modules.invoicing.models import Invoice, InvoiceStatus
from market_modules.invoicing.orm import InvoiceModel
from market_modules.invoicing.service import InvoiceService
from market_modules.invoicing.workflows import OVERDUE_ELIGIBLE

logger = get_logger("modules.invoicing.jobs")


def mark_overdue_invoices(
    session: Session,
    as_of: date,
    actor_id: UUID,
    config: EngineConfig | None = None,
    clock: Clock | None = None,
) -> list[Invoice]:
    """
    Move every sent or partially paid invoice due before ``as_of`` to overdue.

    Each invoice is changed in its own transaction.  An invoice whose
    status moved on since it was selected is skipped.

    Returns:
        The invoices marked overdue, in due-date order.
    """
    candidate_ids = list(
        session.execute(
            select(InvoiceModel.id)
            .where(
                InvoiceModel.status.in_([s.value for s in OVERDUE_ELIGIBLE]),
                InvoiceModel.due_date < as_of,
            )
            .order_by(InvoiceModel.due_date, InvoiceModel.invoice_number)
        ).scalars()
    )
    session.rollback()

    service = InvoiceService(session, config=config, clock=clock)
    marked: list[Invoice] = []
    for invoice_id in candidate_ids:
        try:
            marked.append(service.change_status(invoice_id, InvoiceStatus.OVERDUE, actor_id))
        except IllegalTransitionError as exc:
            logger.warning(
                "invoice_overdue_skipped",
                extra={"invoice_id": str(invoice_id), "from_state": exc.from_state},
            )

    logger.info(
        "overdue_invoices_marked",
        extra={
            "as_of": as_of,
            "candidates": len(candidate_ids),
            "marked": len(marked),
        },
    )
    return marked
