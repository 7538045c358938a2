"""
Invoice numbering.

``InvoiceNumberAuthority`` is the port invoice creation draws numbers
from.  The default authority formats the next value of the locked
``invoice`` sequence counter, so numbers are strictly increasing and a
rolled-back invoice gives its number back.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from market_config.schema import InvoicingConfig
from market_kernel.services.sequence_service import SequenceService


@runtime_checkable
class InvoiceNumberAuthority(Protocol):
    """Allocates unique invoice numbers inside the caller's transaction."""

    def next_number(self) -> str:
        ...


class SequenceInvoiceNumberAuthority:
    """``INV-00001`` style numbers from the ``invoice`` sequence counter."""

    def __init__(self, session: Session, config: InvoicingConfig | None = None):
        self._sequences = SequenceService(session)
        self._config = config or InvoicingConfig()

    def next_number(self) -> str:
        return self._config.format_number(
            self._sequences.next_value(SequenceService.INVOICE)
        )
