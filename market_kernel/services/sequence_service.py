"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out invoice numbers and purchase-order numbers.  One row per
    named sequence in ``sequence_counters``; the row is locked
    (``SELECT ... FOR UPDATE``) for the rest of the caller's transaction,
    so two invoices can never be given the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by SequenceInvoiceNumberAuthority and OrderService.place_order.

Invariants enforced:
    The locked counter row is the sole source of the next value; numbers
    are never derived from MAX(invoice_number).  An increment becomes
    visible when the caller commits, and a rollback hands the value back.

Failure modes:
    - IntegrityError: two transactions create the same counter at once.
      The loser retries inside a savepoint and locks the winner's row.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from market_kernel.db.base import Base
from market_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named sequence and the last value handed out."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates the next value of a named sequence inside the caller's
    transaction.

    Non-goals:
        - Does NOT commit; the invoice or order that uses the number
          commits it together with the increment.

    Usage:
        number = SequenceService(session).next_value(SequenceService.INVOICE)
    """

    INVOICE = "invoice"
    PURCHASE_ORDER = "purchase_order"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _counter_for_update(self, sequence_name: str, initial: int) -> tuple[SequenceCounter, bool]:
        """
        Lock the counter row, creating it with ``initial`` on first use.

        Returns:
            (counter, created)
        """
        counter = self._locked_counter(sequence_name)
        if counter is not None:
            return counter, False

        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=initial)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter, True
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            counter = self._locked_counter(sequence_name)
            if counter is None:
                raise
            return counter, False

    def next_value(self, sequence_name: str) -> int:
        """The next value of ``sequence_name``; the first value is 1."""
        counter, created = self._counter_for_update(sequence_name, initial=1)
        if not created:
            counter.current_value += 1
            self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the sequence was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """Set the last value handed out. Tests and data migrations only."""
        counter, created = self._counter_for_update(sequence_name, initial=value)
        if not created:
            counter.current_value = value
            self._session.flush()
