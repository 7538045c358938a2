"""
BaseService -- abstract base for all kernel and module helper services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every flush-only service.  Helpers such as the delivery ledger and
    the invoice number authority receive a SQLAlchemy ``Session`` that
    they use via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: helpers flush within the caller's transaction
    and never commit or rollback themselves.  The module service
    (OrderService, InvoiceService, SupplierAssignmentService) owns
    commit/rollback.

Failure modes:
    - If a subclass calls ``session.commit()``, a multi-step operation such
      as invoice creation can be left half-applied.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from market_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
