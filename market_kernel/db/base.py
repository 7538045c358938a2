"""
Module: market_kernel.db.base
Responsibility: Declarative bases shared by the order, supplier and
    invoicing ORM models.
Architecture position: Kernel > DB.  Every orm.py imports from here.
    May import db/types.py only.  MUST NOT import from services/, domain/,
    or outer layers.

Invariants enforced:
    - Every row has a uuid4 primary key.
    - Decimal columns are Numeric(38, STORAGE_DECIMAL_PLACES), matching
      round_storage().  Money and quantities are never stored as float.
    - Tracked rows record the actor that created them.  Every mutating
      service call receives that actor explicitly.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from market_kernel.db.types import STORAGE_DECIMAL_PLACES


class UUIDString(TypeDecorator):
    """
    UUID stored as its 36-character text form.

    PostgreSQL and SQLite both accept it, and ids read back in the shell
    look the same as in the log lines.  Bind accepts a UUID or its string.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = PyUUID(value)
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always reads back in UTC.

    SQLite stores no offset, so naive values are taken as UTC both ways.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    @staticmethod
    def _as_utc(value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_bind_param(self, value, dialect):
        return self._as_utc(value)

    def process_result_value(self, value, dialect):
        return self._as_utc(value)


class Base(DeclarativeBase):
    """
    Root of every mapped class.

    Annotated columns pick their SQL type from ``type_annotation_map``, so
    ``Mapped[Decimal]`` needs no explicit Numeric and ``Mapped[UUID]`` no
    explicit UUIDString.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, STORAGE_DECIMAL_PLACES),
        datetime: UTCDateTime(),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds created/updated timestamps and the acting user ids."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)
