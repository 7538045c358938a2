"""Database layer - engine, base classes, and rounding helpers."""

from market_kernel.db.base import Base, TrackedBase, UUIDString
from market_kernel.db.engine import create_tables, get_engine, get_session
from market_kernel.db.types import ZERO, round_money, round_storage, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "ZERO",
    "round_money",
    "round_storage",
    "to_decimal",
]
