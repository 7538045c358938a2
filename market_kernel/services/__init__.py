"""Kernel services - flush-only helpers shared by the modules."""

from market_kernel.services.base import BaseService
from market_kernel.services.guard_executor import GuardExecutor
from market_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "BaseService",
    "GuardExecutor",
    "SequenceCounter",
    "SequenceService",
]
