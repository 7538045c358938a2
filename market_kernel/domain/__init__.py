"""Domain layer - pure value objects with zero I/O."""

from market_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from market_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "Guard",
    "Transition",
    "Workflow",
]
