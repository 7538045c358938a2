"""
GuardExecutor -- evaluates workflow transition guards.

Responsibility:
    Guards are declared on transitions (name + description) in the module
    ``workflows.py`` tables.  This executor holds the evaluation logic per
    guard name and is called by the module state machines before a
    transition is applied.

Architecture position:
    Kernel > Services.  Knows nothing about orders or invoices; evaluators
    are registered by the modules.

Failure modes:
    - A guard with no registered evaluator fails closed (returns False)
      and logs ``guard_no_evaluator``.
"""

from __future__ import annotations

from typing import Any, Callable

from market_kernel.domain.workflow import Guard
from market_kernel.logging_config import get_logger

logger = get_logger("services.guard_executor")


class GuardExecutor:
    """Evaluates workflow guards against a context object."""

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Returns True if guard passes."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning(
                "guard_no_evaluator",
                extra={"guard_name": guard.name},
            )
            return False
        passed = bool(fn(context))
        logger.debug(
            "guard_evaluated",
            extra={"guard_name": guard.name, "passed": passed},
        )
        return passed
