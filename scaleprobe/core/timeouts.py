"""Timeout budget management for scenario stages."""

import logging
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Iterator

from scaleprobe.core.exceptions import HarnessTimeoutError

logger = logging.getLogger(__name__)


class TimeoutManager:
    """Tracks the overall scenario deadline and hands out per-stage budgets.

    Each stage asks for the time it would like (for example the replica wait
    timeout) and receives the smaller of that and what is left of the
    scenario budget, so the sum of all waits never exceeds the budget.

    Parameters
    ----------
    budget_seconds : float
        Total timeout budget in seconds
    clock : Callable[[], float]
        Monotonic clock, injectable for tests
    """

    def __init__(
        self, budget_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.budget_seconds = budget_seconds
        self._clock = clock
        self.start_time = clock()
        self.deadline = self.start_time + budget_seconds

    def elapsed_seconds(self) -> float:
        return self._clock() - self.start_time

    def remaining_seconds(self) -> float:
        """Remaining seconds until the deadline (negative once it has passed)."""
        return self.deadline - self._clock()

    def checkpoint(self, description: str) -> None:
        logger.debug(
            "Timeout checkpoint '%s': elapsed=%.2fs, remaining=%.2fs",
            description,
            self.elapsed_seconds(),
            self.remaining_seconds(),
        )

    @contextmanager
    def sub_budget(self, name: str, max_seconds: float) -> Iterator[float]:
        """Allocate a budget for a single stage.

        Parameters
        ----------
        name : str
            Name of the stage (for logging)
        max_seconds : float
            Time the stage would like to have

        Yields
        ------
        float
            Seconds available to the stage

        Raises
        ------
        HarnessTimeoutError
            If the scenario budget is already exhausted
        """
        remaining = self.remaining_seconds()
        if remaining <= 0:
            raise HarnessTimeoutError(
                f"Scenario timeout budget exhausted before '{name}' "
                f"(elapsed={self.elapsed_seconds():.2f}s)"
            )

        allocated = min(remaining, max_seconds)
        logger.debug(
            "Sub-budget '%s': requested=%ss, allocated=%.2fs", name, max_seconds, allocated
        )

        try:
            yield allocated
        finally:
            self.checkpoint(f"end of '{name}'")
