"""Harness exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scaleprobe.core.load import DrainResult


class HarnessError(Exception):
    """Base class for harness failures."""


class SetupError(HarnessError):
    """Raised when a required scenario resource cannot be created."""


class DependencyOrderError(SetupError):
    """Raised when a resource is created before the resources it references."""


class TeardownError(HarnessError):
    """Raised when a single release step fails during teardown."""


class HarnessTimeoutError(HarnessError):
    """Raised when the scenario timeout budget is exhausted."""


class InvalidTransitionError(HarnessError):
    """Raised when the orchestrator is asked to skip or repeat a stage."""


class LoadInjectionError(HarnessError):
    """Raised when sending load fails part way through.

    Parameters
    ----------
    message : str
        Description of the failure
    sent : int
        Number of messages accepted by the queue before the failure
    """

    def __init__(self, message: str, sent: int) -> None:
        super().__init__(message)
        self.sent = sent


class LoadDrainError(HarnessError):
    """Raised when receiving from the queue fails while draining.

    Parameters
    ----------
    message : str
        Description of the failure
    result : DrainResult
        Progress made before the failure
    """

    def __init__(self, message: str, result: "DrainResult") -> None:
        super().__init__(message)
        self.result = result
