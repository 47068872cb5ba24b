"""Bounded polling of eventually-consistent external state."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from scaleprobe.core.diagnostics import DiagnosticsCollector
from scaleprobe.core.interfaces import ControlPlaneClient
from scaleprobe.providers.exceptions import ProviderError

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class PollObservation(Generic[V]):
    """A single sample taken by the poller.

    Attributes
    ----------
    attempt : int
        1-based attempt number
    elapsed : float
        Seconds since polling started when the sample was taken
    value : V | None
        Observed value, or None when the observation failed
    matched : bool
        Whether the predicate held for this sample
    error : str | None
        Description of the observation failure, if any
    """

    attempt: int
    elapsed: float
    value: V | None
    matched: bool
    error: str | None = None


@dataclass
class PollResult(Generic[V]):
    """Outcome of a bounded wait.

    Truthiness follows ``matched`` so callers can write ``if wait_for_condition(...)``.
    """

    matched: bool
    attempts: int
    elapsed: float
    last_value: V | None = None
    errors: int = 0
    observations: list[PollObservation[V]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.matched


Poller = Callable[..., PollResult[Any]]
"""Signature of ``wait_for_condition``, for callers that take a replacement."""


def max_attempts(timeout: float, interval: float) -> int:
    """Number of observations a wait may make: ``floor(timeout / interval)``, at least one."""
    return max(1, math.floor(timeout / interval))


def wait_for_condition(
    observe: Callable[[], V],
    predicate: Callable[[V], bool],
    timeout: float,
    interval: float,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    transient_errors: tuple[type[BaseException], ...] = (ProviderError,),
    diagnostics: DiagnosticsCollector | None = None,
    description: str = "condition",
) -> PollResult[V]:
    """Poll ``observe`` until ``predicate`` holds or the timeout elapses.

    The first observation is taken immediately and the poller sleeps
    ``interval`` seconds between observations. At most
    ``max_attempts(timeout, interval)`` observations are made. A wait that
    does not match never returns before ``timeout`` seconds have elapsed, and
    sleeps are clamped to the remaining time so it returns shortly after.

    Parameters
    ----------
    observe : Callable[[], V]
        Samples the external quantity
    predicate : Callable[[V], bool]
        Decides whether a sample satisfies the wait
    timeout : float
        Maximum wait in seconds
    interval : float
        Delay between samples in seconds
    clock : Callable[[], float]
        Monotonic clock, injectable for tests
    sleep : Callable[[float], None]
        Sleep function, injectable for tests
    transient_errors : tuple[type[BaseException], ...]
        Exception types from ``observe`` that count as a non-matching sample
        instead of aborting the wait
    diagnostics : DiagnosticsCollector | None
        Receives one event per sample when provided
    description : str
        Label used in logs and diagnostics

    Returns
    -------
    PollResult[V]
        Matched flag plus every sample taken

    Raises
    ------
    ValueError
        If interval is not positive or timeout is negative
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if timeout < 0:
        raise ValueError(f"timeout must not be negative, got {timeout}")

    attempts = max_attempts(timeout, interval)
    start = clock()
    deadline = start + timeout
    result: PollResult[V] = PollResult(matched=False, attempts=0, elapsed=0.0)

    for attempt in range(1, attempts + 1):
        result.attempts = attempt
        try:
            value = observe()
        except transient_errors as e:
            result.errors += 1
            observation = PollObservation(
                attempt=attempt,
                elapsed=clock() - start,
                value=None,
                matched=False,
                error=str(e),
            )
            logger.warning(
                "Observation %d/%d for %s failed: %s", attempt, attempts, description, e
            )
        else:
            matched = bool(predicate(value))
            result.last_value = value
            observation = PollObservation(
                attempt=attempt,
                elapsed=clock() - start,
                value=value,
                matched=matched,
            )
            logger.debug(
                "Observation %d/%d for %s: %r (matched=%s)",
                attempt,
                attempts,
                description,
                value,
                matched,
            )

        result.observations.append(observation)
        if diagnostics is not None:
            diagnostics.poll_observation(description, observation)

        if observation.matched:
            result.matched = True
            result.elapsed = clock() - start
            return result

        remaining = deadline - clock()
        if remaining <= 0:
            break

        # The final sleep runs out the clock so a failed wait never ends early.
        sleep(min(interval, remaining) if attempt < attempts else remaining)

    result.elapsed = clock() - start
    logger.info(
        "Gave up waiting for %s after %d attempts (%.1fs), last value %r",
        description,
        result.attempts,
        result.elapsed,
        result.last_value,
    )
    return result


def wait_for_replica_count(
    control_plane: ControlPlaneClient,
    deployment: str,
    namespace: str,
    expected: int,
    timeout: float,
    interval: float,
    *,
    poller: Poller = wait_for_condition,
    **kwargs: Any,
) -> PollResult[int]:
    """Wait until a Deployment's replica count equals ``expected``.

    ``poller`` runs the wait and receives the remaining keyword arguments;
    it defaults to ``wait_for_condition``.
    """
    kwargs.setdefault("description", f"{namespace}/{deployment} replicas == {expected}")
    return poller(
        lambda: control_plane.get_replica_count(deployment, namespace),
        lambda replicas: replicas == expected,
        timeout,
        interval,
        **kwargs,
    )
