"""Registry of acquired resources and their release actions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CleanupSummary:
    """Aggregated teardown results.

    Attributes
    ----------
    errors : list[str]
        Failures of required release steps
    warnings : list[str]
        Failures of best-effort release steps
    step_results : list[dict[str, Any]]
        Per-step diagnostics including status and duration
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    step_results: list[dict[str, Any]] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_step_result(self, result: dict[str, Any]) -> None:
        self.step_results.append(result)

    def merge(self, other: "CleanupSummary") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.step_results.extend(other.step_results)

    def success(self) -> bool:
        """Whether every required release step succeeded."""
        return not self.errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "steps": list(self.step_results),
        }


@dataclass
class RegisteredResource:
    kind: str
    handle: Any
    dispose_fn: Callable[[Any], Any]
    label: str = ""
    required: bool = True


class ResourceRegistry:
    """Scoped acquisition ledger with deterministic release ordering.

    Every acquired resource registers the callable that releases it.
    ``cleanup_all`` releases in reverse acquisition order, so a resource is
    always released before the things it was built on top of. Cleanup keeps
    going when an individual release fails.

    Released entries are forgotten and failed ones are kept, so calling
    ``cleanup_all`` again retries only what is still outstanding.

    Attributes
    ----------
    resources : list[RegisteredResource]
        Outstanding resources in acquisition order
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.resources: list[RegisteredResource] = []
        self._clock = clock

    def register(
        self,
        kind: str,
        handle: Any,
        dispose_fn: Callable[[Any], Any],
        label: str = "",
        required: bool = True,
    ) -> None:
        """Register a resource for release at teardown.

        Parameters
        ----------
        kind : str
            Type of resource (e.g., "deployment", "topic")
        handle : Any
            Resource handle passed to dispose_fn
        dispose_fn : Callable
            Called during cleanup as dispose_fn(handle)
        label : str, optional
            Descriptive label for diagnostics
        required : bool, optional
            When False a failed release is reported as a warning, not an error
        """
        self.resources.append(
            RegisteredResource(
                kind=kind,
                handle=handle,
                dispose_fn=dispose_fn,
                label=label or str(handle),
                required=required,
            )
        )
        logger.debug("Registered %s: %s", kind, label)

    def cleanup_all(self) -> CleanupSummary:
        """Release every outstanding resource in reverse acquisition order.

        Returns
        -------
        CleanupSummary
            Errors, warnings and per-step results of this pass
        """
        summary = CleanupSummary()
        outstanding: list[RegisteredResource] = []

        for entry in reversed(self.resources):
            started = self._clock()
            try:
                entry.dispose_fn(entry.handle)
            except Exception as e:
                message = f"Cleanup failed for {entry.kind} '{entry.label}': {e}"
                if entry.required:
                    summary.add_error(message)
                    logger.warning(message)
                else:
                    summary.add_warning(message)
                    logger.info(message)
                status = "failed"
                outstanding.append(entry)
            else:
                logger.debug("Cleaned up %s: %s", entry.kind, entry.label)
                status = "completed"

            summary.add_step_result(
                {
                    "kind": entry.kind,
                    "label": entry.label,
                    "status": status,
                    "required": entry.required,
                    "duration": round(self._clock() - started, 3),
                }
            )

        self.resources = list(reversed(outstanding))
        return summary
