"""Event trail of a scenario run.

Every replica sample, kubectl call, load step, stage verdict and teardown pass
is recorded in order so that a failed run can be explained after the fact.
"""

from __future__ import annotations

import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scaleprobe.core.interfaces import Destination
    from scaleprobe.core.poller import PollObservation
    from scaleprobe.core.registry import CleanupSummary
    from scaleprobe.core.report import StageOutcome
    from scaleprobe.core.scenario import ResourceRecord

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of event a scenario run produces."""

    POLL_OBSERVATION = "poll-observation"
    POLL_ERROR = "poll-error"
    RESOURCE_CREATE = "resource-create"
    RESOURCE_DELETE = "resource-delete"
    LOAD_INJECTED = "load-injected"
    LOAD_INJECT_FAILED = "load-inject-failed"
    LOAD_DRAINED = "load-drained"
    LOAD_COMPLETE_FAILED = "load-complete-failed"
    STAGE_OUTCOME = "stage-outcome"
    TEARDOWN = "teardown"


@dataclass
class DiagnosticEvent:
    """One entry of the trail.

    Attributes
    ----------
    event_type : EventType
        What happened
    subject : str
        What it happened to: a wait description, a resource, a queue
        destination, a stage or a scenario name
    details : dict[str, Any]
        Event-specific values
    timestamp : float
        Wall-clock time of recording
    """

    event_type: EventType
    subject: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def as_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class DiagnosticsCollector:
    """Collects the event trail of one scenario run.

    With ``log_path`` set each event is also appended to that file as a JSON
    line when it is recorded, so the trail of a run killed part way through
    survives.

    Parameters
    ----------
    verbose : bool
        Echo every event to the debug log
    log_path : Path | str | None
        JSON lines file to append events to
    """

    def __init__(self, verbose: bool = False, log_path: Path | str | None = None) -> None:
        self.events: list[DiagnosticEvent] = []
        self.verbose = verbose
        self.log_path = Path(log_path) if log_path else None

    def poll_observation(self, description: str, observation: PollObservation[Any]) -> None:
        """Record one replica sample, or the error that replaced it."""
        event_type = EventType.POLL_ERROR if observation.error else EventType.POLL_OBSERVATION
        self._add(
            event_type,
            description,
            attempt=observation.attempt,
            elapsed=round(observation.elapsed, 3),
            value=observation.value,
            matched=observation.matched,
            error=observation.error,
        )

    def resource_created(self, record: ResourceRecord, exit_code: int) -> None:
        self._add(EventType.RESOURCE_CREATE, str(record), exit_code=exit_code)

    def resource_deleted(self, record: ResourceRecord, exit_code: int) -> None:
        self._add(EventType.RESOURCE_DELETE, str(record), exit_code=exit_code)

    def load(self, event_type: EventType, destination: Destination, **details: Any) -> None:
        """Record a send, drain or settlement step against a queue destination."""
        self._add(event_type, str(destination), **details)

    def stage_outcome(self, outcome: StageOutcome) -> None:
        self._add(EventType.STAGE_OUTCOME, outcome.stage.value, **outcome.as_dict())

    def teardown(self, scenario: str, summary: CleanupSummary) -> None:
        self._add(EventType.TEARDOWN, scenario, **summary.as_dict())

    def events_of(self, event_type: EventType | str) -> list[DiagnosticEvent]:
        """Recorded events of one type, oldest first."""
        return [e for e in self.events if e.event_type == event_type]

    def counts(self) -> dict[str, int]:
        """Number of recorded events per type."""
        return dict(Counter(e.event_type.value for e in self.events))

    def _add(self, event_type: EventType, subject: str, **details: Any) -> None:
        event = DiagnosticEvent(event_type, subject, details)
        self.events.append(event)
        if self.verbose:
            logger.debug("[%s] %s %s", event_type.value, subject, details)
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as log_file:
                log_file.write(json.dumps(event.as_dict(), default=str) + "\n")
