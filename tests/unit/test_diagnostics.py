"""Unit tests for DiagnosticsCollector."""

import json
from pathlib import Path

from scaleprobe.constants import ResourceKind
from scaleprobe.core.diagnostics import DiagnosticsCollector, EventType
from scaleprobe.core.interfaces import Destination
from scaleprobe.core.poller import PollObservation
from scaleprobe.core.registry import CleanupSummary
from scaleprobe.core.report import Stage, StageOutcome
from scaleprobe.core.scenario import ResourceRecord

SECRET = ResourceRecord(ResourceKind.SECRET, "demo-secret", "demo-ns")


class TestEventRecording:
    """Test the typed recording methods."""

    def test_poll_samples_and_errors_are_separate_types(self) -> None:
        collector = DiagnosticsCollector()

        collector.poll_observation("replicas", PollObservation(1, 0.0, None, False, "down"))
        collector.poll_observation("replicas", PollObservation(2, 1.0004, 0, True))

        (error,) = collector.events_of(EventType.POLL_ERROR)
        (sample,) = collector.events_of(EventType.POLL_OBSERVATION)
        assert error.details["error"] == "down"
        assert sample.details == {
            "attempt": 2,
            "elapsed": 1.0,
            "value": 0,
            "matched": True,
            "error": None,
        }

    def test_resource_calls_name_the_record(self) -> None:
        collector = DiagnosticsCollector()

        collector.resource_created(SECRET, 0)
        collector.resource_deleted(SECRET, 1)

        assert [(e.event_type, e.subject, e.details["exit_code"]) for e in collector.events] == [
            (EventType.RESOURCE_CREATE, "demo-ns/secrets/demo-secret", 0),
            (EventType.RESOURCE_DELETE, "demo-ns/secrets/demo-secret", 1),
        ]

    def test_load_events_name_the_destination(self) -> None:
        collector = DiagnosticsCollector()

        collector.load(EventType.LOAD_INJECTED, Destination("sb-topic", "sb-subscription"), sent=5)

        (event,) = collector.events_of("load-injected")
        assert event.subject == str(Destination("sb-topic", "sb-subscription"))
        assert event.details == {"sent": 5}

    def test_stage_and_teardown_events(self) -> None:
        collector = DiagnosticsCollector()

        collector.stage_outcome(StageOutcome(Stage.BASELINE_VERIFIED, True, 0, 0))
        collector.teardown("demo", CleanupSummary())

        (stage,) = collector.events_of(EventType.STAGE_OUTCOME)
        assert stage.subject == "baseline-verified"
        assert stage.details["passed"] is True
        (teardown,) = collector.events_of(EventType.TEARDOWN)
        assert teardown.details["success"] is True
        assert collector.counts() == {"stage-outcome": 1, "teardown": 1}


class TestJsonLines:
    """Test streaming of events to disk."""

    def test_events_are_appended_as_they_are_recorded(self, tmp_path: Path) -> None:
        log_path = tmp_path / "diag" / "events.jsonl"
        collector = DiagnosticsCollector(log_path=log_path)

        collector.resource_created(SECRET, 0)
        collector.resource_deleted(SECRET, 0)

        lines = log_path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event_type"] == "resource-create"
        assert first["subject"] == "demo-ns/secrets/demo-secret"
        assert first["details"] == {"exit_code": 0}

    def test_nothing_is_written_without_a_path(self, tmp_path: Path) -> None:
        collector = DiagnosticsCollector(log_path=None)

        collector.resource_created(SECRET, 0)

        assert collector.log_path is None
        assert list(tmp_path.iterdir()) == []
