"""Per-stage verdicts of a scenario run and their text rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scaleprobe.core.registry import CleanupSummary


class Stage(str, Enum):
    """Scenario stages in the order they run."""

    INIT = "init"
    RESOURCES_UP = "resources-up"
    BASELINE_VERIFIED = "baseline-verified"
    LOAD_INJECTED = "load-injected"
    SCALED_UP_VERIFIED = "scaled-up-verified"
    LOAD_DRAINED = "load-drained"
    SCALED_DOWN_VERIFIED = "scaled-down-verified"
    TORN_DOWN = "torn-down"


FORWARD_STAGES = (
    Stage.RESOURCES_UP,
    Stage.BASELINE_VERIFIED,
    Stage.LOAD_INJECTED,
    Stage.SCALED_UP_VERIFIED,
    Stage.LOAD_DRAINED,
    Stage.SCALED_DOWN_VERIFIED,
)


@dataclass
class StageOutcome:
    """Verdict of one stage.

    Attributes
    ----------
    stage : Stage
        Stage the outcome belongs to
    passed : bool
        Whether the stage succeeded
    expected : Any
        Value the stage was waiting for, when applicable
    observed : Any
        Final observed value (replica count, messages sent or completed)
    message : str
        Human-readable explanation
    error_kind : str | None
        "setup", "assertion", "load", "timeout" or "teardown" on failure
    elapsed : float
        Seconds spent in the stage
    details : dict[str, Any]
        Extra stage-specific data
    """

    stage: Stage
    passed: bool
    expected: Any = None
    observed: Any = None
    message: str = ""
    error_kind: str | None = None
    elapsed: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "passed": self.passed,
            "expected": self.expected,
            "observed": self.observed,
            "message": self.message,
            "error_kind": self.error_kind,
            "elapsed": round(self.elapsed, 3),
            "details": self.details,
        }


@dataclass
class ScenarioReport:
    """Outcome of a scenario run.

    The overall verdict depends only on the forward stages; teardown
    problems are reported alongside but never flip a passing run.
    """

    scenario: str
    outcomes: list[StageOutcome] = field(default_factory=list)
    final_stage: Stage = Stage.INIT
    setup_failed: bool = False
    teardown: CleanupSummary | None = None

    @property
    def forward_outcomes(self) -> list[StageOutcome]:
        return [o for o in self.outcomes if o.stage is not Stage.TORN_DOWN]

    @property
    def passed(self) -> bool:
        outcomes = self.forward_outcomes
        return (
            not self.setup_failed
            and len(outcomes) == len(FORWARD_STAGES)
            and all(o.passed for o in outcomes)
        )

    @property
    def failed_stage(self) -> StageOutcome | None:
        for outcome in self.forward_outcomes:
            if not outcome.passed:
                return outcome
        return None

    def outcome_for(self, stage: Stage) -> StageOutcome | None:
        for outcome in self.outcomes:
            if outcome.stage is stage:
                return outcome
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "passed": self.passed,
            "setup_failed": self.setup_failed,
            "final_stage": self.final_stage.value,
            "stages": [o.as_dict() for o in self.outcomes],
            "teardown": self.teardown.as_dict() if self.teardown else None,
        }


def format_plain_text(report: ScenarioReport) -> str:
    """Render one line per stage, in stage order, followed by the overall verdict."""
    lines = [f"Scenario {report.scenario}", ""]
    for outcome in report.forward_outcomes:
        lines.extend(_outcome_lines(outcome))
    for stage in FORWARD_STAGES:
        if report.outcome_for(stage) is None:
            lines.append(f"[SKIP] {stage.value}")

    torn_down = report.outcome_for(Stage.TORN_DOWN)
    if torn_down is not None:
        lines.extend(_outcome_lines(torn_down))
    if report.teardown is not None:
        for warning in report.teardown.warnings:
            lines.append(f"       teardown warning: {warning}")
        for error in report.teardown.errors:
            lines.append(f"       teardown error: {error}")

    lines.append("")
    if report.setup_failed:
        lines.append("Result: SETUP FAILED")
    else:
        lines.append(f"Result: {'PASSED' if report.passed else 'FAILED'}")
    return "\n".join(lines) + "\n"


def _outcome_lines(outcome: StageOutcome) -> list[str]:
    verdict = "PASS" if outcome.passed else "FAIL"
    line = f"[{verdict}] {outcome.stage.value}"
    if outcome.expected is not None or outcome.observed is not None:
        line += f" (expected={outcome.expected}, observed={outcome.observed})"
    line += f" {outcome.elapsed:.1f}s"
    if outcome.message and not outcome.passed and outcome.stage is not Stage.TORN_DOWN:
        return [line, f"       {outcome.message}"]
    return [line]
