"""Sequencing of a scaling scenario as an explicit state machine."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import AbstractContextManager

from scaleprobe.core.config import ScenarioConfig
from scaleprobe.core.diagnostics import DiagnosticsCollector
from scaleprobe.core.exceptions import (
    HarnessTimeoutError,
    InvalidTransitionError,
    LoadDrainError,
    LoadInjectionError,
    SetupError,
)
from scaleprobe.core.interfaces import (
    ControlPlaneClient,
    Destination,
    QueueAdminClient,
    QueueDataClient,
)
from scaleprobe.core.load import LoadDriver
from scaleprobe.core.poller import Poller, wait_for_condition, wait_for_replica_count
from scaleprobe.core.registry import CleanupSummary, ResourceRegistry
from scaleprobe.core.report import ScenarioReport, Stage, StageOutcome
from scaleprobe.core.resources import ResourceLifecycleManager
from scaleprobe.core.timeouts import TimeoutManager
from scaleprobe.core.topology import QueueTopology

logger = logging.getLogger(__name__)

QueueClientFactory = Callable[[], AbstractContextManager[QueueDataClient]]

NEXT_STAGE = {
    Stage.INIT: Stage.RESOURCES_UP,
    Stage.RESOURCES_UP: Stage.BASELINE_VERIFIED,
    Stage.BASELINE_VERIFIED: Stage.LOAD_INJECTED,
    Stage.LOAD_INJECTED: Stage.SCALED_UP_VERIFIED,
    Stage.SCALED_UP_VERIFIED: Stage.LOAD_DRAINED,
    Stage.LOAD_DRAINED: Stage.SCALED_DOWN_VERIFIED,
}
"""Legal forward transitions. TORN_DOWN is reachable from every stage."""


class ScenarioOrchestrator:
    """Runs setup, baseline, scale-up, drain and scale-down, then tears down.

    Stages run strictly in order. The first failing stage stops forward
    progress; teardown runs exactly once on every exit path, including
    unexpected exceptions, which propagate after teardown.

    Parameters
    ----------
    config : ScenarioConfig
        Resolved scenario settings
    control_plane : ControlPlaneClient
        Cluster client
    queue_admin : QueueAdminClient
        Queue administration client
    queue_client_factory : QueueClientFactory
        Returns a fresh queue data client used as a context manager; one is
        opened and closed around each stage that touches the queue
    timeout_manager : TimeoutManager | None
        Overall scenario budget; created from the config when None
    diagnostics : DiagnosticsCollector | None
        Receives stage, poll, resource and load events
    clock : Callable[[], float]
        Monotonic clock shared by every wait
    sleep : Callable[[float], None]
        Sleep used between replica observations
    poller : Poller
        Bounded wait used for every replica assertion; takes the arguments
        of ``wait_for_condition``
    """

    def __init__(
        self,
        config: ScenarioConfig,
        control_plane: ControlPlaneClient,
        queue_admin: QueueAdminClient,
        queue_client_factory: QueueClientFactory,
        *,
        timeout_manager: TimeoutManager | None = None,
        diagnostics: DiagnosticsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        poller: Poller = wait_for_condition,
    ) -> None:
        self.config = config
        self.control_plane = control_plane
        self.queue_client_factory = queue_client_factory
        self.diagnostics = diagnostics or DiagnosticsCollector()
        self._clock = clock
        self._sleep = sleep
        self.poller = poller
        self._timeout_manager = timeout_manager

        scenario = config.scenario
        self.registry = ResourceRegistry(clock=clock)
        self.topology = QueueTopology(
            queue_admin, scenario.topic, scenario.subscription, registry=self.registry
        )
        self.resources = ResourceLifecycleManager(
            control_plane, registry=self.registry, diagnostics=self.diagnostics, clock=clock
        )
        self.destination = Destination(scenario.topic, scenario.subscription)

        self.stage = Stage.INIT
        self.report = ScenarioReport(scenario=scenario.name)
        self._teardown_summary: CleanupSummary | None = None

    @property
    def timeouts(self) -> TimeoutManager:
        if self._timeout_manager is None:
            self._timeout_manager = TimeoutManager(
                self.config.scenario_timeout, clock=self._clock
            )
        return self._timeout_manager

    def plan(self) -> list[tuple[Stage, Callable[[Stage], StageOutcome]]]:
        """Forward stages and the action that verifies each."""
        low = self.config.trigger.min_replica_count
        high = self.config.trigger.max_replica_count
        return [
            (Stage.RESOURCES_UP, self._setup),
            (Stage.BASELINE_VERIFIED, lambda s: self._expect_replicas(s, low)),
            (Stage.LOAD_INJECTED, self._inject),
            (Stage.SCALED_UP_VERIFIED, lambda s: self._expect_replicas(s, high)),
            (Stage.LOAD_DRAINED, self._drain),
            (Stage.SCALED_DOWN_VERIFIED, lambda s: self._expect_replicas(s, low)),
        ]

    def run(self) -> ScenarioReport:
        """Run every stage until one fails, then tear down.

        Returns
        -------
        ScenarioReport
            Per-stage outcomes, overall verdict and teardown summary
        """
        logger.info("Starting scenario %s", self.config.scenario.name)
        try:
            for stage, action in self.plan():
                if not self.run_stage(stage, action):
                    break
        finally:
            self.teardown()

        verdict = "passed" if self.report.passed else "failed"
        logger.info("Scenario %s %s", self.config.scenario.name, verdict)
        return self.report

    def run_stage(self, stage: Stage, action: Callable[[Stage], StageOutcome]) -> bool:
        """Run one stage if it is the next legal one and record its outcome.

        Raises
        ------
        InvalidTransitionError
            If ``stage`` does not directly follow the current stage
        """
        self._check_transition(stage)
        started = self._clock()
        try:
            outcome = action(stage)
        except SetupError as e:
            self.report.setup_failed = True
            outcome = StageOutcome(stage, False, message=str(e), error_kind="setup")
        except HarnessTimeoutError as e:
            outcome = StageOutcome(stage, False, message=str(e), error_kind="timeout")
        except LoadInjectionError as e:
            outcome = StageOutcome(
                stage,
                False,
                expected=self.config.message_count,
                observed=e.sent,
                message=str(e),
                error_kind="load",
            )
        except LoadDrainError as e:
            outcome = StageOutcome(
                stage,
                False,
                expected=self.config.message_count,
                observed=e.result.completed,
                message=str(e),
                error_kind="load",
                details=e.result.as_dict(),
            )

        outcome.elapsed = self._clock() - started
        self.report.outcomes.append(outcome)
        self.diagnostics.stage_outcome(outcome)

        if outcome.passed:
            self.stage = stage
            self.report.final_stage = stage
            logger.info("Stage %s passed (%.1fs)", stage.value, outcome.elapsed)
        else:
            logger.error("Stage %s failed: %s", stage.value, outcome.message)
        return outcome.passed

    def teardown(self) -> CleanupSummary:
        """Release everything acquired so far, once.

        Later calls return the summary of the first call.
        """
        if self._teardown_summary is not None:
            return self._teardown_summary

        logger.info("Tearing down scenario %s", self.config.scenario.name)
        summary = self.registry.cleanup_all()
        self._teardown_summary = summary
        self.stage = Stage.TORN_DOWN
        self.report.teardown = summary
        self.report.outcomes.append(
            StageOutcome(
                Stage.TORN_DOWN,
                summary.success(),
                message="; ".join(summary.errors),
                error_kind=None if summary.success() else "teardown",
                details={"warnings": list(summary.warnings)},
            )
        )
        self.diagnostics.teardown(self.config.scenario.name, summary)
        if summary.errors:
            logger.warning(
                "Teardown completed with %d errors: %s",
                len(summary.errors),
                "; ".join(summary.errors),
            )
        return summary

    def _check_transition(self, target: Stage) -> None:
        if self.stage is Stage.TORN_DOWN:
            raise InvalidTransitionError(f"Scenario already torn down, cannot run {target.value}")
        expected = NEXT_STAGE.get(self.stage)
        if target is not expected:
            raise InvalidTransitionError(
                f"Cannot move from {self.stage.value} to {target.value}; "
                f"next stage is {expected.value if expected else 'teardown'}"
            )

    def _setup(self, stage: Stage) -> StageOutcome:
        config = self.config
        with self.timeouts.sub_budget(stage.value, config.scenario_timeout):
            self.topology.provision()
            records = self.resources.create_scenario_resources(
                config.scenario, config.trigger, config.credential, config.image
            )
        return StageOutcome(
            stage,
            True,
            observed=len(records),
            details={"resources": [str(r) for r in records]},
        )

    def _expect_replicas(self, stage: Stage, expected: int) -> StageOutcome:
        config = self.config
        scenario = config.scenario
        with self.timeouts.sub_budget(stage.value, config.wait_timeout) as budget:
            result = wait_for_replica_count(
                self.control_plane,
                scenario.deployment,
                scenario.namespace,
                expected,
                budget,
                config.poll_interval,
                clock=self._clock,
                sleep=self._sleep,
                poller=self.poller,
                diagnostics=self.diagnostics,
            )

        message = ""
        if not result.matched:
            message = (
                f"Replica count should be {expected} after {budget:.0f}s, "
                f"last observed {result.last_value}"
            )
        return StageOutcome(
            stage,
            result.matched,
            expected=expected,
            observed=result.last_value,
            message=message,
            error_kind=None if result.matched else "assertion",
            details={"attempts": result.attempts, "observation_errors": result.errors},
        )

    def _inject(self, stage: Stage) -> StageOutcome:
        count = self.config.message_count
        with self.timeouts.sub_budget(stage.value, self.config.wait_timeout):
            with self.queue_client_factory() as client:
                sent = self._driver(client).inject(count)
        return StageOutcome(stage, sent == count, expected=count, observed=sent)

    def _drain(self, stage: Stage) -> StageOutcome:
        count = self.config.message_count
        with self.timeouts.sub_budget(stage.value, self.config.drain_timeout) as budget:
            with self.queue_client_factory() as client:
                result = self._driver(client).drain(count, budget)

        message = ""
        if not result.reached_target:
            message = f"Completed {result.completed} of {count} messages within {budget:.0f}s"
        return StageOutcome(
            stage,
            result.reached_target,
            expected=count,
            observed=result.completed,
            message=message,
            error_kind=None if result.reached_target else "load",
            details=result.as_dict(),
        )

    def _driver(self, client: QueueDataClient) -> LoadDriver:
        config = self.config
        return LoadDriver(
            client,
            self.destination,
            batch_size=config.send_batch_size,
            receive_batch=config.receive_batch,
            receive_wait=config.receive_wait,
            clock=self._clock,
            diagnostics=self.diagnostics,
        )
