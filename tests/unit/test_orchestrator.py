"""Unit tests for ScenarioOrchestrator against the in-memory cluster and queue."""

import pytest

from scaleprobe.core.diagnostics import DiagnosticsCollector, EventType
from scaleprobe.core.exceptions import InvalidTransitionError
from scaleprobe.core.orchestrator import ScenarioOrchestrator
from scaleprobe.core.poller import PollResult
from scaleprobe.core.report import Stage, StageOutcome
from scaleprobe.core.timeouts import TimeoutManager
from scaleprobe.providers.exceptions import ProviderAPIError
from tests.conftest import make_config
from tests.fakes import (
    FakeClock,
    FakeCluster,
    FakeServiceBus,
    FakeServiceBusAdmin,
    FakeServiceBusData,
)

NAME = "test-azure-service-bus-topic"


class Harness:
    """Wires an orchestrator to the fakes and keeps every data client it opens."""

    def __init__(self, clock, bus, queue_admin, cluster, **config_overrides) -> None:
        self.clock = clock
        self.bus = bus
        self.cluster = cluster
        self.clients: list[FakeServiceBusData] = []
        self.diagnostics = DiagnosticsCollector()
        self.config = make_config(NAME, **config_overrides)
        self.orchestrator = ScenarioOrchestrator(
            self.config,
            cluster,
            queue_admin,
            self.open_client,
            diagnostics=self.diagnostics,
            clock=clock,
            sleep=clock.sleep,
        )

    def open_client(self) -> FakeServiceBusData:
        client = FakeServiceBusData(self.bus)
        self.clients.append(client)
        return client


@pytest.fixture
def harness(
    clock: FakeClock,
    bus: FakeServiceBus,
    queue_admin: FakeServiceBusAdmin,
    cluster: FakeCluster,
) -> Harness:
    return Harness(clock, bus, queue_admin, cluster)


def assert_fully_torn_down(harness: Harness) -> None:
    assert harness.cluster.objects == {}
    assert harness.bus.topics == {}


class TestScenarioPasses:
    """Test the full scale-up and scale-down scenario."""

    def test_five_messages_scale_zero_to_one_and_back(self, harness: Harness) -> None:
        report = harness.orchestrator.run()

        assert report.passed
        assert report.final_stage is Stage.SCALED_DOWN_VERIFIED
        assert [o.stage for o in report.outcomes] == [
            Stage.RESOURCES_UP,
            Stage.BASELINE_VERIFIED,
            Stage.LOAD_INJECTED,
            Stage.SCALED_UP_VERIFIED,
            Stage.LOAD_DRAINED,
            Stage.SCALED_DOWN_VERIFIED,
            Stage.TORN_DOWN,
        ]
        assert report.outcome_for(Stage.BASELINE_VERIFIED).observed == 0
        assert report.outcome_for(Stage.LOAD_INJECTED).observed == 5
        assert report.outcome_for(Stage.SCALED_UP_VERIFIED).observed == 1
        assert report.outcome_for(Stage.LOAD_DRAINED).observed == 5
        assert report.outcome_for(Stage.SCALED_DOWN_VERIFIED).observed == 0
        assert harness.bus.sent_bodies == ["1", "2", "3", "4", "5"]

    def test_teardown_releases_in_reverse_creation_order(self, harness: Harness) -> None:
        report = harness.orchestrator.run()

        assert report.teardown.success()
        assert harness.cluster.deleted == [
            f"scaledobject.keda.sh/{NAME}-scaled-object",
            f"triggerauthentications.keda.sh/{NAME}-trigger-auth",
            f"deployments.apps/{NAME}-deployment",
            f"secrets/{NAME}-secret",
            f"namespace/{NAME}-ns",
        ]
        assert harness.bus.deleted == ["sb-topic/sb-subscription", "sb-topic"]
        assert_fully_torn_down(harness)

    def test_waits_respect_autoscaler_lag(self, harness: Harness) -> None:
        report = harness.orchestrator.run()

        scale_up = report.outcome_for(Stage.SCALED_UP_VERIFIED)
        scale_down = report.outcome_for(Stage.SCALED_DOWN_VERIFIED)
        assert scale_up.details["attempts"] == 6
        assert scale_up.elapsed == pytest.approx(5.0)
        assert scale_down.elapsed == pytest.approx(10.0)

    def test_each_stage_closes_its_queue_client(self, harness: Harness) -> None:
        harness.orchestrator.run()

        assert len(harness.clients) == 2
        assert all(client.closed for client in harness.clients)

    def test_transient_observation_errors_do_not_fail_the_run(self, harness: Harness) -> None:
        harness.cluster.get_failures = 2

        report = harness.orchestrator.run()

        assert report.passed
        baseline = report.outcome_for(Stage.BASELINE_VERIFIED)
        assert baseline.details["observation_errors"] == 2

    def test_records_stage_outcomes(self, harness: Harness) -> None:
        harness.orchestrator.run()

        stages = [e.subject for e in harness.diagnostics.events_of(EventType.STAGE_OUTCOME)]
        assert stages[0] == "resources-up"
        assert stages[-1] == "scaled-down-verified"
        assert len(harness.diagnostics.events_of(EventType.TEARDOWN)) == 1


class TestScenarioFails:
    """Test failure at each kind of stage, always followed by teardown."""

    def test_no_scale_up_fails_after_the_wait_timeout(self, harness: Harness) -> None:
        harness.cluster.autoscaler_enabled = False
        started = harness.clock()

        report = harness.orchestrator.run()

        assert not report.passed
        failed = report.failed_stage
        assert failed.stage is Stage.SCALED_UP_VERIFIED
        assert failed.error_kind == "assertion"
        assert failed.expected == 1
        assert failed.observed == 0
        assert "Replica count should be 1 after 60s" in failed.message
        assert failed.elapsed >= 60
        assert report.outcome_for(Stage.LOAD_DRAINED) is None
        assert report.final_stage is Stage.LOAD_INJECTED
        assert harness.clock() - started < 70
        assert_fully_torn_down(harness)

    def test_setup_failure_tears_down_partial_resources(self, harness: Harness) -> None:
        harness.cluster.fail_apply.add("ScaledObject")

        report = harness.orchestrator.run()

        assert report.setup_failed
        assert not report.passed
        assert report.failed_stage.stage is Stage.RESOURCES_UP
        assert report.failed_stage.error_kind == "setup"
        assert f"scaledobject.keda.sh/{NAME}-scaled-object" not in harness.cluster.deleted
        assert harness.cluster.deleted[0] == f"triggerauthentications.keda.sh/{NAME}-trigger-auth"
        assert_fully_torn_down(harness)

    def test_queue_setup_failure_creates_no_cluster_resources(
        self, harness: Harness, bus: FakeServiceBus
    ) -> None:
        bus.fail_admin["create_topic"] = ProviderAPIError("quota exceeded", status_code=403)

        report = harness.orchestrator.run()

        assert report.setup_failed
        assert harness.cluster.applied == []
        assert report.teardown.step_results == []

    def test_drain_shortfall_fails_the_drain_stage(
        self, clock, bus, queue_admin, cluster
    ) -> None:
        harness = Harness(clock, bus, queue_admin, cluster, drain_timeout=30.0)
        bus.complete_failures = 10**6

        report = harness.orchestrator.run()

        failed = report.failed_stage
        assert failed.stage is Stage.LOAD_DRAINED
        assert failed.error_kind == "load"
        assert failed.observed == 0
        assert failed.details["failed_completions"] > 0
        assert report.outcome_for(Stage.SCALED_DOWN_VERIFIED) is None
        assert_fully_torn_down(harness)

    def test_send_failure_fails_the_injection_stage(self, harness: Harness) -> None:
        harness.bus.send_failures = 1

        report = harness.orchestrator.run()

        failed = report.failed_stage
        assert failed.stage is Stage.LOAD_INJECTED
        assert failed.error_kind == "load"
        assert failed.observed == 0
        assert_fully_torn_down(harness)

    def test_exhausted_budget_is_a_timeout(
        self, clock, bus, queue_admin, cluster
    ) -> None:
        harness = Harness(clock, bus, queue_admin, cluster)
        harness.orchestrator = ScenarioOrchestrator(
            harness.config,
            cluster,
            queue_admin,
            harness.open_client,
            timeout_manager=TimeoutManager(1.0, clock=clock),
            clock=clock,
            sleep=clock.sleep,
        )
        clock.advance(5)

        report = harness.orchestrator.run()

        assert report.failed_stage.error_kind == "timeout"
        assert not report.setup_failed
        assert harness.cluster.applied == []

    def test_unexpected_error_propagates_after_teardown(
        self, clock, bus, queue_admin, cluster
    ) -> None:
        def broken_factory():
            raise RuntimeError("client construction failed")

        orchestrator = ScenarioOrchestrator(
            make_config(NAME), cluster, queue_admin, broken_factory, clock=clock, sleep=clock.sleep
        )

        with pytest.raises(RuntimeError, match="client construction failed"):
            orchestrator.run()

        assert orchestrator.stage is Stage.TORN_DOWN
        assert cluster.objects == {}
        assert bus.topics == {}

    def test_teardown_errors_are_reported_without_failing_the_run(
        self, harness: Harness
    ) -> None:
        harness.cluster.fail_delete.add("Secret")

        report = harness.orchestrator.run()

        assert report.passed
        assert len(report.teardown.errors) == 1
        assert report.outcome_for(Stage.TORN_DOWN).passed is False
        assert report.outcome_for(Stage.TORN_DOWN).error_kind == "teardown"

    def test_namespace_deletion_failure_is_a_warning(self, harness: Harness) -> None:
        harness.cluster.fail_delete.add("Namespace")

        report = harness.orchestrator.run()

        assert report.teardown.success()
        assert len(report.teardown.warnings) == 1
        assert harness.bus.topics == {}


class TestStateMachine:
    """Test transition checks and single teardown."""

    def test_stages_cannot_be_skipped(self, harness: Harness) -> None:
        with pytest.raises(InvalidTransitionError, match="next stage is resources-up"):
            harness.orchestrator.run_stage(
                Stage.LOAD_INJECTED, lambda s: StageOutcome(s, True)
            )

    def test_stages_cannot_be_repeated(self, harness: Harness) -> None:
        orchestrator = harness.orchestrator
        orchestrator.run_stage(Stage.RESOURCES_UP, lambda s: StageOutcome(s, True))

        with pytest.raises(InvalidTransitionError):
            orchestrator.run_stage(Stage.RESOURCES_UP, lambda s: StageOutcome(s, True))

    def test_failed_stage_does_not_advance(self, harness: Harness) -> None:
        orchestrator = harness.orchestrator

        passed = orchestrator.run_stage(Stage.RESOURCES_UP, lambda s: StageOutcome(s, False))

        assert passed is False
        assert orchestrator.stage is Stage.INIT

    def test_teardown_runs_once(self, harness: Harness) -> None:
        orchestrator = harness.orchestrator
        orchestrator.run()
        deleted = list(harness.cluster.deleted)

        again = orchestrator.teardown()

        assert again is orchestrator.report.teardown
        assert harness.cluster.deleted == deleted
        assert [o.stage for o in orchestrator.report.outcomes].count(Stage.TORN_DOWN) == 1

    def test_no_stage_after_teardown(self, harness: Harness) -> None:
        orchestrator = harness.orchestrator
        orchestrator.teardown()

        with pytest.raises(InvalidTransitionError, match="already torn down"):
            orchestrator.run_stage(Stage.RESOURCES_UP, lambda s: StageOutcome(s, True))


class TestInjectedPoller:
    """Test that replica assertions go through the poller the orchestrator is given."""

    def build(self, clock, bus, queue_admin, cluster, poller) -> ScenarioOrchestrator:
        return ScenarioOrchestrator(
            make_config(NAME),
            cluster,
            queue_admin,
            lambda: FakeServiceBusData(bus),
            clock=clock,
            sleep=clock.sleep,
            poller=poller,
        )

    def test_every_replica_assertion_uses_the_poller(
        self,
        clock: FakeClock,
        bus: FakeServiceBus,
        queue_admin: FakeServiceBusAdmin,
        cluster: FakeCluster,
    ) -> None:
        calls = []

        def poller(observe, predicate, timeout, interval, **kwargs):
            calls.append((kwargs["description"], timeout, interval))
            return PollResult(matched=True, attempts=1, elapsed=0.0, last_value=None)

        report = self.build(clock, bus, queue_admin, cluster, poller).run()

        assert report.passed
        assert [description.rsplit(" ", 1)[-1] for description, _, _ in calls] == [
            "0",
            "1",
            "0",
        ]
        assert all(timeout == 60.0 and interval == 1.0 for _, timeout, interval in calls)

    def test_poller_verdict_decides_the_stage(
        self,
        clock: FakeClock,
        bus: FakeServiceBus,
        queue_admin: FakeServiceBusAdmin,
        cluster: FakeCluster,
    ) -> None:
        def replicas_stay_at_zero(observe, predicate, timeout, interval, **kwargs):
            return PollResult(matched=predicate(0), attempts=3, elapsed=timeout, last_value=0)

        report = self.build(clock, bus, queue_admin, cluster, replicas_stay_at_zero).run()

        failed = report.failed_stage
        assert failed.stage is Stage.SCALED_UP_VERIFIED
        assert failed.observed == 0
        assert failed.details["attempts"] == 3
        assert cluster.objects == {}
        assert bus.topics == {}
