"""Step definitions for the autoscaling validation feature."""

from behave import given, then, when
from behave.runner import Context

from scaleprobe.core.orchestrator import ScenarioOrchestrator
from scaleprobe.core.report import FORWARD_STAGES, Stage
from tests.conftest import make_config
from tests.fakes import FakeServiceBusData


@given("a cluster whose autoscaler reacts to the subscription")
def step_reactive_cluster(context: Context) -> None:
    context.cluster.autoscaler_enabled = True


@given("a cluster whose autoscaler never scales")
def step_idle_cluster(context: Context) -> None:
    context.cluster.autoscaler_enabled = False


@given('the cluster rejects "{kind}" manifests')
def step_reject_kind(context: Context, kind: str) -> None:
    context.cluster.fail_apply.add(kind)


@given("the next {count:d} message completions fail")
def step_fail_completions(context: Context, count: int) -> None:
    context.bus.complete_failures = count


@given("the autoscaler takes {seconds:d} seconds to scale down")
def step_slow_scale_down(context: Context, seconds: int) -> None:
    context.cluster.scale_down_delay = seconds


@when("the scenario runs")
def step_run(context: Context) -> None:
    config = make_config(**context.config_overrides)
    orchestrator = ScenarioOrchestrator(
        config,
        context.cluster,
        context.queue_admin,
        lambda: FakeServiceBusData(context.bus),
        clock=context.clock,
        sleep=context.clock.sleep,
    )
    context.report = orchestrator.run()


@then("the scenario passes")
def step_passes(context: Context) -> None:
    failed = context.report.failed_stage
    assert context.report.passed, f"failed at {failed.stage.value}: {failed.message}"


@then('the scenario fails at stage "{stage}"')
def step_fails_at(context: Context, stage: str) -> None:
    assert not context.report.passed
    assert context.report.failed_stage.stage is Stage(stage)


@then('the failure message mentions "{text}"')
def step_failure_message(context: Context, text: str) -> None:
    assert text in context.report.failed_stage.message, context.report.failed_stage.message


@then('the stage "{stage}" did not run')
def step_not_run(context: Context, stage: str) -> None:
    assert context.report.outcome_for(Stage(stage)) is None


@then("the scenario reports a setup failure")
def step_setup_failure(context: Context) -> None:
    assert context.report.setup_failed
    assert context.report.failed_stage.stage is Stage.RESOURCES_UP


@then("{count:d} messages were sent with bodies 1 to {last:d}")
def step_sent_bodies(context: Context, count: int, last: int) -> None:
    assert context.bus.sent_bodies == [str(i) for i in range(1, last + 1)]
    assert len(context.bus.sent_bodies) == count


@then("every stage passed in order")
def step_stage_order(context: Context) -> None:
    stages = [o.stage for o in context.report.outcomes if o.passed]
    assert stages == [*FORWARD_STAGES, Stage.TORN_DOWN], stages


@then("the cluster resources were deleted in reverse creation order")
def step_reverse_deletion(context: Context) -> None:
    kinds = [ref.split("/", 1)[0] for ref in context.cluster.deleted]
    assert kinds == [
        "scaledobject.keda.sh",
        "triggerauthentications.keda.sh",
        "deployments.apps",
        "secrets",
        "namespace",
    ], kinds


@then("the subscription and topic were deleted with status 200")
def step_queue_deleted(context: Context) -> None:
    steps = [
        s for s in context.report.teardown.step_results if s["kind"] in ("subscription", "topic")
    ]
    assert [s["kind"] for s in steps] == ["subscription", "topic"]
    assert all(s["status"] == "completed" for s in steps)
    assert context.bus.deleted == ["sb-topic/sb-subscription", "sb-topic"]


@then("nothing is left behind")
def step_clean(context: Context) -> None:
    assert context.cluster.objects == {}, context.cluster.kinds()
    assert context.bus.topics == {}, list(context.bus.topics)


@then("the drain recorded {count:d} redeliveries")
def step_redeliveries(context: Context, count: int) -> None:
    drained = context.report.outcome_for(Stage.LOAD_DRAINED)
    assert drained.details["redeliveries"] == count, drained.details
