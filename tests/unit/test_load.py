"""Unit tests for LoadDriver."""

import pytest

from scaleprobe.core.diagnostics import DiagnosticsCollector, EventType
from scaleprobe.core.exceptions import LoadDrainError, LoadInjectionError
from scaleprobe.core.interfaces import Destination
from scaleprobe.core.load import DrainResult, LoadDriver
from tests.fakes import FakeClock, FakeServiceBus, FakeServiceBusData

DESTINATION = Destination("sb-topic", "sb-subscription")


@pytest.fixture
def data(bus: FakeServiceBus) -> FakeServiceBusData:
    bus.topics["sb-topic"] = {"sb-subscription": []}
    return FakeServiceBusData(bus)


def make_driver(data: FakeServiceBusData, clock: FakeClock, **kwargs) -> LoadDriver:
    kwargs.setdefault("receive_wait", 60.0)
    return LoadDriver(data, DESTINATION, clock=clock, **kwargs)


class TestInject:
    """Test sending load."""

    def test_sends_numbered_bodies(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        sent = make_driver(data, clock).inject(5)

        assert sent == 5
        assert bus.sent_bodies == ["1", "2", "3", "4", "5"]
        assert bus.depth("sb-topic", "sb-subscription") == 5

    def test_sends_in_batches(self, clock: FakeClock) -> None:
        batches = []

        class Recorder:
            def send(self, destination, messages) -> None:
                batches.append([m["body"] for m in messages])

        LoadDriver(Recorder(), DESTINATION, batch_size=2, clock=clock).inject(5)

        assert batches == [["1", "2"], ["3", "4"], ["5"]]

    def test_zero_messages_is_a_no_op(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        assert make_driver(data, clock).inject(0) == 0
        assert bus.sent_bodies == []

    def test_negative_count_rejected(self, data: FakeServiceBusData, clock: FakeClock) -> None:
        with pytest.raises(ValueError):
            make_driver(data, clock).inject(-1)

    def test_send_failure_reports_messages_already_sent(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        class FailSecondBatch:
            calls = 0

            def send(self, destination, messages) -> None:
                self.calls += 1
                if self.calls == 2:
                    bus.send_failures = 1
                data.send(destination, messages)

        driver = LoadDriver(FailSecondBatch(), DESTINATION, batch_size=2, clock=clock)

        with pytest.raises(LoadInjectionError) as exc_info:
            driver.inject(5)

        assert exc_info.value.sent == 2

    def test_invalid_batch_size_rejected(self, data: FakeServiceBusData) -> None:
        with pytest.raises(ValueError):
            LoadDriver(data, DESTINATION, batch_size=0)


class TestDrain:
    """Test draining with at-least-once delivery."""

    def test_drains_exactly_the_injected_messages(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        driver = make_driver(data, clock)
        driver.inject(5)

        result = driver.drain(5, timeout=300)

        assert result.reached_target
        assert result.completed == 5
        assert result.distinct == 5
        assert result.redeliveries == 0
        assert bus.depth("sb-topic", "sb-subscription") == 0

    def test_drains_across_several_receive_batches(
        self, data: FakeServiceBusData, clock: FakeClock
    ) -> None:
        driver = make_driver(data, clock, receive_batch=2)
        driver.inject(5)

        result = driver.drain(5, timeout=300)

        assert result.completed == 5
        assert result.deliveries == 5

    def test_failed_completion_is_redelivered_and_counted_once_completed(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        """Test a message whose completion fails is completed on redelivery."""
        driver = make_driver(data, clock)
        driver.inject(3)
        bus.complete_failures = 1

        result = driver.drain(3, timeout=300)

        assert result.reached_target
        assert result.completed == 3
        assert result.distinct == 3
        assert result.failed_completions == 1
        assert result.redeliveries == 1
        assert result.deliveries == 4
        assert sorted(data.completed) == sorted(set(data.completed))

    def test_handler_failure_leaves_message_for_redelivery(
        self, data: FakeServiceBusData, clock: FakeClock
    ) -> None:
        failures = {"left": 1}

        def handler(message) -> None:
            if failures["left"]:
                failures["left"] -= 1
                raise RuntimeError("processing failed")

        driver = make_driver(data, clock, handler=handler)
        driver.inject(2)

        result = driver.drain(2, timeout=300)

        assert result.completed == 2
        assert result.failed_completions == 1
        assert result.redeliveries == 1

    def test_handler_sees_message_bodies(
        self, data: FakeServiceBusData, clock: FakeClock
    ) -> None:
        bodies = []
        driver = make_driver(data, clock, handler=lambda m: bodies.append(m.body))
        driver.inject(3)

        driver.drain(3, timeout=300)

        assert bodies == ["1", "2", "3"]

    def test_empty_subscription_times_out(
        self, data: FakeServiceBusData, clock: FakeClock
    ) -> None:
        """Test draining more than was sent stops at the deadline."""
        driver = make_driver(data, clock, receive_wait=60.0)
        driver.inject(2)
        started = clock()

        result = driver.drain(5, timeout=150)

        assert not result.reached_target
        assert result.completed == 2
        assert clock() - started == pytest.approx(150)

    def test_zero_target_returns_immediately(
        self, data: FakeServiceBusData, clock: FakeClock
    ) -> None:
        result = make_driver(data, clock).drain(0, timeout=300)

        assert result.reached_target
        assert result.deliveries == 0

    def test_receive_failure_carries_progress(
        self, data: FakeServiceBusData, bus: FakeServiceBus, clock: FakeClock
    ) -> None:
        driver = make_driver(data, clock, receive_batch=2)
        driver.inject(5)
        original_receive = data.receive
        calls = {"count": 0}

        def flaky_receive(destination, max_count, max_wait):
            calls["count"] += 1
            if calls["count"] == 2:
                bus.receive_failures = 1
            return original_receive(destination, max_count, max_wait)

        data.receive = flaky_receive

        with pytest.raises(LoadDrainError) as exc_info:
            driver.drain(5, timeout=300)

        assert exc_info.value.result.completed == 2

    def test_records_diagnostics(self, data: FakeServiceBusData, clock: FakeClock) -> None:
        diagnostics = DiagnosticsCollector()
        driver = make_driver(data, clock, diagnostics=diagnostics)
        driver.inject(1)

        driver.drain(1, timeout=10)

        assert len(diagnostics.events_of(EventType.LOAD_INJECTED)) == 1
        drained = diagnostics.events_of(EventType.LOAD_DRAINED)
        assert drained[0].details["completed"] == 1


class TestDrainResult:
    def test_as_dict(self) -> None:
        result = DrainResult(target=2, completed=2, deliveries=3, completed_ids={"a", "b"})

        assert result.as_dict() == {
            "target": 2,
            "completed": 2,
            "distinct": 2,
            "deliveries": 3,
            "redeliveries": 0,
            "failed_completions": 0,
        }
