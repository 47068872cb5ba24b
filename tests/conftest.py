"""Pytest configuration and fixtures for scaleprobe tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from scaleprobe.constants import CONNECTION_STRING_ENV
from scaleprobe.core.config import ScenarioConfig
from scaleprobe.core.scenario import QueueTriggerConfig, Scenario
from tests.fakes import FakeClock, FakeCluster, FakeServiceBus, FakeServiceBusAdmin

FAKE_CONNECTION_STRING = (
    "Endpoint=sb://fake.servicebus.windows.net/;"
    "SharedAccessKeyName=RootManageSharedAccessKey;SharedAccessKey=c2VjcmV0"
)


def make_config(
    name: str = "test-azure-service-bus-topic", **overrides: Any
) -> ScenarioConfig:
    """Build a ScenarioConfig with the default scenario timings.

    Trigger fields (``polling_interval``, ``cooldown_period``,
    ``min_replica_count``, ``max_replica_count``) may be overridden alongside
    the ScenarioConfig fields.
    """
    scenario = Scenario(name=name)
    trigger_fields = {
        key: overrides.pop(key)
        for key in (
            "polling_interval",
            "cooldown_period",
            "min_replica_count",
            "max_replica_count",
        )
        if key in overrides
    }
    trigger = QueueTriggerConfig(
        topic=scenario.topic,
        subscription=scenario.subscription,
        auth_ref=scenario.trigger_auth,
        **trigger_fields,
    )
    overrides.setdefault("credential", FAKE_CONNECTION_STRING)
    return ScenarioConfig(scenario=scenario, trigger=trigger, **overrides)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus(clock: FakeClock) -> FakeServiceBus:
    return FakeServiceBus(clock=clock)


@pytest.fixture
def queue_admin(bus: FakeServiceBus) -> FakeServiceBusAdmin:
    return FakeServiceBusAdmin(bus)


@pytest.fixture
def cluster(clock: FakeClock, bus: FakeServiceBus) -> FakeCluster:
    return FakeCluster(clock, queue_depth=bus.depth)


@pytest.fixture
def credential_env() -> Generator[str, None, None]:
    """Set the queue credential environment variable for the test.

    Yields
    ------
    str
        The credential value
    """
    original = os.environ.get(CONNECTION_STRING_ENV)
    os.environ[CONNECTION_STRING_ENV] = FAKE_CONNECTION_STRING

    yield FAKE_CONNECTION_STRING

    if original is not None:
        os.environ[CONNECTION_STRING_ENV] = original
    else:
        del os.environ[CONNECTION_STRING_ENV]


@pytest.fixture
def config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Point SCALEPROBE_CONFIG at a temporary file path.

    Yields
    ------
    Path
        Path to the (not yet written) config file
    """
    config_path = tmp_path / "scaleprobe.yaml"

    original_env = os.environ.get("SCALEPROBE_CONFIG")
    os.environ["SCALEPROBE_CONFIG"] = str(config_path)

    yield config_path

    if original_env is not None:
        os.environ["SCALEPROBE_CONFIG"] = original_env
    else:
        os.environ.pop("SCALEPROBE_CONFIG", None)
