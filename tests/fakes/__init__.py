"""In-memory fakes for the cluster and queue service."""

from tests.fakes.fake_clock import FakeClock
from tests.fakes.fake_cluster import FakeCluster
from tests.fakes.fake_servicebus import FakeServiceBus, FakeServiceBusAdmin, FakeServiceBusData

__all__ = [
    "FakeClock",
    "FakeCluster",
    "FakeServiceBus",
    "FakeServiceBusAdmin",
    "FakeServiceBusData",
]
