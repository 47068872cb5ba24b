"""Behave environment configuration for scaleprobe features."""

import logging
import os
import sys
from pathlib import Path

from behave.model import Scenario
from behave.runner import Context

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from tests.fakes import FakeClock, FakeCluster, FakeServiceBus, FakeServiceBusAdmin  # noqa: E402

logger = logging.getLogger(__name__)


def before_scenario(context: Context, scenario: Scenario) -> None:
    """Give every scenario a fresh clock, cluster and queue service."""
    context.clock = FakeClock()
    context.bus = FakeServiceBus(clock=context.clock)
    context.queue_admin = FakeServiceBusAdmin(context.bus)
    context.cluster = FakeCluster(context.clock, queue_depth=context.bus.depth)
    context.config_overrides = {}
    context.report = None
    context.original_debug = os.environ.pop("SCALEPROBE_DEBUG", None)


def after_scenario(context: Context, scenario: Scenario) -> None:
    if context.original_debug is not None:
        os.environ["SCALEPROBE_DEBUG"] = context.original_debug
    if context.bus.topics or context.cluster.objects:
        logger.warning(
            "Scenario '%s' left resources behind: topics=%s objects=%s",
            scenario.name,
            list(context.bus.topics),
            context.cluster.kinds(),
        )
