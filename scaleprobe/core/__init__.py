"""Scenario engine: polling, resource lifecycle, load and orchestration."""

from __future__ import annotations

from scaleprobe.core.config import ConfigLoader, ScenarioConfig, build_scenario_config
from scaleprobe.core.load import DrainResult, LoadDriver
from scaleprobe.core.orchestrator import ScenarioOrchestrator
from scaleprobe.core.poller import PollResult, wait_for_condition, wait_for_replica_count
from scaleprobe.core.registry import CleanupSummary, ResourceRegistry
from scaleprobe.core.report import ScenarioReport, Stage, StageOutcome
from scaleprobe.core.resources import ResourceLifecycleManager
from scaleprobe.core.scenario import QueueTriggerConfig, ResourceRecord, ResourceSpec, Scenario
from scaleprobe.core.signals import setup_signal_handlers
from scaleprobe.core.topology import QueueTopology

__all__ = [
    "CleanupSummary",
    "ConfigLoader",
    "DrainResult",
    "LoadDriver",
    "PollResult",
    "QueueTopology",
    "QueueTriggerConfig",
    "ResourceLifecycleManager",
    "ResourceRecord",
    "ResourceRegistry",
    "ResourceSpec",
    "Scenario",
    "ScenarioConfig",
    "ScenarioOrchestrator",
    "ScenarioReport",
    "Stage",
    "StageOutcome",
    "build_scenario_config",
    "setup_signal_handlers",
    "wait_for_condition",
    "wait_for_replica_count",
]
