import copy
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from scaleprobe.constants import (
    CONFIG_PATH_ENV,
    CONNECTION_STRING_ENV,
    DEFAULT_CONFIG_FILE,
    DEFAULT_COOLDOWN_PERIOD,
    DEFAULT_DRAIN_TIMEOUT_SECONDS,
    DEFAULT_IMAGE,
    DEFAULT_MAX_REPLICA_COUNT,
    DEFAULT_MESSAGE_COUNT,
    DEFAULT_MIN_REPLICA_COUNT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLLING_INTERVAL,
    DEFAULT_RECEIVE_BATCH,
    DEFAULT_RECEIVE_WAIT_SECONDS,
    DEFAULT_SCENARIO_NAME,
    DEFAULT_SCENARIO_TIMEOUT_SECONDS,
    DEFAULT_SEND_BATCH_SIZE,
    DEFAULT_SUBSCRIPTION_NAME,
    DEFAULT_TOPIC_NAME,
    DEFAULT_TRIGGER_TYPE,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    KUBECTL_COMMAND_TIMEOUT_SECONDS,
)
from scaleprobe.core.scenario import QueueTriggerConfig, Scenario

logger = logging.getLogger(__name__)

NUMBER = (int, float)

CONFIG_SECTIONS = ("defaults", "scenarios")


@dataclass(frozen=True)
class ScenarioConfig:
    """Fully resolved settings for one scenario run."""

    scenario: Scenario
    trigger: QueueTriggerConfig
    credential: str
    image: str = DEFAULT_IMAGE
    message_count: int = DEFAULT_MESSAGE_COUNT
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    receive_batch: int = DEFAULT_RECEIVE_BATCH
    receive_wait: float = DEFAULT_RECEIVE_WAIT_SECONDS
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS
    send_batch_size: int = DEFAULT_SEND_BATCH_SIZE
    command_timeout: float = KUBECTL_COMMAND_TIMEOUT_SECONDS
    scenario_timeout: float = DEFAULT_SCENARIO_TIMEOUT_SECONDS
    kube_context: str | None = None
    diagnostics_path: str | None = None


class ConfigLoader:
    """Load and merge YAML configuration with defaults."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS = {
            "scenario_name": DEFAULT_SCENARIO_NAME,
            "topic_name": DEFAULT_TOPIC_NAME,
            "subscription_name": DEFAULT_SUBSCRIPTION_NAME,
            "message_count": DEFAULT_MESSAGE_COUNT,
            "polling_interval": DEFAULT_POLLING_INTERVAL,
            "cooldown_period": DEFAULT_COOLDOWN_PERIOD,
            "min_replica_count": DEFAULT_MIN_REPLICA_COUNT,
            "max_replica_count": DEFAULT_MAX_REPLICA_COUNT,
            "trigger_type": DEFAULT_TRIGGER_TYPE,
            "image": DEFAULT_IMAGE,
            "wait_timeout": DEFAULT_WAIT_TIMEOUT_SECONDS,
            "poll_interval": DEFAULT_POLL_INTERVAL_SECONDS,
            "receive_batch": DEFAULT_RECEIVE_BATCH,
            "receive_wait": DEFAULT_RECEIVE_WAIT_SECONDS,
            "drain_timeout": DEFAULT_DRAIN_TIMEOUT_SECONDS,
            "send_batch_size": DEFAULT_SEND_BATCH_SIZE,
            "command_timeout": KUBECTL_COMMAND_TIMEOUT_SECONDS,
            "scenario_timeout": DEFAULT_SCENARIO_TIMEOUT_SECONDS,
            "kube_context": None,
            "diagnostics_path": None,
        }

    def resolve_path(self, config_path: str | None = None) -> Path:
        """Config file path: the argument, then ``$SCALEPROBE_CONFIG``, then the default."""
        return Path(config_path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_FILE))

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Read the ``defaults`` and ``scenarios`` sections of a YAML config file.

        Keys of the optional top-level ``vars`` section can be referenced as
        ``${name}`` anywhere in the file. A missing file means built-in
        defaults only.

        Parameters
        ----------
        config_path : str | None
            Path to the YAML file; see ``resolve_path`` for the fallbacks

        Returns
        -------
        dict[str, Any]
            The ``defaults`` and ``scenarios`` sections that are present, with
            every reference resolved

        Raises
        ------
        ValueError
            If the file is not valid YAML, is not a mapping, or references an
            undefined variable
        RuntimeError
            If the file exists but cannot be read
        """
        path = self.resolve_path(config_path)
        if not path.exists():
            logger.debug("No config file at %s, using built-in defaults", path)
            return {"defaults": {}}

        try:
            document = OmegaConf.load(path)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        except OSError as e:
            raise RuntimeError(f"Failed to read config file {path}: {e}") from e

        if not isinstance(document, DictConfig):
            raise ValueError(f"{path} must contain a mapping of config sections")

        # Top-level keys take precedence over vars of the same name.
        scope = OmegaConf.merge(document.get("vars") or {}, document)
        try:
            resolved = OmegaConf.to_container(scope, resolve=True, throw_on_missing=True)
        except OmegaConfBaseException as e:
            raise ValueError(f"Cannot resolve variables in {path}: {e}") from e

        return {key: resolved[key] for key in CONFIG_SECTIONS if key in resolved}

    def get_scenario_config(
        self, config: dict[str, Any], scenario_name: str | None = None
    ) -> dict[str, Any]:
        """Merge built-in defaults, YAML defaults and a named scenario section.

        A scenario section that does not set ``scenario_name`` uses its own key,
        so each named scenario gets its own namespace and resource names. Its
        topic and subscription default to ``<name>-topic`` and
        ``<name>-subscription`` unless the section sets them.

        Raises
        ------
        ValueError
            If the named scenario is not defined
        """
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)
        merged.update(config.get("defaults") or {})

        if scenario_name is not None:
            scenarios = config.get("scenarios") or {}

            if scenario_name not in scenarios:
                available = list(scenarios.keys())
                if not available:
                    raise ValueError(
                        f"Scenario '{scenario_name}' not found in configuration. "
                        f"No scenarios are defined in the config file."
                    )
                raise ValueError(
                    f"Scenario '{scenario_name}' not found in configuration. "
                    f"Available scenarios: {available}"
                )

            section = scenarios[scenario_name] or {}
            merged["scenario_name"] = scenario_name
            merged.update(section)
            for key, suffix in (("topic_name", "topic"), ("subscription_name", "subscription")):
                if key not in section:
                    merged[key] = f"{merged['scenario_name']}-{suffix}"

        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate field types and ranges.

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        string_fields = (
            "scenario_name",
            "topic_name",
            "subscription_name",
            "trigger_type",
            "image",
        )
        for name in string_fields:
            if not isinstance(config.get(name), str) or not config[name]:
                raise ValueError(f"{name} must be a non-empty string")

        integer_fields = (
            "message_count",
            "polling_interval",
            "cooldown_period",
            "min_replica_count",
            "max_replica_count",
            "receive_batch",
            "send_batch_size",
        )
        for name in integer_fields:
            value = config.get(name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")

        if config["message_count"] < 1:
            raise ValueError("message_count must be at least 1")
        if config["receive_batch"] < 1 or config["send_batch_size"] < 1:
            raise ValueError("receive_batch and send_batch_size must be at least 1")

        positive_numbers = (
            "wait_timeout",
            "poll_interval",
            "receive_wait",
            "drain_timeout",
            "command_timeout",
            "scenario_timeout",
        )
        for name in positive_numbers:
            value = config.get(name)
            if isinstance(value, bool) or not isinstance(value, NUMBER) or value <= 0:
                raise ValueError(f"{name} must be a positive number")

        for name in ("kube_context", "diagnostics_path"):
            if config.get(name) is not None and not isinstance(config[name], str):
                raise ValueError(f"{name} must be a string")

        if config["max_replica_count"] < 1:
            raise ValueError(
                "max_replica_count must be at least 1 so that load can cause a scale-up"
            )


def build_scenario_config(
    config: dict[str, Any],
    environ: Mapping[str, str] | None = None,
    require_credential: bool = True,
) -> ScenarioConfig:
    """Turn a validated, merged configuration into a ScenarioConfig.

    Parameters
    ----------
    config : dict[str, Any]
        Output of ``ConfigLoader.get_scenario_config``
    environ : Mapping[str, str] | None
        Environment to read the queue credential from; defaults to os.environ
    require_credential : bool
        When False a missing credential is allowed, for commands that never
        contact the queue service

    Raises
    ------
    ValueError
        If the credential is missing or the trigger settings are inconsistent
    """
    environ = os.environ if environ is None else environ
    credential = environ.get(CONNECTION_STRING_ENV, "")
    if require_credential and not credential:
        raise ValueError(
            f"{CONNECTION_STRING_ENV} environment variable is required for service bus tests"
        )

    scenario = Scenario(
        name=config["scenario_name"],
        topic=config["topic_name"],
        subscription=config["subscription_name"],
    )
    trigger = QueueTriggerConfig(
        topic=scenario.topic,
        subscription=scenario.subscription,
        auth_ref=scenario.trigger_auth,
        polling_interval=config["polling_interval"],
        cooldown_period=config["cooldown_period"],
        min_replica_count=config["min_replica_count"],
        max_replica_count=config["max_replica_count"],
        trigger_type=config["trigger_type"],
    )
    return ScenarioConfig(
        scenario=scenario,
        trigger=trigger,
        credential=credential,
        image=config["image"],
        message_count=config["message_count"],
        wait_timeout=float(config["wait_timeout"]),
        poll_interval=float(config["poll_interval"]),
        receive_batch=config["receive_batch"],
        receive_wait=float(config["receive_wait"]),
        drain_timeout=float(config["drain_timeout"]),
        send_batch_size=config["send_batch_size"],
        command_timeout=float(config["command_timeout"]),
        scenario_timeout=float(config["scenario_timeout"]),
        kube_context=config.get("kube_context"),
        diagnostics_path=config.get("diagnostics_path"),
    )
