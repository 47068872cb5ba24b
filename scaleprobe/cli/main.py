"""CLI entry point for scaleprobe."""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from typing import Any

import fire

from scaleprobe import manifests
from scaleprobe.constants import (
    CONNECTION_STRING_ENV,
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_SETUP_ERROR,
    EXIT_SUCCESS,
)
from scaleprobe.core.config import ConfigLoader, ScenarioConfig, build_scenario_config
from scaleprobe.core.diagnostics import DiagnosticsCollector
from scaleprobe.core.interfaces import ControlPlaneClient, QueueAdminClient, QueueDataClient
from scaleprobe.core.orchestrator import ScenarioOrchestrator
from scaleprobe.core.report import ScenarioReport, format_plain_text
from scaleprobe.core.resources import ResourceLifecycleManager
from scaleprobe.core.signals import setup_signal_handlers
from scaleprobe.core.topology import QueueTopology
from scaleprobe.logging import StreamFormatter, StreamRoutingFilter
from scaleprobe.providers import (
    KubectlClient,
    ProviderConnectionError,
    ProviderError,
    ServiceBusAdmin,
    ServiceBusData,
)

logger = logging.getLogger(__name__)


def default_control_plane(settings: ScenarioConfig) -> ControlPlaneClient:
    return KubectlClient(context=settings.kube_context, command_timeout=settings.command_timeout)


def default_queue_admin(settings: ScenarioConfig) -> QueueAdminClient:
    return ServiceBusAdmin(settings.credential)


def default_queue_data(settings: ScenarioConfig) -> QueueDataClient:
    return ServiceBusData(settings.credential)


def exit_code_for(report: ScenarioReport) -> int:
    """Map a report to the process exit code."""
    if report.setup_failed:
        return EXIT_SETUP_ERROR
    return EXIT_SUCCESS if report.passed else EXIT_ERROR


def emit(text: str) -> None:
    """Write report output to stdout through the routed logger."""
    logger.info(text.rstrip("\n"), extra={"stream": "stdout"})


class ScaleProbe:
    """Validate queue-driven autoscaling end to end.

    Parameters
    ----------
    control_plane_factory : Callable[[ScenarioConfig], ControlPlaneClient] | None
        Builds the cluster client (default: kubectl)
    queue_admin_factory : Callable[[ScenarioConfig], QueueAdminClient] | None
        Builds the queue administration client (default: Service Bus)
    queue_data_factory : Callable[[ScenarioConfig], QueueDataClient] | None
        Builds a queue data client; called once per stage that uses the queue
    config_loader : ConfigLoader | None
        Configuration loader (default: ConfigLoader())
    """

    def __init__(
        self,
        control_plane_factory: Callable[[ScenarioConfig], ControlPlaneClient] | None = None,
        queue_admin_factory: Callable[[ScenarioConfig], QueueAdminClient] | None = None,
        queue_data_factory: Callable[[ScenarioConfig], QueueDataClient] | None = None,
        config_loader: ConfigLoader | None = None,
    ) -> None:
        self._control_plane_factory = control_plane_factory or default_control_plane
        self._queue_admin_factory = queue_admin_factory or default_queue_admin
        self._queue_data_factory = queue_data_factory or default_queue_data
        self._config_loader = config_loader or ConfigLoader()

    def _settings(
        self, scenario: str | None, config: str | None, require_credential: bool = True
    ) -> ScenarioConfig:
        loader = self._config_loader
        merged = loader.get_scenario_config(loader.load_config(config), scenario)
        loader.validate_config(merged)
        return build_scenario_config(merged, require_credential=require_credential)

    def run_scenario(
        self, scenario: str | None = None, config: str | None = None, verbose: bool = False
    ) -> ScenarioReport:
        """Run one scenario and return its report without printing or exiting."""
        settings = self._settings(scenario, config)
        diagnostics = DiagnosticsCollector(verbose=verbose, log_path=settings.diagnostics_path)
        queue_admin = self._queue_admin_factory(settings)
        try:
            orchestrator = ScenarioOrchestrator(
                settings,
                self._control_plane_factory(settings),
                queue_admin,
                lambda: self._queue_data_factory(settings),
                diagnostics=diagnostics,
            )
            report = orchestrator.run()
        finally:
            queue_admin.close()
        logger.debug("Diagnostic event counts: %s", diagnostics.counts())
        return report

    def run(
        self,
        scenario: str | None = None,
        config: str | None = None,
        json_output: bool = False,
        verbose: bool = False,
    ) -> None:
        """Run the scaling scenario and exit with its verdict.

        Parameters
        ----------
        scenario : str | None
            Named scenario from the config file; built-in defaults when None
        config : str | None
            Path to the YAML config file
        json_output : bool
            Print the report as JSON
        verbose : bool
            Log every diagnostic event at debug level
        """
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        report = self.run_scenario(scenario, config, verbose=verbose)
        if json_output:
            emit(json.dumps(report.as_dict(), indent=2, default=str))
        else:
            emit(format_plain_text(report))

        code = exit_code_for(report)
        if code != EXIT_SUCCESS:
            sys.exit(code)

    def render(self, scenario: str | None = None, config: str | None = None) -> str:
        """Print the manifests a scenario applies, with the credential redacted."""
        settings = self._settings(scenario, config, require_credential=False)
        documents = manifests.render_all(
            settings.scenario, settings.trigger, settings.credential, settings.image, redact=True
        )
        return "---\n".join(documents)

    def teardown(self, scenario: str | None = None, config: str | None = None) -> None:
        """Delete everything a scenario may have left behind.

        Safe to run repeatedly: resources and queue entities that are already
        gone count as deleted.
        """
        settings = self._settings(scenario, config)
        resources = ResourceLifecycleManager(self._control_plane_factory(settings))
        summary = resources.delete_all(settings.scenario.records())

        queue_admin = self._queue_admin_factory(settings)
        try:
            topology = QueueTopology(
                queue_admin, settings.scenario.topic, settings.scenario.subscription
            )
            summary.merge(topology.teardown(missing_ok=True))
        finally:
            queue_admin.close()

        for step in summary.step_results:
            emit(f"[{step['status']}] {step['label']}")
        for warning in summary.warnings:
            emit(f"warning: {warning}")
        for error in summary.errors:
            emit(f"error: {error}")
        if not summary.success():
            sys.exit(EXIT_ERROR)


def handle_value_error(error: ValueError, debug_mode: bool) -> None:
    """Handle a configuration error.

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    error_msg = str(error)
    if CONNECTION_STRING_ENV in error_msg:
        print("Missing queue credential\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print(f"  export {CONNECTION_STRING_ENV}='Endpoint=sb://...'", file=sys.stderr)
    else:
        print(f"Configuration error: {error_msg}", file=sys.stderr)
    sys.exit(EXIT_CONFIG_ERROR)


def handle_provider_error(error: ProviderError, debug_mode: bool) -> None:
    """Handle a control-plane or queue failure outside any stage.

    Raises
    ------
    ProviderError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    if isinstance(error, ProviderConnectionError):
        print("Connectivity error\n", file=sys.stderr)
        print("This usually means:", file=sys.stderr)
        print("  - kubectl is not installed or the cluster is unreachable", file=sys.stderr)
        print("  - The Service Bus namespace is unreachable\n", file=sys.stderr)
    print(f"Provider error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_runtime_error(error: RuntimeError, debug_mode: bool) -> None:
    if debug_mode:
        raise

    print(f"Unexpected error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def configure_logging(level: int = logging.INFO) -> None:
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(StreamFormatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(StreamFormatter("%(levelname)s %(name)s: %(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(level=level, handlers=[stdout_handler, stderr_handler], force=True)


def main(argv: list[str] | None = None) -> Any:
    """Entry point for the Fire CLI with graceful error handling.

    Fire maps ScaleProbe's public methods to subcommands: ``run``,
    ``render`` and ``teardown``.
    """
    configure_logging()
    setup_signal_handlers()
    debug_mode = os.environ.get("SCALEPROBE_DEBUG") == "1"

    try:
        return fire.Fire(ScaleProbe, command=argv)
    except ValueError as e:
        handle_value_error(e, debug_mode)
    except ProviderError as e:
        handle_provider_error(e, debug_mode)
    except RuntimeError as e:
        handle_runtime_error(e, debug_mode)
