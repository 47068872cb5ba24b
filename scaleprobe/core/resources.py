"""Creation and deletion of the cluster resources a scenario owns."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from scaleprobe import manifests
from scaleprobe.constants import DEFAULT_IMAGE
from scaleprobe.core.diagnostics import DiagnosticsCollector
from scaleprobe.core.exceptions import DependencyOrderError, SetupError, TeardownError
from scaleprobe.core.interfaces import ControlPlaneClient
from scaleprobe.core.registry import CleanupSummary, ResourceRegistry
from scaleprobe.core.scenario import (
    QueueTriggerConfig,
    ResourceRecord,
    ResourceSpec,
    Scenario,
)

logger = logging.getLogger(__name__)


class ResourceLifecycleManager:
    """Creates cluster resources in dependency order and deletes them exhaustively.

    Every successful ``create`` is remembered and, when a registry is
    attached, registers its own deletion so that teardown covers exactly what
    was created, even when setup stops part way through.

    Parameters
    ----------
    control_plane : ControlPlaneClient
        Client used to apply and delete manifests
    registry : ResourceRegistry | None
        Registry that receives a release action per created resource
    diagnostics : DiagnosticsCollector | None
        Receives resource creation and deletion events
    """

    def __init__(
        self,
        control_plane: ControlPlaneClient,
        registry: ResourceRegistry | None = None,
        diagnostics: DiagnosticsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.control_plane = control_plane
        self.registry = registry
        self.diagnostics = diagnostics
        self._clock = clock
        self.created: list[ResourceRecord] = []

    def create(self, spec: ResourceSpec) -> ResourceRecord:
        """Apply one resource after checking its dependencies exist.

        Parameters
        ----------
        spec : ResourceSpec
            Record, manifest and required records

        Returns
        -------
        ResourceRecord
            The created record

        Raises
        ------
        DependencyOrderError
            If a required resource has not been created yet
        SetupError
            If the control plane rejects the manifest
        """
        record = spec.record
        missing = [dep for dep in spec.requires if dep not in self.created]
        if missing:
            names = ", ".join(str(dep) for dep in missing)
            raise DependencyOrderError(
                f"Cannot create {record}: required resources not created yet: {names}"
            )

        exit_code = self.control_plane.apply(spec.manifest, record.namespace)
        if self.diagnostics is not None:
            self.diagnostics.resource_created(record, exit_code)
        if exit_code != 0:
            raise SetupError(f"Creating {record} failed with exit code {exit_code}")

        logger.info("Created %s", record)
        self.created.append(record)
        if self.registry is not None:
            self.registry.register(
                record.kind.value,
                record,
                self.delete,
                label=str(record),
                required=not record.is_namespace,
            )
        return record

    def create_scenario_resources(
        self,
        scenario: Scenario,
        trigger: QueueTriggerConfig,
        credential: str,
        image: str = DEFAULT_IMAGE,
    ) -> list[ResourceRecord]:
        """Create namespace, secret, Deployment, TriggerAuthentication and ScaledObject."""
        namespace = scenario.namespace_record
        secret = scenario.secret_record
        deployment = scenario.deployment_record
        trigger_auth = scenario.trigger_auth_record

        specs = [
            ResourceSpec(namespace, manifests.namespace_manifest(scenario)),
            ResourceSpec(
                secret,
                manifests.secret_manifest(scenario, credential),
                requires=(namespace,),
            ),
            ResourceSpec(
                deployment,
                manifests.deployment_manifest(scenario, image),
                requires=(namespace,),
            ),
            ResourceSpec(
                trigger_auth,
                manifests.trigger_auth_manifest(scenario),
                requires=(namespace, secret),
            ),
            ResourceSpec(
                scenario.scaled_object_record,
                manifests.scaled_object_manifest(scenario, trigger),
                requires=(namespace, deployment, trigger_auth),
            ),
        ]
        return [self.create(spec) for spec in specs]

    def delete(self, record: ResourceRecord) -> None:
        """Delete one resource; deleting an absent resource succeeds.

        Raises
        ------
        TeardownError
            If the control plane reports a failure
        """
        exit_code = self.control_plane.delete(record.ref, record.namespace)
        if self.diagnostics is not None:
            self.diagnostics.resource_deleted(record, exit_code)
        if exit_code != 0:
            raise TeardownError(f"Deleting {record} failed with exit code {exit_code}")
        logger.info("Deleted %s", record)
        if record in self.created:
            self.created.remove(record)

    def delete_all(self, records: Iterable[ResourceRecord] | None = None) -> CleanupSummary:
        """Delete records best-effort, named resources before namespaces.

        Parameters
        ----------
        records : Iterable[ResourceRecord] | None
            Records to delete; defaults to everything this manager created

        Returns
        -------
        CleanupSummary
            Aggregated failures; namespace failures are warnings only
        """
        pending = list(self.created if records is None else records)
        named = [r for r in reversed(pending) if not r.is_namespace]
        namespaces = [r for r in reversed(pending) if r.is_namespace]

        summary = CleanupSummary()
        for record in [*named, *namespaces]:
            started = self._clock()
            try:
                self.delete(record)
            except TeardownError as e:
                status = "failed"
                if record.is_namespace:
                    summary.add_warning(str(e))
                else:
                    summary.add_error(str(e))
                logger.warning("%s", e)
            else:
                status = "completed"
            summary.add_step_result(
                {
                    "kind": record.kind.value,
                    "label": str(record),
                    "status": status,
                    "required": not record.is_namespace,
                    "duration": round(self._clock() - started, 3),
                }
            )
        return summary
