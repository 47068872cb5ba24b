"""Scenario identity and the records of the resources it owns."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from scaleprobe.constants import (
    DEFAULT_COOLDOWN_PERIOD,
    DEFAULT_MAX_REPLICA_COUNT,
    DEFAULT_MIN_REPLICA_COUNT,
    DEFAULT_POLLING_INTERVAL,
    DEFAULT_SUBSCRIPTION_NAME,
    DEFAULT_TOPIC_NAME,
    DEFAULT_TRIGGER_TYPE,
    RESOURCE_REFS,
    ResourceKind,
)

DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
DNS_LABEL_MAX_LENGTH = 63


@dataclass(frozen=True)
class ResourceRecord:
    """A declarative object created in the cluster.

    Attributes
    ----------
    kind : ResourceKind
        Resource kind
    name : str
        Object name
    namespace : str | None
        Owning namespace; None for the namespace itself
    """

    kind: ResourceKind
    name: str
    namespace: str | None = None

    @property
    def ref(self) -> str:
        """kubectl reference, e.g. ``scaledobject.keda.sh/my-scaled-object``."""
        return f"{RESOURCE_REFS[self.kind]}/{self.name}"

    @property
    def is_namespace(self) -> bool:
        return self.kind is ResourceKind.NAMESPACE

    def __str__(self) -> str:
        if self.namespace is None:
            return self.ref
        return f"{self.namespace}/{self.ref}"


@dataclass(frozen=True)
class ResourceSpec:
    """A rendered manifest plus the records it references."""

    record: ResourceRecord
    manifest: str
    requires: tuple[ResourceRecord, ...] = ()


@dataclass(frozen=True)
class QueueTriggerConfig:
    """Binding between the scaling policy and the queue.

    Raises
    ------
    ValueError
        If the replica bounds or timings are inconsistent
    """

    topic: str = DEFAULT_TOPIC_NAME
    subscription: str = DEFAULT_SUBSCRIPTION_NAME
    auth_ref: str = ""
    polling_interval: int = DEFAULT_POLLING_INTERVAL
    cooldown_period: int = DEFAULT_COOLDOWN_PERIOD
    min_replica_count: int = DEFAULT_MIN_REPLICA_COUNT
    max_replica_count: int = DEFAULT_MAX_REPLICA_COUNT
    trigger_type: str = DEFAULT_TRIGGER_TYPE

    def __post_init__(self) -> None:
        if self.min_replica_count < 0:
            raise ValueError(
                f"min_replica_count must not be negative, got {self.min_replica_count}"
            )
        if self.min_replica_count > self.max_replica_count:
            raise ValueError(
                f"min_replica_count ({self.min_replica_count}) must not exceed "
                f"max_replica_count ({self.max_replica_count})"
            )
        if self.polling_interval <= 0:
            raise ValueError("polling_interval must be positive")
        if self.cooldown_period <= 0:
            raise ValueError("cooldown_period must be positive")
        if not self.topic or not self.subscription:
            raise ValueError("topic and subscription names are required")


@dataclass(frozen=True)
class Scenario:
    """One validation run and the names of everything it owns.

    All names are derived from ``name`` so repeated runs are reproducible and
    scenarios with distinct names never collide.
    """

    name: str
    topic: str = DEFAULT_TOPIC_NAME
    subscription: str = DEFAULT_SUBSCRIPTION_NAME
    namespace: str = field(init=False)
    secret: str = field(init=False)
    deployment: str = field(init=False)
    trigger_auth: str = field(init=False)
    scaled_object: str = field(init=False)

    def __post_init__(self) -> None:
        derived = {
            "namespace": f"{self.name}-ns",
            "secret": f"{self.name}-secret",
            "deployment": f"{self.name}-deployment",
            "trigger_auth": f"{self.name}-trigger-auth",
            "scaled_object": f"{self.name}-scaled-object",
        }
        for attr, value in derived.items():
            if len(value) > DNS_LABEL_MAX_LENGTH or not DNS_LABEL_PATTERN.match(value):
                raise ValueError(
                    f"Invalid scenario name '{self.name}': derived {attr} name "
                    f"'{value}' must be a lowercase RFC 1123 label of at most "
                    f"{DNS_LABEL_MAX_LENGTH} characters"
                )
            object.__setattr__(self, attr, value)

    @property
    def namespace_record(self) -> ResourceRecord:
        return ResourceRecord(ResourceKind.NAMESPACE, self.namespace)

    @property
    def secret_record(self) -> ResourceRecord:
        return ResourceRecord(ResourceKind.SECRET, self.secret, self.namespace)

    @property
    def deployment_record(self) -> ResourceRecord:
        return ResourceRecord(ResourceKind.DEPLOYMENT, self.deployment, self.namespace)

    @property
    def trigger_auth_record(self) -> ResourceRecord:
        return ResourceRecord(
            ResourceKind.TRIGGER_AUTHENTICATION, self.trigger_auth, self.namespace
        )

    @property
    def scaled_object_record(self) -> ResourceRecord:
        return ResourceRecord(ResourceKind.SCALED_OBJECT, self.scaled_object, self.namespace)

    def records(self) -> list[ResourceRecord]:
        """Every record the scenario owns, in creation order."""
        return [
            self.namespace_record,
            self.secret_record,
            self.deployment_record,
            self.trigger_auth_record,
            self.scaled_object_record,
        ]
