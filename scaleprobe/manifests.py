"""Rendering of the declarative manifests a scenario applies."""

from __future__ import annotations

import base64
from typing import Any

import yaml

from scaleprobe.constants import DEFAULT_IMAGE, SECRET_CREDENTIAL_KEY
from scaleprobe.core.scenario import QueueTriggerConfig, Scenario

REDACTED = "<redacted>"


def encode_credential(credential: str) -> str:
    """Base64 encode a credential for a Secret ``data`` field."""
    return base64.b64encode(credential.encode("utf-8")).decode("ascii")


def render(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def namespace_manifest(scenario: Scenario) -> str:
    return render(
        {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": scenario.namespace},
        }
    )


def secret_manifest(scenario: Scenario, credential: str, redact: bool = False) -> str:
    """Opaque Secret holding the queue credential under a fixed key."""
    value = REDACTED if redact else encode_credential(credential)
    return render(
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": scenario.secret, "namespace": scenario.namespace},
            "type": "Opaque",
            "data": {SECRET_CREDENTIAL_KEY: value},
        }
    )


def deployment_manifest(scenario: Scenario, image: str = DEFAULT_IMAGE) -> str:
    """Deployment starting at zero replicas so the autoscaler owns its size."""
    labels = {"app": scenario.deployment}
    return render(
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": scenario.deployment, "namespace": scenario.namespace},
            "spec": {
                "replicas": 0,
                "selector": {"matchLabels": dict(labels)},
                "template": {
                    "metadata": {"labels": dict(labels)},
                    "spec": {"containers": [{"name": "workload", "image": image}]},
                },
            },
        }
    )


def trigger_auth_manifest(scenario: Scenario) -> str:
    return render(
        {
            "apiVersion": "keda.sh/v1alpha1",
            "kind": "TriggerAuthentication",
            "metadata": {"name": scenario.trigger_auth, "namespace": scenario.namespace},
            "spec": {
                "secretTargetRef": [
                    {
                        "parameter": SECRET_CREDENTIAL_KEY,
                        "name": scenario.secret,
                        "key": SECRET_CREDENTIAL_KEY,
                    }
                ]
            },
        }
    )


def scaled_object_manifest(scenario: Scenario, trigger: QueueTriggerConfig) -> str:
    """ScaledObject binding the Deployment to the topic subscription."""
    auth_ref = trigger.auth_ref or scenario.trigger_auth
    return render(
        {
            "apiVersion": "keda.sh/v1alpha1",
            "kind": "ScaledObject",
            "metadata": {
                "name": scenario.scaled_object,
                "namespace": scenario.namespace,
                "labels": {"deploymentName": scenario.deployment},
            },
            "spec": {
                "scaleTargetRef": {"name": scenario.deployment},
                "pollingInterval": trigger.polling_interval,
                "cooldownPeriod": trigger.cooldown_period,
                "minReplicaCount": trigger.min_replica_count,
                "maxReplicaCount": trigger.max_replica_count,
                "triggers": [
                    {
                        "type": trigger.trigger_type,
                        "metadata": {
                            "topicName": trigger.topic,
                            "subscriptionName": trigger.subscription,
                        },
                        "authenticationRef": {"name": auth_ref},
                    }
                ],
            },
        }
    )


def render_all(
    scenario: Scenario,
    trigger: QueueTriggerConfig,
    credential: str,
    image: str = DEFAULT_IMAGE,
    redact: bool = False,
) -> list[str]:
    """All scenario manifests in creation order."""
    return [
        namespace_manifest(scenario),
        secret_manifest(scenario, credential, redact=redact),
        deployment_manifest(scenario, image),
        trigger_auth_manifest(scenario),
        scaled_object_manifest(scenario, trigger),
    ]
