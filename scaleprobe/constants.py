"""Global constants for the scaleprobe harness.

Defaults here mirror the timings the scaling scenario is designed around. Every
value can be overridden from the YAML configuration.
"""

from enum import Enum

DEFAULT_SCENARIO_NAME = "test-azure-service-bus-topic"
"""Scenario identifier every resource name is derived from."""

DEFAULT_TOPIC_NAME = "sb-topic"
DEFAULT_SUBSCRIPTION_NAME = "sb-subscription"
"""Queue names of the built-in scenario.

Named scenarios that do not set their own derive ``<name>-topic`` and
``<name>-subscription`` so concurrent scenarios never share a topic.
"""

CONFIG_PATH_ENV = "SCALEPROBE_CONFIG"
DEFAULT_CONFIG_FILE = "scaleprobe.yaml"

CONNECTION_STRING_ENV = "AZURE_SERVICE_BUS_CONNECTION_STRING"
"""Environment variable carrying the Service Bus connection string.

The credential is supplied out-of-band and never written to configuration
files. It is base64 encoded into the scenario secret at setup time.
"""

SECRET_CREDENTIAL_KEY = "connection"
"""Key under which the credential is stored in the scenario secret.

The TriggerAuthentication maps this key onto the trigger's ``connection``
parameter.
"""

DEFAULT_IMAGE = "nginx:1.16.1"
DEFAULT_TRIGGER_TYPE = "azure-servicebus"

DEFAULT_MESSAGE_COUNT = 5
"""Number of messages injected to create scale pressure."""

DEFAULT_POLLING_INTERVAL = 5
"""Seconds between autoscaler checks of the trigger source."""

DEFAULT_COOLDOWN_PERIOD = 10
"""Seconds the autoscaler waits after the last trigger activity before scaling to zero."""

DEFAULT_MIN_REPLICA_COUNT = 0
DEFAULT_MAX_REPLICA_COUNT = 1

DEFAULT_WAIT_TIMEOUT_SECONDS = 60.0
"""Upper bound for each replica-count assertion.

One minute covers several autoscaler polling intervals plus the cooldown
period with room for control-plane reconciliation.
"""

DEFAULT_POLL_INTERVAL_SECONDS = 1.0
"""Delay between replica-count observations."""

DEFAULT_RECEIVE_BATCH = 10
"""Maximum number of messages requested per receive call while draining."""

DEFAULT_RECEIVE_WAIT_SECONDS = 60.0
"""Upper bound for a single receive call.

A receive returns as soon as any message is available, so the bound only
matters when the subscription is empty.
"""

DEFAULT_DRAIN_TIMEOUT_SECONDS = 300.0
"""Upper bound for draining all injected messages."""

DEFAULT_SEND_BATCH_SIZE = 100

KUBECTL_COMMAND_TIMEOUT_SECONDS = 30
"""Timeout in seconds for a single kubectl invocation.

Prevents a hung API server connection from blocking the scenario past its
budget.
"""

DEFAULT_SCENARIO_TIMEOUT_SECONDS = 900
"""Overall budget for setup, load and assertion stages.

Teardown is not bounded by this budget and always runs.
"""

DELETE_SUCCESS_STATUS = 200
"""HTTP status returned by the queue service for a successful deletion."""

EXIT_SUCCESS = 0
"""Exit code indicating every stage passed."""

EXIT_ERROR = 1
"""Exit code indicating an assertion, load or provider failure."""

EXIT_CONFIG_ERROR = 2
"""Exit code indicating invalid configuration or a missing credential."""

EXIT_SETUP_ERROR = 3
"""Exit code indicating the scenario could not be set up.

Kept distinct from EXIT_ERROR so that CI can tell an environment problem from
an autoscaler regression.
"""

EXIT_SIGTERM = 143


class ResourceKind(str, Enum):
    """Cluster resource kinds created by a scenario."""

    NAMESPACE = "namespace"
    SECRET = "secret"
    DEPLOYMENT = "deployment"
    TRIGGER_AUTHENTICATION = "triggerauthentication"
    SCALED_OBJECT = "scaledobject"


RESOURCE_REFS = {
    ResourceKind.NAMESPACE: "namespace",
    ResourceKind.SECRET: "secrets",
    ResourceKind.DEPLOYMENT: "deployments.apps",
    ResourceKind.TRIGGER_AUTHENTICATION: "triggerauthentications.keda.sh",
    ResourceKind.SCALED_OBJECT: "scaledobject.keda.sh",
}
"""kubectl resource names used when deleting each kind."""
