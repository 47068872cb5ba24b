"""Protocols for the external collaborators the harness drives."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class Destination:
    """Queue entity messages are sent to or received from.

    Attributes
    ----------
    topic : str
        Topic name; messages are always published here
    subscription : str | None
        Subscription name; required for receiving from a topic
    """

    topic: str
    subscription: str | None = None

    def __str__(self) -> str:
        if self.subscription is None:
            return self.topic
        return f"{self.topic}/subscriptions/{self.subscription}"


@dataclass
class ReceivedMessage:
    """Handle for a message locked by a receive call.

    Attributes
    ----------
    message_id : str
        Broker-assigned or sender-assigned message identifier
    body : str
        Decoded message body
    delivery_count : int
        Number of times the broker has delivered this message
    raw : Any
        Underlying SDK message object needed to settle the message
    """

    message_id: str
    body: str
    delivery_count: int = 1
    raw: Any = field(default=None, repr=False, compare=False)


class ControlPlaneClient(Protocol):
    """Cluster control-plane operations."""

    def apply(self, manifest: str, namespace: str | None) -> int:
        """Apply a rendered manifest and return the process exit code."""
        ...

    def delete(self, ref: str, namespace: str | None) -> int:
        """Delete a resource reference and return the process exit code."""
        ...

    def get_replica_count(self, deployment: str, namespace: str) -> int:
        """Return the desired replica count of a Deployment."""
        ...


class QueueAdminClient(Protocol):
    """Administrative queue operations."""

    def topic_exists(self, name: str) -> bool: ...

    def create_topic(self, name: str) -> None: ...

    def delete_topic(self, name: str) -> int: ...

    def create_subscription(self, topic: str, name: str) -> None: ...

    def delete_subscription(self, topic: str, name: str) -> int: ...

    def close(self) -> None: ...


class QueueDataClient(Protocol):
    """Send, receive and settle queue messages."""

    def send(self, destination: Destination, messages: Sequence[dict[str, str]]) -> None: ...

    def receive(
        self, destination: Destination, max_count: int, max_wait: float
    ) -> list[ReceivedMessage]: ...

    def complete(self, message: ReceivedMessage) -> None: ...

    def close(self) -> None: ...

    def __enter__(self) -> "QueueDataClient": ...

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None: ...
