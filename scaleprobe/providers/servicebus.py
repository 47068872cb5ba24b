"""Queue clients backed by the Azure Service Bus SDK."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError, ServiceRequestError
from azure.servicebus import ServiceBusClient, ServiceBusMessage
from azure.servicebus.exceptions import (
    ServiceBusCommunicationError,
    ServiceBusConnectionError,
)
from azure.servicebus.management import ServiceBusAdministrationClient

from scaleprobe.core.interfaces import Destination, ReceivedMessage
from scaleprobe.providers.exceptions import ProviderAPIError, ProviderConnectionError

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (
    ServiceBusConnectionError,
    ServiceBusCommunicationError,
    ServiceRequestError,
)


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise Azure SDK errors as provider errors."""
    try:
        yield
    except CONNECTION_ERRORS as e:
        raise ProviderConnectionError(f"{operation} failed: {e}") from e
    except AzureError as e:
        status_code = getattr(getattr(e, "response", None), "status_code", None)
        raise ProviderAPIError(
            f"{operation} failed: {e}",
            error_code=type(e).__name__,
            status_code=status_code,
        ) from e


class ServiceBusAdmin:
    """Topic and subscription management.

    Parameters
    ----------
    connection_string : str
        Service Bus namespace connection string
    client : ServiceBusAdministrationClient | None
        Pre-built client, mainly for tests
    """

    def __init__(
        self,
        connection_string: str,
        client: ServiceBusAdministrationClient | None = None,
    ) -> None:
        self._client = client or ServiceBusAdministrationClient.from_connection_string(
            connection_string
        )

    def topic_exists(self, name: str) -> bool:
        with translate_errors(f"get topic {name}"):
            try:
                self._client.get_topic(name)
            except ResourceNotFoundError:
                return False
        return True

    def create_topic(self, name: str) -> None:
        with translate_errors(f"create topic {name}"):
            self._client.create_topic(name)

    def delete_topic(self, name: str) -> int:
        """Delete a topic and return the HTTP status of the deletion."""
        with translate_errors(f"delete topic {name}"):
            return self._call_with_status(self._client.delete_topic, name)

    def create_subscription(self, topic: str, name: str) -> None:
        with translate_errors(f"create subscription {topic}/{name}"):
            self._client.create_subscription(topic, name)

    def delete_subscription(self, topic: str, name: str) -> int:
        """Delete a subscription and return the HTTP status of the deletion."""
        with translate_errors(f"delete subscription {topic}/{name}"):
            return self._call_with_status(self._client.delete_subscription, topic, name)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _call_with_status(method: Any, *args: Any) -> int:
        statuses: list[int] = []

        def capture(response: Any) -> None:
            statuses.append(response.http_response.status_code)

        method(*args, raw_response_hook=capture)
        return statuses[-1] if statuses else 0


class ServiceBusData:
    """Send, receive and complete messages on topics and subscriptions.

    Receivers are cached per subscription so that messages received by one
    call can be completed later through the same link.

    Parameters
    ----------
    connection_string : str
        Service Bus namespace connection string
    client : ServiceBusClient | None
        Pre-built client, mainly for tests
    """

    def __init__(self, connection_string: str, client: ServiceBusClient | None = None) -> None:
        self._client = client or ServiceBusClient.from_connection_string(connection_string)
        self._receivers: dict[Destination, Any] = {}

    def __enter__(self) -> "ServiceBusData":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def send(self, destination: Destination, messages: Sequence[dict[str, str]]) -> None:
        with translate_errors(f"send to {destination.topic}"):
            with self._client.get_topic_sender(topic_name=destination.topic) as sender:
                sender.send_messages([ServiceBusMessage(m["body"]) for m in messages])

    def receive(
        self, destination: Destination, max_count: int, max_wait: float
    ) -> list[ReceivedMessage]:
        if destination.subscription is None:
            raise ValueError(f"Receiving from {destination} requires a subscription")

        with translate_errors(f"receive from {destination}"):
            receiver = self._receiver(destination)
            batch = receiver.receive_messages(
                max_message_count=max_count, max_wait_time=max_wait
            )

        return [
            ReceivedMessage(
                message_id=str(message.message_id),
                body=str(message),
                delivery_count=message.delivery_count or 1,
                raw=(receiver, message),
            )
            for message in batch
        ]

    def complete(self, message: ReceivedMessage) -> None:
        receiver, raw = message.raw
        with translate_errors(f"complete message {message.message_id}"):
            receiver.complete_message(raw)

    def close(self) -> None:
        for destination, receiver in list(self._receivers.items()):
            try:
                receiver.close()
            except AzureError as e:
                logger.warning("Closing receiver for %s failed: %s", destination, e)
        self._receivers.clear()
        self._client.close()

    def _receiver(self, destination: Destination) -> Any:
        receiver = self._receivers.get(destination)
        if receiver is None:
            receiver = self._client.get_subscription_receiver(
                topic_name=destination.topic,
                subscription_name=destination.subscription,
            )
            self._receivers[destination] = receiver
        return receiver
