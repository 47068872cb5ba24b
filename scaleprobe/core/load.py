"""Injection and draining of queue messages to drive scale pressure."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from scaleprobe.constants import (
    DEFAULT_RECEIVE_BATCH,
    DEFAULT_RECEIVE_WAIT_SECONDS,
    DEFAULT_SEND_BATCH_SIZE,
)
from scaleprobe.core.diagnostics import DiagnosticsCollector, EventType
from scaleprobe.core.exceptions import LoadDrainError, LoadInjectionError
from scaleprobe.core.interfaces import Destination, QueueDataClient, ReceivedMessage
from scaleprobe.providers.exceptions import ProviderError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[ReceivedMessage], Any]


@dataclass
class DrainResult:
    """Progress of a drain.

    ``completed`` counts successful completions and is what the drain target
    is compared against. A message whose completion failed is redelivered by
    the broker and counts once it is completed.

    Attributes
    ----------
    target : int
        Number of completions requested
    completed : int
        Successful completions
    deliveries : int
        Messages handed out by the broker, redeliveries included
    redeliveries : int
        Deliveries of a message that had been delivered before
    failed_completions : int
        Messages left unsettled after a handler or completion failure
    completed_ids : set[str]
        Distinct message ids completed
    """

    target: int
    completed: int = 0
    deliveries: int = 0
    redeliveries: int = 0
    failed_completions: int = 0
    completed_ids: set[str] = field(default_factory=set)

    @property
    def distinct(self) -> int:
        return len(self.completed_ids)

    @property
    def reached_target(self) -> bool:
        return self.completed >= self.target

    def as_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "completed": self.completed,
            "distinct": self.distinct,
            "deliveries": self.deliveries,
            "redeliveries": self.redeliveries,
            "failed_completions": self.failed_completions,
        }


class LoadDriver:
    """Sends and drains a known quantity of messages.

    Parameters
    ----------
    data_client : QueueDataClient
        Open queue data client
    destination : Destination
        Topic to send to and subscription to drain from
    batch_size : int
        Messages per send call
    receive_batch : int
        Maximum messages per receive call
    receive_wait : float
        Upper bound in seconds for a single receive call
    handler : MessageHandler | None
        Local processing applied to each message before it is completed
    clock : Callable[[], float]
        Monotonic clock, injectable for tests
    diagnostics : DiagnosticsCollector | None
        Receives injection and drain events
    """

    def __init__(
        self,
        data_client: QueueDataClient,
        destination: Destination,
        *,
        batch_size: int = DEFAULT_SEND_BATCH_SIZE,
        receive_batch: int = DEFAULT_RECEIVE_BATCH,
        receive_wait: float = DEFAULT_RECEIVE_WAIT_SECONDS,
        handler: MessageHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> None:
        if batch_size < 1 or receive_batch < 1:
            raise ValueError("batch_size and receive_batch must be at least 1")
        self.data_client = data_client
        self.destination = destination
        self.batch_size = batch_size
        self.receive_batch = receive_batch
        self.receive_wait = receive_wait
        self.handler = handler
        self._clock = clock
        self.diagnostics = diagnostics

    def inject(self, count: int) -> int:
        """Send ``count`` messages with bodies ``"1"`` to ``str(count)``.

        Returns
        -------
        int
            Number of messages sent, always ``count`` on success

        Raises
        ------
        ValueError
            If count is negative
        LoadInjectionError
            If a batch is rejected; ``sent`` holds the messages already accepted
        """
        if count < 0:
            raise ValueError(f"message count must not be negative, got {count}")

        messages = [{"body": str(i)} for i in range(1, count + 1)]
        sent = 0
        for start in range(0, count, self.batch_size):
            batch = messages[start : start + self.batch_size]
            try:
                self.data_client.send(self.destination, batch)
            except ProviderError as e:
                self._record(EventType.LOAD_INJECT_FAILED, sent=sent, error=str(e))
                raise LoadInjectionError(
                    f"Sending to {self.destination} failed after {sent} of {count} "
                    f"messages: {e}",
                    sent=sent,
                ) from e
            sent += len(batch)

        logger.info("Sent %d messages to %s", sent, self.destination)
        self._record(EventType.LOAD_INJECTED, sent=sent)
        return sent

    def drain(self, count: int, timeout: float) -> DrainResult:
        """Receive and complete messages until ``count`` completions or the timeout.

        Parameters
        ----------
        count : int
            Completions to reach
        timeout : float
            Overall deadline in seconds

        Returns
        -------
        DrainResult
            Completion counts; check ``reached_target``

        Raises
        ------
        LoadDrainError
            If a receive call fails; the error carries the progress so far
        """
        result = DrainResult(target=count)
        seen_ids: set[str] = set()
        deadline = self._clock() + timeout

        while not result.reached_target:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            try:
                batch = self.data_client.receive(
                    self.destination,
                    self.receive_batch,
                    min(self.receive_wait, remaining),
                )
            except ProviderError as e:
                raise LoadDrainError(
                    f"Receiving from {self.destination} failed after "
                    f"{result.completed} completions: {e}",
                    result,
                ) from e

            for message in batch:
                result.deliveries += 1
                if message.delivery_count > 1 or message.message_id in seen_ids:
                    result.redeliveries += 1
                seen_ids.add(message.message_id)
                self._settle(message, result)

        logger.info(
            "Drained %d/%d messages from %s (%d deliveries)",
            result.completed,
            count,
            self.destination,
            result.deliveries,
        )
        self._record(EventType.LOAD_DRAINED, **result.as_dict())
        return result

    def _settle(self, message: ReceivedMessage, result: DrainResult) -> None:
        # An unsettled message is redelivered by the broker once its lock expires.
        if self.handler is not None:
            try:
                self.handler(message)
            except Exception as e:
                self._leave_unsettled(message, result, f"handler failed: {e}")
                return
        try:
            self.data_client.complete(message)
        except ProviderError as e:
            self._leave_unsettled(message, result, f"completion failed: {e}")
            return

        result.completed += 1
        result.completed_ids.add(message.message_id)

    def _leave_unsettled(
        self, message: ReceivedMessage, result: DrainResult, reason: str
    ) -> None:
        result.failed_completions += 1
        logger.warning("Message %s left for redelivery, %s", message.message_id, reason)
        self._record(
            EventType.LOAD_COMPLETE_FAILED, message_id=message.message_id, reason=reason
        )

    def _record(self, event_type: EventType, **details: Any) -> None:
        if self.diagnostics is not None:
            self.diagnostics.load(event_type, self.destination, **details)
