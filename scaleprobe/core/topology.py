"""Provisioning of the topic and subscription a scenario's trigger reads."""

from __future__ import annotations

import logging
from collections.abc import Callable

from scaleprobe.constants import DELETE_SUCCESS_STATUS
from scaleprobe.core.exceptions import SetupError, TeardownError
from scaleprobe.core.interfaces import QueueAdminClient
from scaleprobe.core.registry import CleanupSummary, ResourceRegistry
from scaleprobe.providers.exceptions import ProviderAPIError, ProviderError

logger = logging.getLogger(__name__)

NOT_FOUND_STATUS = 404


class QueueTopology:
    """Creates a fresh topic and subscription and registers their removal.

    Parameters
    ----------
    admin : QueueAdminClient
        Administrative queue client
    topic : str
        Topic name
    subscription : str
        Subscription name
    registry : ResourceRegistry | None
        Registry that receives the release actions
    """

    def __init__(
        self,
        admin: QueueAdminClient,
        topic: str,
        subscription: str,
        registry: ResourceRegistry | None = None,
    ) -> None:
        self.admin = admin
        self.topic = topic
        self.subscription = subscription
        self.registry = registry

    def provision(self) -> None:
        """Recreate the topic and create the subscription.

        An existing topic is deleted first so leftover messages from an
        earlier run cannot trigger a scale-up on their own.

        Raises
        ------
        SetupError
            If the queue service rejects any step
        """
        try:
            if self.admin.topic_exists(self.topic):
                logger.info("Topic %s already exists, recreating it", self.topic)
                self.delete_topic()
            self.admin.create_topic(self.topic)
        except TeardownError as e:
            raise SetupError(f"Removing leftover topic {self.topic} failed: {e}") from e
        except ProviderError as e:
            raise SetupError(f"Creating topic {self.topic} failed: {e}") from e
        logger.info("Created topic %s", self.topic)
        if self.registry is not None:
            self.registry.register(
                "topic", self.topic, lambda _: self.delete_topic(), label=self.topic
            )

        try:
            self.admin.create_subscription(self.topic, self.subscription)
        except ProviderError as e:
            raise SetupError(
                f"Creating subscription {self.subscription} on {self.topic} failed: {e}"
            ) from e
        logger.info("Created subscription %s/%s", self.topic, self.subscription)
        if self.registry is not None:
            self.registry.register(
                "subscription",
                self.subscription,
                lambda _: self.delete_subscription(),
                label=f"{self.topic}/{self.subscription}",
            )

    def delete_subscription(self, missing_ok: bool = False) -> int:
        return self._delete(
            lambda: self.admin.delete_subscription(self.topic, self.subscription),
            f"subscription {self.topic}/{self.subscription}",
            missing_ok,
        )

    def delete_topic(self, missing_ok: bool = False) -> int:
        return self._delete(
            lambda: self.admin.delete_topic(self.topic), f"topic {self.topic}", missing_ok
        )

    def teardown(self, missing_ok: bool = False) -> CleanupSummary:
        """Delete the subscription, then the topic, continuing past failures.

        Parameters
        ----------
        missing_ok : bool
            Treat an entity that no longer exists as deleted, for cleaning up
            after a run that was interrupted part way through teardown
        """
        summary = CleanupSummary()
        for label, step in (
            (f"{self.topic}/{self.subscription}", self.delete_subscription),
            (self.topic, self.delete_topic),
        ):
            try:
                status = step(missing_ok)
            except TeardownError as e:
                summary.add_error(str(e))
                summary.add_step_result({"label": label, "status": "failed"})
            else:
                summary.add_step_result({"label": label, "status": "completed", "code": status})
        return summary

    def _delete(self, call: Callable[[], int], what: str, missing_ok: bool) -> int:
        try:
            status = call()
        except ProviderAPIError as e:
            if missing_ok and e.status_code == NOT_FOUND_STATUS:
                logger.info("%s already deleted", what)
                return NOT_FOUND_STATUS
            raise TeardownError(f"Deleting {what} failed: {e}") from e
        except ProviderError as e:
            raise TeardownError(f"Deleting {what} failed: {e}") from e
        if status != DELETE_SUCCESS_STATUS:
            raise TeardownError(
                f"Deleting {what} returned status {status}, expected {DELETE_SUCCESS_STATUS}"
            )
        logger.info("Deleted %s", what)
        return status
