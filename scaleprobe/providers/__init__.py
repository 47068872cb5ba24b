"""Control-plane and queue adapters used by the harness."""

from __future__ import annotations

from scaleprobe.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderError,
)
from scaleprobe.providers.kubectl import KubectlClient
from scaleprobe.providers.servicebus import ServiceBusAdmin, ServiceBusData

__all__ = [
    "KubectlClient",
    "ProviderAPIError",
    "ProviderConnectionError",
    "ProviderError",
    "ServiceBusAdmin",
    "ServiceBusData",
]
