"""Exceptions raised by control-plane and queue provider adapters."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for provider adapter failures."""


class ProviderAPIError(ProviderError):
    """Raised when a provider call completes but reports a failure.

    Parameters
    ----------
    message : str
        Human-readable description of the failure
    error_code : str | None
        Provider-specific error code, if one was reported
    status_code : int | None
        HTTP status or process exit code, if one was reported
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class ProviderConnectionError(ProviderError):
    """Raised when a provider cannot be reached at all."""
