"""Custom exception hierarchy for pyconnect."""

from __future__ import annotations


class ConnectError(Exception):
    """Base exception for all pyconnect errors."""


class ConnectConfigError(ConnectError):
    """Invalid or missing configuration."""


class StorageUnavailableError(ConnectError):
    """A host storage tier refused a read or write.

    Raised by :class:`~pyconnect.state.storage.Storage` backends. The
    state store catches it and degrades the tier to empty.
    """


class ResourceBindingError(ConnectError):
    """Enabling or disabling a live feed failed."""

    def __init__(
        self,
        message: str,
        *,
        resource_id: str,
        sub_id: str | None = None,
        operation: str = "",
    ) -> None:
        self.resource_id = resource_id
        self.sub_id = sub_id
        self.operation = operation
        super().__init__(message)


class DomUnavailableError(ConnectError):
    """A delegated DOM subscription was requested without a DOM root."""


class ActionError(ConnectError):
    """HTTP action failed (network error or invalid response)."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class ActionTimeoutError(ActionError):
    """HTTP action did not complete within its timeout."""
