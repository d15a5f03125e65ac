"""Exception hierarchy for voxroom."""

from __future__ import annotations


class VoxRoomError(Exception):
    """Base exception for all voxroom errors."""


class SessionNotConnectedError(VoxRoomError):
    """Operation requires an active voice session."""


class SessionAlreadyConnectedError(VoxRoomError):
    """A voice session is already active for this manager."""


class ConnectionFailedError(VoxRoomError):
    """The platform connection never became ready."""


class TransportError(VoxRoomError):
    """Platform-side transport failure (dropped connection, closed stream)."""


class BackendError(VoxRoomError):
    """Error from a conversational backend call.

    Attributes:
        retryable: Whether the caller could retry the request.
        provider: Name of the backend that raised the error.
        status_code: HTTP status code from the backend, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.provider = provider
        self.status_code = status_code
