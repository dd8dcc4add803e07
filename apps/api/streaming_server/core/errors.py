"""Classified failures raised by the stream lifecycle controller.

Every failure carries a stable ``kind`` that the HTTP layer reports back to
callers alongside a short message, and the status code it maps to. Messages
must never include the attendee credential.
"""
from __future__ import annotations


class StreamError(Exception):
    """Base class for classified stream lifecycle failures."""

    kind: str = "stream_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StreamError):
    """A required request field was missing, empty, or malformed."""

    kind = "validation_error"
    status_code = 400


class DirectoryLookupError(StreamError):
    """The meeting directory could not provide the attendee credential."""

    kind = "directory_lookup_error"
    status_code = 502


class DirectoryUnavailableError(DirectoryLookupError):
    """Transport-level failure: timeout, refused connection, non-2xx status."""


class DirectoryResponseError(DirectoryLookupError):
    """The directory answered, but not with the expected document."""


class CapacityExceeded(StreamError):
    """The host already runs the configured number of workers."""

    kind = "capacity_exceeded"
    status_code = 429

    def __init__(self, message: str, *, retry_after: int = 30) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProvisioningError(StreamError):
    """The worker instance could not be created."""

    kind = "provisioning_error"


class StartError(StreamError):
    """The worker instance was created but did not start."""

    kind = "start_error"


class TeardownError(StreamError):
    """The worker instance could not be removed."""

    kind = "teardown_error"
