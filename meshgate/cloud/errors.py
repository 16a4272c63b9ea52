"""Error taxonomy for cloud transport operations."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed set of outcome kinds surfaced to device-management logic."""

    INVALID_ARGUMENT = "invalid_argument"
    OUT_OF_MEMORY = "out_of_memory"
    TRANSPORT = "transport_error"
    AUTH_REJECTED = "auth_rejected"
    NOT_FOUND = "not_found"
    REMOTE = "remote_error"
    MALFORMED_ENVELOPE = "malformed_envelope"


class CloudError(Exception):
    """Base class for every failure raised by a cloud transport."""

    kind: ErrorKind = ErrorKind.REMOTE

    def __init__(self, message: str = "", *, status: int | None = None, body: bytes = b"") -> None:
        super().__init__(message or self.kind.value)
        self.status = status
        self.body = body


class InvalidArgumentError(CloudError):
    kind = ErrorKind.INVALID_ARGUMENT


class OutOfMemoryError(CloudError):
    kind = ErrorKind.OUT_OF_MEMORY


class TransportError(CloudError):
    kind = ErrorKind.TRANSPORT


class AuthRejectedError(CloudError):
    kind = ErrorKind.AUTH_REJECTED


class NotFoundError(CloudError):
    kind = ErrorKind.NOT_FOUND


class RemoteError(CloudError):
    kind = ErrorKind.REMOTE


class MalformedEnvelopeError(CloudError):
    kind = ErrorKind.MALFORMED_ENVELOPE


SUCCESS_STATUSES = frozenset({200, 201})


def error_for_status(status: int) -> type[CloudError] | None:
    """Map an HTTP status to its error class, or None for success."""
    if status in SUCCESS_STATUSES:
        return None
    if status in (401, 403):
        return AuthRejectedError
    if status == 404:
        return NotFoundError
    return RemoteError


def raise_for_status(status: int, body: bytes = b"") -> None:
    """Raise the mapped CloudError when status is not a success."""
    error_cls = error_for_status(status)
    if error_cls is None:
        return
    raise error_cls(f"HTTP {status}", status=status, body=body)
