"""Cloud transport layer: executor, envelope codec, transports and watches."""

from typing import Any

from meshgate.cloud.base import CloudTransport
from meshgate.cloud.connection import CloudConnection
from meshgate.cloud.credentials import TOKEN_SIZE, UUID_SIZE, Credential
from meshgate.cloud.endpoints import DEFAULT_SERVER_HOST, EndpointSet
from meshgate.cloud.envelope import ResponseEnvelope, normalize_envelope, validate_single
from meshgate.cloud.errors import (
    AuthRejectedError,
    CloudError,
    ErrorKind,
    InvalidArgumentError,
    MalformedEnvelopeError,
    NotFoundError,
    OutOfMemoryError,
    RemoteError,
    TransportError,
    error_for_status,
)
from meshgate.cloud.executor import RequestExecutor
from meshgate.cloud.http import HttpCloudTransport
from meshgate.cloud.watch import WatchHandle, WatchScheduler, WatchState, WatchStatus

TRANSPORTS: dict[str, type[CloudTransport]] = {
    HttpCloudTransport.name: HttpCloudTransport,
}


def create_transport(name: str, **kwargs: Any) -> CloudTransport:
    """Build a transport by protocol name, e.g. ``"http"``."""
    key = str(name or "").strip().lower()
    transport_cls = TRANSPORTS.get(key)
    if transport_cls is None:
        raise ValueError(f"Unknown cloud protocol: {name!r} (available: {', '.join(sorted(TRANSPORTS))})")
    return transport_cls(**kwargs)


__all__ = [
    "AuthRejectedError",
    "CloudConnection",
    "CloudError",
    "CloudTransport",
    "Credential",
    "DEFAULT_SERVER_HOST",
    "EndpointSet",
    "ErrorKind",
    "HttpCloudTransport",
    "InvalidArgumentError",
    "MalformedEnvelopeError",
    "NotFoundError",
    "OutOfMemoryError",
    "RemoteError",
    "RequestExecutor",
    "ResponseEnvelope",
    "TOKEN_SIZE",
    "TRANSPORTS",
    "TransportError",
    "UUID_SIZE",
    "WatchHandle",
    "WatchScheduler",
    "WatchState",
    "WatchStatus",
    "create_transport",
    "error_for_status",
    "normalize_envelope",
    "validate_single",
]
