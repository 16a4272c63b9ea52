"""Transport contract used by device-management logic to reach the cloud."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from meshgate.cloud.connection import CloudConnection
from meshgate.cloud.credentials import Credential
from meshgate.cloud.endpoints import EndpointSet
from meshgate.cloud.envelope import ResponseEnvelope
from meshgate.cloud.executor import JsonBody

if TYPE_CHECKING:
    from meshgate.cloud.watch import WatchCallback, WatchHandle


class CloudTransport(ABC):
    """Abstract capability set every cloud backend must provide."""

    name: str = "base"

    @abstractmethod
    async def probe(self, host: str | None, port: int) -> EndpointSet:
        """Resolve the server and build the endpoint set. Call once, first."""

    @abstractmethod
    async def remove(self) -> None:
        """Release the endpoint set and stop outstanding watches."""

    @abstractmethod
    async def connect(self) -> CloudConnection:
        """Open a connection that callers own and may reuse."""

    @abstractmethod
    async def close(self, connection: CloudConnection) -> None:
        """Release a connection handle."""

    @abstractmethod
    async def create_node(
        self,
        connection: CloudConnection | None,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Register a new device record."""

    @abstractmethod
    async def sign_in(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Authenticate and return the device's own record."""

    @abstractmethod
    async def remove_node(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Delete the device record."""

    @abstractmethod
    async def push_schema(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Replace the device schema."""

    @abstractmethod
    async def push_data(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Publish one telemetry sample."""

    @abstractmethod
    async def fetch(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Read the current device record."""

    @abstractmethod
    async def set_data(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """Update fields on the device record."""

    @abstractmethod
    def register_watch(
        self,
        connection: CloudConnection,
        credential: Credential,
        callback: WatchCallback,
        user_data: Any = None,
    ) -> WatchHandle:
        """Poll the device record periodically and relay it to callback."""
