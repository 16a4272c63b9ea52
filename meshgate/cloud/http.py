"""HTTP transport for the Meshblu device registry."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from meshgate.cloud.base import CloudTransport
from meshgate.cloud.connection import CloudConnection
from meshgate.cloud.credentials import Credential
from meshgate.cloud.endpoints import EndpointSet, Resolver, build_endpoints
from meshgate.cloud.envelope import ResponseEnvelope, normalize_envelope
from meshgate.cloud.errors import InvalidArgumentError
from meshgate.cloud.executor import REQUEST_TIMEOUT_SECONDS, JsonBody, RequestExecutor
from meshgate.cloud.pinned import PinnedBackend, PinnedTransport
from meshgate.cloud.watch import (
    WATCH_INTERVAL_SECONDS,
    WatchCallback,
    WatchHandle,
    WatchScheduler,
)


class HttpCloudTransport(CloudTransport):
    """Cloud transport speaking the registry's REST API over httpx."""

    name = "http"

    def __init__(
        self,
        *,
        scheme: str = "http",
        http_transport: httpx.AsyncBaseTransport | None = None,
        resolver: Resolver | None = None,
        watch_interval_seconds: float = WATCH_INTERVAL_SECONDS,
    ) -> None:
        self.scheme = scheme
        self.executor = RequestExecutor(transport=http_transport)
        self.watches = WatchScheduler(self, interval_seconds=watch_interval_seconds)
        self._resolver = resolver
        self._endpoints: EndpointSet | None = None

    @property
    def endpoints(self) -> EndpointSet:
        if self._endpoints is None:
            raise InvalidArgumentError("transport is not probed")
        return self._endpoints

    async def probe(self, host: str | None, port: int) -> EndpointSet:
        if self._endpoints is not None:
            raise InvalidArgumentError("transport is already probed")
        self._endpoints = await build_endpoints(
            host,
            port,
            scheme=self.scheme,
            resolver=self._resolver,
        )
        logger.info(f"HTTP transport ready: {self._endpoints.host_uri}")
        return self._endpoints

    async def remove(self) -> None:
        await self.watches.close()
        if self._endpoints is not None:
            logger.info(f"HTTP transport removed: {self._endpoints.host_uri}")
        self._endpoints = None

    async def connect(self) -> CloudConnection:
        """Dial the probed address now; every exchange on the handle reuses that socket."""
        endpoints = self.endpoints
        if self.executor.transport is not None:
            # Injected wire transport: it owns dialing.
            connection = CloudConnection(self.executor.open_client())
        else:
            backend = PinnedBackend(endpoints.address, endpoints.port)
            await backend.open(timeout=REQUEST_TIMEOUT_SECONDS)
            connection = CloudConnection(self.executor.open_client(PinnedTransport(backend)))
            backend.on_hangup = connection.invalidate
        logger.info(
            f"Cloud connection {connection.connection_id} opened to {endpoints.host_uri} "
            f"({endpoints.address}:{endpoints.port})"
        )
        return connection

    async def close(self, connection: CloudConnection) -> None:
        if connection is None:
            return
        await connection.aclose("closed")

    async def create_node(
        self,
        connection: CloudConnection | None,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_body(body)
        logger.info("action: create node")
        return await self.executor.execute(
            self.endpoints.device_uri,
            "POST",
            body=body,
            connection=connection,
            envelope=envelope,
        )

    async def sign_in(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        logger.info(f"action: sign in {credential.uuid}")
        out = await self.executor.execute(
            self.endpoints.device_url(credential.uuid),
            "GET",
            credential=credential,
            connection=connection,
            envelope=envelope,
        )
        return normalize_envelope(out)

    async def remove_node(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        logger.info(f"action: remove node {credential.uuid}")
        return await self.executor.execute(
            self.endpoints.device_url(credential.uuid),
            "DELETE",
            credential=credential,
            connection=connection,
            envelope=envelope,
        )

    async def push_schema(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        _require_body(body)
        logger.info(f"action: push schema {credential.uuid}")
        return await self.executor.execute(
            self.endpoints.device_url(credential.uuid),
            "PUT",
            body=body,
            credential=credential,
            connection=connection,
            envelope=envelope,
        )

    async def push_data(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        _require_body(body)
        logger.info(f"action: push data {credential.uuid}")
        return await self.executor.execute(
            self.endpoints.data_url(credential.uuid),
            "POST",
            body=body,
            credential=credential,
            connection=connection,
            envelope=envelope,
        )

    async def fetch(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        logger.info(f"action: fetch {credential.uuid}")
        out = await self.executor.execute(
            self.endpoints.device_url(credential.uuid),
            "GET",
            credential=credential,
            connection=connection,
            envelope=envelope,
        )
        return normalize_envelope(out)

    async def set_data(
        self,
        connection: CloudConnection | None,
        credential: Credential,
        body: JsonBody,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        _require_credential(credential)
        _require_body(body)
        logger.info(f"action: set data {credential.uuid}")
        return await self.executor.execute(
            self.endpoints.device_url(credential.uuid),
            "PUT",
            body=body,
            credential=credential,
            connection=connection,
            envelope=envelope,
        )

    def register_watch(
        self,
        connection: CloudConnection,
        credential: Credential,
        callback: WatchCallback,
        user_data: Any = None,
    ) -> WatchHandle:
        _require_credential(credential)
        if self._endpoints is None:
            raise InvalidArgumentError("transport is not probed")
        return self.watches.register(connection, credential, callback, user_data)


def _require_credential(credential: Credential) -> None:
    if not isinstance(credential, Credential):
        raise InvalidArgumentError("credential is required")


def _require_body(body: JsonBody) -> None:
    if body is None:
        raise InvalidArgumentError("body is required")
