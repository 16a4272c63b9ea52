"""Resolved cloud endpoint set, built once by a transport probe."""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from meshgate.cloud.errors import InvalidArgumentError, TransportError

DEFAULT_SERVER_HOST = "meshblu.octoblu.com"
DEFAULT_SERVER_PORT = 80

Resolver = Callable[[str, int], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class EndpointSet:
    """Base, device-collection and data-collection URIs for one server."""

    host: str
    port: int
    address: str
    scheme: str = "http"

    @property
    def host_uri(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def device_uri(self) -> str:
        return f"{self.host_uri}/devices"

    @property
    def data_uri(self) -> str:
        return f"{self.host_uri}/data"

    def device_url(self, uuid: str) -> str:
        return f"{self.device_uri}/{uuid}"

    def data_url(self, uuid: str) -> str:
        return f"{self.data_uri}/{uuid}"


async def resolve_host(host: str, port: int) -> str:
    """Resolve host to its first IPv4/IPv6 address using the running loop."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise TransportError(f"cannot resolve {host}:{port}: {e}") from e
    if not infos:
        raise TransportError(f"cannot resolve {host}:{port}: no addresses")
    return str(infos[0][4][0])


async def build_endpoints(
    host: str | None,
    port: int,
    *,
    scheme: str = "http",
    resolver: Resolver | None = None,
) -> EndpointSet:
    """Resolve the server and derive its endpoint set."""
    name = str(host or "").strip() or DEFAULT_SERVER_HOST
    try:
        port_value = int(port)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"invalid port: {port!r}") from e
    if not 0 < port_value < 65536:
        raise InvalidArgumentError(f"port out of range: {port_value}")
    scheme_value = str(scheme or "http").strip().lower()
    if scheme_value not in ("http", "https"):
        raise InvalidArgumentError(f"unsupported scheme: {scheme!r}")

    address = await (resolver or resolve_host)(name, port_value)
    logger.info(f"Meshblu IP: {address} ({name}:{port_value})")
    return EndpointSet(host=name, port=port_value, address=address, scheme=scheme_value)
