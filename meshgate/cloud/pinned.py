"""httpx transport bound to one pre-opened TCP stream.

``connect`` opens the socket itself, then hands it to httpcore through a
network backend that never dials again. When httpcore closes that stream,
whether on a peer hang-up, a protocol error or client shutdown, the owning
connection is told, and any later dial attempt fails instead of quietly
opening a new socket.
"""

from __future__ import annotations

import contextlib
import ssl
from typing import Any, AsyncIterator, Callable, Iterable, Iterator

import httpcore
import httpx

from meshgate.cloud.errors import TransportError

HangupCallback = Callable[[str], None]

# Most specific first; httpcore and httpx share the class names.
_ERROR_MAP: tuple[tuple[type[Exception], type[httpx.HTTPError]], ...] = (
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.ProtocolError, httpx.ProtocolError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
)


@contextlib.contextmanager
def _map_errors() -> Iterator[None]:
    try:
        yield
    except Exception as e:
        for source, target in _ERROR_MAP:
            if isinstance(e, source):
                raise target(str(e)) from e
        raise


class PinnedStream(httpcore.AsyncNetworkStream):
    """Delegating stream that reports its own close."""

    def __init__(self, stream: httpcore.AsyncNetworkStream, on_close: Callable[[], None]) -> None:
        self._stream = stream
        self._on_close = on_close

    async def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        return await self._stream.read(max_bytes, timeout=timeout)

    async def write(self, buffer: bytes, timeout: float | None = None) -> None:
        await self._stream.write(buffer, timeout=timeout)

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            self._on_close()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.AsyncNetworkStream:
        self._stream = await self._stream.start_tls(
            ssl_context, server_hostname=server_hostname, timeout=timeout
        )
        return self

    def get_extra_info(self, info: str) -> Any:
        return self._stream.get_extra_info(info)


class PinnedBackend(httpcore.AsyncNetworkBackend):
    """Network backend serving exactly one stream opened ahead of time."""

    def __init__(self, address: str, port: int) -> None:
        self.address = address
        self.port = port
        self.on_hangup: HangupCallback | None = None
        self._inner = httpcore.AnyIOBackend()
        self._stream: httpcore.AsyncNetworkStream | None = None
        self._handed_out = False

    async def open(self, timeout: float | None = None) -> None:
        """Dial the resolved address now. Raises TransportError on failure."""
        try:
            self._stream = await self._inner.connect_tcp(self.address, self.port, timeout=timeout)
        except (httpcore.ConnectError, httpcore.TimeoutException, OSError) as e:
            raise TransportError(f"cannot connect to {self.address}:{self.port}: {e}") from e

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        if self._stream is None or self._handed_out:
            raise httpcore.ConnectError(f"cloud socket to {self.address}:{self.port} is gone")
        self._handed_out = True
        return PinnedStream(self._stream, self._stream_closed)

    async def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        raise httpcore.ConnectError("unix sockets are not supported")

    async def sleep(self, seconds: float) -> None:
        await self._inner.sleep(seconds)

    async def aclose(self) -> None:
        """Close the stream if httpcore never took it."""
        if self._stream is not None and not self._handed_out:
            self._handed_out = True
            await self._stream.aclose()

    def _stream_closed(self) -> None:
        self._stream = None
        if self.on_hangup is not None:
            self.on_hangup("socket closed")


class _ResponseStream(httpx.AsyncByteStream):
    def __init__(self, stream: Any) -> None:
        self._stream = stream

    async def __aiter__(self) -> AsyncIterator[bytes]:
        with _map_errors():
            async for part in self._stream:
                yield part

    async def aclose(self) -> None:
        if hasattr(self._stream, "aclose"):
            with _map_errors():
                await self._stream.aclose()


class PinnedTransport(httpx.AsyncBaseTransport):
    """Single-connection httpcore pool running on a PinnedBackend."""

    def __init__(self, backend: PinnedBackend) -> None:
        self.backend = backend
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=ssl.create_default_context(),
            max_connections=1,
            max_keepalive_connections=1,
            network_backend=backend,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with _map_errors():
            response = await self._pool.handle_async_request(core_request)
        return httpx.Response(
            status_code=response.status,
            headers=response.headers,
            stream=_ResponseStream(response.stream),
            extensions=response.extensions,
        )

    async def aclose(self) -> None:
        await self._pool.aclose()
        await self.backend.aclose()
