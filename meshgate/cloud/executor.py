"""Single HTTP exchange against the cloud registry."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
from loguru import logger

from meshgate import __version__
from meshgate.cloud.connection import CloudConnection
from meshgate.cloud.credentials import Credential
from meshgate.cloud.envelope import ResponseEnvelope
from meshgate.cloud.errors import (
    InvalidArgumentError,
    OutOfMemoryError,
    TransportError,
    error_for_status,
    raise_for_status,
)
from meshgate.utils.redaction import redact_headers

REQUEST_TIMEOUT_SECONDS = 30.0
MAX_REDIRECTS = 1
SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

AUTH_UUID_HEADER = "meshblu_auth_uuid"
AUTH_TOKEN_HEADER = "meshblu_auth_token"
JSON_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "charsets": "utf-8",
}
USER_AGENT = f"meshgate/{__version__}"

# The socket under a caller-owned connection is unusable after these.
CONNECTION_LEVEL_ERRORS = (
    httpx.RemoteProtocolError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.CloseError,
)

JsonBody = str | bytes | bytearray | dict[str, Any] | list[Any]


def normalize_method(method: str) -> str:
    verb = str(method or "").strip().upper()
    if verb not in SUPPORTED_METHODS:
        raise InvalidArgumentError(f"unsupported request method: {method!r}")
    return verb


def build_headers(credential: Credential | None, *, has_body: bool) -> dict[str, str]:
    headers: dict[str, str] = {}
    if credential is not None:
        headers[AUTH_UUID_HEADER] = credential.uuid
        headers[AUTH_TOKEN_HEADER] = credential.token
    if has_body:
        headers.update(JSON_HEADERS)
    return headers


def encode_body(body: JsonBody) -> bytes:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    try:
        return json.dumps(body, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"body is not JSON serializable: {e}") from e


class RequestExecutor:
    """Runs one request and maps the outcome onto the cloud error taxonomy."""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    @property
    def transport(self) -> httpx.AsyncBaseTransport | None:
        return self._transport

    def open_client(self, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
        """Build a client limited to one kept-alive connection."""
        return httpx.AsyncClient(
            transport=transport or self._transport,
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS),
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=1),
            headers={"User-Agent": USER_AGENT},
        )

    async def execute(
        self,
        target: str,
        method: str,
        *,
        body: JsonBody | None = None,
        credential: Credential | None = None,
        connection: CloudConnection | None = None,
        envelope: ResponseEnvelope | None = None,
    ) -> ResponseEnvelope:
        """
        Perform one exchange and return the filled response envelope.

        The envelope is emptied first and receives the body only when the
        status maps to success. With ``connection`` the exchange reuses that
        connection's client and leaves it open.

        Raises:
            InvalidArgumentError: missing target, bad method or body.
            TransportError: DNS, connect, timeout, TLS or redirect failure,
                or a connection that is already closed. A dropped socket on
                ``connection`` also invalidates it.
            AuthRejectedError, NotFoundError, RemoteError: non-success status.
            OutOfMemoryError: the body could not be buffered.
        """
        if not str(target or "").strip():
            raise InvalidArgumentError("target is required")
        verb = normalize_method(method)
        out = envelope if envelope is not None else ResponseEnvelope()
        out.reset()

        content = encode_body(body) if body is not None else None
        headers = build_headers(credential, has_body=content is not None)

        logger.info(f"HTTP({verb}): {target}")
        if headers:
            logger.debug(f" HEADERS: {redact_headers(headers)}")
        if content is not None:
            logger.debug(f" JSON TX: {content.decode('utf-8', errors='replace')}")

        if connection is not None and connection.is_closed:
            raise TransportError(
                f"connection {connection.connection_id} is closed: {connection.close_reason}"
            )

        try:
            async with asyncio.timeout(REQUEST_TIMEOUT_SECONDS):
                if connection is not None:
                    status, error_body = await self._exchange(
                        connection.client, verb, target, headers, content, out
                    )
                else:
                    async with self.open_client() as client:
                        status, error_body = await self._exchange(
                            client, verb, target, headers, content, out
                        )
        except TimeoutError as e:
            out.reset()
            raise TransportError(f"{verb} {target} timed out after {REQUEST_TIMEOUT_SECONDS:.0f}s") from e
        except httpx.HTTPError as e:
            out.reset()
            if connection is not None and isinstance(e, CONNECTION_LEVEL_ERRORS):
                connection.invalidate(f"peer hung up: {e}")
            raise TransportError(f"{verb} {target} failed: {e}") from e
        except MemoryError as e:
            out.reset()
            logger.error("Not enough memory to buffer response")
            raise OutOfMemoryError("not enough memory to buffer response") from e

        if out.size:
            logger.debug(f" JSON RX: {out.data.decode('utf-8', errors='replace')}")
        elif error_body:
            logger.debug(f" JSON RX: {error_body.decode('utf-8', errors='replace')}")
        else:
            logger.debug(" JSON RX: Empty")
        logger.info(f"HTTP: {status}")

        raise_for_status(status, error_body)
        return out

    @staticmethod
    async def _exchange(
        client: httpx.AsyncClient,
        verb: str,
        target: str,
        headers: dict[str, str],
        content: bytes | None,
        out: ResponseEnvelope,
    ) -> tuple[int, bytes]:
        async with client.stream(verb, target, headers=headers, content=content) as response:
            status = response.status_code
            if error_for_status(status) is not None:
                return status, await response.aread()
            async for chunk in response.aiter_bytes():
                out.write(chunk)
        return status, b""
