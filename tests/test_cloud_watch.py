import asyncio
from typing import Any, Callable

import httpx
import pytest

from meshgate.cloud import (
    CloudConnection,
    Credential,
    HttpCloudTransport,
    InvalidArgumentError,
    ResponseEnvelope,
    TransportError,
    WatchScheduler,
    WatchStatus,
)

UUID = "11111111-1111-1111-1111-111111111111"
TOKEN = "a" * 40
INTERVAL = 0.01


async def _resolve(host: str, port: int) -> str:
    return "127.0.0.1"


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class _ScriptedFetch:
    """Fetch stub: fail ``failures`` times, then return ``payload`` ``successes`` times, then block."""

    def __init__(self, payload: dict[str, Any], *, failures: int = 0, successes: int = 1) -> None:
        self.payload = payload
        self.failures = failures
        self.successes = successes
        self.calls = 0
        self.release = asyncio.Event()

    async def fetch(self, connection, credential, envelope=None):  # type: ignore[no-untyped-def]
        self.calls += 1
        if self.calls <= self.failures:
            raise TransportError("connection refused")
        if self.calls <= self.failures + self.successes:
            out = envelope or ResponseEnvelope()
            out.replace(f'{{"temp":{self.payload["temp"]}}}')
            return out
        await self.release.wait()
        out = envelope or ResponseEnvelope()
        out.replace('{"temp":0}')
        return out


@pytest.fixture
def credential() -> Credential:
    return Credential(uuid=UUID, token=TOKEN)


@pytest.fixture
async def connection():  # type: ignore[no-untyped-def]
    conn = CloudConnection(httpx.AsyncClient(), label="test-conn")
    yield conn
    await conn.aclose()


@pytest.mark.asyncio
async def test_watch_delivers_after_transient_failures(credential: Credential, connection: CloudConnection) -> None:
    fetcher = _ScriptedFetch({"temp": 21}, failures=3, successes=1)
    scheduler = WatchScheduler(fetcher, interval_seconds=INTERVAL)  # type: ignore[arg-type]
    delivered: list[tuple[dict, Any]] = []

    handle = scheduler.register(connection, credential, lambda payload, data: delivered.append((payload, data)), "tty0")
    await _wait_for(lambda: fetcher.calls >= 5)

    assert delivered == [({"temp": 21}, "tty0")]
    assert handle.status == WatchStatus.ACTIVE
    assert handle.state.failures == 3
    assert handle.state.deliveries == 1
    assert "transport_error" in handle.state.last_error

    await scheduler.close()
    assert handle.status == WatchStatus.CANCELLED
    assert len(scheduler) == 0


@pytest.mark.asyncio
async def test_watch_tears_down_on_hangup(credential: Credential, connection: CloudConnection) -> None:
    fetcher = _ScriptedFetch({"temp": 21})
    scheduler = WatchScheduler(fetcher, interval_seconds=60)  # type: ignore[arg-type]
    delivered: list[dict] = []

    handle = scheduler.register(connection, credential, lambda payload, _: delivered.append(payload))
    await asyncio.sleep(0)
    connection.invalidate("peer hung up")
    await _wait_for(lambda: handle.status == WatchStatus.TORN_DOWN)

    assert handle.state.close_reason == "peer hung up"
    assert fetcher.calls == 0
    assert delivered == []
    assert scheduler.get(handle.handle_id) is None
    assert scheduler.active_count == 0
    assert handle.cancel() is False


@pytest.mark.asyncio
async def test_watch_drops_update_when_connection_closes_mid_fetch(
    credential: Credential, connection: CloudConnection
) -> None:
    fetcher = _ScriptedFetch({"temp": 21}, successes=0)
    scheduler = WatchScheduler(fetcher, interval_seconds=INTERVAL)  # type: ignore[arg-type]
    delivered: list[dict] = []

    handle = scheduler.register(connection, credential, lambda payload, _: delivered.append(payload))
    await _wait_for(lambda: fetcher.calls == 1)
    connection.invalidate("hangup")
    fetcher.release.set()
    await _wait_for(lambda: handle.status == WatchStatus.TORN_DOWN)

    assert delivered == []
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_cancel_is_idempotent_and_safe_inside_callback(
    credential: Credential, connection: CloudConnection
) -> None:
    fetcher = _ScriptedFetch({"temp": 21}, successes=100)
    scheduler = WatchScheduler(fetcher, interval_seconds=INTERVAL)  # type: ignore[arg-type]
    handles: dict[str, Any] = {}
    delivered: list[dict] = []

    def on_update(payload: dict, _: Any) -> None:
        delivered.append(payload)
        handles["watch"].cancel()

    handles["watch"] = scheduler.register(connection, credential, on_update)
    handle = handles["watch"]
    await _wait_for(lambda: handle.state.task is not None and handle.state.task.done())
    await asyncio.sleep(INTERVAL * 3)

    assert delivered == [{"temp": 21}]
    assert fetcher.calls == 1
    assert handle.status == WatchStatus.CANCELLED
    assert handle.cancel() is False
    assert scheduler.cancel(handle.handle_id) is False


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_the_watch(credential: Credential, connection: CloudConnection) -> None:
    fetcher = _ScriptedFetch({"temp": 21}, successes=2)
    scheduler = WatchScheduler(fetcher, interval_seconds=INTERVAL)  # type: ignore[arg-type]
    seen: list[dict] = []

    async def on_update(payload: dict, _: Any) -> None:
        seen.append(payload)
        if len(seen) == 1:
            raise RuntimeError("relay offline")

    handle = scheduler.register(connection, credential, on_update)
    await _wait_for(lambda: len(seen) == 2)

    assert handle.status == WatchStatus.ACTIVE
    assert handle.state.deliveries == 1
    await scheduler.close()


@pytest.mark.asyncio
async def test_duplicate_registrations_run_independently(
    credential: Credential, connection: CloudConnection
) -> None:
    fetcher = _ScriptedFetch({"temp": 21}, successes=100)
    scheduler = WatchScheduler(fetcher, interval_seconds=INTERVAL)  # type: ignore[arg-type]
    first: list[dict] = []
    second: list[dict] = []

    a = scheduler.register(connection, credential, lambda payload, _: first.append(payload))
    b = scheduler.register(connection, credential, lambda payload, _: second.append(payload))
    await _wait_for(lambda: first and second)

    assert a.handle_id != b.handle_id
    assert len(scheduler) == 2
    assert {row["handle_id"] for row in scheduler.status_snapshot()} == {a.handle_id, b.handle_id}

    a.cancel()
    assert len(scheduler) == 1
    assert b.status == WatchStatus.ACTIVE
    await scheduler.close()
    assert b.status == WatchStatus.CANCELLED


@pytest.mark.asyncio
async def test_register_validates_arguments(credential: Credential, connection: CloudConnection) -> None:
    scheduler = WatchScheduler(_ScriptedFetch({"temp": 21}), interval_seconds=INTERVAL)  # type: ignore[arg-type]

    with pytest.raises(InvalidArgumentError):
        scheduler.register(None, credential, lambda *_: None)  # type: ignore[arg-type]
    with pytest.raises(InvalidArgumentError):
        scheduler.register(connection, credential, "not callable")  # type: ignore[arg-type]
    assert len(scheduler) == 0


@pytest.mark.asyncio
async def test_http_watch_end_to_end(credential: Credential) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b'{"devices":[{"temp":21}]}')

    transport = HttpCloudTransport(
        http_transport=httpx.MockTransport(handler),
        resolver=_resolve,
        watch_interval_seconds=INTERVAL,
    )
    await transport.probe("cloud.test", 3000)
    connection = await transport.connect()
    delivered: list[tuple[dict, Any]] = []

    handle = transport.register_watch(connection, credential, lambda p, d: delivered.append((p, d)), "ctx")
    await _wait_for(lambda: len(delivered) >= 3)

    assert all(item == ({"temp": 21}, "ctx") for item in delivered)
    assert all(r.method == "GET" and r.url.path == f"/devices/{UUID}" for r in requests)

    await transport.close(connection)
    await _wait_for(lambda: handle.status == WatchStatus.TORN_DOWN)
    assert handle.state.close_reason == "closed"
    await transport.remove()


@pytest.mark.asyncio
async def test_register_watch_requires_probe(credential: Credential, connection: CloudConnection) -> None:
    transport = HttpCloudTransport(resolver=_resolve)

    with pytest.raises(InvalidArgumentError):
        transport.register_watch(connection, credential, lambda *_: None)


@pytest.mark.asyncio
async def test_peer_disconnect_tears_watch_down(credential: Credential) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

    transport = HttpCloudTransport(
        http_transport=httpx.MockTransport(handler),
        resolver=_resolve,
        watch_interval_seconds=INTERVAL,
    )
    await transport.probe("cloud.test", 3000)
    connection = await transport.connect()
    delivered: list[dict] = []

    handle = transport.register_watch(connection, credential, lambda p, _: delivered.append(p))
    await _wait_for(lambda: handle.status == WatchStatus.TORN_DOWN)
    await asyncio.sleep(INTERVAL * 3)

    assert connection.is_closed
    assert handle.state.failures == 1
    assert handle.state.ticks == 1
    assert "Server disconnected" in handle.state.close_reason
    assert delivered == []
    assert len(transport.watches) == 0

    await transport.close(connection)
    await transport.remove()
