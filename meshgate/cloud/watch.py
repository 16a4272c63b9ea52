"""Periodic per-device polling that relays cloud updates to a callback."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from meshgate.cloud.connection import CloudConnection
from meshgate.cloud.credentials import Credential
from meshgate.cloud.errors import CloudError, InvalidArgumentError

if TYPE_CHECKING:
    from meshgate.cloud.base import CloudTransport

WATCH_INTERVAL_SECONDS = 10.0

WatchCallback = Callable[[dict[str, Any], Any], Awaitable[None] | None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class WatchStatus(StrEnum):
    """Lifecycle of one registered watch."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    TORN_DOWN = "torn_down"


@dataclass(slots=True)
class WatchState:
    """Everything one watch needs between ticks."""

    handle_id: int
    connection: CloudConnection
    credential: Credential
    callback: WatchCallback
    user_data: Any = None
    status: WatchStatus = WatchStatus.ACTIVE
    created_at_ms: int = field(default_factory=_now_ms)
    ticks: int = 0
    deliveries: int = 0
    failures: int = 0
    last_error: str = ""
    close_reason: str = ""
    task: asyncio.Task | None = field(default=None, repr=False)

    def to_status(self) -> dict[str, Any]:
        return {
            "handle_id": self.handle_id,
            "uuid": self.credential.uuid,
            "connection_id": self.connection.connection_id,
            "status": self.status.value,
            "created_at_ms": self.created_at_ms,
            "ticks": self.ticks,
            "deliveries": self.deliveries,
            "failures": self.failures,
            "last_error": self.last_error,
            "close_reason": self.close_reason,
        }


class WatchHandle:
    """Cancellable subscription returned by ``register``."""

    __slots__ = ("_scheduler", "_state")

    def __init__(self, scheduler: WatchScheduler, state: WatchState) -> None:
        self._scheduler = scheduler
        self._state = state

    @property
    def handle_id(self) -> int:
        return self._state.handle_id

    @property
    def status(self) -> WatchStatus:
        return self._state.status

    @property
    def state(self) -> WatchState:
        return self._state

    def cancel(self) -> bool:
        return self._scheduler.cancel(self._state.handle_id)

    def __repr__(self) -> str:
        return f"WatchHandle({self.handle_id}, {self.status.value})"


class WatchScheduler:
    """Runs one polling task per registered watch on the current event loop.

    Ticks of a single watch never overlap: each task waits for the interval,
    fetches, delivers, then waits again. A fetch failure is logged and the
    next tick still runs. Only a closed connection ends the watch on its own.
    """

    def __init__(
        self,
        transport: CloudTransport,
        *,
        interval_seconds: float = WATCH_INTERVAL_SECONDS,
    ) -> None:
        self.transport = transport
        self.interval_seconds = max(0.0, float(interval_seconds))
        self._watches: dict[int, WatchState] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._watches)

    @property
    def active_count(self) -> int:
        return len(self._watches)

    def register(
        self,
        connection: CloudConnection,
        credential: Credential,
        callback: WatchCallback,
        user_data: Any = None,
    ) -> WatchHandle:
        if connection is None:
            raise InvalidArgumentError("connection is required")
        if credential is None:
            raise InvalidArgumentError("credential is required")
        if not callable(callback):
            raise InvalidArgumentError("callback must be callable")

        state = WatchState(
            handle_id=next(self._ids),
            connection=connection,
            credential=credential,
            callback=callback,
            user_data=user_data,
        )
        self._watches[state.handle_id] = state
        state.task = asyncio.create_task(
            self._run(state),
            name=f"meshgate-watch-{state.handle_id}",
        )
        logger.info(
            f"Watch {state.handle_id} registered for {credential.uuid} "
            f"on {connection.connection_id} every {self.interval_seconds:g}s"
        )
        return WatchHandle(self, state)

    def get(self, handle_id: int) -> WatchState | None:
        return self._watches.get(handle_id)

    def cancel(self, handle_id: int) -> bool:
        """Stop a watch. Safe to repeat and to call from its own callback."""
        state = self._watches.pop(handle_id, None)
        if state is None:
            return False
        state.status = WatchStatus.CANCELLED
        state.close_reason = "cancelled"
        task = state.task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info(f"Watch {handle_id} cancelled for {state.credential.uuid}")
        return True

    async def close(self) -> None:
        states = list(self._watches.values())
        for state in states:
            self.cancel(state.handle_id)
        current = _current_task()
        for state in states:
            task = state.task
            if task is None or task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def status_snapshot(self) -> list[dict[str, Any]]:
        return [state.to_status() for state in self._watches.values()]

    async def _run(self, state: WatchState) -> None:
        while state.status is WatchStatus.ACTIVE:
            if await self._wait_next_tick(state):
                self._tear_down(state)
                return
            if state.status is not WatchStatus.ACTIVE:
                return
            await self._tick(state)

    async def _wait_next_tick(self, state: WatchState) -> bool:
        """Sleep one interval; True when the connection hung up meanwhile."""
        connection = state.connection
        if connection.is_closed:
            return True
        try:
            await asyncio.wait_for(connection.wait_closed(), timeout=self.interval_seconds)
        except TimeoutError:
            return connection.is_closed
        return True

    async def _tick(self, state: WatchState) -> None:
        state.ticks += 1
        try:
            envelope = await self.transport.fetch(state.connection, state.credential)
            payload = envelope.json()
        except CloudError as e:
            state.failures += 1
            state.last_error = f"{e.kind.value}: {e}"
            logger.error(f"Watch {state.handle_id} fetch failed for {state.credential.uuid}: {state.last_error}")
            return
        except ValueError as e:
            state.failures += 1
            state.last_error = f"invalid payload: {e}"
            logger.error(f"Watch {state.handle_id} got undecodable payload: {e}")
            return

        if state.status is not WatchStatus.ACTIVE or state.connection.is_closed:
            return
        try:
            result = state.callback(payload, state.user_data)
            if inspect.isawaitable(result):
                await result
            state.deliveries += 1
        except Exception as e:
            logger.error(f"Watch {state.handle_id} callback failed: {e}")

    def _tear_down(self, state: WatchState) -> None:
        if state.status is not WatchStatus.ACTIVE:
            return
        self._watches.pop(state.handle_id, None)
        state.status = WatchStatus.TORN_DOWN
        state.close_reason = state.connection.close_reason or "hangup"
        logger.info(
            f"Watch {state.handle_id} torn down for {state.credential.uuid}: {state.close_reason}"
        )
