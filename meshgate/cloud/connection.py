"""Caller-owned cloud connection shared by every exchange of one session."""

from __future__ import annotations

import asyncio
import uuid

import httpx
from loguru import logger


class CloudConnection:
    """One kept-alive HTTP connection plus its hang-up signal.

    The executor runs exchanges on ``client`` without closing it. Closing or
    invalidating the connection wakes every watch monitoring it.
    """

    def __init__(self, client: httpx.AsyncClient, *, label: str = "") -> None:
        self.client = client
        self.connection_id = label or uuid.uuid4().hex[:8]
        self.close_reason = ""
        self._closed = asyncio.Event()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def invalidate(self, reason: str = "invalidated") -> None:
        """Mark the connection unusable without awaiting client teardown."""
        if self._closed.is_set():
            return
        self.close_reason = str(reason or "invalidated")
        self._closed.set()
        logger.info(f"Cloud connection {self.connection_id} closed: {self.close_reason}")

    async def aclose(self, reason: str = "closed") -> None:
        self.invalidate(reason)
        if not self.client.is_closed:
            await self.client.aclose()

    async def wait_closed(self) -> str:
        await self._closed.wait()
        return self.close_reason

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"CloudConnection({self.connection_id}, {state})"
