"""
Event feeds for simcheck.

A feed yields :class:`TickEvent` records in the order the simulation
produced them. Feeds are not retried: when the stream ends, the run simply
stops receiving ticks.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from simcheck.core.models import TickEvent
from simcheck.utils.logging import get_logger

logger = get_logger("feed")


@runtime_checkable
class EventFeed(Protocol):
    """Source of snapshot events."""

    def events(self) -> AsyncIterator[TickEvent]:
        """Yield events until the stream ends."""
        ...


class QueueEventFeed:
    """In-memory feed backed by an ``asyncio.Queue``."""

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    async def put(self, event: TickEvent | dict[str, Any]) -> None:
        if isinstance(event, dict):
            event = TickEvent.from_record(event)
        await self._queue.put(event)

    async def close(self) -> None:
        await self._queue.put(self._CLOSED)

    async def events(self) -> AsyncIterator[TickEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class HttpEventFeed:
    """Streams newline-delimited JSON snapshots from an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/x-ndjson"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def events(self) -> AsyncIterator[TickEvent]:
        # No read timeout: ticks may be far apart
        timeout = httpx.Timeout(self.timeout, read=None)
        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=timeout,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", self.url) as response:
                response.raise_for_status()
                logger.info(f"Following event feed at {self.url}")
                async for line in response.aiter_lines():
                    event = self._parse_line(line)
                    if event is not None:
                        yield event
        logger.info("Event feed ended")

    @staticmethod
    def _parse_line(line: str) -> TickEvent | None:
        line = line.strip()
        if not line:
            return None
        if line.startswith("data:"):
            line = line[len("data:"):].strip()
        try:
            record = json.loads(line)
            if not isinstance(record, dict):
                raise ValueError("record is not an object")
            return TickEvent.from_record(record)
        except (json.JSONDecodeError, ValueError, ValidationError) as exc:
            logger.warning(f"Skipping malformed feed record: {exc}")
            return None
