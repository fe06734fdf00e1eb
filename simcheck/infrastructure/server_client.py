"""
Server CLI client for simcheck.

Sends provisioning commands to the simulation server's HTTP CLI endpoint.
Every call is awaited by the run controller in order; any failure aborts the
run.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import httpx

from simcheck.utils.logging import get_logger

logger = get_logger("server")


# ============================================================================
# Exceptions
# ============================================================================


class ProvisioningError(Exception):
    """Base exception for failed setup calls."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.command = command
        self.status_code = status_code


class ServerUnavailableError(ProvisioningError):
    """The server could not be reached."""
    pass


class CommandError(ProvisioningError):
    """The server rejected a CLI command."""
    pass


# ============================================================================
# Client
# ============================================================================


class ServerClient:
    """Async client for the simulation server CLI.

    Usage:
        async with ServerClient("http://localhost:21026") as server:
            await server.reset_all_data()
            await server.spawn_bot("simplebot", "W1N1")
    """

    DEFAULT_BASE_URL = "http://localhost:21026"
    CLI_ENDPOINT = "/cli"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self.rooms_seen: dict[str, str] = {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "text/plain"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ServerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def execute(self, command: str) -> str:
        """Run one CLI command and return the server's text reply.

        Raises:
            ServerUnavailableError: If the request could not be sent
            CommandError: If the server answered with an error
        """
        client = await self._get_client()
        logger.debug(f"> {command}")
        try:
            response = await client.post(self.CLI_ENDPOINT, content=command)
        except httpx.HTTPError as exc:
            raise ServerUnavailableError(
                f"Cannot reach server at {self.base_url}: {exc}",
                command=command,
            ) from exc

        if response.status_code >= 400:
            raise CommandError(
                f"Command '{command}' failed with HTTP {response.status_code}: {response.text[:500]}",
                command=command,
                status_code=response.status_code,
            )

        reply = response.text.strip()
        if reply.startswith("Error"):
            raise CommandError(f"Command '{command}' failed: {reply}", command=command)

        logger.debug(f"< {reply}")
        return reply

    async def wait_until_ready(self, timeout: float = 60.0, interval: float = 1.0) -> None:
        """Poll the CLI until it answers or ``timeout`` seconds pass."""
        deadline = time.monotonic() + timeout
        while True:
            try:
                await self.execute("help()")
                return
            except ServerUnavailableError:
                if time.monotonic() >= deadline:
                    raise
                await asyncio.sleep(interval)

    # ------------------------------------------------------------------------
    # Provisioning commands
    # ------------------------------------------------------------------------

    async def reset_all_data(self) -> str:
        return await self.execute("system.resetAllData()")

    async def pause_simulation(self) -> str:
        return await self.execute("system.pauseSimulation()")

    async def resume_simulation(self) -> str:
        return await self.execute("system.resumeSimulation()")

    async def set_tick_duration(self, duration_ms: int) -> str:
        return await self.execute(f"system.setTickDuration({int(duration_ms)})")

    async def remove_bots(self) -> str:
        return await self.execute("utils.removeBots()")

    async def set_shard_name(self, name: str) -> str:
        return await self.execute(f"utils.setShardName({json.dumps(name)})")

    async def spawn_bot(
        self,
        bot: str,
        room: str,
        options: dict[str, Any] | None = None,
    ) -> bool:
        """Spawn ``bot`` into ``room``; returns True once the server confirms.

        Confirmed rooms are recorded in ``rooms_seen``.
        """
        opts = {"username": bot, "auto": True}
        if options:
            opts.update(options)
        command = f"bots.spawn({json.dumps(bot)}, {json.dumps(room)}, {json.dumps(opts)})"
        reply = await self.execute(command)
        if "spawned" not in reply.lower():
            logger.warning(f"Spawn of {bot} in {room} not confirmed: {reply}")
            return False
        self.rooms_seen[room] = bot
        logger.info(f"Spawned {bot} in {room}")
        return True
