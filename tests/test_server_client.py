"""Server Client Tests.

Tests for CLI command delivery and provisioning error mapping.
"""

import httpx
import pytest

from simcheck.infrastructure.server_client import (
    CommandError,
    ServerClient,
    ServerUnavailableError,
)


def _recording_transport(commands, reply=lambda command: "OK"):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/cli"
        command = request.content.decode()
        commands.append(command)
        result = reply(command)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, text=result)

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_provisioning_commands():
    commands = []
    async with ServerClient(transport=_recording_transport(commands)) as server:
        await server.reset_all_data()
        await server.pause_simulation()
        await server.set_tick_duration(100)
        await server.remove_bots()
        await server.set_shard_name("performanceServer")
        await server.resume_simulation()

    assert commands == [
        "system.resetAllData()",
        "system.pauseSimulation()",
        "system.setTickDuration(100)",
        "utils.removeBots()",
        'utils.setShardName("performanceServer")',
        "system.resumeSimulation()",
    ]


@pytest.mark.asyncio
async def test_spawn_bot_records_confirmed_room():
    commands = []
    transport = _recording_transport(commands, lambda command: "User simplebot with bot AI spawned in W1N1")
    async with ServerClient(transport=transport) as server:
        assert await server.spawn_bot("simplebot", "W1N1") is True

    assert server.rooms_seen == {"W1N1": "simplebot"}
    assert commands[0].startswith('bots.spawn("simplebot", "W1N1", ')


@pytest.mark.asyncio
async def test_spawn_bot_unconfirmed():
    transport = _recording_transport([], lambda command: "Nothing happened")
    async with ServerClient(transport=transport) as server:
        assert await server.spawn_bot("simplebot", "W1N1") is False

    assert server.rooms_seen == {}


@pytest.mark.asyncio
async def test_http_error_raises_command_error():
    transport = _recording_transport([], lambda command: httpx.Response(500, text="boom"))
    async with ServerClient(transport=transport) as server:
        with pytest.raises(CommandError) as exc_info:
            await server.reset_all_data()

    assert exc_info.value.status_code == 500
    assert exc_info.value.command == "system.resetAllData()"


@pytest.mark.asyncio
async def test_error_reply_raises_command_error():
    transport = _recording_transport([], lambda command: "Error: unknown function")
    async with ServerClient(transport=transport) as server:
        with pytest.raises(CommandError):
            await server.remove_bots()


@pytest.mark.asyncio
async def test_unreachable_server():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with ServerClient(transport=httpx.MockTransport(handler)) as server:
        with pytest.raises(ServerUnavailableError):
            await server.execute("help()")


@pytest.mark.asyncio
async def test_wait_until_ready_retries():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("starting", request=request)
        return httpx.Response(200, text="ready")

    async with ServerClient(transport=httpx.MockTransport(handler)) as server:
        await server.wait_until_ready(timeout=5, interval=0)

    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_wait_until_ready_gives_up():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    async with ServerClient(transport=httpx.MockTransport(handler)) as server:
        with pytest.raises(ServerUnavailableError):
            await server.wait_until_ready(timeout=0, interval=0)


def test_api_key_header():
    assert ServerClient(api_key="secret").headers["Authorization"] == "Bearer secret"
    assert "Authorization" not in ServerClient().headers
