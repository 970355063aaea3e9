"""
Integration tests for the daemon socket server and its client.

A small task stands in for the reactor: it answers queued command requests
and turns INFO_REQUESTED events into broadcast snapshots.
"""

import asyncio
import contextlib
import json
from typing import List

import pytest

from hyprkool.broadcast import Broadcast
from hyprkool.client import send_command, stream_info
from hyprkool.errors import CommandError, DaemonUnavailableError
from hyprkool.ipc_server import IPCServer, QuitRequest
from hyprkool.models import DaemonEvent, EventKind, InfoEvent, InfoKind
from hyprkool.protocol import (
    Command,
    DaemonQuit,
    Info,
    IpcErr,
    IpcOk,
    MonitorsAllInfo,
    MoveRight,
    Submap,
    SwitchToActivity,
)


pytestmark = pytest.mark.integration


class ReactorStub:
    """Consumes the server's queues like the daemon reactor would."""

    def __init__(self) -> None:
        self.requests: asyncio.Queue = asyncio.Queue()
        self.events: asyncio.Queue = asyncio.Queue(maxsize=100)
        self.info_bus: Broadcast[InfoEvent] = Broadcast(100)
        self.commands: List[Command] = []
        self.quit = asyncio.Event()
        self.pushes = 0

    async def serve_requests(self) -> None:
        while True:
            request = await self.requests.get()
            if isinstance(request, QuitRequest):
                self.quit.set()
                continue
            self.commands.append(request.command)
            if isinstance(request.command, SwitchToActivity) and request.command.name == "bad":
                request.reply.set_result(IpcErr(message="error: invalid activity name 'bad'"))
            else:
                request.reply.set_result(IpcOk())

    async def serve_events(self) -> None:
        while True:
            event: DaemonEvent = await self.events.get()
            if event.kind == EventKind.INFO_REQUESTED:
                self.publish(event.info)

    def publish(self, kind: InfoKind) -> None:
        self.pushes += 1
        self.info_bus.send(InfoEvent(kind=kind, payload=json.dumps({"push": self.pushes})))


@pytest.fixture
def stub() -> ReactorStub:
    return ReactorStub()


@pytest.fixture
def server_factory(socket_dir, stub):
    """Start an IPCServer plus the reactor stub; stops both afterwards."""
    started = []

    async def start() -> IPCServer:
        server = IPCServer(socket_dir / "kool.sock", stub.requests, stub.events, stub.info_bus)
        await server.start()
        tasks = [asyncio.create_task(stub.serve_requests()), asyncio.create_task(stub.serve_events())]
        started.append((server, tasks))
        return server

    return start, started


@contextlib.asynccontextmanager
async def running_server(server_factory):
    start, started = server_factory
    server = await start()
    try:
        yield server
    finally:
        for srv, tasks in started:
            await srv.stop()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


class TestOneShotCommands:
    """Test request/reply commands."""

    @pytest.mark.asyncio
    async def test_command_round_trip(self, server_factory, stub):
        async with running_server(server_factory) as server:
            reply = await send_command(server.socket_path, MoveRight(cycle=True), timeout=2.0)

        assert reply == IpcOk()
        assert stub.commands == [MoveRight(cycle=True)]

    @pytest.mark.asyncio
    async def test_error_reply(self, server_factory):
        async with running_server(server_factory) as server:
            reply = await send_command(server.socket_path, SwitchToActivity(name="bad"), timeout=2.0)

        assert reply == IpcErr(message="error: invalid activity name 'bad'")

    @pytest.mark.asyncio
    async def test_socket_is_private(self, server_factory):
        async with running_server(server_factory) as server:
            assert server.socket_path.stat().st_mode & 0o777 == 0o600

    @pytest.mark.asyncio
    async def test_quit_is_acknowledged_before_shutdown(self, server_factory, stub):
        async with running_server(server_factory) as server:
            reply = await send_command(server.socket_path, DaemonQuit(), timeout=2.0)
            await asyncio.wait_for(stub.quit.wait(), timeout=2.0)

        assert reply == IpcOk()
        assert stub.commands == []

    @pytest.mark.asyncio
    async def test_malformed_line_closes_connection(self, server_factory, stub):
        async with running_server(server_factory) as server:
            reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
            writer.write(b"{this is not json\n")
            await writer.drain()

            assert await asyncio.wait_for(reader.read(), timeout=2.0) == b""
            writer.close()

            # The server keeps serving other clients
            assert await send_command(server.socket_path, MoveRight(), timeout=2.0) == IpcOk()

        assert stub.commands == [MoveRight()]

    @pytest.mark.asyncio
    async def test_reply_message_from_client_is_rejected(self, server_factory):
        async with running_server(server_factory) as server:
            reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
            writer.write(b'"IpcOk"\n')
            await writer.drain()

            assert await asyncio.wait_for(reader.read(), timeout=2.0) == b""
            writer.close()


class TestClientFailures:
    """Test the client never hangs on a broken daemon."""

    @pytest.mark.asyncio
    async def test_no_daemon(self, socket_dir):
        with pytest.raises(DaemonUnavailableError):
            await send_command(socket_dir / "kool.sock", MoveRight())

    @pytest.mark.asyncio
    async def test_silent_daemon_times_out(self, socket_dir):
        """Test a daemon that accepts but never replies surfaces as unavailable."""
        hold = asyncio.Event()

        async def never_reply(reader, writer):
            await hold.wait()
            writer.close()

        path = socket_dir / "kool.sock"
        server = await asyncio.start_unix_server(never_reply, path=str(path))
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            with pytest.raises(DaemonUnavailableError, match="timeout"):
                await send_command(path, MoveRight(), timeout=0.2)
        finally:
            hold.set()
            server.close()
            await server.wait_closed()

        assert loop.time() - started < 2.0

    @pytest.mark.asyncio
    async def test_daemon_closing_mid_request(self, socket_dir):
        async def hang_up(reader, writer):
            await reader.readline()
            writer.close()

        path = socket_dir / "kool.sock"
        server = await asyncio.start_unix_server(hang_up, path=str(path))
        try:
            with pytest.raises(DaemonUnavailableError):
                await send_command(path, MoveRight(), timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()


class TestInfoStreaming:
    """Test info subscriptions."""

    @pytest.mark.asyncio
    async def test_one_shot_info_gets_one_payload(self, server_factory):
        async with running_server(server_factory) as server:
            payloads = [
                p async for p in stream_info(server.socket_path, Info(command=MonitorsAllInfo()), connect_timeout=2.0)
            ]

        assert payloads == [json.dumps({"push": 1})]

    @pytest.mark.asyncio
    async def test_monitor_mode_streams_every_push(self, server_factory, stub):
        async with running_server(server_factory) as server:
            stream = stream_info(server.socket_path, Info(command=Submap(), monitor=True), connect_timeout=2.0)
            first = await asyncio.wait_for(stream.__anext__(), timeout=2.0)
            stub.publish(InfoKind.MONITORS)
            stub.publish(InfoKind.SUBMAP)
            second = await asyncio.wait_for(stream.__anext__(), timeout=2.0)
            await stream.aclose()

        assert json.loads(first) == {"push": 1}
        # The MONITORS push is filtered out
        assert json.loads(second) == {"push": 3}

    @pytest.mark.asyncio
    async def test_busy_daemon_reports_error(self, socket_dir, stub):
        """Test a full event queue turns into an error reply instead of blocking."""
        for _ in range(100):
            stub.events.put_nowait(DaemonEvent(EventKind.WORKSPACE_CHANGED))
        server = IPCServer(socket_dir / "kool.sock", stub.requests, stub.events, stub.info_bus)
        await server.start()
        try:
            with pytest.raises(CommandError, match="busy"):
                async for _ in stream_info(server.socket_path, Info(command=Submap()), connect_timeout=2.0):
                    pass
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_stop_ends_streams(self, server_factory):
        start, started = server_factory
        server = await start()
        stream = stream_info(server.socket_path, Info(command=Submap(), monitor=True), connect_timeout=2.0)
        await asyncio.wait_for(stream.__anext__(), timeout=2.0)
        assert server.active_connections == 1

        await asyncio.wait_for(server.stop(), timeout=2.0)

        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), timeout=2.0)
        for task in started[0][1]:
            task.cancel()
        await asyncio.gather(*started[0][1], return_exceptions=True)
