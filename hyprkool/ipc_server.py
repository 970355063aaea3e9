"""Unix socket server for hyprkool clients.

Each connection carries exactly one request line. One-shot commands are
handed to the reactor through a request queue and answered with a single
reply line; info commands become streaming tasks fed by the snapshot
broadcast. Connection handlers never touch session state directly.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set, Type, Union

from .broadcast import Broadcast, BroadcastClosed
from .constants import REQUEST_READ_TIMEOUT
from .errors import ProtocolError, SocketBindError
from .event_bridge import request_info
from .models import DaemonEvent, EventKind, InfoEvent, InfoKind
from .protocol import (
    Command,
    CommandMessage,
    DaemonQuit,
    Info,
    InfoCommand,
    IpcErr,
    IpcMessage,
    IpcOk,
    Message,
    MonitorsAllInfo,
    NamedFocus,
    Submap,
    decode_message,
    encode_message,
)

logger = logging.getLogger(__name__)

INFO_KINDS: Dict[Type[InfoCommand], InfoKind] = {
    MonitorsAllInfo: InfoKind.MONITORS,
    Submap: InfoKind.SUBMAP,
    NamedFocus: InfoKind.NAMED_FOCUS,
}


@dataclass
class CommandRequest:
    """One-shot command waiting for the reactor's reply."""

    command: Command
    reply: "asyncio.Future[Message]" = field(repr=False)


@dataclass
class QuitRequest:
    """Sent after a DaemonQuit has been acknowledged."""


Request = Union[CommandRequest, QuitRequest]


class IPCServer:
    """Accepts client connections on the daemon socket."""

    def __init__(
        self,
        socket_path: Path,
        requests: "asyncio.Queue[Request]",
        events: "asyncio.Queue[DaemonEvent]",
        info_bus: Broadcast[InfoEvent],
    ) -> None:
        """Initialize IPC server.

        Args:
            socket_path: Path to bind (must not exist)
            requests: Queue of requests consumed by the reactor
            events: Reactor event queue, used to request fresh snapshots
            info_bus: Snapshot broadcast feeding streaming clients
        """
        self.socket_path = socket_path
        self.requests = requests
        self.events = events
        self.info_bus = info_bus
        self.server: Optional[asyncio.AbstractServer] = None
        self._handlers: Set["asyncio.Task[None]"] = set()

    async def start(self) -> None:
        """Bind the socket and start accepting connections.

        Raises:
            SocketBindError: If the socket cannot be bound
        """
        try:
            self.server = await asyncio.start_unix_server(self._handle_client, path=str(self.socket_path))
        except OSError as e:
            raise SocketBindError(
                f"could not bind {self.socket_path}: {e}",
                context={"path": str(self.socket_path)},
            ) from e

        self.socket_path.chmod(0o600)
        logger.info(f"IPC server listening on {self.socket_path} (permissions: 0600)")

    async def stop(self) -> None:
        """Stop accepting and end every open connection."""
        if self.server:
            self.server.close()

        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)

        if self.server:
            await self.server.wait_closed()
            self.server = None
        logger.info("IPC server stopped")

    @property
    def active_connections(self) -> int:
        return len(self._handlers)

    async def _write(self, writer: asyncio.StreamWriter, message: Message) -> None:
        writer.write(encode_message(message))
        await writer.drain()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Handle a client connection.

        Args:
            reader: Stream reader for the request line
            writer: Stream writer for replies and pushes
        """
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)

        try:
            try:
                line = await asyncio.wait_for(reader.readline(), timeout=REQUEST_READ_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Client sent no request in time, closing connection")
                return
            if not line:
                return

            try:
                message = decode_message(line)
            except ProtocolError as e:
                logger.warning(f"Closing connection after malformed request: {e}")
                return
            if not isinstance(message, CommandMessage):
                logger.warning(f"Closing connection after unexpected message: {message!r}")
                return

            await self._dispatch(message.command, writer)

        except (OSError, ValueError) as e:
            logger.debug(f"Client connection ended: {e}")
        finally:
            if task is not None:
                self._handlers.discard(task)
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def _dispatch(self, command: Command, writer: asyncio.StreamWriter) -> None:
        if isinstance(command, DaemonQuit):
            logger.info("Received DaemonQuit")
            await self._write(writer, IpcOk())
            await self.requests.put(QuitRequest())
        elif isinstance(command, Info):
            await self._stream_info(command, writer)
        else:
            reply: "asyncio.Future[Message]" = asyncio.get_running_loop().create_future()
            await self.requests.put(CommandRequest(command=command, reply=reply))
            await self._write(writer, await reply)

    async def _stream_info(self, command: Info, writer: asyncio.StreamWriter) -> None:
        """Push snapshots of the requested kind until the client goes away.

        Subscribes before asking the reactor for a fresh snapshot so that the
        first push cannot be missed.
        """
        kind = INFO_KINDS[type(command.command)]
        subscription = self.info_bus.subscribe()
        try:
            error = request_info(self.events, DaemonEvent(EventKind.INFO_REQUESTED, info=kind))
            if error is not None:
                await self._write(writer, IpcErr(message=f"error: {error}"))
                return

            while True:
                try:
                    event = await subscription.recv()
                except BroadcastClosed:
                    return
                if event.kind != kind:
                    continue
                await self._write(writer, IpcMessage(payload=event.payload))
                if not command.monitor:
                    return
        finally:
            subscription.close()
