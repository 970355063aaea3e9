"""Client side of the daemon socket protocol.

Used by the CLI and by a starting daemon asking its predecessor to quit.
Every wait is bounded, so a daemon that dies mid-request surfaces as
:class:`DaemonUnavailableError` instead of a hung read.
"""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

from .constants import REPLY_TIMEOUT
from .errors import CommandError, DaemonUnavailableError, ProtocolError
from .protocol import Command, CommandMessage, Info, IpcErr, IpcMessage, Message, decode_message, encode_message

logger = logging.getLogger(__name__)


async def _connect(socket_path: Path) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    try:
        return await asyncio.open_unix_connection(str(socket_path))
    except OSError as e:
        raise DaemonUnavailableError(f"could not connect to hyprkool at {socket_path}: {e}") from e


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()


async def _roundtrip(socket_path: Path, command: Command) -> Message:
    reader, writer = await _connect(socket_path)
    try:
        writer.write(encode_message(CommandMessage(command=command)))
        await writer.drain()
        line = await reader.readline()
    except OSError as e:
        raise DaemonUnavailableError(f"connection to hyprkool lost: {e}") from e
    finally:
        await _close(writer)

    if not line:
        raise DaemonUnavailableError("hyprkool closed the connection without replying")
    return decode_message(line)


async def send_command(socket_path: Path, command: Command, timeout: Optional[float] = REPLY_TIMEOUT) -> Message:
    """Send a one-shot command and wait for its single reply.

    Args:
        socket_path: Daemon socket
        command: Command to send
        timeout: Seconds to wait for the reply (None waits forever)

    Returns:
        IpcOk or IpcErr

    Raises:
        DaemonUnavailableError: On refused connection, reset, EOF or timeout
        ProtocolError: If the reply cannot be decoded
    """
    try:
        return await asyncio.wait_for(_roundtrip(socket_path, command), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise DaemonUnavailableError(f"timeout. could not connect to hyprkool at {socket_path}") from e


async def stream_info(
    socket_path: Path,
    command: Info,
    connect_timeout: float = REPLY_TIMEOUT,
) -> AsyncIterator[str]:
    """Yield the JSON payloads pushed for an info command until EOF.

    Raises:
        DaemonUnavailableError: If the daemon cannot be reached
        CommandError: If the daemon answers with an error
    """
    try:
        reader, writer = await asyncio.wait_for(_connect(socket_path), timeout=connect_timeout)
    except asyncio.TimeoutError as e:
        raise DaemonUnavailableError(f"timeout. could not connect to hyprkool at {socket_path}") from e

    try:
        writer.write(encode_message(CommandMessage(command=command)))
        await writer.drain()
        while True:
            line = await reader.readline()
            if not line:
                return
            message = decode_message(line)
            if isinstance(message, IpcMessage):
                yield message.payload
            elif isinstance(message, IpcErr):
                raise CommandError(message.message)
            else:
                raise ProtocolError(f"unexpected message from daemon: {message!r}")
    except OSError as e:
        raise DaemonUnavailableError(f"connection to hyprkool lost: {e}") from e
    finally:
        await _close(writer)
