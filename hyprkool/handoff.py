"""Startup handoff between daemon instances.

A starting daemon claims an exclusive ``flock`` on ``kool.lock`` before it
touches the socket. While a previous daemon still holds the lock, the new one
keeps asking it to quit over the socket until the lock is released or the
deadline passes. Only the lock holder ever unlinks or binds the socket, so
two daemons can never be bound at the same time.
"""

import asyncio
import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

from .client import send_command
from .constants import HANDOFF_TIMEOUT, TAKEOVER_DEADLINE, TAKEOVER_POLL_INTERVAL
from .errors import DaemonUnavailableError, ProtocolError, SocketBindError
from .protocol import DaemonQuit, IpcErr

logger = logging.getLogger(__name__)


class DaemonLock:
    """Exclusive per-session instance lock."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """Take the lock without blocking.

        Returns:
            False if another process (or another open of the file) holds it
        """
        if self._fd is not None:
            return True
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired instance lock {self.path}")
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug(f"Released instance lock {self.path}")


async def request_quit(socket_path: Path, timeout: float = HANDOFF_TIMEOUT) -> bool:
    """Ask whatever listens on ``socket_path`` to quit.

    Returns:
        True if a daemon answered
    """
    try:
        reply = await send_command(socket_path, DaemonQuit(), timeout=timeout)
    except DaemonUnavailableError as e:
        logger.debug(f"No daemon answered the quit request: {e}")
        return False
    except ProtocolError as e:
        logger.warning(f"Unreadable reply to quit request: {e}")
        return True
    if isinstance(reply, IpcErr):
        logger.warning(f"Previous daemon refused to quit: {reply.message}")
    else:
        logger.info("Previous daemon acknowledged quit")
    return True


async def take_over(socket_path: Path, lock_path: Path, deadline: float = TAKEOVER_DEADLINE) -> DaemonLock:
    """Become the only daemon of this session.

    Args:
        socket_path: Daemon socket that will be bound afterwards
        lock_path: Instance lock file
        deadline: Seconds to wait for a previous daemon to let go

    Returns:
        The held instance lock; release it on shutdown

    Raises:
        SocketBindError: If the previous daemon does not exit in time
    """
    lock = DaemonLock(lock_path)
    loop = asyncio.get_running_loop()
    give_up_at = loop.time() + deadline

    while not lock.try_acquire():
        if loop.time() >= give_up_at:
            raise SocketBindError(
                f"previous daemon still holds {lock_path} after {deadline:.1f}s",
                suggestion="Stop the running hyprkool daemon manually",
                context={"lock": str(lock_path)},
            )
        if socket_path.exists():
            await request_quit(socket_path)
        await asyncio.sleep(TAKEOVER_POLL_INTERVAL)

    # A daemon without the lock may still be listening
    if socket_path.exists():
        await request_quit(socket_path)
        try:
            socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            lock.release()
            raise SocketBindError(f"could not delete previous socket at {socket_path}: {e}") from e
        logger.info(f"Removed stale socket {socket_path}")

    return lock
