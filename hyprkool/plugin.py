"""Animation hints for the hyprkool compositor plugin.

The plugin listens on ``plugin.sock`` and reads a single integer telling it
which direction the next workspace transition should slide in. Delivery is
opportunistic: a missing or slow plugin never fails a workspace switch.
"""

import asyncio
import contextlib
import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

from .constants import HANDOFF_TIMEOUT

logger = logging.getLogger(__name__)


class Animation(IntEnum):
    """Workspace transition direction understood by the plugin."""

    NONE = 0
    LEFT = 1
    RIGHT = 2
    UP = 3
    DOWN = 4
    FADE = 5


def animation_for(dx: int, dy: int) -> Animation:
    """Pick the transition for a grid move by ``(dx, dy)``.

    Moves along both axes at once have no direction and fade.
    """
    if dx and dy:
        return Animation.FADE
    if dx < 0:
        return Animation.LEFT
    if dx > 0:
        return Animation.RIGHT
    if dy < 0:
        return Animation.UP
    if dy > 0:
        return Animation.DOWN
    return Animation.NONE


class PluginNotifier:
    """Best-effort sender for plugin animation hints."""

    def __init__(self, socket_path: Optional[Path], timeout: float = HANDOFF_TIMEOUT) -> None:
        """Initialize notifier.

        Args:
            socket_path: Plugin socket, or None to disable hints entirely
            timeout: Upper bound for connecting and writing one hint
        """
        self.socket_path = socket_path
        self.timeout = timeout

    async def _send(self, value: int) -> None:
        assert self.socket_path is not None
        _, writer = await asyncio.open_unix_connection(str(self.socket_path))
        try:
            writer.write(f"{value}\n".encode())
            await writer.drain()
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def set_workspace_anim(self, anim: Animation) -> bool:
        """Send an animation hint.

        Returns:
            True if the hint was delivered
        """
        if self.socket_path is None:
            return False
        try:
            await asyncio.wait_for(self._send(int(anim)), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Could not set workspace animation {anim.name}: {e}")
            return False
        logger.debug(f"Workspace animation set to {anim.name}")
        return True

    async def is_plugin_running(self) -> bool:
        return await self.set_workspace_anim(Animation.NONE)
