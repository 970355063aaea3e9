"""Hyprland IPC client.

Talks to the two unix sockets Hyprland exposes per session:

- ``.socket.sock``: one request per connection; ``j/<query>`` returns JSON,
  ``dispatch <op> <arg>`` returns ``ok`` or an error text
- ``.socket2.sock``: push feed of ``EVENT>>DATA`` lines

Every call can fail (compositor restarting, monitor being reconfigured...);
failures surface as :class:`HyprlandError` and callers decide whether they
are command-local or best-effort.
"""

import asyncio
import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .constants import get_instance_signature
from .errors import ErrorCode, EventFeedClosedError, HyprlandError
from .models import Client, CursorPosition, Monitor, Workspace

logger = logging.getLogger(__name__)

EventHandler = Callable[[str], None]


def get_hyprland_socket_dir(signature: Optional[str] = None) -> Path:
    """Directory holding Hyprland's sockets for the current session.

    Newer Hyprland versions use ``$XDG_RUNTIME_DIR/hypr``, older ones ``/tmp/hypr``.
    """
    signature = signature or get_instance_signature()
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        candidate = Path(runtime_dir) / "hypr" / signature
        if candidate.exists():
            return candidate
    return Path("/tmp/hypr") / signature


class HyprlandClient:
    """Async request/response client for Hyprland's control socket."""

    def __init__(self, socket_dir: Optional[Path] = None) -> None:
        """Initialize client.

        Args:
            socket_dir: Hyprland socket directory (defaults to the current session's)
        """
        self.socket_dir = socket_dir or get_hyprland_socket_dir()

    @property
    def request_socket(self) -> Path:
        return self.socket_dir / ".socket.sock"

    @property
    def event_socket(self) -> Path:
        return self.socket_dir / ".socket2.sock"

    async def _request(self, payload: str) -> str:
        try:
            reader, writer = await asyncio.open_unix_connection(str(self.request_socket))
        except OSError as e:
            raise HyprlandError(f"Could not connect to Hyprland at {self.request_socket}: {e}") from e

        try:
            writer.write(payload.encode())
            await writer.drain()
            data = await reader.read()
        except OSError as e:
            raise HyprlandError(f"Hyprland request '{payload}' failed: {e}") from e
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

        return data.decode(errors="replace")

    async def _query(self, name: str) -> Any:
        reply = await self._request(f"j/{name}")
        try:
            return json.loads(reply)
        except json.JSONDecodeError as e:
            raise HyprlandError(f"Invalid JSON from Hyprland for '{name}': {reply[:200]!r}") from e

    async def get_monitors(self) -> List[Monitor]:
        data = await self._query("monitors")
        try:
            return [Monitor.model_validate(m) for m in data]
        except (TypeError, ValidationError) as e:
            raise HyprlandError(f"Unexpected monitors reply: {e}") from e

    async def get_active_workspace(self) -> Workspace:
        data = await self._query("activeworkspace")
        try:
            return Workspace.model_validate(data)
        except ValidationError as e:
            raise HyprlandError(f"Unexpected active workspace reply: {e}") from e

    async def get_workspaces(self) -> List[Workspace]:
        data = await self._query("workspaces")
        try:
            return [Workspace.model_validate(w) for w in data]
        except (TypeError, ValidationError) as e:
            raise HyprlandError(f"Unexpected workspaces reply: {e}") from e

    async def get_active_client(self) -> Optional[Client]:
        """Focused window, or None when nothing is focused."""
        data = await self._query("activewindow")
        if not data:
            return None
        try:
            return Client.model_validate(data)
        except ValidationError as e:
            raise HyprlandError(f"Unexpected active window reply: {e}") from e

    async def get_clients(self) -> List[Client]:
        data = await self._query("clients")
        try:
            return [Client.model_validate(c) for c in data]
        except (TypeError, ValidationError) as e:
            raise HyprlandError(f"Unexpected clients reply: {e}") from e

    async def get_cursor_position(self) -> CursorPosition:
        data = await self._query("cursorpos")
        try:
            return CursorPosition.model_validate(data)
        except ValidationError as e:
            raise HyprlandError(f"Unexpected cursor position reply: {e}") from e

    async def dispatch(self, op: str, arg: str = "") -> None:
        """Run a Hyprland dispatcher.

        Raises:
            HyprlandError: If Hyprland does not acknowledge the dispatch
        """
        command = f"dispatch {op} {arg}".rstrip()
        reply = (await self._request(command)).strip()
        if reply != "ok":
            raise HyprlandError(
                f"'{command}' failed: {reply or 'no reply'}",
                code=ErrorCode.HYPRLAND_DISPATCH_FAILED,
            )
        logger.debug(f"Dispatched: {command}")

    # Dispatcher shortcuts

    async def focus_workspace(self, name: str) -> None:
        await self.dispatch("workspace", f"name:{name}")

    async def move_to_workspace(self, name: str, silent: bool = False) -> None:
        op = "movetoworkspacesilent" if silent else "movetoworkspace"
        await self.dispatch(op, f"name:{name}")

    async def move_to_special_workspace(self, name: str, silent: bool = False) -> None:
        op = "movetoworkspacesilent" if silent else "movetoworkspace"
        await self.dispatch(op, f"special:{name}")

    async def toggle_special_workspace(self, name: str) -> None:
        await self.dispatch("togglespecialworkspace", name)

    async def focus_window(self, address: str) -> None:
        await self.dispatch("focuswindow", f"address:{address}")

    async def focus_monitor(self, name: str) -> None:
        await self.dispatch("focusmonitor", name)

    async def move_window_to_monitor(self, name: str) -> None:
        await self.dispatch("movewindow", f"mon:{name}")

    async def swap_active_workspaces(self, monitor_1: str, monitor_2: str) -> None:
        await self.dispatch("swapactiveworkspaces", f"{monitor_1} {monitor_2}")

    async def move_cursor(self, x: int, y: int) -> None:
        await self.dispatch("movecursor", f"{x} {y}")


class HyprlandEventListener:
    """Reader for Hyprland's event socket.

    Handlers are registered per event name and called synchronously with the
    raw event data; they must not block.
    """

    def __init__(self, event_socket: Path) -> None:
        self.event_socket = event_socket
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def _dispatch_line(self, line: str) -> None:
        name, sep, data = line.partition(">>")
        if not sep:
            logger.debug(f"Ignoring malformed event line: {line!r}")
            return
        for handler in self._handlers.get(name, []):
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Event handler for '{name}' failed: {e}", exc_info=True)

    async def run(self) -> None:
        """Read events until the socket closes.

        Raises:
            EventFeedClosedError: Always, once the feed ends or cannot be opened
        """
        try:
            reader, writer = await asyncio.open_unix_connection(str(self.event_socket))
        except OSError as e:
            raise EventFeedClosedError(f"Could not connect to Hyprland events at {self.event_socket}: {e}") from e

        logger.info(f"Listening for Hyprland events on {self.event_socket}")
        try:
            while True:
                try:
                    line = await reader.readline()
                except (OSError, ValueError) as e:
                    raise EventFeedClosedError(f"Hyprland event socket failed: {e}") from e
                if not line:
                    raise EventFeedClosedError("Hyprland event socket closed")
                self._dispatch_line(line.decode(errors="replace").rstrip("\n"))
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
