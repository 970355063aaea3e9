"""Mouse edge switching.

On every reactor tick the poller samples the pointer; when it rests on an
edge of the focused monitor the grid wraps one step in that direction and
the pointer is pushed just inside the opposite edge, so the motion feels
continuous across workspaces.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import CommandError
from .grid import format_workspace_name, translate
from .plugin import Animation, PluginNotifier, animation_for
from .state import SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EdgeCrossing:
    """Grid delta and new pointer position (monitor-local) for an edge hit."""

    dx: int
    dy: int
    cursor_x: int
    cursor_y: int

    @property
    def animation(self) -> Animation:
        return animation_for(self.dx, self.dy)


def edge_crossing(
    x: int,
    y: int,
    width: int,
    height: int,
    edge_width: int,
    edge_margin: int,
) -> Optional[EdgeCrossing]:
    """Detect whether a monitor-local pointer position sits on an edge.

    Args:
        x: Pointer x relative to the monitor origin
        y: Pointer y relative to the monitor origin
        width: Logical monitor width
        height: Logical monitor height
        edge_width: Pixels from the border that count as edge
        edge_margin: Distance from the opposite border to warp the pointer to

    Returns:
        The crossing, or None when the pointer is away from every edge
    """
    dx = dy = 0
    new_x, new_y = x, y

    if x <= edge_width:
        dx = -1
        new_x = width - edge_margin
    elif x >= width - 1 - edge_width:
        dx = 1
        new_x = edge_margin

    if y <= edge_width:
        dy = -1
        new_y = height - edge_margin
    elif y >= height - 1 - edge_width:
        dy = 1
        new_y = edge_margin

    if dx == 0 and dy == 0:
        return None
    return EdgeCrossing(dx=dx, dy=dy, cursor_x=new_x, cursor_y=new_y)


class MouseEdgePoller:
    """Timer-driven producer of wrapping grid moves."""

    def __init__(self, state: SessionState, notifier: PluginNotifier) -> None:
        self.state = state
        self.notifier = notifier

    @property
    def enabled(self) -> bool:
        return self.state.config.daemon.mouse.switch_workspace_on_edge

    async def step(self) -> Optional[str]:
        """Sample the pointer once and switch workspace on an edge hit.

        Must run with the state lock held.

        Returns:
            The workspace switched to, or None
        """
        if not self.enabled:
            return None

        mouse = self.state.config.daemon.mouse
        hyprland = self.state.hyprland

        await self.state.update_monitors()
        track = self.state.focused_track()
        if track is None:
            return None
        monitor = track.monitor

        cursor = await hyprland.get_cursor_position()
        local_x = cursor.x - monitor.x
        local_y = cursor.y - monitor.y
        width, height = monitor.logical_width, monitor.logical_height
        if not (0 <= local_x < width and 0 <= local_y < height):
            return None

        crossing = edge_crossing(local_x, local_y, width, height, mouse.edge_width, mouse.edge_margin)
        if crossing is None:
            return None

        try:
            current, parsed = await self.state.current_grid_workspace()
        except CommandError as e:
            logger.debug(f"Ignoring edge hit: {e}")
            return None

        client = await hyprland.get_active_client()
        if client is not None and client.is_fullscreen_exclusive:
            return None

        position = translate(parsed.position, crossing.dx, crossing.dy, self.state.dims, wrap=True)
        target = format_workspace_name(parsed.activity, position, parsed.overview)
        if target == current:
            return None

        await self.notifier.set_workspace_anim(crossing.animation)
        await self.state.move_to_workspace(target)
        await hyprland.move_cursor(monitor.x + crossing.cursor_x, monitor.y + crossing.cursor_y)
        logger.debug(f"Edge switch {current} -> {target}")
        return target
