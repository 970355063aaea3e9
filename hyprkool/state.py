"""Session state for the hyprkool daemon.

:class:`SessionState` is the single mutable aggregate of a daemon process:
the ordered activities, the workspace grid of each activity, the monitors the
compositor currently reports (with per-activity position memory), the named
focus bookmarks and the active submap.

None of the methods here take :attr:`SessionState.lock` themselves; the
reactor holds it around every event, request and tick it processes, and any
other caller must do the same.
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional, Set, Tuple

from pydantic import TypeAdapter

from .config import Config
from .errors import CommandError, ErrorCode
from .grid import (
    GridPosition,
    ParsedWorkspace,
    format_workspace_name,
    is_valid_activity_name,
    iter_positions,
    parse_workspace_name,
    translate,
)
from .hyprland import HyprlandClient
from .models import (
    ActivityStatus,
    Client,
    InfoKind,
    MonitorStatus,
    MonitorTrack,
    SubmapStatus,
    WindowStatus,
    WorkspaceRef,
    WorkspaceStatus,
)

logger = logging.getLogger(__name__)

_MONITOR_STATUS_LIST = TypeAdapter(List[MonitorStatus])

Cell = Tuple[str, GridPosition]


class SessionState:
    """Daemon-wide state, exclusively owned by the reactor."""

    def __init__(self, config: Config, hyprland: HyprlandClient) -> None:
        """Initialize state from configuration.

        Args:
            config: Validated configuration
            hyprland: Compositor control client
        """
        self.config = config
        self.hyprland = hyprland
        self.activities: List[str] = list(config.activities)
        self.workspaces: List[List[str]] = [self._grid_names(a) for a in self.activities]
        self.monitors: Dict[int, MonitorTrack] = {}
        self.named_focus: Dict[str, str] = {}
        self.submap: str = ""
        # Guards every mutation; held by the reactor for each step
        self.lock = asyncio.Lock()

    @classmethod
    async def create(cls, config: Config, hyprland: HyprlandClient) -> "SessionState":
        """Build state and load the current monitor set.

        Raises:
            HyprlandError: If the compositor cannot be queried
        """
        state = cls(config, hyprland)
        await state.update_monitors()
        return state

    @property
    def dims(self) -> Tuple[int, int]:
        return self.config.workspaces

    def _grid_names(self, activity: str) -> List[str]:
        return [format_workspace_name(activity, pos) for pos in iter_positions(self.dims)]

    # Lookup

    def get_activity_index(self, name: str) -> Optional[int]:
        """Index of the activity a workspace name belongs to, by prefix."""
        for index, activity in enumerate(self.activities):
            if name.startswith(activity + ":"):
                return index
        return None

    def get_indices(self, name: str) -> Optional[Tuple[int, Optional[int]]]:
        """Resolve ``(activity index, workspace index)`` for a workspace name.

        The workspace index is None when the name starts with a known
        activity but is not one of its grid cells (e.g. an overview).
        """
        activity_index = self.get_activity_index(name)
        if activity_index is None:
            return None
        try:
            workspace_index: Optional[int] = self.workspaces[activity_index].index(name)
        except ValueError:
            workspace_index = None
        return activity_index, workspace_index

    def parse_managed(self, name: str) -> Optional[ParsedWorkspace]:
        """Parse ``name`` if it is a cell of a known activity's grid."""
        parsed = parse_workspace_name(name)
        if parsed is None or parsed.activity not in self.activities:
            return None
        if not parsed.position.in_bounds(self.dims):
            return None
        return parsed

    async def current_grid_workspace(self) -> Tuple[str, ParsedWorkspace]:
        """Name and parsed form of the active workspace.

        Raises:
            CommandError: If the active workspace is not managed by hyprkool
        """
        workspace = await self.hyprland.get_active_workspace()
        parsed = self.parse_managed(workspace.name)
        if parsed is None:
            raise CommandError(
                f"not in a valid activity workspace: {workspace.name}",
                code=ErrorCode.NOT_IN_ACTIVITY,
            )
        return workspace.name, parsed

    def focused_track(self) -> Optional[MonitorTrack]:
        for track in self.monitors.values():
            if track.monitor.focused:
                return track
        return None

    def track_by_name(self, name: str) -> Optional[MonitorTrack]:
        for track in self.monitors.values():
            if track.name == name:
                return track
        return None

    def ordered_monitors(self) -> List[MonitorTrack]:
        """Enabled monitors in layout order (left to right, top to bottom)."""
        tracks = [t for t in self.monitors.values() if not t.monitor.disabled]
        return sorted(tracks, key=lambda t: (t.monitor.x, t.monitor.y, t.id))

    # Monitors

    async def update_monitors(self) -> None:
        """Re-read monitors from the compositor.

        Adds newly seen monitors, refreshes attributes of known ones and drops
        the ones that disappeared. The current workspace of every monitor is
        recorded as its last visited position in that activity.

        Raises:
            HyprlandError: If the monitor query fails; state is left untouched
        """
        monitors = await self.hyprland.get_monitors()

        seen: Set[int] = set()
        for monitor in monitors:
            seen.add(monitor.id)
            track = self.monitors.get(monitor.id)
            if track is None:
                self.monitors[monitor.id] = MonitorTrack(monitor)
                logger.info(f"Tracking monitor {monitor.name} (id={monitor.id})")
            else:
                track.monitor = monitor
            self.remember_workspace(monitor.active_workspace.name, monitor.id)

        for monitor_id in set(self.monitors) - seen:
            track = self.monitors.pop(monitor_id)
            logger.info(f"Monitor {track.name} (id={monitor_id}) is gone")

    def _occupied_cells(self, exclude_id: int) -> Set[Cell]:
        cells: Set[Cell] = set()
        for track in self.monitors.values():
            if track.id == exclude_id or track.monitor.disabled:
                continue
            parsed = parse_workspace_name(track.current_workspace)
            if parsed is not None:
                cells.add((parsed.activity, parsed.position))
        return cells

    def free_cell(self, monitor_id: int) -> Optional[str]:
        """First cell, in activity priority order, not shown on another live monitor."""
        occupied = self._occupied_cells(monitor_id)
        for activity in self.activities:
            for pos in iter_positions(self.dims):
                if (activity, pos) not in occupied:
                    return format_workspace_name(activity, pos)
        return None

    async def move_monitor_to_valid_activity(self, monitor_name: str, focus_back: bool = True) -> Optional[str]:
        """Put a monitor on a free hyprkool workspace.

        Monitors already showing a managed workspace are left alone.

        Args:
            monitor_name: Compositor name of the monitor
            focus_back: Refocus the previously focused monitor afterwards

        Returns:
            The workspace the monitor was moved to, or None if nothing changed
        """
        track = self.track_by_name(monitor_name)
        if track is None:
            raise CommandError(f"no monitor named {monitor_name}", code=ErrorCode.MONITOR_NOT_FOUND)
        if self.parse_managed(track.current_workspace) is not None:
            return None

        target = self.free_cell(track.id)
        if target is None:
            logger.warning(f"No free hyprkool workspace left for monitor {monitor_name}")
            return None

        previous = self.focused_track()
        await self.hyprland.focus_monitor(track.name)
        await self.hyprland.focus_workspace(target)
        if focus_back and previous is not None and previous.id != track.id:
            await self.hyprland.focus_monitor(previous.name)

        # Reflect the move until the next refresh so later assignments see it
        track.monitor = track.monitor.model_copy(
            update={"active_workspace": WorkspaceRef(id=track.monitor.active_workspace.id, name=target)}
        )
        logger.info(f"Moved monitor {monitor_name} to {target}")
        return target

    # Activities and workspaces

    def ensure_activity(self, name: str) -> int:
        """Index of activity ``name``, appending it (with its grid) if new.

        Raises:
            CommandError: If the name is not a valid activity name
        """
        if not is_valid_activity_name(name):
            raise CommandError(f"invalid activity name '{name}'", code=ErrorCode.INVALID_NAME)
        if name in self.activities:
            return self.activities.index(name)
        self.activities.append(name)
        self.workspaces.append(self._grid_names(name))
        logger.info(f"Created activity {name}")
        return len(self.activities) - 1

    def remember_workspace(self, name: str, monitor_id: Optional[int] = None) -> None:
        """Record ``name`` as the last visited position of its activity on a monitor."""
        parsed = self.parse_managed(name)
        if parsed is None:
            return
        track = self.monitors.get(monitor_id) if monitor_id is not None else self.focused_track()
        if track is not None:
            track.last_positions[parsed.activity] = parsed.position

    def activity_workspace(self, activity: str, position: GridPosition, monitor_id: Optional[int] = None) -> str:
        """Workspace to land on when switching to ``activity``.

        The remembered position on the monitor wins when activity focus is
        remembered, otherwise the grid position is kept.
        """
        if self.config.daemon.remember_activity_focus:
            track = self.monitors.get(monitor_id) if monitor_id is not None else self.focused_track()
            remembered = track.last_positions.get(activity) if track is not None else None
            if remembered is not None and remembered.in_bounds(self.dims):
                position = remembered
        return format_workspace_name(activity, position)

    async def moved_workspace(self, dx: int, dy: int, cycle: bool) -> Tuple[str, str]:
        """Workspace ``(dx, dy)`` away from the active one.

        Returns:
            ``(current name, target name)``

        Raises:
            CommandError: If the active workspace is not managed by hyprkool
        """
        current, parsed = await self.current_grid_workspace()
        pos = translate(parsed.position, dx, dy, self.dims, cycle)
        return current, format_workspace_name(parsed.activity, pos, parsed.overview)

    async def move_to_workspace(self, name: str, move_window: bool = False) -> None:
        """Focus workspace ``name``, taking the active window along if asked."""
        track = self.focused_track()
        if track is not None:
            self.remember_workspace(track.current_workspace, track.id)
        if move_window:
            await self.hyprland.move_to_workspace(name)
        else:
            await self.hyprland.focus_workspace(name)

    # Named focus

    def set_named_focus(self, name: str, workspace: str) -> None:
        """Bind ``name`` to a managed workspace.

        Raises:
            CommandError: If the name is empty or the workspace is not managed
        """
        if not name:
            raise CommandError("named focus needs a name", code=ErrorCode.INVALID_NAME)
        if parse_workspace_name(workspace) is None:
            raise CommandError(
                f"cannot set named focus on non hyprkool workspace {workspace}",
                code=ErrorCode.NOT_IN_ACTIVITY,
            )
        self.named_focus[name] = workspace
        logger.info(f"Named focus {name} -> {workspace}")

    def delete_named_focus(self, name: str) -> None:
        try:
            del self.named_focus[name]
        except KeyError:
            raise CommandError(f"no named focus {name}", code=ErrorCode.NAMED_FOCUS_NOT_FOUND) from None
        logger.info(f"Deleted named focus {name}")

    def named_focus_target(self, name: str) -> str:
        try:
            return self.named_focus[name]
        except KeyError:
            raise CommandError(f"no named focus {name}", code=ErrorCode.NAMED_FOCUS_NOT_FOUND) from None

    # Snapshots

    def _cell_of(self, name: str) -> Optional[Cell]:
        parsed = parse_workspace_name(name)
        if parsed is None:
            return None
        return parsed.activity, parsed.position

    def _window_status(self, client: Client) -> WindowStatus:
        return WindowStatus(
            title=client.title,
            class_=client.class_,
            initial_title=client.initial_title,
            address=client.address,
            focused=client.focus_history_id == 0,
            focus_history_id=client.focus_history_id,
        )

    async def monitors_snapshot(self) -> List[MonitorStatus]:
        """Full monitors/activities/workspaces/windows tree.

        Built from one read of monitors and clients so every push is
        self-consistent.
        """
        monitors = await self.hyprland.get_monitors()
        clients = await self.hyprland.get_clients()

        windows: Dict[Cell, List[WindowStatus]] = {}
        for client in clients:
            cell = self._cell_of(client.workspace.name)
            if cell is not None:
                windows.setdefault(cell, []).append(self._window_status(client))
        for cell_windows in windows.values():
            cell_windows.sort(key=lambda w: w.focus_history_id)

        bookmarks: Dict[Cell, List[str]] = {}
        for focus_name, workspace in sorted(self.named_focus.items()):
            cell = self._cell_of(workspace)
            if cell is not None:
                bookmarks.setdefault(cell, []).append(focus_name)

        width, height = self.dims
        statuses: List[MonitorStatus] = []
        for monitor in monitors:
            if monitor.disabled:
                continue
            current = self._cell_of(monitor.active_workspace.name)
            activities = []
            for activity in self.activities:
                rows = []
                for y in range(1, height + 1):
                    row = []
                    for x in range(1, width + 1):
                        cell = (activity, GridPosition(x, y))
                        row.append(
                            WorkspaceStatus(
                                name=format_workspace_name(*cell),
                                focused=cell == current,
                                named_focus=bookmarks.get(cell, []),
                                windows=windows.get(cell, []),
                            )
                        )
                    rows.append(row)
                activities.append(
                    ActivityStatus(
                        name=activity,
                        focused=current is not None and current[0] == activity,
                        workspaces=rows,
                    )
                )
            statuses.append(
                MonitorStatus(
                    name=monitor.name,
                    id=monitor.id,
                    focused=monitor.focused,
                    scale=monitor.scale,
                    activities=activities,
                )
            )
        return statuses

    async def snapshot_json(self, kind: InfoKind) -> str:
        """Serialize the snapshot of ``kind`` to the JSON pushed to subscribers."""
        if kind == InfoKind.MONITORS:
            statuses = await self.monitors_snapshot()
            return _MONITOR_STATUS_LIST.dump_json(statuses, by_alias=True).decode()
        if kind == InfoKind.SUBMAP:
            return SubmapStatus(submap=self.submap).model_dump_json()
        return json.dumps(self.named_focus)
