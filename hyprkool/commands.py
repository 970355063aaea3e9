"""Execution of one-shot commands against the session state.

Every function here runs with the state lock held. Failures that concern the
request itself raise :class:`CommandError`; compositor failures surface as
:class:`HyprlandError`. Both are reported to the requesting client and leave
the daemon running.
"""

import logging
from typing import Tuple

from .errors import CommandError, ErrorCode
from .grid import GridPosition, format_workspace_name
from .models import MonitorTrack
from .plugin import Animation, PluginNotifier, animation_for
from .protocol import (
    ActivityCycle,
    Command,
    DaemonQuit,
    DeleteNamedFocus,
    FocusWindow,
    GridMove,
    Info,
    MonitorCycle,
    SetNamedFocus,
    SwapMonitorsActiveWorkspace,
    SwitchNamedFocus,
    SwitchToActivity,
    SwitchToMonitor,
    SwitchToWorkspace,
    SwitchToWorkspaceInActivity,
    ToggleOverview,
    ToggleSpecialWorkspace,
)
from .state import SessionState

logger = logging.getLogger(__name__)


def _step_index(index: int, step: int, count: int, cycle: bool) -> int:
    if cycle:
        return (index + step) % count
    return max(0, min(count - 1, index + step))


async def _switch(
    state: SessionState,
    notifier: PluginNotifier,
    current: str,
    target: str,
    anim: Animation,
    move_window: bool,
) -> None:
    if target == current:
        logger.debug(f"Already on {target}")
        return
    await notifier.set_workspace_anim(anim)
    await state.move_to_workspace(target, move_window)
    logger.info(f"Switched {current} -> {target}")


async def _require_active_window(state: SessionState) -> None:
    if await state.hyprland.get_active_client() is None:
        raise CommandError("no active window to move", code=ErrorCode.NO_ACTIVE_WINDOW)


def _require_monitor(state: SessionState, name: str) -> MonitorTrack:
    track = state.track_by_name(name)
    if track is None or track.monitor.disabled:
        raise CommandError(f"no monitor named {name}", code=ErrorCode.MONITOR_NOT_FOUND)
    return track


async def focus_window(state: SessionState, command: FocusWindow) -> None:
    clients = await state.hyprland.get_clients()
    if not any(c.address == command.address for c in clients):
        raise CommandError(f"no window with address {command.address}")
    track = state.focused_track()
    if track is not None:
        state.remember_workspace(track.current_workspace, track.id)
    await state.hyprland.focus_window(command.address)


async def grid_move(state: SessionState, notifier: PluginNotifier, command: GridMove) -> None:
    current, target = await state.moved_workspace(command.dx, command.dy, command.cycle)
    await _switch(state, notifier, current, target, animation_for(command.dx, command.dy), command.move_window)


async def activity_cycle(state: SessionState, notifier: PluginNotifier, command: ActivityCycle) -> None:
    current, parsed = await state.current_grid_workspace()
    index = state.activities.index(parsed.activity)
    activity = state.activities[_step_index(index, command.step, len(state.activities), command.cycle)]
    if activity == parsed.activity:
        return
    target = state.activity_workspace(activity, parsed.position)
    await _switch(state, notifier, current, target, Animation.FADE, command.move_window)


async def switch_to_activity(state: SessionState, notifier: PluginNotifier, command: SwitchToActivity) -> None:
    state.ensure_activity(command.name)
    workspace = await state.hyprland.get_active_workspace()
    parsed = state.parse_managed(workspace.name)
    if parsed is not None and parsed.activity == command.name:
        return
    position = parsed.position if parsed is not None else GridPosition(1, 1)
    target = state.activity_workspace(command.name, position)
    await _switch(state, notifier, workspace.name, target, Animation.FADE, command.move_window)


async def monitor_cycle(state: SessionState, command: MonitorCycle) -> None:
    ordered = state.ordered_monitors()
    focused = state.focused_track()
    if not ordered or focused is None:
        raise CommandError("no focused monitor", code=ErrorCode.MONITOR_NOT_FOUND)
    index = next(i for i, t in enumerate(ordered) if t.id == focused.id)
    target = ordered[_step_index(index, command.step, len(ordered), command.cycle)]
    if target.id == focused.id:
        return
    if command.move_window:
        await _require_active_window(state)
        await state.hyprland.move_window_to_monitor(target.name)
    else:
        await state.hyprland.focus_monitor(target.name)


def _swap_pair(state: SessionState, command: SwapMonitorsActiveWorkspace) -> Tuple[MonitorTrack, MonitorTrack]:
    if command.monitor_1 is not None and command.monitor_2 is not None:
        first = _require_monitor(state, command.monitor_1)
        second = _require_monitor(state, command.monitor_2)
    elif command.monitor_1 is None and command.monitor_2 is None:
        ordered = state.ordered_monitors()
        if len(ordered) != 2:
            raise CommandError(
                f"monitor names are required with {len(ordered)} monitors",
                code=ErrorCode.MONITOR_NOT_FOUND,
            )
        first, second = ordered
    else:
        raise CommandError("either both monitor names or none must be given")
    if first.id == second.id:
        raise CommandError(f"cannot swap monitor {first.name} with itself")
    return first, second


async def swap_monitors(state: SessionState, command: SwapMonitorsActiveWorkspace) -> None:
    first, second = _swap_pair(state, command)
    focused = state.focused_track()
    await state.hyprland.swap_active_workspaces(first.name, second.name)
    if focused is None or focused.id not in (first.id, second.id):
        return
    other = second if focused.id == first.id else first
    # The focused workspace now lives on the other monitor
    await state.hyprland.focus_monitor(other.name if command.move_window else focused.name)


async def switch_to_monitor(state: SessionState, command: SwitchToMonitor) -> None:
    track = _require_monitor(state, command.name)
    if command.move_window:
        await _require_active_window(state)
        await state.hyprland.move_window_to_monitor(track.name)
    else:
        await state.hyprland.focus_monitor(track.name)


async def switch_to_workspace_in_activity(
    state: SessionState, notifier: PluginNotifier, command: SwitchToWorkspaceInActivity
) -> None:
    current, parsed = await state.current_grid_workspace()
    target = f"{parsed.activity}:{command.name}"
    if state.parse_managed(target) is None:
        raise CommandError(f"no workspace {command.name} in activity {parsed.activity}", code=ErrorCode.WORKSPACE_NOT_FOUND)
    await _switch(state, notifier, current, target, Animation.FADE, command.move_window)


async def switch_to_workspace(state: SessionState, notifier: PluginNotifier, command: SwitchToWorkspace) -> None:
    if state.parse_managed(command.name) is None:
        raise CommandError(f"no hyprkool workspace named {command.name}", code=ErrorCode.WORKSPACE_NOT_FOUND)
    workspace = await state.hyprland.get_active_workspace()
    await _switch(state, notifier, workspace.name, command.name, Animation.FADE, command.move_window)


async def toggle_special_workspace(state: SessionState, command: ToggleSpecialWorkspace) -> None:
    if command.move_window:
        await state.hyprland.move_to_special_workspace(command.name, silent=command.silent)
    else:
        await state.hyprland.toggle_special_workspace(command.name)


async def toggle_overview(state: SessionState) -> None:
    workspace = await state.hyprland.get_active_workspace()
    parsed = state.parse_managed(workspace.name)
    if parsed is None:
        raise CommandError(
            f"not in a valid activity workspace: {workspace.name}",
            code=ErrorCode.NOT_IN_ACTIVITY,
        )
    target = format_workspace_name(parsed.activity, parsed.position, overview=not parsed.overview)
    await state.move_to_workspace(target)


async def switch_named_focus(state: SessionState, notifier: PluginNotifier, command: SwitchNamedFocus) -> None:
    target = state.named_focus_target(command.name)
    workspace = await state.hyprland.get_active_workspace()
    await _switch(state, notifier, workspace.name, target, Animation.FADE, command.move_window)


async def set_named_focus(state: SessionState, command: SetNamedFocus) -> None:
    workspace = await state.hyprland.get_active_workspace()
    state.set_named_focus(command.name, workspace.name)


async def execute_command(state: SessionState, command: Command, notifier: PluginNotifier) -> None:
    """Run a one-shot command.

    Args:
        state: Session state (lock must be held)
        command: Command to run
        notifier: Plugin animation hint sender

    Raises:
        CommandError: If the command cannot be carried out
        HyprlandError: If a compositor call fails
    """
    logger.debug(f"Executing {type(command).__name__}: {command!r}")

    if isinstance(command, FocusWindow):
        await focus_window(state, command)
    elif isinstance(command, GridMove):
        await grid_move(state, notifier, command)
    elif isinstance(command, ActivityCycle):
        await activity_cycle(state, notifier, command)
    elif isinstance(command, SwitchToActivity):
        await switch_to_activity(state, notifier, command)
    elif isinstance(command, MonitorCycle):
        await monitor_cycle(state, command)
    elif isinstance(command, SwapMonitorsActiveWorkspace):
        await swap_monitors(state, command)
    elif isinstance(command, SwitchToMonitor):
        await switch_to_monitor(state, command)
    elif isinstance(command, SwitchToWorkspaceInActivity):
        await switch_to_workspace_in_activity(state, notifier, command)
    elif isinstance(command, SwitchToWorkspace):
        await switch_to_workspace(state, notifier, command)
    elif isinstance(command, ToggleSpecialWorkspace):
        await toggle_special_workspace(state, command)
    elif isinstance(command, ToggleOverview):
        await toggle_overview(state)
    elif isinstance(command, SwitchNamedFocus):
        await switch_named_focus(state, notifier, command)
    elif isinstance(command, SetNamedFocus):
        await set_named_focus(state, command)
    elif isinstance(command, DeleteNamedFocus):
        state.delete_named_focus(command.name)
    elif isinstance(command, (DaemonQuit, Info)):
        raise CommandError(f"{type(command).__name__} needs a running daemon")
    else:
        raise CommandError(f"unsupported command {type(command).__name__}")
