"""
Unit tests for SessionState.

Tests cover monitor tracking, activity bookkeeping, per-monitor position
memory, named focus and snapshot construction against a mocked compositor.
"""

import json

import pytest

from hyprkool.config import Config, DaemonConfig
from hyprkool.errors import CommandError, ErrorCode
from hyprkool.grid import GridPosition
from hyprkool.models import InfoKind
from hyprkool.state import SessionState

from tests.fixtures.mock_hyprland import MockHyprland, make_client, make_monitor


class TestMonitorTracking:
    """Test update_monitors bookkeeping."""

    @pytest.mark.asyncio
    async def test_create_loads_monitors(self, config, fake_hyprland_two_monitors):
        state = await SessionState.create(config, fake_hyprland_two_monitors.mock)

        assert set(state.monitors) == {0, 1}
        assert state.focused_track().name == "DP-1"
        assert state.track_by_name("HDMI-A-1").current_workspace == "work:(2 1)"

    @pytest.mark.asyncio
    async def test_removed_monitor_is_dropped(self, config, fake_hyprland_two_monitors):
        state = await SessionState.create(config, fake_hyprland_two_monitors.mock)
        fake_hyprland_two_monitors.monitors.pop()

        await state.update_monitors()

        assert set(state.monitors) == {0}

    @pytest.mark.asyncio
    async def test_current_workspace_is_remembered(self, config, fake_hyprland):
        """Test each refresh records the visible cell per activity."""
        state = await SessionState.create(config, fake_hyprland.mock)
        fake_hyprland.set_active_workspace("work:(2 2)")

        await state.update_monitors()

        assert state.monitors[0].last_positions == {"work": GridPosition(2, 2)}

    @pytest.mark.asyncio
    async def test_ordered_monitors_by_layout(self, config):
        fake = MockHyprland([
            make_monitor(0, "B", "work:(1 1)", focused=True, x=1920),
            make_monitor(1, "A", "work:(2 1)", x=0),
            make_monitor(2, "OFF", "work:(1 2)", x=-1920, disabled=True),
        ])
        state = await SessionState.create(config, fake.mock)

        assert [t.name for t in state.ordered_monitors()] == ["A", "B"]


class TestActivities:
    """Test activity lookup and creation."""

    @pytest.mark.asyncio
    async def test_grid_names(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.workspaces[0] == ["work:(1 1)", "work:(2 1)", "work:(1 2)", "work:(2 2)"]

    @pytest.mark.asyncio
    async def test_activity_index_by_prefix(self, fake_hyprland):
        """Test an activity that prefixes another does not shadow it."""
        config = Config(activities=["work", "workshop"])
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.get_activity_index("work:(1 1)") == 0
        assert state.get_activity_index("workshop:(2 1)") == 1
        assert state.get_activity_index("other:(1 1)") is None

    @pytest.mark.asyncio
    async def test_get_indices(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.get_indices("home:(1 2)") == (1, 2)
        assert state.get_indices("home:(1 2):overview") == (1, None)
        assert state.get_indices("scratch") is None

    @pytest.mark.asyncio
    async def test_ensure_activity_appends_once(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.ensure_activity("play") == 2
        assert state.ensure_activity("play") == 2
        assert state.activities == ["work", "home", "play"]
        assert state.workspaces[2][0] == "play:(1 1)"

    @pytest.mark.asyncio
    async def test_ensure_activity_rejects_bad_name(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        with pytest.raises(CommandError) as exc_info:
            state.ensure_activity("bad:name")

        assert exc_info.value.code == ErrorCode.INVALID_NAME

    @pytest.mark.asyncio
    async def test_parse_managed_bounds(self, config, fake_hyprland):
        """Test only cells of known activities inside the grid are managed."""
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.parse_managed("work:(2 2)") is not None
        assert state.parse_managed("work:(3 1)") is None
        assert state.parse_managed("unknown:(1 1)") is None
        assert state.parse_managed("work:(1 1):overview").overview is True

    @pytest.mark.asyncio
    async def test_current_grid_workspace_outside_grid(self, config, fake_hyprland):
        fake_hyprland.set_active_workspace("3")
        state = await SessionState.create(config, fake_hyprland.mock)

        with pytest.raises(CommandError) as exc_info:
            await state.current_grid_workspace()

        assert exc_info.value.code == ErrorCode.NOT_IN_ACTIVITY


class TestActivityMemory:
    """Test where an activity switch lands."""

    @pytest.mark.asyncio
    async def test_keeps_position_without_memory(self, config, fake_hyprland):
        """Test switching from work:(2 1) to a fresh activity keeps the cell."""
        fake_hyprland.set_active_workspace("work:(2 1)")
        state = await SessionState.create(config, fake_hyprland.mock)

        assert state.activity_workspace("home", GridPosition(2, 1)) == "home:(2 1)"

    @pytest.mark.asyncio
    async def test_remembered_position_wins(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)
        state.remember_workspace("home:(1 2)")

        assert state.activity_workspace("home", GridPosition(2, 1)) == "home:(1 2)"

    @pytest.mark.asyncio
    async def test_memory_disabled(self, fake_hyprland):
        config = Config(activities=["work", "home"], daemon=DaemonConfig(remember_activity_focus=False))
        state = await SessionState.create(config, fake_hyprland.mock)
        state.remember_workspace("home:(1 2)")

        assert state.activity_workspace("home", GridPosition(2, 1)) == "home:(2 1)"

    @pytest.mark.asyncio
    async def test_memory_is_per_monitor(self, config, fake_hyprland_two_monitors):
        state = await SessionState.create(config, fake_hyprland_two_monitors.mock)
        state.remember_workspace("home:(2 2)", monitor_id=1)

        assert state.activity_workspace("home", GridPosition(1, 1), monitor_id=0) == "home:(1 1)"
        assert state.activity_workspace("home", GridPosition(1, 1), monitor_id=1) == "home:(2 2)"

    @pytest.mark.asyncio
    async def test_move_to_workspace_records_origin(self, config, fake_hyprland):
        fake_hyprland.set_active_workspace("work:(2 2)")
        state = await SessionState.create(config, fake_hyprland.mock)
        state.monitors[0].last_positions.clear()

        await state.move_to_workspace("home:(1 1)")

        assert state.monitors[0].last_positions["work"] == GridPosition(2, 2)
        fake_hyprland.mock.focus_workspace.assert_awaited_once_with("home:(1 1)")


class TestMonitorAssignment:
    """Test moving monitors onto free hyprkool workspaces."""

    @pytest.mark.asyncio
    async def test_new_monitor_gets_first_free_cell(self, config):
        fake = MockHyprland([
            make_monitor(0, "DP-1", "work:(1 1)", focused=True),
            make_monitor(1, "HDMI-A-1", "2", x=1920),
        ])
        state = await SessionState.create(config, fake.mock)

        target = await state.move_monitor_to_valid_activity("HDMI-A-1")

        assert target == "work:(2 1)"
        assert [c.args for c in fake.mock.focus_monitor.await_args_list] == [("HDMI-A-1",), ("DP-1",)]
        fake.mock.focus_workspace.assert_awaited_once_with("work:(2 1)")
        assert state.track_by_name("HDMI-A-1").current_workspace == "work:(2 1)"
        assert fake.active_workspace == "work:(1 1)"

    @pytest.mark.asyncio
    async def test_managed_monitor_left_alone(self, config, fake_hyprland_two_monitors):
        state = await SessionState.create(config, fake_hyprland_two_monitors.mock)

        assert await state.move_monitor_to_valid_activity("HDMI-A-1") is None
        fake_hyprland_two_monitors.mock.focus_workspace.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_monitor_does_not_occupy(self, config):
        fake = MockHyprland([
            make_monitor(0, "DP-1", "1", focused=True),
            make_monitor(1, "OFF", "work:(1 1)", disabled=True),
        ])
        state = await SessionState.create(config, fake.mock)

        assert state.free_cell(0) == "work:(1 1)"

    @pytest.mark.asyncio
    async def test_unknown_monitor(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        with pytest.raises(CommandError) as exc_info:
            await state.move_monitor_to_valid_activity("nope")

        assert exc_info.value.code == ErrorCode.MONITOR_NOT_FOUND


class TestNamedFocus:
    """Test named focus bookmarks."""

    @pytest.mark.asyncio
    async def test_set_and_resolve(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        state.set_named_focus("code", "work:(2 1)")

        assert state.named_focus_target("code") == "work:(2 1)"

    @pytest.mark.asyncio
    async def test_rebinding_replaces(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)
        state.set_named_focus("code", "work:(2 1)")

        state.set_named_focus("code", "home:(1 1)")

        assert state.named_focus == {"code": "home:(1 1)"}

    @pytest.mark.asyncio
    async def test_rejects_unmanaged_workspace(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        with pytest.raises(CommandError):
            state.set_named_focus("code", "7")
        with pytest.raises(CommandError):
            state.set_named_focus("", "work:(1 1)")

    @pytest.mark.asyncio
    async def test_delete_unknown(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)

        with pytest.raises(CommandError) as exc_info:
            state.delete_named_focus("ghost")

        assert exc_info.value.code == ErrorCode.NAMED_FOCUS_NOT_FOUND


class TestSnapshots:
    """Test info payloads built from state."""

    @pytest.mark.asyncio
    async def test_monitors_snapshot_tree(self, config, fake_hyprland):
        fake_hyprland.clients = [
            make_client("0xa", "work:(1 1)", title="older", focus_history_id=1),
            make_client("0xb", "work:(1 1)", title="newest", focus_history_id=0),
            make_client("0xc", "home:(2 2)", class_="firefox", focus_history_id=2),
            make_client("0xd", "special:scratch", focus_history_id=3),
        ]
        state = await SessionState.create(config, fake_hyprland.mock)
        state.set_named_focus("code", "home:(2 2)")

        [monitor] = await state.monitors_snapshot()

        assert monitor.name == "DP-1" and monitor.focused
        work, home = monitor.activities
        assert work.focused and not home.focused
        assert len(work.workspaces) == 2 and len(work.workspaces[0]) == 2

        first = work.workspaces[0][0]
        assert first.name == "work:(1 1)" and first.focused
        assert [w.address for w in first.windows] == ["0xb", "0xa"]
        assert first.windows[0].focused and not first.windows[1].focused

        last = home.workspaces[1][1]
        assert last.named_focus == ["code"]
        assert last.windows[0].class_ == "firefox"

    @pytest.mark.asyncio
    async def test_monitors_json_uses_class_key(self, config, fake_hyprland):
        fake_hyprland.clients = [make_client("0xa", "work:(1 1)", class_="kitty")]
        state = await SessionState.create(config, fake_hyprland.mock)

        payload = json.loads(await state.snapshot_json(InfoKind.MONITORS))

        window = payload[0]["activities"][0]["workspaces"][0][0]["windows"][0]
        assert window["class"] == "kitty"
        assert "class_" not in window

    @pytest.mark.asyncio
    async def test_submap_and_named_focus_json(self, config, fake_hyprland):
        state = await SessionState.create(config, fake_hyprland.mock)
        state.submap = "resize"
        state.set_named_focus("mail", "home:(1 1)")

        assert json.loads(await state.snapshot_json(InfoKind.SUBMAP)) == {"submap": "resize"}
        assert json.loads(await state.snapshot_json(InfoKind.NAMED_FOCUS)) == {"mail": "home:(1 1)"}
