"""Shared fixtures for hyprkool tests."""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from hyprkool.config import Config, DaemonConfig, MouseConfig
from hyprkool.plugin import PluginNotifier

from tests.fixtures.mock_hyprland import MockHyprland, make_monitor


@pytest.fixture
def config() -> Config:
    """Two activities on a 2x2 grid, mouse switching off."""
    return Config(
        activities=["work", "home"],
        workspaces=(2, 2),
        daemon=DaemonConfig(mouse=MouseConfig(switch_workspace_on_edge=False)),
    )


@pytest.fixture
def fake_hyprland() -> MockHyprland:
    """Single monitor focused on work:(1 1)."""
    return MockHyprland([make_monitor(0, "DP-1", "work:(1 1)", focused=True)])


@pytest.fixture
def fake_hyprland_two_monitors() -> MockHyprland:
    """DP-1 (left, focused) on work:(1 1) and HDMI-A-1 (right) on work:(2 1)."""
    return MockHyprland([
        make_monitor(0, "DP-1", "work:(1 1)", focused=True),
        make_monitor(1, "HDMI-A-1", "work:(2 1)", x=1920),
    ])


@pytest.fixture
def notifier() -> AsyncMock:
    """Plugin notifier that records animation hints."""
    mock = AsyncMock(spec=PluginNotifier)
    mock.set_workspace_anim.return_value = True
    return mock


@pytest.fixture
def socket_dir():
    """Short temporary directory for unix sockets (paths are limited to ~108 bytes)."""
    path = Path(tempfile.mkdtemp(prefix="hk-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)
