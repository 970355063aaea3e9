"""Configuration loading for hyprkool.

The configuration lives in ``~/.config/hypr/hyprkool.toml`` and is validated
with Pydantic models that reject unknown keys, so typos surface at startup
instead of being silently ignored.
"""

import logging
import tomllib
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import ConfigPaths
from .errors import ConfigError
from .grid import is_valid_activity_name

logger = logging.getLogger(__name__)


class MouseConfig(BaseModel):
    """Mouse edge switching settings."""

    model_config = ConfigDict(extra="forbid")

    switch_workspace_on_edge: bool = Field(True, description="Switch workspace when the pointer hits a monitor edge")
    polling_rate: int = Field(300, gt=0, description="Pointer polling interval in ms")
    edge_width: int = Field(0, ge=0, description="Number of pixels considered as edge")
    edge_margin: int = Field(2, ge=0, description="Push the cursor this far inside the opposite edge after a switch")


class DaemonConfig(BaseModel):
    """Daemon behaviour settings."""

    model_config = ConfigDict(extra="forbid")

    fallback_commands: bool = Field(True, description="Execute commands without the daemon when it is not running")
    remember_activity_focus: bool = Field(True, description="Remember the last focused workspace of every activity")
    move_monitors_to_hyprkool_activity: bool = Field(
        True, description="Put newly added monitors on a free hyprkool workspace"
    )
    focus_last_window_on_monitor_change: bool = Field(
        False, description="Refocus the last active window when monitor focus changes"
    )
    mouse: MouseConfig = Field(default_factory=MouseConfig)


class Config(BaseModel):
    """Top level hyprkool configuration."""

    model_config = ConfigDict(extra="forbid")

    activities: List[str] = Field(default_factory=lambda: ["default"])
    workspaces: Tuple[int, int] = Field((2, 2), description="Number of workspaces in x and y dimensions")
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)

    @field_validator("activities")
    @classmethod
    def validate_activities(cls, v: List[str]) -> List[str]:
        """Validate activity names and drop duplicates, keeping priority order."""
        if not v:
            return ["default"]
        seen: List[str] = []
        for name in v:
            if not is_valid_activity_name(name):
                raise ValueError(f"Invalid activity name '{name}': only [a-zA-Z0-9_-] is allowed")
            if name not in seen:
                seen.append(name)
        return seen

    @field_validator("workspaces")
    @classmethod
    def validate_workspaces(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        if v[0] < 1 or v[1] < 1:
            raise ValueError(f"Workspace grid must be at least 1x1, got {v[0]}x{v[1]}")
        return v

    @property
    def poll_interval(self) -> Optional[float]:
        """Mouse polling interval in seconds, or None when edge switching is off."""
        if not self.daemon.mouse.switch_workspace_on_edge:
            return None
        return self.daemon.mouse.polling_rate / 1000


def load_config(config_file: Optional[Path] = None) -> Config:
    """Load configuration from a TOML file.

    Args:
        config_file: Path to the config file (defaults to ~/.config/hypr/hyprkool.toml)

    Returns:
        Validated Config; defaults when the file does not exist

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    path = config_file or ConfigPaths.CONFIG_FILE

    if not path.exists():
        logger.info(f"Config file not found at {path}, using defaults")
        return Config()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(
            f"Could not read config file {path}: {e}",
            suggestion="Check the TOML syntax of the config file",
            context={"path": str(path)},
        ) from e

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid config file {path}: {e}",
            context={"path": str(path)},
        ) from e

    logger.info(
        f"Loaded config from {path}: {len(config.activities)} activities, "
        f"{config.workspaces[0]}x{config.workspaces[1]} grid"
    )
    return config
