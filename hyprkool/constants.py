"""Centralized paths and constants for the hyprkool daemon.

Single source of truth for socket locations, channel capacities and
timeouts used across the daemon, the client and the CLI.
"""

import os
from pathlib import Path
from typing import Final

from .errors import SessionNotFoundError

# Environment variable identifying the running Hyprland session
INSTANCE_SIGNATURE_ENV: Final[str] = "HYPRLAND_INSTANCE_SIGNATURE"


class ConfigPaths:
    """Centralized configuration and runtime paths.

    Socket paths depend on the Hyprland session and are computed on demand
    through the helper functions below.
    """

    HOME: Final[Path] = Path.home()
    CONFIG_HOME: Final[Path] = Path(os.environ.get("XDG_CONFIG_HOME", HOME / ".config"))
    CONFIG_FILE: Final[Path] = CONFIG_HOME / "hypr" / "hyprkool.toml"

    SOCKET_ROOT: Final[Path] = Path("/tmp/hyprkool")
    DAEMON_SOCKET_NAME: Final[str] = "kool.sock"
    PLUGIN_SOCKET_NAME: Final[str] = "plugin.sock"
    LOCK_FILE_NAME: Final[str] = "kool.lock"


# Channel capacities
EVENT_CHANNEL_SIZE: Final[int] = 100
INFO_CHANNEL_SIZE: Final[int] = 100

# Timeouts (seconds)
REPLY_TIMEOUT: Final[float] = 0.3
HANDOFF_TIMEOUT: Final[float] = 0.3
TAKEOVER_DEADLINE: Final[float] = 3.0
TAKEOVER_POLL_INTERVAL: Final[float] = 0.05
REQUEST_READ_TIMEOUT: Final[float] = 5.0

# Interval used for the tick timer when mouse edge switching is off
DISABLED_POLL_INTERVAL: Final[float] = 10_000_000.0


def get_instance_signature() -> str:
    """Return the Hyprland instance signature of the current session.

    Raises:
        SessionNotFoundError: If the environment variable is not set
    """
    signature = os.environ.get(INSTANCE_SIGNATURE_ENV)
    if not signature:
        raise SessionNotFoundError(f"could not get {INSTANCE_SIGNATURE_ENV}")
    return signature


def get_socket_dir(root: Path = ConfigPaths.SOCKET_ROOT) -> Path:
    """Return (and create) the per-session socket directory."""
    sock_dir = root / get_instance_signature()
    sock_dir.mkdir(parents=True, exist_ok=True)
    return sock_dir


def get_socket_path() -> Path:
    """Path of the daemon's command socket."""
    return get_socket_dir() / ConfigPaths.DAEMON_SOCKET_NAME


def get_plugin_socket_path() -> Path:
    """Path of the compositor plugin's animation hint socket."""
    return get_socket_dir() / ConfigPaths.PLUGIN_SOCKET_NAME
