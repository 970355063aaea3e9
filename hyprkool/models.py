"""Data models for the hyprkool daemon.

Pydantic models mirror the JSON Hyprland returns from its request socket and
the snapshot payloads pushed to info subscribers. Dataclasses hold the
daemon's internal, mutable bookkeeping and its event vocabulary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .grid import GridPosition


# Hyprland replies

class HyprModel(BaseModel):
    """Base for Hyprland JSON replies (camelCase keys, unknown keys ignored)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WorkspaceRef(HyprModel):
    """Workspace reference embedded in monitor and client replies."""

    id: int = 0
    name: str = ""


class Monitor(HyprModel):
    """Monitor as returned by ``j/monitors``."""

    id: int
    name: str
    description: str = ""
    width: int
    height: int
    x: int = 0
    y: int = 0
    scale: float = 1.0
    focused: bool = False
    disabled: bool = False
    active_workspace: WorkspaceRef = Field(default_factory=WorkspaceRef, alias="activeWorkspace")
    special_workspace: WorkspaceRef = Field(default_factory=WorkspaceRef, alias="specialWorkspace")

    @property
    def logical_width(self) -> int:
        """Width in layout coordinates (pixels divided by scale)."""
        return int(self.width / (self.scale or 1.0))

    @property
    def logical_height(self) -> int:
        return int(self.height / (self.scale or 1.0))


class Workspace(HyprModel):
    """Workspace as returned by ``j/activeworkspace`` and ``j/workspaces``."""

    id: int
    name: str
    monitor: str = ""
    monitor_id: Optional[int] = Field(None, alias="monitorID")
    windows: int = 0
    has_fullscreen: bool = Field(False, alias="hasfullscreen")
    last_window: str = Field("", alias="lastwindow")


class Client(HyprModel):
    """Window as returned by ``j/clients`` and ``j/activewindow``."""

    address: str
    title: str = ""
    class_: str = Field("", alias="class")
    initial_class: str = Field("", alias="initialClass")
    initial_title: str = Field("", alias="initialTitle")
    workspace: WorkspaceRef = Field(default_factory=WorkspaceRef)
    monitor: int = -1
    floating: bool = False
    mapped: bool = True
    hidden: bool = False
    # Older Hyprland reports a bool plus fullscreenMode, newer ones an int state
    fullscreen: Union[bool, int] = False
    fullscreen_mode: int = Field(0, alias="fullscreenMode")
    focus_history_id: int = Field(-1, alias="focusHistoryID")

    @property
    def is_fullscreen_exclusive(self) -> bool:
        """True when the window covers its monitor in real fullscreen."""
        if isinstance(self.fullscreen, bool):
            return self.fullscreen and self.fullscreen_mode == 0
        return self.fullscreen == 2


class CursorPosition(HyprModel):
    """Pointer position in layout coordinates (``j/cursorpos``)."""

    x: int
    y: int


# Snapshot payloads pushed to info subscribers

class WindowStatus(BaseModel):
    title: str
    class_: str = Field(serialization_alias="class")
    initial_title: str
    address: str
    focused: bool
    focus_history_id: int


class WorkspaceStatus(BaseModel):
    name: str
    focused: bool
    named_focus: List[str] = Field(default_factory=list)
    windows: List[WindowStatus] = Field(default_factory=list)


class ActivityStatus(BaseModel):
    name: str
    focused: bool
    workspaces: List[List[WorkspaceStatus]]


class MonitorStatus(BaseModel):
    name: str
    id: int
    focused: bool
    scale: float
    activities: List[ActivityStatus]


class SubmapStatus(BaseModel):
    submap: str = ""


# Internal bookkeeping

@dataclass
class MonitorTrack:
    """A monitor currently known to the compositor plus per-activity memory."""

    monitor: Monitor
    # Last grid position visited on this monitor, per activity name
    last_positions: Dict[str, GridPosition] = field(default_factory=dict)

    @property
    def id(self) -> int:
        return self.monitor.id

    @property
    def name(self) -> str:
        return self.monitor.name

    @property
    def current_workspace(self) -> str:
        return self.monitor.active_workspace.name


class EventKind(str, Enum):
    """Internal event vocabulary produced by the event bridge."""

    WINDOW_CHANGED = "window_changed"
    WINDOW_OPENED = "window_opened"
    WINDOW_MOVED = "window_moved"
    WINDOW_CLOSED = "window_closed"
    WORKSPACE_CHANGED = "workspace_changed"
    MONITOR_CHANGED = "monitor_changed"
    MONITOR_ADDED = "monitor_added"
    MONITOR_REMOVED = "monitor_removed"
    SUBMAP_CHANGED = "submap_changed"
    INFO_REQUESTED = "info_requested"


class InfoKind(str, Enum):
    """Kinds of state snapshots broadcast to info subscribers."""

    MONITORS = "monitors"
    SUBMAP = "submap"
    NAMED_FOCUS = "named_focus"


@dataclass(frozen=True)
class DaemonEvent:
    """Single event queued for the reactor."""

    kind: EventKind
    name: Optional[str] = None  # monitor or submap name
    workspace: Optional[str] = None  # workspace reported with a monitor focus change
    info: Optional[InfoKind] = None  # requested snapshot kind


@dataclass(frozen=True)
class InfoEvent:
    """State snapshot broadcast to info subscribers."""

    kind: InfoKind
    payload: str  # JSON text, serialized once by the reactor
