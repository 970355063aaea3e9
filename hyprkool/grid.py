"""Coordinate model for activity grids.

Maps between a logical ``(activity, x, y)`` triple and the workspace name
Hyprland sees, e.g. ``"work:(2 1)"``, and implements grid movement with
clamping or wraparound. Everything here is pure and synchronous.
"""

import re
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

ACTIVITY_NAME_PATTERN = r"[a-zA-Z0-9_-]+"
OVERVIEW_SUFFIX = ":overview"

_ACTIVITY_NAME_RE = re.compile(rf"^{ACTIVITY_NAME_PATTERN}$")
_WORKSPACE_NAME_RE = re.compile(
    rf"^(?P<activity>{ACTIVITY_NAME_PATTERN}):\((?P<x>[1-9][0-9]*) (?P<y>[1-9][0-9]*)\)"
    rf"(?P<overview>{re.escape(OVERVIEW_SUFFIX)})?$"
)


@dataclass(frozen=True)
class GridPosition:
    """1-based position inside an activity grid."""

    x: int
    y: int

    def __post_init__(self) -> None:
        if self.x < 1 or self.y < 1:
            raise ValueError(f"Grid positions are 1-based, got ({self.x}, {self.y})")

    def in_bounds(self, dims: Tuple[int, int]) -> bool:
        return self.x <= dims[0] and self.y <= dims[1]

    def to_index(self, dims: Tuple[int, int]) -> int:
        """Row-major index of this position in a grid of ``dims``."""
        return (self.y - 1) * dims[0] + (self.x - 1)

    @classmethod
    def from_index(cls, index: int, dims: Tuple[int, int]) -> "GridPosition":
        return cls(x=index % dims[0] + 1, y=index // dims[0] + 1)


@dataclass(frozen=True)
class ParsedWorkspace:
    """Result of parsing a hyprkool workspace name."""

    activity: str
    position: GridPosition
    overview: bool = False


def is_valid_activity_name(name: str) -> bool:
    return bool(_ACTIVITY_NAME_RE.match(name))


def _shift(value: int, delta: int, dim: int, wrap: bool) -> int:
    if wrap:
        return (value - 1 + delta) % dim + 1
    return max(1, min(dim, value + delta))


def translate(pos: GridPosition, dx: int, dy: int, dims: Tuple[int, int], wrap: bool) -> GridPosition:
    """Move ``pos`` by ``(dx, dy)`` inside a grid of ``dims``.

    With ``wrap`` both axes wrap around modulo the grid dimension, otherwise
    each axis is clamped to ``[1, dim]``.

    Args:
        pos: Starting position
        dx: Horizontal delta (negative moves left)
        dy: Vertical delta (negative moves up)
        dims: Grid dimensions as ``(width, height)``
        wrap: Wrap around grid edges instead of clamping

    Returns:
        The translated position
    """
    return GridPosition(
        x=_shift(pos.x, dx, dims[0], wrap),
        y=_shift(pos.y, dy, dims[1], wrap),
    )


def format_workspace_name(activity: str, pos: GridPosition, overview: bool = False) -> str:
    """Compositor-visible name for a grid cell."""
    name = f"{activity}:({pos.x} {pos.y})"
    if overview:
        name += OVERVIEW_SUFFIX
    return name


def parse_workspace_name(name: str) -> Optional[ParsedWorkspace]:
    """Inverse of :func:`format_workspace_name`.

    Returns None for any name outside the grammar; this is how the daemon
    detects that the user is on a workspace it does not manage.
    """
    match = _WORKSPACE_NAME_RE.match(name)
    if not match:
        return None
    return ParsedWorkspace(
        activity=match.group("activity"),
        position=GridPosition(int(match.group("x")), int(match.group("y"))),
        overview=match.group("overview") is not None,
    )


def iter_positions(dims: Tuple[int, int]) -> Iterator[GridPosition]:
    """Row-major iteration over every cell of a grid."""
    for y in range(1, dims[1] + 1):
        for x in range(1, dims[0] + 1):
            yield GridPosition(x, y)
