"""hyprkool

Activities and a grid of workspaces on top of Hyprland.

This package provides a long-running daemon that:
- Maps named activities and (x, y) grid cells onto Hyprland workspace names
- Tracks monitors, per-activity focus memory and named focus bookmarks
- Switches workspaces when the pointer hits a monitor edge
- Exposes a unix socket for the CLI and status bar widgets

Version: 1.0.0
"""

__version__ = "1.0.0"
