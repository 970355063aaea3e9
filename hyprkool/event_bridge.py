"""Compositor event bridge.

Collapses Hyprland's per-event callbacks into the daemon's own event
vocabulary. Each callback only enqueues a :class:`DaemonEvent` and returns;
all real work happens later in the reactor, which re-reads authoritative
compositor state instead of trusting event payloads.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

from .hyprland import HyprlandEventListener
from .models import DaemonEvent, EventKind

logger = logging.getLogger(__name__)


def _no_payload(kind: EventKind) -> Callable[[str], DaemonEvent]:
    return lambda data: DaemonEvent(kind)


def _named(kind: EventKind) -> Callable[[str], DaemonEvent]:
    return lambda data: DaemonEvent(kind, name=data)


def _focused_monitor(data: str) -> DaemonEvent:
    # focusedmon>>MONNAME,WORKSPACENAME
    name, _, workspace = data.partition(",")
    return DaemonEvent(EventKind.MONITOR_CHANGED, name=name, workspace=workspace or None)


# Hyprland event name -> translation into the internal vocabulary
EVENT_TRANSLATIONS: Dict[str, Callable[[str], DaemonEvent]] = {
    "activewindow": _no_payload(EventKind.WINDOW_CHANGED),
    "openwindow": _no_payload(EventKind.WINDOW_OPENED),
    "movewindow": _no_payload(EventKind.WINDOW_MOVED),
    "closewindow": _no_payload(EventKind.WINDOW_CLOSED),
    "workspace": _no_payload(EventKind.WORKSPACE_CHANGED),
    "activespecial": _no_payload(EventKind.WORKSPACE_CHANGED),
    "focusedmon": _focused_monitor,
    "monitoradded": _named(EventKind.MONITOR_ADDED),
    "monitorremoved": _named(EventKind.MONITOR_REMOVED),
    "submap": _named(EventKind.SUBMAP_CHANGED),
}


class EventBridge:
    """Forwards Hyprland events onto the reactor's bounded event queue."""

    def __init__(self, listener: HyprlandEventListener, queue: "asyncio.Queue[DaemonEvent]") -> None:
        """Initialize bridge.

        Args:
            listener: Hyprland event socket reader
            queue: Bounded single-consumer queue read by the reactor
        """
        self.listener = listener
        self.queue = queue
        self.dropped: int = 0
        for event_name, translate in EVENT_TRANSLATIONS.items():
            self.listener.on(event_name, self._make_handler(event_name, translate))

    def _make_handler(self, event_name: str, translate: Callable[[str], DaemonEvent]) -> Callable[[str], None]:
        def handler(data: str) -> None:
            self.forward(translate(data))

        handler.__name__ = f"on_{event_name}"
        return handler

    def forward(self, event: DaemonEvent) -> bool:
        """Enqueue an event without blocking.

        Returns:
            False if the queue was full and the event was dropped
        """
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Event queue full, dropped {event.kind.value} (total dropped: {self.dropped})")
            return False
        logger.debug(f"Queued event {event.kind.value} name={event.name}")
        return True

    async def run(self) -> None:
        """Pump the compositor feed; only returns by raising EventFeedClosedError."""
        await self.listener.run()


def request_info(queue: "asyncio.Queue[DaemonEvent]", event: DaemonEvent) -> Optional[str]:
    """Inject a synthetic event from an IPC task.

    Returns:
        None on success, or an error text when the queue is full
    """
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        return "daemon is busy, event queue full"
    return None
