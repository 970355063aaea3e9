"""Daemon entry point and reactor.

The reactor is the only writer of :class:`SessionState`. Its loop waits on
the compositor event queue, the IPC request queue, its own receiver of the
snapshot broadcast, the event feed task and the poll timer, and handles
whichever is ready one step at a time with the state lock held.

Systemd integration (sd_notify, watchdog, journald logging) is used when
systemd-python is installed.
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, Set

try:
    from systemd import journal, daemon as sd_daemon
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from .broadcast import Broadcast, BroadcastClosed, Subscription
from .commands import execute_command
from .config import Config, load_config
from .constants import (
    DISABLED_POLL_INTERVAL,
    EVENT_CHANNEL_SIZE,
    INFO_CHANNEL_SIZE,
    ConfigPaths,
    get_socket_dir,
)
from .errors import EventFeedClosedError, HyprkoolError, HyprlandError
from .event_bridge import EventBridge
from .handoff import DaemonLock, take_over
from .hyprland import HyprlandClient, HyprlandEventListener
from .ipc_server import CommandRequest, IPCServer, QuitRequest, Request
from .models import DaemonEvent, EventKind, InfoEvent, InfoKind
from .mouse import MouseEdgePoller
from .plugin import PluginNotifier
from .protocol import IpcErr, IpcOk, Message
from .state import SessionState

logger = logging.getLogger(__name__)


class DaemonHealthMonitor:
    """Manages systemd health notifications and watchdog pings."""

    def __init__(self) -> None:
        self.watchdog_interval: Optional[float] = None
        self._setup_watchdog()

    def _setup_watchdog(self) -> None:
        if not SYSTEMD_AVAILABLE:
            return

        watchdog_usec = os.environ.get("WATCHDOG_USEC")
        if watchdog_usec:
            # Ping at a third of the timeout
            self.watchdog_interval = int(watchdog_usec) / 3_000_000
            logger.info(f"Systemd watchdog enabled: {self.watchdog_interval:.1f}s interval")
        else:
            logger.debug("Systemd watchdog not configured")

    def notify_ready(self) -> None:
        """Send READY=1 signal to systemd."""
        if SYSTEMD_AVAILABLE:
            sd_daemon.notify("READY=1")
            logger.info("Sent READY=1 to systemd")

    def notify_watchdog(self) -> None:
        if SYSTEMD_AVAILABLE:
            sd_daemon.notify("WATCHDOG=1")
            logger.debug("Sent WATCHDOG=1 ping")

    def notify_stopping(self) -> None:
        """Send STOPPING=1 signal to systemd."""
        if SYSTEMD_AVAILABLE:
            sd_daemon.notify("STOPPING=1")
            logger.info("Sent STOPPING=1 to systemd")

    async def watchdog_loop(self) -> None:
        """Background task that sends watchdog pings."""
        if not self.watchdog_interval:
            return

        while True:
            await asyncio.sleep(self.watchdog_interval)
            self.notify_watchdog()


class HyprkoolDaemon:
    """Owns the session state and runs the reactor loop."""

    def __init__(
        self,
        config: Config,
        hyprland: Optional[HyprlandClient] = None,
        listener: Optional[HyprlandEventListener] = None,
        socket_dir: Optional[Path] = None,
    ) -> None:
        """Initialize daemon.

        Args:
            config: Validated configuration
            hyprland: Compositor control client (defaults to the current session's)
            listener: Compositor event feed (defaults to Hyprland's event socket)
            socket_dir: Directory for the daemon, plugin and lock files

        Raises:
            SessionNotFoundError: If no Hyprland session is running
        """
        self.config = config
        self.hyprland = hyprland or HyprlandClient()
        self.listener = listener or HyprlandEventListener(self.hyprland.event_socket)
        self.socket_dir = socket_dir or get_socket_dir()
        self.socket_path = self.socket_dir / ConfigPaths.DAEMON_SOCKET_NAME
        self.lock_path = self.socket_dir / ConfigPaths.LOCK_FILE_NAME

        self.events: "asyncio.Queue[DaemonEvent]" = asyncio.Queue(maxsize=EVENT_CHANNEL_SIZE)
        self.requests: "asyncio.Queue[Request]" = asyncio.Queue()
        self.info_bus: Broadcast[InfoEvent] = Broadcast(INFO_CHANNEL_SIZE)
        self.notifier = PluginNotifier(self.socket_dir / ConfigPaths.PLUGIN_SOCKET_NAME)

        self.state: Optional[SessionState] = None
        self.bridge = EventBridge(self.listener, self.events)
        self.ipc_server: Optional[IPCServer] = None
        self.poller: Optional[MouseEdgePoller] = None
        self.instance_lock: Optional[DaemonLock] = None
        self.health_monitor = DaemonHealthMonitor()
        self.shutdown_event = asyncio.Event()

    @property
    def poll_interval(self) -> float:
        return self.config.poll_interval or DISABLED_POLL_INTERVAL

    async def initialize(self) -> None:
        """Take over the session, load state and start listening.

        Raises:
            SocketBindError: If a previous daemon cannot be replaced
            HyprlandError: If the compositor cannot be queried
        """
        logger.info("Initializing hyprkool daemon...")
        self.socket_dir.mkdir(parents=True, exist_ok=True)
        self.instance_lock = await take_over(self.socket_path, self.lock_path)

        self.state = await SessionState.create(self.config, self.hyprland)
        self.poller = MouseEdgePoller(self.state, self.notifier)

        if self.config.daemon.move_monitors_to_hyprkool_activity:
            async with self.state.lock:
                for track in self.state.ordered_monitors():
                    try:
                        await self.state.move_monitor_to_valid_activity(track.name)
                    except HyprkoolError as e:
                        logger.warning(f"Could not move monitor {track.name} to an activity: {e.message}")

        self.ipc_server = IPCServer(self.socket_path, self.requests, self.events, self.info_bus)
        await self.ipc_server.start()
        logger.info(f"Daemon initialized: activities={self.state.activities}, monitors={len(self.state.monitors)}")

    # Reactor steps

    async def _publish(self, kind: InfoKind, only_if_subscribed: bool = False) -> None:
        assert self.state is not None
        # The reactor's own receiver is always subscribed
        if only_if_subscribed and self.info_bus.receiver_count <= 1:
            return
        payload = await self.state.snapshot_json(kind)
        self.info_bus.send(InfoEvent(kind=kind, payload=payload))

    async def _focus_last_window(self, monitor_name: Optional[str]) -> None:
        assert self.state is not None
        track = self.state.track_by_name(monitor_name or "")
        if track is None:
            return
        clients = await self.hyprland.get_clients()
        candidates = [
            c for c in clients
            if c.workspace.name == track.current_workspace and c.mapped and not c.hidden
        ]
        if not candidates:
            return
        last = min(candidates, key=lambda c: c.focus_history_id)
        if last.focus_history_id != 0:
            await self.hyprland.focus_window(last.address)

    async def _apply_event(self, event: DaemonEvent) -> None:
        assert self.state is not None
        daemon_config = self.config.daemon

        if event.kind == EventKind.MONITOR_ADDED:
            if daemon_config.move_monitors_to_hyprkool_activity and event.name:
                await self.state.move_monitor_to_valid_activity(event.name)
        elif event.kind == EventKind.MONITOR_CHANGED:
            if daemon_config.focus_last_window_on_monitor_change:
                await self._focus_last_window(event.name)
        elif event.kind == EventKind.SUBMAP_CHANGED:
            self.state.submap = event.name or ""
            await self._publish(InfoKind.SUBMAP)
            return
        elif event.kind == EventKind.INFO_REQUESTED:
            await self._publish(event.info or InfoKind.MONITORS)
            return

        await self._publish(InfoKind.MONITORS, only_if_subscribed=True)

    async def handle_event(self, event: DaemonEvent) -> None:
        """Process one compositor or synthetic event."""
        assert self.state is not None
        logger.debug(f"Handling event {event.kind.value} name={event.name}")
        async with self.state.lock:
            try:
                await self.state.update_monitors()
            except HyprlandError as e:
                logger.warning(f"Monitor refresh failed: {e.message}")

            try:
                await self._apply_event(event)
            except HyprkoolError as e:
                logger.warning(f"Error while handling {event.kind.value}: {e.message}")
            except Exception as e:
                logger.error(f"Unexpected error while handling {event.kind.value}: {e}", exc_info=True)

    async def handle_request(self, request: Request) -> bool:
        """Process one IPC request.

        Returns:
            True if the daemon should quit
        """
        if isinstance(request, QuitRequest):
            return True

        assert self.state is not None
        name = type(request.command).__name__
        reply: Message
        async with self.state.lock:
            try:
                await self.state.update_monitors()
            except HyprlandError as e:
                logger.warning(f"Monitor refresh failed: {e.message}")

            try:
                await execute_command(self.state, request.command, self.notifier)
                reply = IpcOk()
            except HyprkoolError as e:
                logger.error(f"Command {name} failed: {e.message}")
                reply = IpcErr(message=f"error: {e.message}")
            except Exception as e:
                logger.error(f"Unexpected error in command {name}: {e}", exc_info=True)
                reply = IpcErr(message=f"error: {e}")

            if isinstance(reply, IpcOk) and request.command.changes_bookmarks:
                try:
                    await self._publish(InfoKind.NAMED_FOCUS, only_if_subscribed=True)
                    await self._publish(InfoKind.MONITORS, only_if_subscribed=True)
                except HyprlandError as e:
                    logger.warning(f"Snapshot after {name} failed: {e.message}")

        if not request.reply.done():
            request.reply.set_result(reply)
        return False

    async def tick(self) -> None:
        """Run one mouse poller step."""
        assert self.state is not None and self.poller is not None
        async with self.state.lock:
            try:
                await self.poller.step()
            except HyprkoolError as e:
                logger.warning(f"Mouse poll failed: {e.message}")

    # Main loop

    async def run(self) -> None:
        """Reactor loop.

        Returns after a DaemonQuit request.

        Raises:
            EventFeedClosedError: If the compositor event feed ends
        """
        self.health_monitor.notify_ready()
        watchdog_task = asyncio.create_task(self.health_monitor.watchdog_loop())
        feed_task = asyncio.create_task(self.bridge.run(), name="hyprland-events")
        info_rx: Subscription[InfoEvent] = self.info_bus.subscribe()

        loop = asyncio.get_running_loop()
        interval = self.poll_interval
        next_tick = loop.time() + interval

        event_get: Optional["asyncio.Task[DaemonEvent]"] = None
        request_get: Optional["asyncio.Task[Request]"] = None
        info_get: Optional["asyncio.Task[InfoEvent]"] = None

        logger.info("Starting reactor loop...")
        try:
            while True:
                if event_get is None:
                    event_get = asyncio.create_task(self.events.get())
                if request_get is None:
                    request_get = asyncio.create_task(self.requests.get())
                if info_get is None:
                    info_get = asyncio.create_task(info_rx.recv())

                waiting: Set[asyncio.Task] = {feed_task, event_get, request_get, info_get}
                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

                if feed_task in done:
                    feed_task.result()
                    raise EventFeedClosedError("Hyprland event feed stopped")

                if event_get in done:
                    event = event_get.result()
                    event_get = None
                    await self.handle_event(event)

                if request_get in done:
                    request = request_get.result()
                    request_get = None
                    if await self.handle_request(request):
                        logger.info("Quit requested, leaving reactor loop")
                        return

                if info_get in done:
                    try:
                        info = info_get.result()
                    except BroadcastClosed:
                        raise HyprkoolError("info event channel closed") from None
                    info_get = None
                    logger.debug(f"Broadcast {info.kind.value} snapshot (lagged={info_rx.lagged})")

                if loop.time() >= next_tick:
                    next_tick = loop.time() + interval
                    await self.tick()
        finally:
            info_rx.close()
            pending = [t for t in (event_get, request_get, info_get, feed_task, watchdog_task) if t is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop serving, drop the socket and release the instance lock."""
        logger.info("Shutting down daemon...")
        self.health_monitor.notify_stopping()

        if self.ipc_server:
            try:
                await asyncio.wait_for(self.ipc_server.stop(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("IPC server shutdown timed out after 5s (continuing)")
            self.ipc_server = None

        self.info_bus.close("daemon shutting down")

        if self.instance_lock and self.instance_lock.held:
            with contextlib.suppress(FileNotFoundError):
                self.socket_path.unlink()
            self.instance_lock.release()

        logger.info("Daemon shutdown complete")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def shutdown_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown...")
            loop.call_soon_threadsafe(self.shutdown_event.set)

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)


def setup_logging() -> None:
    """Setup logging to systemd journal or stderr."""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if SYSTEMD_AVAILABLE:
        handler: logging.Handler = journal.JournalHandler(SYSLOG_IDENTIFIER="hyprkool")
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
    root_logger.addHandler(handler)

    logger.info(f"Logging configured: level={log_level}")


async def main_async(config_file: Optional[Path] = None) -> int:
    """Async main function.

    Returns:
        Exit code (0 = quit requested or compositor gone, non-zero = error)
    """
    daemon: Optional[HyprkoolDaemon] = None
    try:
        config = load_config(config_file)
        daemon = HyprkoolDaemon(config)
        daemon.setup_signal_handlers()
        await daemon.initialize()

        run_task = asyncio.create_task(daemon.run())
        shutdown_task = asyncio.create_task(daemon.shutdown_event.wait())

        done, pending = await asyncio.wait([run_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if run_task in done:
            error = run_task.exception()
            if isinstance(error, EventFeedClosedError):
                logger.error(f"Exiting: {error.message}")
            elif error is not None:
                raise error
        return 0

    except HyprkoolError as e:
        logger.error(f"Fatal error: {e.message}", extra={"error": e.to_dict()})
        return 1

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    finally:
        if daemon is not None:
            await daemon.shutdown()


def main(config_file: Optional[Path] = None) -> None:
    """Main entry point."""
    setup_logging()
    logger.info(f"hyprkool daemon starting (PID {os.getpid()})")

    try:
        exit_code = asyncio.run(main_async(config_file))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
