"""hyprkool command line interface.

Every command is sent to the running daemon. When no daemon answers and
``daemon.fallback_commands`` is enabled, one-shot commands are executed
directly against a freshly loaded session state instead. Info commands
always need the daemon.
"""

import argparse
import asyncio
import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Type

from .client import send_command, stream_info
from .commands import execute_command
from .config import load_config
from .constants import get_plugin_socket_path, get_socket_path
from .daemon import main as daemon_main
from .errors import DaemonUnavailableError, HyprkoolError
from .hyprland import HyprlandClient
from .plugin import PluginNotifier
from .protocol import (
    COMMANDS,
    INFO_COMMANDS,
    Command,
    Info,
    IpcErr,
    IpcOk,
)
from .state import SessionState

logger = logging.getLogger(__name__)


def kebab_case(name: str) -> str:
    """``SwapMonitorsActiveWorkspace`` -> ``swap-monitors-active-workspace``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


def _add_move_window(parser: argparse.ArgumentParser, target: str = "workspace") -> None:
    parser.add_argument(
        "-w", "--move-window", action="store_true",
        help=f"move focused window and move to {target}",
    )


def _add_cycle(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--cycle", action="store_true", help="wrap around at the edges")


def _add_name(parser: argparse.ArgumentParser, help_text: str) -> None:
    parser.add_argument("-n", "--name", required=True, help=help_text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hyprkool",
        description="Activities and a grid of workspaces for Hyprland",
    )
    parser.add_argument("--config", type=Path, default=None, help="path to hyprkool.toml")
    parser.add_argument(
        "--force-no-daemon", action="store_true",
        help="execute the command without talking to the daemon",
    )

    subparsers = parser.add_subparsers(dest="subcommand", required=True)
    subparsers.add_parser("daemon", help="run the hyprkool daemon")

    def add(cls: Type[Command], help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(kebab_case(cls.__name__), help=help_text)
        sub.set_defaults(command_class=cls.__name__)
        return sub

    add(COMMANDS["DaemonQuit"], "ask the running daemon to quit")

    info = add(COMMANDS["Info"], "print state snapshots")
    info.add_argument("-m", "--monitor", action="store_true", help="keep printing on every change")
    info_sub = info.add_subparsers(dest="info_subcommand", required=True)
    for info_cls in INFO_COMMANDS.values():
        info_parser = info_sub.add_parser(kebab_case(info_cls.__name__), help=info_cls.__doc__)
        info_parser.set_defaults(info_class=info_cls.__name__)

    focus = add(COMMANDS["FocusWindow"], "focus a window by address")
    focus.add_argument("-a", "--address", required=True)

    for name in ("MoveRight", "MoveLeft", "MoveUp", "MoveDown", "NextActivity", "PrevActivity"):
        sub = add(COMMANDS[name], kebab_case(name).replace("-", " "))
        _add_cycle(sub)
        _add_move_window(sub)

    sub = add(COMMANDS["SwitchToActivity"], "switch to (or create) an activity")
    _add_name(sub, "<activity name>")
    _add_move_window(sub)

    for name in ("NextMonitor", "PrevMonitor"):
        sub = add(COMMANDS[name], kebab_case(name).replace("-", " "))
        _add_cycle(sub)
        _add_move_window(sub, "monitor")

    sub = add(COMMANDS["SwapMonitorsActiveWorkspace"], "swap the active workspaces of two monitors")
    sub.add_argument("-m", "--monitor-1", help="name of 1st monitor (only necessary with more than 2 monitors)")
    sub.add_argument("-n", "--monitor-2", help="name of 2nd monitor (only necessary with more than 2 monitors)")
    _add_move_window(sub)

    sub = add(COMMANDS["SwitchToMonitor"], "focus a monitor")
    _add_name(sub, "<monitor name> (see `hyprctl monitors`)")
    _add_move_window(sub, "monitor")

    sub = add(COMMANDS["SwitchToWorkspaceInActivity"], "switch to a workspace of the current activity")
    _add_name(sub, "<workspace name>, e.g. '(2 1)'")
    _add_move_window(sub)

    sub = add(COMMANDS["SwitchToWorkspace"], "switch to a hyprkool workspace")
    _add_name(sub, "<activity name>:<workspace name>")
    _add_move_window(sub)

    sub = add(COMMANDS["ToggleSpecialWorkspace"], "toggle a special workspace")
    _add_name(sub, "<special workspace name>")
    _add_move_window(sub)
    sub.add_argument("-s", "--silent", action="store_true", help="do not follow the moved window")

    add(COMMANDS["ToggleOverview"], "toggle the overview of the current workspace")

    sub = add(COMMANDS["SwitchNamedFocus"], "switch to a named focus")
    _add_name(sub, "<named focus>")
    _add_move_window(sub)

    sub = add(COMMANDS["SetNamedFocus"], "bind a name to the current workspace")
    _add_name(sub, "<named focus>")

    sub = add(COMMANDS["DeleteNamedFocus"], "forget a named focus")
    _add_name(sub, "<named focus>")

    return parser


def build_command(args: argparse.Namespace) -> Command:
    """Turn parsed arguments into a Command."""
    cls = COMMANDS[args.command_class]
    if cls is Info:
        return Info(command=INFO_COMMANDS[args.info_class](), monitor=args.monitor)
    fields: Dict[str, object] = {name: getattr(args, name) for name in cls.model_fields}
    return cls(**fields)


class HyprkoolCLI:
    """Sends commands to the daemon, falling back to stateless execution."""

    def __init__(self, config_file: Optional[Path] = None, force_no_daemon: bool = False) -> None:
        self.config_file = config_file
        self.force_no_daemon = force_no_daemon

    async def run(self, command: Command) -> int:
        if isinstance(command, Info):
            return await self.run_info(command)

        if not self.force_no_daemon:
            try:
                reply = await send_command(get_socket_path(), command)
            except DaemonUnavailableError as e:
                logger.debug(f"Daemon unavailable: {e.message}")
                print(e.message, file=sys.stderr)
            else:
                if isinstance(reply, IpcOk):
                    print("Ok")
                    return 0
                if isinstance(reply, IpcErr):
                    print(reply.message, file=sys.stderr)
                    return 1
                print(f"unexpected reply: {reply!r}", file=sys.stderr)
                return 1

            if not load_config(self.config_file).daemon.fallback_commands:
                return 1
            print("falling back to stateless commands", file=sys.stderr)

        return await self.run_stateless(command)

    async def run_stateless(self, command: Command) -> int:
        """Execute a command without the daemon."""
        config = load_config(self.config_file)
        state = await SessionState.create(config, HyprlandClient())
        notifier = PluginNotifier(get_plugin_socket_path())
        async with state.lock:
            await execute_command(state, command, notifier)
        print("Ok")
        return 0

    async def run_info(self, command: Info) -> int:
        if self.force_no_daemon:
            print("info commands are only supported with the daemon running. run 'hyprkool daemon'", file=sys.stderr)
            return 1
        async for payload in stream_info(get_socket_path(), command):
            print(payload, flush=True)
        return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.subcommand == "daemon":
        if args.force_no_daemon:
            parser.error("--force-no-daemon is not allowed with the daemon command")
        daemon_main(args.config)
        return

    if getattr(args, "silent", False) and not args.move_window:
        parser.error("--silent requires --move-window")

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s [%(name)s] %(message)s",
    )

    cli = HyprkoolCLI(args.config, args.force_no_daemon)
    try:
        exit_code = asyncio.run(cli.run(build_command(args)))
    except HyprkoolError as e:
        print(f"error: {e.message}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
