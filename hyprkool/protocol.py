"""Wire protocol for the hyprkool daemon socket.

Newline-delimited UTF-8 JSON, one message per line. Variants use the
externally tagged form: a variant without fields is a bare string
(``"IpcOk"``, ``"DaemonQuit"``), any other variant is a one-key object
(``{"IpcErr": "error: ..."}``, ``{"MoveRight": {"cycle": false, ...}}``).

Message variants:
- IpcOk: command succeeded
- IpcErr(text): command failed
- IpcMessage(text): push payload of an info command (itself JSON)
- Command(command): request sent by a client
"""

import json
from typing import Any, ClassVar, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_serializer, field_validator

from .errors import ErrorCode, ProtocolError


def _encode_variant(model: BaseModel) -> Union[str, Dict[str, Any]]:
    fields = model.model_dump()
    name = type(model).__name__
    if not type(model).model_fields:
        return name
    return {name: fields}


def _decode_variant(data: Any, registry: Dict[str, Type[BaseModel]], kind: str) -> BaseModel:
    if isinstance(data, str):
        name, fields = data, {}
    elif isinstance(data, dict) and len(data) == 1:
        name, fields = next(iter(data.items()))
    else:
        raise ValueError(f"Malformed {kind}: {data!r}")

    cls = registry.get(name)
    if cls is None:
        raise ValueError(f"Unknown {kind}: {name}")
    return cls.model_validate(fields or {})


# Info sub-commands

class InfoCommand(BaseModel):
    """Base for the streaming/info family."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Submap(InfoCommand):
    """Current input submap."""


class MonitorsAllInfo(InfoCommand):
    """Everything needed to draw widgets for monitors, activities, workspaces and windows."""


class NamedFocus(InfoCommand):
    """Named focus bookmarks."""


INFO_COMMANDS: Dict[str, Type[InfoCommand]] = {
    cls.__name__: cls for cls in (Submap, MonitorsAllInfo, NamedFocus)
}


# Commands

class Command(BaseModel):
    """Base for all user invocable operations.

    Commands are immutable once constructed and carry their own arguments.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Commands that only touch daemon state and need a snapshot broadcast afterwards
    changes_bookmarks: ClassVar[bool] = False


class DaemonQuit(Command):
    pass


class Info(Command):
    command: InfoCommand
    monitor: bool = False

    @field_validator("command", mode="before")
    @classmethod
    def decode_info_command(cls, v: Any) -> Any:
        if isinstance(v, InfoCommand):
            return v
        return _decode_variant(v, INFO_COMMANDS, "info command")

    @field_serializer("command")
    def encode_info_command(self, v: InfoCommand) -> Union[str, Dict[str, Any]]:
        return _encode_variant(v)


class FocusWindow(Command):
    address: str


class GridMove(Command):
    """Move inside the current activity's grid."""

    dx: ClassVar[int] = 0
    dy: ClassVar[int] = 0

    cycle: bool = False
    move_window: bool = False


class MoveRight(GridMove):
    dx: ClassVar[int] = 1


class MoveLeft(GridMove):
    dx: ClassVar[int] = -1


class MoveUp(GridMove):
    dy: ClassVar[int] = -1


class MoveDown(GridMove):
    dy: ClassVar[int] = 1


class ActivityCycle(Command):
    step: ClassVar[int] = 0

    cycle: bool = False
    move_window: bool = False


class NextActivity(ActivityCycle):
    step: ClassVar[int] = 1


class PrevActivity(ActivityCycle):
    step: ClassVar[int] = -1


class SwitchToActivity(Command):
    name: str
    move_window: bool = False


class MonitorCycle(Command):
    step: ClassVar[int] = 0

    cycle: bool = False
    move_window: bool = False


class NextMonitor(MonitorCycle):
    step: ClassVar[int] = 1


class PrevMonitor(MonitorCycle):
    step: ClassVar[int] = -1


class SwapMonitorsActiveWorkspace(Command):
    monitor_1: Optional[str] = None
    monitor_2: Optional[str] = None
    move_window: bool = False


class SwitchToMonitor(Command):
    name: str
    move_window: bool = False


class SwitchToWorkspaceInActivity(Command):
    name: str
    move_window: bool = False


class SwitchToWorkspace(Command):
    name: str
    move_window: bool = False


class ToggleSpecialWorkspace(Command):
    name: str
    move_window: bool = False
    silent: bool = False


class ToggleOverview(Command):
    pass


class SwitchNamedFocus(Command):
    name: str
    move_window: bool = False


class SetNamedFocus(Command):
    changes_bookmarks: ClassVar[bool] = True

    name: str


class DeleteNamedFocus(Command):
    changes_bookmarks: ClassVar[bool] = True

    name: str


COMMANDS: Dict[str, Type[Command]] = {
    cls.__name__: cls
    for cls in (
        DaemonQuit,
        Info,
        FocusWindow,
        MoveRight,
        MoveLeft,
        MoveUp,
        MoveDown,
        NextActivity,
        PrevActivity,
        SwitchToActivity,
        NextMonitor,
        PrevMonitor,
        SwapMonitorsActiveWorkspace,
        SwitchToMonitor,
        SwitchToWorkspaceInActivity,
        SwitchToWorkspace,
        ToggleSpecialWorkspace,
        ToggleOverview,
        SwitchNamedFocus,
        SetNamedFocus,
        DeleteNamedFocus,
    )
}


# Messages

class Message(BaseModel):
    """Base for wire-level messages."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class IpcOk(Message):
    pass


class IpcErr(Message):
    message: str


class IpcMessage(Message):
    payload: str


class CommandMessage(Message):
    command: Command


def encode_command(command: Command) -> Union[str, Dict[str, Any]]:
    return _encode_variant(command)


def decode_command(data: Any) -> Command:
    """Decode the JSON value of a Command variant.

    Raises:
        ProtocolError: If the value is not a known, well-formed command
    """
    try:
        return _decode_variant(data, COMMANDS, "command")  # type: ignore[return-value]
    except (ValueError, ValidationError) as e:
        raise ProtocolError(f"Invalid command: {e}") from e


def encode_message(message: Message) -> bytes:
    """Serialize a message to one newline-terminated JSON line."""
    value: Union[str, Dict[str, Any]]
    if isinstance(message, IpcOk):
        value = "IpcOk"
    elif isinstance(message, IpcErr):
        value = {"IpcErr": message.message}
    elif isinstance(message, IpcMessage):
        value = {"IpcMessage": message.payload}
    elif isinstance(message, CommandMessage):
        value = {"Command": encode_command(message.command)}
    else:
        raise TypeError(f"Cannot encode {type(message).__name__}")
    return (json.dumps(value) + "\n").encode()


def decode_message(line: Union[bytes, str]) -> Message:
    """Parse one line received on the socket.

    Raises:
        ProtocolError: If the line is not a valid message
    """
    if isinstance(line, bytes):
        try:
            line = line.decode()
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Message is not UTF-8: {e}") from e

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Malformed JSON: {e}") from e

    if data == "IpcOk":
        return IpcOk()
    if isinstance(data, dict) and len(data) == 1:
        tag, value = next(iter(data.items()))
        if tag == "IpcErr" and isinstance(value, str):
            return IpcErr(message=value)
        if tag == "IpcMessage" and isinstance(value, str):
            return IpcMessage(payload=value)
        if tag == "Command":
            return CommandMessage(command=decode_command(value))

    raise ProtocolError(f"Unknown message: {line.strip()!r}", code=ErrorCode.UNEXPECTED_MESSAGE)
