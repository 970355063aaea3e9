"""
Unit tests for the daemon socket wire protocol.

Tests cover the externally tagged JSON encoding of messages and commands
and rejection of malformed lines.
"""

import json

import pytest

from hyprkool.errors import ErrorCode, ProtocolError
from hyprkool.protocol import (
    COMMANDS,
    CommandMessage,
    DaemonQuit,
    Info,
    IpcErr,
    IpcMessage,
    IpcOk,
    MonitorsAllInfo,
    MoveLeft,
    MoveRight,
    NextActivity,
    SetNamedFocus,
    Submap,
    SwapMonitorsActiveWorkspace,
    decode_message,
    encode_message,
)


def wire(line: bytes):
    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    return json.loads(line)


class TestEncoding:
    """Test messages serialize to one tagged JSON line."""

    def test_unit_variants_are_bare_strings(self):
        assert wire(encode_message(IpcOk())) == "IpcOk"
        assert wire(encode_message(CommandMessage(command=DaemonQuit()))) == {"Command": "DaemonQuit"}

    def test_ipc_err_carries_text(self):
        assert wire(encode_message(IpcErr(message="error: nope"))) == {"IpcErr": "error: nope"}

    def test_ipc_message_payload_stays_a_string(self):
        """Test info payloads are JSON text embedded as a string."""
        payload = json.dumps({"submap": "resize"})

        assert wire(encode_message(IpcMessage(payload=payload))) == {"IpcMessage": payload}

    def test_command_fields(self):
        line = encode_message(CommandMessage(command=MoveRight(cycle=True)))

        assert wire(line) == {"Command": {"MoveRight": {"cycle": True, "move_window": False}}}

    def test_info_command_nested(self):
        """Test Info embeds its sub-command as a tagged variant."""
        command = Info(command=Submap(), monitor=True)

        assert wire(encode_message(CommandMessage(command=command))) == {
            "Command": {"Info": {"command": "Submap", "monitor": True}}
        }


class TestDecoding:
    """Test parsing of lines received on the socket."""

    def test_decode_reply_messages(self):
        assert decode_message(b'"IpcOk"\n') == IpcOk()
        assert decode_message('{"IpcErr": "error: x"}') == IpcErr(message="error: x")
        assert decode_message('{"IpcMessage": "{}"}') == IpcMessage(payload="{}")

    def test_decode_command_with_defaults(self):
        """Test missing command fields take their defaults."""
        message = decode_message(b'{"Command": {"MoveLeft": {}}}\n')

        assert isinstance(message, CommandMessage)
        assert message.command == MoveLeft(cycle=False, move_window=False)

    def test_decode_optional_monitor_names(self):
        message = decode_message('{"Command": {"SwapMonitorsActiveWorkspace": {"monitor_1": "DP-1", "monitor_2": null, "move_window": true}}}')

        assert message.command == SwapMonitorsActiveWorkspace(monitor_1="DP-1", move_window=True)

    def test_decode_info_command(self):
        message = decode_message('{"Command": {"Info": {"command": "MonitorsAllInfo", "monitor": false}}}')

        assert isinstance(message.command, Info)
        assert isinstance(message.command.command, MonitorsAllInfo)
        assert message.command.monitor is False

    @pytest.mark.parametrize("command", [
        DaemonQuit(),
        NextActivity(cycle=True, move_window=True),
        SetNamedFocus(name="code"),
        Info(command=MonitorsAllInfo()),
    ])
    def test_command_survives_the_wire(self, command):
        """Test a command decodes to an equal command."""
        message = decode_message(encode_message(CommandMessage(command=command)))

        assert message.command == command

    def test_malformed_json(self):
        with pytest.raises(ProtocolError) as exc_info:
            decode_message(b"{not json\n")

        assert exc_info.value.code == ErrorCode.PARSE_ERROR

    def test_non_utf8(self):
        with pytest.raises(ProtocolError):
            decode_message(b"\xff\xfe\n")

    def test_unknown_command(self):
        with pytest.raises(ProtocolError):
            decode_message('{"Command": "Explode"}')

    def test_unknown_command_field(self):
        with pytest.raises(ProtocolError):
            decode_message('{"Command": {"MoveLeft": {"speed": 3}}}')

    def test_missing_required_field(self):
        with pytest.raises(ProtocolError):
            decode_message('{"Command": {"SwitchToActivity": {}}}')

    def test_unknown_message(self):
        with pytest.raises(ProtocolError) as exc_info:
            decode_message('{"Hello": 1}')

        assert exc_info.value.code == ErrorCode.UNEXPECTED_MESSAGE


class TestCommandRegistry:
    """Test the command table the CLI and decoder share."""

    def test_every_command_is_registered(self):
        assert len(COMMANDS) == 21
        assert all(name == cls.__name__ for name, cls in COMMANDS.items())

    def test_grid_move_directions(self):
        assert (MoveRight.dx, MoveRight.dy) == (1, 0)
        assert (MoveLeft.dx, MoveLeft.dy) == (-1, 0)

    def test_bookmark_commands_flagged(self):
        assert SetNamedFocus.changes_bookmarks
        assert not MoveRight.changes_bookmarks
