"""Tests for the command dispatcher."""
import pytest

from chatroom.broadcast import BroadcastEngine
from chatroom.commands import ActionKind, CommandDispatcher
from chatroom.protocol import TCP_HELP_LINES
from chatroom.registry import SessionRegistry
from .conftest import FakeHandle


@pytest.fixture
def registry():
    registry = SessionRegistry()
    registry.register("bob", FakeHandle())
    registry.register("carol", FakeHandle())
    return registry


@pytest.fixture
def dispatcher(registry):
    return CommandDispatcher(BroadcastEngine(registry), TCP_HELP_LINES)


@pytest.mark.parametrize("line", ["hello", "", "  /users", "users/", "中文消息"])
def test_plain_text_is_broadcast(dispatcher, line):
    action = dispatcher.dispatch(line)
    assert action.kind is ActionKind.BROADCAST
    assert action.body == line


def test_users_replies_with_roster(dispatcher):
    action = dispatcher.dispatch("/users")
    assert action.kind is ActionKind.REPLY
    assert len(action.lines) == 1
    assert "(2人)" in action.lines[0]
    assert action.lines[0].count("bob") == 1
    assert action.lines[0].count("carol") == 1


def test_help_replies_with_fixed_text(dispatcher):
    action = dispatcher.dispatch("/help")
    assert action.kind is ActionKind.REPLY
    assert action.lines == TCP_HELP_LINES


@pytest.mark.parametrize("line", ["/quit", "/exit"])
def test_quit_commands(dispatcher, line):
    assert dispatcher.dispatch(line).kind is ActionKind.QUIT


@pytest.mark.parametrize("line", ["/foo", "/QUIT", "/users now", "/"])
def test_unknown_command_echoes_text_and_leaves_registry(dispatcher, registry, line):
    before = registry.lookup_all()
    action = dispatcher.dispatch(line)
    assert action.kind is ActionKind.REPLY
    assert line in action.lines[0]
    assert registry.lookup_all() == before


def test_unknown_command_without_hint(registry):
    dispatcher = CommandDispatcher(BroadcastEngine(registry), [], unknown_hint=False)
    assert dispatcher.dispatch("/foo").lines == ["未知命令: /foo"]
