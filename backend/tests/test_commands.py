"""Tests for the slash-command interpreter."""
import pytest

from termchat.chat.commands import HELP_TEXT
from termchat.chat.errors import CommandUsageError, NameConflictError


@pytest.fixture
def room(manager, connect, drain):
    """Two joined participants with empty outboxes."""
    alice = connect("alice")
    bob = connect("bob")
    drain(alice)
    return alice, bob


class TestInformationalCommands:
    """Commands that only answer the sender."""

    def test_help(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(alice, "/help")

        frames = drain(alice)
        assert len(frames) == 1
        assert frames[0]["type"] == "system"
        assert frames[0]["message"] == HELP_TEXT
        assert drain(bob) == []

    def test_users(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(bob, "/users")

        frames = drain(bob)
        assert frames[0]["message"] == "Online (2): alice, bob"
        assert drain(alice) == []

    def test_clear(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(alice, "/clear")

        assert drain(alice) == [{"type": "clear"}]
        assert drain(bob) == []

    def test_informational_commands_do_not_touch_history(self, manager, room):
        alice, _ = room
        before = len(manager.history)
        for command in ("/help", "/users", "/clear"):
            manager.handle_chat(alice, command)
        assert len(manager.history) == before

    def test_command_name_is_case_insensitive(self, manager, room, drain):
        alice, _ = room
        manager.handle_chat(alice, "/HeLp")
        assert drain(alice)[0]["message"] == HELP_TEXT


class TestMe:
    """Tests for /me."""

    def test_me_broadcasts_action(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(alice, "/me waves hello")

        for conn in (alice, bob):
            frame = drain(conn)[0]
            assert frame["type"] == "action"
            assert frame["username"] == "alice"
            assert frame["message"] == "alice waves hello"
        assert manager.history.snapshot()[-1].type == "action"

    def test_me_without_text(self, manager, room, drain):
        alice, _ = room
        manager.handle_chat(alice, "/me")
        assert drain(alice)[0]["message"] == "alice ..."

    def test_me_collapses_whitespace(self, manager, room, drain):
        alice, _ = room
        manager.handle_chat(alice, "/me   jumps    high")
        assert drain(alice)[0]["message"] == "alice jumps high"


class TestNick:
    """Tests for /nick."""

    def test_nick_renames(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(alice, "/nick ally")

        frames = drain(bob)
        assert frames[0]["message"] == "alice is now known as ally"
        assert frames[1] == {"type": "users", "list": ["ally", "bob"]}

    def test_nick_sanitizes(self, manager, room):
        alice, _ = room
        manager.handle_chat(alice, "/nick al!ce$" + "z" * 30)
        assert manager.get_participant(alice).display_name == ("alce" + "z" * 30)[:20]

    @pytest.mark.parametrize("text", ["/nick", "/nick !!!"])
    def test_nick_without_usable_name(self, manager, room, text):
        alice, _ = room
        with pytest.raises(CommandUsageError) as exc:
            manager.commands.execute(alice, text)
        assert exc.value.message == "Usage: /nick <newname>"
        assert manager.get_participant(alice).display_name == "alice"

    def test_nick_usage_error_reaches_sender_only(self, manager, room, drain):
        alice, bob = room
        manager.handle_message(alice, '{"type": "chat", "text": "/nick"}')
        assert drain(alice) == [{"type": "error", "message": "Usage: /nick <newname>"}]
        assert drain(bob) == []

    def test_nick_conflict(self, manager, room, drain):
        alice, bob = room
        history_before = len(manager.history)

        manager.handle_message(alice, '{"type": "chat", "text": "/nick BOB"}')

        assert drain(alice) == [{"type": "error", "message": '"BOB" is already taken.'}]
        assert drain(bob) == []
        assert manager.get_participant(alice).display_name == "alice"
        assert len(manager.history) == history_before

    def test_second_claim_on_same_name_fails(self, manager, room, connect):
        alice, bob = room
        manager.commands.execute(alice, "/nick carol")
        with pytest.raises(NameConflictError):
            manager.commands.execute(bob, "/nick carol")
        assert manager.roster() == ["carol", "bob"]

    def test_nick_to_current_name_keeps_it(self, manager, room, drain):
        alice, bob = room
        manager.handle_chat(alice, "/nick alice")
        assert manager.get_participant(alice).display_name == "alice"
        assert drain(bob) == []


class TestUnknownCommand:
    """Tests for unrecognized commands."""

    def test_unknown_command(self, manager, room, drain):
        alice, bob = room
        manager.handle_message(alice, '{"type": "chat", "text": "/Dance now"}')

        assert drain(alice) == [{"type": "error", "message": "Unknown command: /dance"}]
        assert drain(bob) == []

    def test_commands_never_fall_through_to_chat(self, manager, room):
        alice, _ = room
        for text in ("/help", "/nope", "/nick", "/clear"):
            manager.handle_message(alice, f'{{"type": "chat", "text": "{text}"}}')
        assert not any(e.type == "chat" for e in manager.history.snapshot())

    def test_lone_slash_is_unknown(self, manager, room, drain):
        alice, _ = room
        manager.handle_message(alice, '{"type": "chat", "text": "/"}')
        assert drain(alice) == [{"type": "error", "message": "Unknown command: /"}]


def test_registered_command_names(manager):
    assert manager.commands.names == ["/help", "/users", "/me", "/nick", "/clear"]
