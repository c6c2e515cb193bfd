"""Slash-command interpreter.

Commands:
    - /help: List available commands (sender only)
    - /users: Count and names of who is online (sender only)
    - /me <action>: Broadcast an action line, e.g. "bob waves"
    - /nick <newname>: Rename yourself
    - /clear: Ask the sender's client to clear its screen

Command names match case-insensitively. Every command path ends here; none
falls through to plain chat.
"""
import logging
from typing import TYPE_CHECKING, Callable, Dict, List

from .errors import CommandUsageError
from .protocol import ActionEvent, ClearFrame, SystemEvent, sanitize_name

if TYPE_CHECKING:
    from .manager import Connection, SessionManager

logger = logging.getLogger(__name__)

HELP_TEXT = "Commands: /help, /users, /me <action>, /nick <newname>, /clear"

CommandHandler = Callable[["Connection", List[str]], None]


class CommandInterpreter:
    """Parses ``/``-prefixed chat text and runs the matching command."""

    def __init__(self, manager: "SessionManager") -> None:
        self.manager = manager
        self._handlers: Dict[str, CommandHandler] = {
            "/help": self._help,
            "/users": self._users,
            "/me": self._me,
            "/nick": self._nick,
            "/clear": self._clear,
        }

    @property
    def names(self) -> List[str]:
        return list(self._handlers)

    def execute(self, connection: "Connection", text: str) -> None:
        """Run the command in ``text`` for ``connection``.

        Raises:
            CommandUsageError: Unknown command or missing argument.
            NameConflictError: ``/nick`` to a name held by someone else.
        """
        parts = text.split()
        command = parts[0].lower()
        handler = self._handlers.get(command)
        if handler is None:
            raise CommandUsageError(f"Unknown command: {command}")
        logger.debug("[Commands] %s from %r", command, connection)
        handler(connection, parts[1:])

    def _help(self, connection: "Connection", args: List[str]) -> None:
        self.manager.send(connection, SystemEvent(message=HELP_TEXT))

    def _users(self, connection: "Connection", args: List[str]) -> None:
        names = self.manager.roster()
        self.manager.send(
            connection,
            SystemEvent(message=f"Online ({len(names)}): {', '.join(names)}"),
        )

    def _me(self, connection: "Connection", args: List[str]) -> None:
        name = self.manager.participants[connection].display_name
        action = " ".join(args) or "..."
        self.manager.post(ActionEvent(username=name, message=f"{name} {action}"))

    def _nick(self, connection: "Connection", args: List[str]) -> None:
        new_name = sanitize_name(args[0] if args else "", self.manager.max_name_length)
        if not new_name:
            raise CommandUsageError("Usage: /nick <newname>")
        self.manager.rename(connection, new_name)

    def _clear(self, connection: "Connection", args: List[str]) -> None:
        self.manager.send(connection, ClearFrame())
