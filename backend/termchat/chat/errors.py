"""Chat error taxonomy.

Only :class:`AuthRejectedError` ends a connection. The user-facing errors
(:class:`NameConflictError`, :class:`CommandUsageError`) are turned into a
single ``error`` frame sent to the originating connection only.
"""


class ChatError(Exception):
    """Base class for all chat engine errors."""


class AuthRejectedError(ChatError):
    """Join token missing or unknown at connection time."""


class MalformedFrameError(ChatError):
    """Inbound payload could not be parsed; dropped silently."""


class UserFacingError(ChatError):
    """Error reported back to the sender as an ``error`` frame."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NameConflictError(UserFacingError):
    """Requested display name is held by another participant."""

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name = name


class CommandUsageError(UserFacingError):
    """Bad slash-command invocation (empty argument, unknown command)."""
