"""Terminal Chatroom backend.

A single-room WebSocket chat relay with history replay, a live roster,
slash-commands and a token gate in front of the socket.
"""

__version__ = "1.0.0"
