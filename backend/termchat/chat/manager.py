"""Session manager for the single global chat room.

This module owns all mutable chat state: the registry of connected
participants and the bounded history buffer. Handlers receive the manager
through FastAPI dependency injection (:func:`get_session_manager`) instead of
touching module globals directly.

Key features:
    - Case-insensitively unique display names, enforced by rejecting the change
    - History replay on join, capped at ``history_size`` events
    - Roster (``users``) broadcast after every join, leave and rename
    - Per-connection outbox queues so a slow client never stalls the room

Concurrency:
    Every ``handle_*``/``join``/``leave``/``rename`` method is synchronous.
    Registry mutation, history append and the enqueueing of the resulting
    frames happen without an ``await`` in between, so on a single event loop
    each handler runs to completion before the next one starts and every
    connection observes broadcasts in history order. The actual socket writes
    happen later in each connection's writer task.

    This is NOT thread-safe. Run it on one event loop only.
"""
import asyncio
import contextlib
import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from starlette.websockets import WebSocket, WebSocketState

from termchat.config import ChatSettings, get_config

from .commands import CommandInterpreter
from .errors import MalformedFrameError, NameConflictError, UserFacingError
from .history import HistoryBuffer
from .protocol import (
    DEFAULT_NAME,
    ChatEvent,
    ChatRequest,
    ErrorFrame,
    HistoryEvent,
    HistoryFrame,
    JoinRequest,
    ServerFrame,
    SystemEvent,
    UsersFrame,
    decode_client_frame,
    encode,
    sanitize_name,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle of one WebSocket after the token handshake.

    Attributes:
        AWAITING_JOIN: Token accepted, no display name registered yet.
        ACTIVE: Registered participant; chat and commands are accepted.
        CLOSED: Transport gone; nothing is dispatched any more.
    """
    AWAITING_JOIN = "awaiting_join"
    ACTIVE = "active"
    CLOSED = "closed"


class Participant(BaseModel):
    """A registered, named chat member."""
    display_name: str


class Connection:
    """One live WebSocket plus its outbound queue.

    Frames are handed over with :meth:`deliver`, which never blocks. A writer
    task started with :meth:`start` drains the queue onto the socket.
    """

    def __init__(
        self,
        websocket: WebSocket,
        context: Optional[Dict[str, Any]] = None,
        outbox_size: int = 256,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.context = context or {}
        self.state = ConnectionState.AWAITING_JOIN
        self.outbox: "asyncio.Queue[str]" = asyncio.Queue(maxsize=outbox_size)
        self._send_failed = False
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"Connection(id={self.id[:8]}, state={self.state.value})"

    def is_writable(self) -> bool:
        if self.state is ConnectionState.CLOSED or self._send_failed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def deliver(self, payload: str) -> bool:
        """Queue an already-serialized frame.

        Returns:
            False if the connection is not writable or its outbox is full;
            the frame is dropped for this connection only.
        """
        if not self.is_writable():
            return False
        try:
            self.outbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.debug("Outbox full, dropping frame for %r", self)
            return False
        return True

    def start(self) -> None:
        """Start the writer task on the running event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._pump())

    async def stop(self) -> None:
        self.state = ConnectionState.CLOSED
        if self._writer is None:
            return
        self._writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._writer
        self._writer = None

    async def _pump(self) -> None:
        while True:
            payload = await self.outbox.get()
            try:
                await self.websocket.send_text(payload)
            except Exception as e:
                logger.debug(f"Failed to send to connection {self.id[:8]}: {e}")
                self._send_failed = True
                return


class SessionManager:
    """Registry of participants, history buffer and broadcast fan-out.

    Attributes:
        participants: connection -> Participant, in join order.
        history: The bounded replay buffer.
        commands: Slash-command interpreter bound to this manager.
    """

    def __init__(
        self,
        history_size: int = 200,
        max_message_length: int = 500,
        max_name_length: int = 20,
        outbox_size: int = 256,
    ) -> None:
        self.participants: Dict[Connection, Participant] = {}
        self.history = HistoryBuffer(history_size)
        self.max_message_length = max_message_length
        self.max_name_length = max_name_length
        self.outbox_size = outbox_size
        self.commands = CommandInterpreter(self)

    @classmethod
    def from_settings(cls, settings: ChatSettings) -> "SessionManager":
        return cls(
            history_size=settings.history_size,
            max_message_length=settings.max_message_length,
            max_name_length=settings.max_name_length,
            outbox_size=settings.outbox_size,
        )

    # =========================================================================
    # Registry
    # =========================================================================

    def open(self, websocket: WebSocket, context: Optional[Dict[str, Any]] = None) -> Connection:
        """Wrap an authenticated socket. Not registered until it joins."""
        return Connection(websocket, context, outbox_size=self.outbox_size)

    def get_participant(self, connection: Connection) -> Optional[Participant]:
        return self.participants.get(connection)

    def roster(self) -> List[str]:
        """Current display names, in join order."""
        return [p.display_name for p in self.participants.values()]

    def find_holder(
        self, name: str, exclude: Optional[Connection] = None
    ) -> Optional[Connection]:
        """Return the connection holding ``name`` (case-insensitive), if any."""
        wanted = name.lower()
        for connection, participant in self.participants.items():
            if connection is exclude:
                continue
            if participant.display_name.lower() == wanted:
                return connection
        return None

    def join(self, connection: Connection, requested_name: Optional[str]) -> Participant:
        """Register a connection under a sanitized display name.

        On success the joiner gets the history replay, then everyone gets the
        join announcement and the new roster.

        Raises:
            NameConflictError: If another participant holds the name.
        """
        name = sanitize_name(requested_name, self.max_name_length) or DEFAULT_NAME
        if self.find_holder(name, exclude=connection) is not None:
            raise NameConflictError(f'Username "{name}" is already taken.', name)

        participant = Participant(display_name=name)
        self.participants[connection] = participant
        connection.state = ConnectionState.ACTIVE
        logger.info(
            f"[Manager] {name} joined from pc={connection.context.get('pc_name')!r} "
            f"({len(self.participants)} online)"
        )

        self.send(connection, HistoryFrame(messages=self.history.snapshot()))
        self.post(SystemEvent(message=f"{name} joined the room"))
        self.broadcast_roster()
        return participant

    def leave(self, connection: Connection) -> Optional[Participant]:
        """Drop a connection. Announces the departure if it had joined.

        Returns:
            The removed Participant, or None if the connection never joined.
        """
        connection.state = ConnectionState.CLOSED
        participant = self.participants.pop(connection, None)
        if participant is None:
            return None

        logger.info(
            f"[Manager] {participant.display_name} left ({len(self.participants)} online)"
        )
        self.post(SystemEvent(message=f"{participant.display_name} left the room"))
        self.broadcast_roster()
        return participant

    def rename(self, connection: Connection, new_name: str) -> Participant:
        """Change a participant's display name in place.

        ``new_name`` must already be sanitized. Renaming to the exact current
        name changes nothing and only notifies the sender.

        Raises:
            NameConflictError: If another participant holds the name.
        """
        participant = self.participants[connection]
        old_name = participant.display_name
        if new_name == old_name:
            self.send(connection, SystemEvent(message=f"You are already known as {old_name}"))
            return participant
        if self.find_holder(new_name, exclude=connection) is not None:
            raise NameConflictError(f'"{new_name}" is already taken.', new_name)

        participant.display_name = new_name
        logger.info(f"[Manager] {old_name} renamed to {new_name}")
        self.post(SystemEvent(message=f"{old_name} is now known as {new_name}"))
        self.broadcast_roster()
        return participant

    # =========================================================================
    # Delivery
    # =========================================================================

    def send(self, connection: Connection, frame: ServerFrame) -> bool:
        """Send one frame to one connection (best effort)."""
        return connection.deliver(encode(frame))

    def broadcast(self, frame: ServerFrame, exclude: Optional[Connection] = None) -> int:
        """Send one frame to every registered connection except ``exclude``.

        The frame is serialized once. Connections that are not writable are
        skipped silently.

        Returns:
            Number of connections the frame was queued for.
        """
        payload = encode(frame)
        delivered = 0
        for connection in list(self.participants):
            if connection is exclude:
                continue
            if connection.deliver(payload):
                delivered += 1
        return delivered

    def post(self, event: HistoryEvent) -> HistoryEvent:
        """Append an event to history, then broadcast it to everyone."""
        self.history.append(event)
        self.broadcast(event)
        return event

    def broadcast_roster(self) -> None:
        self.broadcast(UsersFrame(names=self.roster()))

    # =========================================================================
    # Inbound frames
    # =========================================================================

    def handle_message(self, connection: Connection, raw) -> None:
        """Dispatch one inbound payload according to the connection state."""
        try:
            frame = decode_client_frame(raw)
        except MalformedFrameError:
            logger.debug("[Manager] Dropping malformed frame from %r", connection)
            return

        try:
            if connection.state is ConnectionState.AWAITING_JOIN:
                if isinstance(frame, JoinRequest):
                    self.join(connection, frame.username)
                return

            if connection.state is ConnectionState.ACTIVE and isinstance(frame, ChatRequest):
                self.handle_chat(connection, frame.text)
        except UserFacingError as exc:
            self.send(connection, ErrorFrame(message=exc.message))

    def handle_chat(self, connection: Connection, text: Optional[str]) -> None:
        """Handle chat text from an active participant.

        Whitespace-only text is ignored. Text starting with ``/`` goes to the
        command interpreter; anything else is broadcast as a chat event.

        Raises:
            UserFacingError: From the command interpreter.
        """
        participant = self.participants.get(connection)
        if participant is None or not text:
            return
        text = text.strip()[: self.max_message_length]
        if not text:
            return

        if text.startswith("/"):
            self.commands.execute(connection, text)
            return

        self.post(ChatEvent(username=participant.display_name, text=text))


# =============================================================================
# Process-wide instance
# =============================================================================

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """FastAPI dependency returning the room's SessionManager."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager.from_settings(get_config().chat)
    return _session_manager


def set_session_manager(manager: SessionManager) -> None:
    global _session_manager
    _session_manager = manager


def reset_session_manager() -> None:
    """Drop the current SessionManager (tests)."""
    global _session_manager
    _session_manager = None
