"""Wire protocol for the chat WebSocket.

Every frame is a JSON object whose ``type`` field selects its shape. Both
directions are modelled as closed sets of pydantic models so the server can
match them exhaustively.

Client → server:
    - join: ``{type: "join", username?: str}``
    - chat: ``{type: "chat", text: str}``

Server → client:
    - history: ``{type: "history", messages: [event, ...]}``
    - system:  ``{type: "system", message, time}``
    - action:  ``{type: "action", username, message, time}``
    - chat:    ``{type: "chat", username, text, time}``
    - users:   ``{type: "users", list: [name, ...]}``
    - error:   ``{type: "error", message}``
    - clear:   ``{type: "clear"}``

The ``system``, ``action`` and ``chat`` frames double as history events and
are immutable once built.
"""
import re
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import MalformedFrameError

# Characters allowed in a display name; everything else is stripped.
_NAME_STRIP_RE = re.compile(r"[^A-Za-z0-9_-]")

DEFAULT_NAME = "anon"
MAX_NAME_LENGTH = 20


def timestamp() -> str:
    """Local wall-clock time as ``HH:MM:SS`` (24h)."""
    return datetime.now().strftime("%H:%M:%S")


def sanitize_name(raw: Optional[str], max_length: int = MAX_NAME_LENGTH) -> str:
    """Strip disallowed characters and truncate.

    Returns an empty string when nothing survives; callers decide whether to
    fall back to :data:`DEFAULT_NAME`.
    """
    if not raw:
        return ""
    return _NAME_STRIP_RE.sub("", raw)[:max_length]


# =============================================================================
# History events (server → client, stored in the history buffer)
# =============================================================================


class SystemEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["system"] = "system"
    message: str
    time: str = Field(default_factory=timestamp)


class ActionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["action"] = "action"
    username: str
    message: str
    time: str = Field(default_factory=timestamp)


class ChatEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["chat"] = "chat"
    username: str
    text: str
    time: str = Field(default_factory=timestamp)


HistoryEvent = Annotated[
    Union[SystemEvent, ActionEvent, ChatEvent],
    Field(discriminator="type"),
]


# =============================================================================
# Control frames (server → client, never stored)
# =============================================================================


class HistoryFrame(BaseModel):
    type: Literal["history"] = "history"
    messages: List[HistoryEvent] = Field(default_factory=list)


class UsersFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["users"] = "users"
    names: List[str] = Field(default_factory=list, alias="list")


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    message: str


class ClearFrame(BaseModel):
    type: Literal["clear"] = "clear"


ServerFrame = Union[
    HistoryFrame,
    SystemEvent,
    ActionEvent,
    ChatEvent,
    UsersFrame,
    ErrorFrame,
    ClearFrame,
]


def encode(frame: ServerFrame) -> str:
    """Serialize a server frame to its JSON text form."""
    return frame.model_dump_json(by_alias=True)


# =============================================================================
# Client frames (client → server)
# =============================================================================


class JoinRequest(BaseModel):
    type: Literal["join"]
    username: Optional[str] = None


class ChatRequest(BaseModel):
    type: Literal["chat"]
    text: Optional[str] = None


ClientFrame = Annotated[
    Union[JoinRequest, ChatRequest],
    Field(discriminator="type"),
]

_client_frame_adapter: TypeAdapter = TypeAdapter(ClientFrame)


def decode_client_frame(raw: Union[str, bytes]) -> Union[JoinRequest, ChatRequest]:
    """Parse one inbound payload.

    Raises:
        MalformedFrameError: If the payload is not JSON, not an object, has an
            unknown ``type`` or carries fields of the wrong type.
    """
    try:
        return _client_frame_adapter.validate_json(raw)
    except ValidationError as exc:
        raise MalformedFrameError(str(exc)) from exc
