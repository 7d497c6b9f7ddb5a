"""
Value types shared by the store, the stream aggregator and the controller.

Messages are immutable; the only sanctioned "mutation" is replacing the
trailing assistant message with a copy carrying the same ``id`` and new
content while a reply is streaming.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .exceptions import OperationError

__all__ = [
    "AUTO_MODEL",
    "DEFAULT_TITLE",
    "AuthState",
    "Conversation",
    "ConversationDetail",
    "HistoryEntry",
    "Intent",
    "Message",
    "ModelDescriptor",
    "Role",
    "SessionSnapshot",
    "SessionState",
    "WireMessage",
]

AUTO_MODEL = "auto"
DEFAULT_TITLE = "New Conversation"


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(enum.Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def from_wire(cls, role: str) -> Role:
        """Map a backend role string; anything that is not ``"user"`` is the assistant."""
        return cls.USER if role == "user" else cls.ASSISTANT


class AuthState(enum.Enum):
    """Authentication state machine.

    ``UNINITIALIZED`` holds until :meth:`SessionController.initialize` runs,
    ``UNKNOWN`` until the first check completes.
    """

    UNINITIALIZED = "uninitialized"
    UNKNOWN = "unknown"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class Intent(enum.Enum):
    """Retryable remote operations."""

    FETCH_MODELS = "fetch_models"
    FETCH_HISTORY = "fetch_history"
    LOAD_CONVERSATION = "load_conversation"
    SEND_MESSAGE = "send_message"


# ---------------------------------------------------------------------------
# Conversation data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    content: str
    role: Role
    id: str = field(default_factory=_new_id)

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER

    def with_content(self, content: str) -> Message:
        """Return a copy with *content* and the same ``id``."""
        return replace(self, content=content)


@dataclass
class Conversation:
    """The conversation bound to the UI.

    ``remote_id`` is ``None`` until the backend acknowledges the
    conversation and never changes once set.
    """

    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    remote_id: str | None = None
    id: str = field(default_factory=_new_id)

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def copy(self) -> Conversation:
        return replace(self, messages=list(self.messages))


@dataclass(frozen=True)
class HistoryEntry:
    """Lightweight reference to a conversation stored by the backend."""

    remote_id: str
    title: str
    created_at: datetime


@dataclass(frozen=True)
class ModelDescriptor:
    """A selectable backend model."""

    slug: str
    title: str


@dataclass(frozen=True)
class WireMessage:
    """A backend message reduced to its role string and joined text."""

    role: str
    content: str

    def to_message(self) -> Message:
        return Message(content=self.content, role=Role.from_wire(self.role))


@dataclass(frozen=True)
class ConversationDetail:
    """Full conversation payload as returned by the backend."""

    id: str
    title: str
    messages: tuple[WireMessage, ...]
    created_at: datetime | None = None

    def to_messages(self) -> list[Message]:
        return [wire.to_message() for wire in self.messages]

    def to_conversation(self) -> Conversation:
        return Conversation(title=self.title, messages=self.to_messages(), remote_id=self.id)


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


@dataclass
class SessionState:
    """Authentication and UI-facing flags owned by the controller."""

    auth: AuthState = AuthState.UNINITIALIZED
    selected_model: str = AUTO_MODEL
    pending_intents: set[Intent] = field(default_factory=set)
    is_loading: bool = False
    debug_view: bool = False
    last_error: OperationError | None = None

    @property
    def authenticated(self) -> bool:
        return self.auth is AuthState.AUTHENTICATED

    @property
    def initialized(self) -> bool:
        return self.auth is not AuthState.UNINITIALIZED

    def copy(self) -> SessionState:
        return replace(self, pending_intents=set(self.pending_intents))


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view handed to the presentation layer."""

    state: SessionState
    conversation: Conversation | None
    history: tuple[HistoryEntry, ...]
    models: tuple[ModelDescriptor, ...]
    selected_history_id: str | None = None
