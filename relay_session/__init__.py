"""
relay_session public API.

A client-side session controller for a remote conversational assistant:
authentication polling, model and history listing, conversation loading and
streamed sends reconciled into a single observable store.
"""

from __future__ import annotations

from .adapters import CallbackServiceAdapter
from .aggregator import StreamAggregator
from .config import SessionConfig
from .controller import SessionController
from .events import AssistantEvent, EventKind
from .exceptions import (
    AuthenticationRequired,
    ErrorKind,
    MalformedResponse,
    OperationError,
    Result,
    SendInProgress,
    SessionNotInitialized,
    TransportFailure,
    UnknownOperationError,
    classify_error,
    describe_error,
)
from .models import (
    AUTO_MODEL,
    DEFAULT_TITLE,
    AuthState,
    Conversation,
    ConversationDetail,
    HistoryEntry,
    Intent,
    Message,
    ModelDescriptor,
    Role,
    SessionSnapshot,
    SessionState,
)
from .poller import AuthPoller
from .protocols import AuthGateway, DebugWindowGateway, RemoteConversationService
from .replay import ReplayAuthGateway, ReplayService, load_fixture
from .store import ConversationStore

__version__ = "0.1.0"

__all__ = [
    "AUTO_MODEL",
    "DEFAULT_TITLE",
    "AssistantEvent",
    "AuthGateway",
    "AuthPoller",
    "AuthState",
    "AuthenticationRequired",
    "CallbackServiceAdapter",
    "Conversation",
    "ConversationDetail",
    "ConversationStore",
    "DebugWindowGateway",
    "ErrorKind",
    "EventKind",
    "HistoryEntry",
    "Intent",
    "MalformedResponse",
    "Message",
    "ModelDescriptor",
    "OperationError",
    "RemoteConversationService",
    "ReplayAuthGateway",
    "ReplayService",
    "Result",
    "Role",
    "SendInProgress",
    "SessionConfig",
    "SessionController",
    "SessionNotInitialized",
    "SessionSnapshot",
    "SessionState",
    "StreamAggregator",
    "TransportFailure",
    "UnknownOperationError",
    "classify_error",
    "describe_error",
    "load_fixture",
]
