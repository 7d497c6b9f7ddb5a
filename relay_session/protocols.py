"""
Structural interfaces for the collaborators of :class:`SessionController`.

The controller receives explicit handles to a conversation service and an
authentication gateway in its constructor; any object satisfying these
``typing.Protocol`` contracts works (the SDK bridge in
:mod:`relay_session.adapters`, :mod:`relay_session.replay`, or a test fake).

Usage:
    from relay_session.controller import SessionController

    controller = SessionController(service=my_service, gateway=my_gateway)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from .events import AssistantEvent

__all__ = [
    "AuthGateway",
    "DebugWindowGateway",
    "RemoteConversationService",
]


@runtime_checkable
class AuthGateway(Protocol):
    """Point-in-time view of the authentication state.

    Calling a remote operation while signed out may trigger an interactive
    sign-in as a side effect; the controller only observes the result.
    """

    @property
    def is_authenticated(self) -> bool: ...


@runtime_checkable
class DebugWindowGateway(Protocol):
    """Optional gateway capability: show or hide the sign-in window."""

    def show_window(self) -> None: ...

    def hide_window(self) -> None: ...


@runtime_checkable
class RemoteConversationService(Protocol):
    """The four remote operations.

    The list/get operations return the raw payload mappings described in
    :mod:`relay_session.wire`. Failures are raised as exceptions, ideally
    :class:`~relay_session.exceptions.OperationError` subclasses.
    """

    async def list_models(self) -> Mapping[str, Any]:
        """Return ``{"models": [...]}``."""
        ...

    async def list_history(self, offset: int, limit: int) -> Mapping[str, Any]:
        """Return ``{"items": [...]}``."""
        ...

    async def get_conversation(self, remote_id: str) -> Mapping[str, Any]:
        """Return one conversation's detail payload."""
        ...

    def send_conversation(
        self, message: str, conversation_id: Optional[str], model: str
    ) -> AsyncIterator[AssistantEvent]:
        """Stream the reply to *message* as :class:`AssistantEvent` values."""
        ...
