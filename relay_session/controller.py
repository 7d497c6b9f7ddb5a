"""
Session controller: authentication tracking, remote dispatch and reconciliation.

The controller is the single writer of :class:`ConversationStore` and
:class:`SessionState`. It runs on one event loop; every remote completion is
awaited on that loop before the store is touched, so no two completions
interleave their mutations.

Usage::

    async with SessionController(service, gateway) as controller:
        controller.create_new_conversation()
        async for event in controller.send_conversation("Hello"):
            ...
        print(controller.snapshot().conversation)

Authentication failures follow two policies. Read operations flip the
session to unauthenticated and surface the error. A failed send also
re-invokes :meth:`SessionController.fetch_models` to nudge the gateway's
sign-in flow, but never resubmits the message on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .aggregator import StreamAggregator
from .config import SessionConfig
from .events import AssistantEvent
from .exceptions import (
    AuthenticationRequired,
    MalformedResponse,
    OperationError,
    Result,
    SendInProgress,
    SessionNotInitialized,
    UnknownOperationError,
    classify_error,
)
from .models import (
    AUTO_MODEL,
    DEFAULT_TITLE,
    AuthState,
    Conversation,
    HistoryEntry,
    Intent,
    Message,
    ModelDescriptor,
    Role,
    SessionSnapshot,
    SessionState,
)
from .poller import AuthPoller
from .protocols import DebugWindowGateway
from .store import ConversationStore
from .wire import parse_conversation_detail, parse_history, parse_models

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from .protocols import AuthGateway, RemoteConversationService

logger = logging.getLogger("relay_session")

__all__ = ["SessionController"]


@dataclass(frozen=True)
class _FailedSend:
    """The last send that ended in an error, kept for a user-triggered resend."""

    conversation_id: str
    message: Message
    model: str


class SessionController:
    """Mediates between a presentation layer and a remote conversation service.

    Args:
        service: The remote conversation operations.
        gateway: Point-in-time authentication state.
        config: Tunables; defaults to :class:`SessionConfig`.
        store: An existing store to drive (a fresh one is created otherwise).
    """

    def __init__(
        self,
        service: RemoteConversationService,
        gateway: AuthGateway,
        *,
        config: SessionConfig | None = None,
        store: ConversationStore | None = None,
    ) -> None:
        self._service = service
        self._gateway = gateway
        self._config = config if config is not None else SessionConfig()
        self._store = store if store is not None else ConversationStore()
        self._store.update_state(selected_model=self._config.default_model)
        self._poller = AuthPoller(gateway, poll_interval=self._config.poll_interval)
        self._poll_task: asyncio.Task[None] | None = None
        self._sending: set[str] = set()
        self._loading: set[str] = set()
        self._failed_send: _FailedSend | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SessionController:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Check authentication now, then keep polling every ``poll_interval`` seconds."""
        if self._store.state.initialized:
            logger.warning("[RelaySession] initialize() called twice; ignoring")
            return

        logger.info("[RelaySession] Initializing session...")
        self._store.update_state(auth=AuthState.UNKNOWN)
        await self.check_authentication()
        self._poll_task = asyncio.create_task(
            self._poller.start(self._apply_auth_reading, immediate=False),
            name="relay-session-auth-poll",
        )

    async def close(self) -> None:
        """Stop polling and return to the uninitialized state."""
        self._poller.stop()
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._store.update_state(auth=AuthState.UNINITIALIZED, is_loading=False)
        logger.info("[RelaySession] Session closed")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def state(self) -> SessionState:
        return self._store.state

    def snapshot(self) -> SessionSnapshot:
        return self._store.snapshot()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def check_authentication(self) -> bool:
        """Read the gateway once and apply the reading; returns the resulting state."""
        reading = self._poller.read()
        if reading is not None:
            await self._apply_auth_reading(reading)
        return self._store.state.authenticated

    async def _apply_auth_reading(self, authenticated: bool) -> None:
        previous = self._store.state.auth
        if previous is AuthState.UNINITIALIZED:
            return

        logger.debug("[RelaySession Poll] Auth status check: %s", authenticated)
        if authenticated:
            if previous is not AuthState.AUTHENTICATED:
                self._store.update_state(auth=AuthState.AUTHENTICATED)
                logger.info("[RelaySession] Just authenticated, fetching initial data...")
                await self.refresh_on_auth()
        elif previous is AuthState.UNKNOWN:
            self._store.update_state(auth=AuthState.UNAUTHENTICATED)
        elif previous is AuthState.AUTHENTICATED:
            # Only an AuthenticationRequired failure signs the session out.
            logger.debug("[RelaySession Poll] Gateway reports signed out; keeping session state")

    async def refresh_on_auth(self) -> None:
        """Fetch models and history concurrently."""
        await asyncio.gather(self.fetch_models(), self.fetch_history())

    async def authenticate(self) -> Result[list[ModelDescriptor]]:
        """Trigger the gateway's sign-in flow by issuing a request that needs it."""
        logger.info("[RelaySession] Triggering authentication via model fetch...")
        return await self.fetch_models()

    # ------------------------------------------------------------------
    # Failure policy
    # ------------------------------------------------------------------

    def _gate(self, operation: str) -> OperationError | None:
        if self._store.state.initialized:
            return None
        error = SessionNotInitialized(
            f"{operation} called before initialize()", operation=operation
        )
        self._store.update_state(last_error=error)
        return error

    def _handle_failure(self, exc: BaseException, operation: str, intent: Intent) -> OperationError:
        error = classify_error(exc, operation=operation)
        if isinstance(error, AuthenticationRequired):
            logger.warning("[RelaySession] Need to authenticate first for %s", operation)
            self._store.update_state(auth=AuthState.UNAUTHENTICATED, last_error=error)
            self._store.add_pending_intent(intent)
        else:
            logger.error("[RelaySession] %s failed: %s", operation, error)
            self._store.update_state(last_error=error)
        return error

    def _succeeded(self, intent: Intent) -> None:
        self._store.discard_pending_intent(intent)
        if self._store.state.last_error is not None:
            self._store.update_state(last_error=None)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def fetch_models(self) -> Result[list[ModelDescriptor]]:
        """Replace the store's model list with the backend's."""
        error = self._gate("fetch_models")
        if error is not None:
            return Result.failure(error)

        logger.info("[RelaySession] Attempting to fetch models...")
        try:
            models = parse_models(await self._service.list_models())
        except Exception as exc:
            return Result.failure(self._handle_failure(exc, "fetch_models", Intent.FETCH_MODELS))

        self._store.replace_models(models)
        self._succeeded(Intent.FETCH_MODELS)
        logger.info("[RelaySession] Successfully fetched %d models", len(models))
        for model in models:
            logger.debug("[RelaySession]   - Model: %s - %s", model.slug, model.title)
        return Result.success(models)

    async def fetch_history(
        self, offset: int | None = None, limit: int | None = None
    ) -> Result[list[HistoryEntry]]:
        """Replace the store's history list with one page from the backend."""
        offset = self._config.history_offset if offset is None else offset
        limit = self._config.history_limit if limit is None else limit
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        error = self._gate("fetch_history")
        if error is not None:
            return Result.failure(error)

        logger.info("[RelaySession] Attempting to fetch conversation history...")
        try:
            entries = parse_history(await self._service.list_history(offset, limit))
        except Exception as exc:
            return Result.failure(self._handle_failure(exc, "fetch_history", Intent.FETCH_HISTORY))

        self._store.replace_history(entries)
        self._succeeded(Intent.FETCH_HISTORY)
        logger.info("[RelaySession] Successfully fetched %d conversations", len(entries))
        for entry in entries:
            logger.debug("[RelaySession]   - History: %s", entry.title)
        return Result.success(entries)

    async def load_conversation(
        self, remote_id: str, title: str | None = None
    ) -> Result[Conversation]:
        """Activate a stub for *remote_id* immediately, then fill it from the backend.

        The fetched detail replaces the stub's messages and title. If another
        conversation became active in the meantime, the detail is returned
        but not applied.
        Sends on the stub are rejected until the fetch settles.
        """
        error = self._gate("load_conversation")
        if error is not None:
            return Result.failure(error)

        if title is None:
            entry = self._store.find_history_entry(remote_id)
            title = entry.title if entry is not None else DEFAULT_TITLE
        stub = Conversation(title=title, messages=[], remote_id=remote_id)
        self._store.activate(stub, history_id=remote_id)

        logger.info("[RelaySession] Fetching conversation details for ID: %s", remote_id)
        self._loading.add(stub.id)
        try:
            detail = parse_conversation_detail(await self._service.get_conversation(remote_id))
        except Exception as exc:
            return Result.failure(
                self._handle_failure(exc, "load_conversation", Intent.LOAD_CONVERSATION)
            )
        finally:
            self._loading.discard(stub.id)

        self._succeeded(Intent.LOAD_CONVERSATION)
        logger.info(
            "[RelaySession] Fetched conversation %s: %r (%d messages)",
            detail.id,
            detail.title,
            len(detail.messages),
        )
        if not self._store.replace_messages(stub.id, detail.to_messages(), title=detail.title):
            logger.debug("[RelaySession] Conversation %s is no longer active; not applied", remote_id)
            return Result.success(detail.to_conversation())
        return Result.success(self._store.active)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Local operations
    # ------------------------------------------------------------------

    def create_new_conversation(self) -> Conversation:
        """Activate a fresh conversation with no backend id and clear the history selection."""
        return self._store.new_conversation()

    def select_model(self, slug: str) -> bool:
        """Select *slug* if it is ``"auto"`` or a currently listed model."""
        if slug != AUTO_MODEL and all(model.slug != slug for model in self._store.models):
            logger.warning("[RelaySession] Unknown model %r; keeping current selection", slug)
            return False
        self._store.update_state(selected_model=slug)
        return True

    def set_debug_view(self, enabled: bool) -> None:
        """Record the debug toggle and show or hide the gateway window when supported."""
        self._store.update_state(debug_view=enabled)
        if not isinstance(self._gateway, DebugWindowGateway):
            return
        if enabled:
            self._gateway.show_window()
        elif self._store.state.authenticated:
            self._gateway.hide_window()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_conversation(
        self,
        text: str,
        conversation_id: str | None = None,
        model: str | None = None,
    ) -> AsyncGenerator[AssistantEvent, None]:
        """Append *text* as a user message and stream the assistant's reply.

        Args:
            text: The message; surrounding whitespace is stripped and blank
                input is ignored.
            conversation_id: Local id of the target conversation. Defaults
                to the active one (a new conversation is created if none).
            model: Model slug; defaults to the selected model.

        Yields:
            Every :class:`AssistantEvent` after it has been applied, ending
            with exactly one ``COMPLETED`` or ``FAILED`` event.
        """
        message = text.strip()
        if not message:
            logger.debug("[RelaySession] Ignoring blank message")
            return

        error = self._gate("send_conversation")
        if error is not None:
            yield AssistantEvent.failed(error)
            return

        conversation = self._store.active
        if conversation_id is not None and (conversation is None or conversation.id != conversation_id):
            error = UnknownOperationError(
                f"Conversation {conversation_id} is not active", operation="send_conversation"
            )
            self._store.update_state(last_error=error)
            yield AssistantEvent.failed(error)
            return
        if conversation is None:
            conversation = self._store.new_conversation()

        error = self._busy_error(conversation.id)
        if error is not None:
            self._store.update_state(last_error=error)
            yield AssistantEvent.failed(error)
            return

        user_message = Message(content=message, role=Role.USER)
        self._store.append_message(conversation.id, user_message)
        async for event in self._dispatch_send(conversation.id, user_message, model):
            yield event

    async def resend_last_message(self) -> AsyncGenerator[AssistantEvent, None]:
        """Re-dispatch the message of the last failed send without appending it again.

        Does nothing unless that message is still the trailing message of the
        active conversation.
        """
        failed = self._failed_send
        if failed is None:
            return
        active = self._store.active
        if (
            active is None
            or active.id != failed.conversation_id
            or active.last_message is None
            or active.last_message.id != failed.message.id
        ):
            logger.debug("[RelaySession] Nothing to resend")
            return

        error = self._gate("send_conversation")
        if error is not None:
            yield AssistantEvent.failed(error)
            return
        error = self._busy_error(active.id)
        if error is not None:
            yield AssistantEvent.failed(error)
            return

        async for event in self._dispatch_send(active.id, failed.message, failed.model):
            yield event

    async def send_message(
        self, text: str, model: str | None = None
    ) -> Result[Conversation] | None:
        """Send *text* on the active conversation and wait for the reply to finish.

        Returns ``None`` when *text* is blank and nothing was sent.
        """
        terminal: AssistantEvent | None = None
        async for event in self.send_conversation(text, model=model):
            terminal = event
        if terminal is None:
            return None
        if terminal.error is not None:
            return Result.failure(terminal.error)
        active = self._store.active
        if active is None:
            return Result.failure(UnknownOperationError("No active conversation", operation="send"))
        return Result.success(active)

    def _busy_error(self, local_id: str) -> SendInProgress | None:
        if local_id in self._loading:
            reason = "The conversation is still loading"
        elif local_id in self._sending:
            reason = "A reply is still streaming into this conversation"
        else:
            return None
        return SendInProgress(reason, operation="send_conversation")

    async def _dispatch_send(
        self, local_id: str, user_message: Message, model: str | None
    ) -> AsyncGenerator[AssistantEvent, None]:
        conversation = self._store.active
        remote_id = conversation.remote_id if conversation is not None else None
        selected = model or self._store.state.selected_model
        aggregator = StreamAggregator(self._store, local_id)
        terminal: AssistantEvent | None = None

        logger.info(
            "[RelaySession] Sending message with model %s (authenticated=%s)",
            selected,
            self._store.state.authenticated,
        )
        self._sending.add(local_id)
        self._store.update_state(is_loading=True)
        stream = None
        try:
            try:
                stream = self._service.send_conversation(user_message.content, remote_id, selected)
                async for event in stream:
                    if aggregator.apply(event):
                        terminal = event
                        break
                    yield event
            except Exception as exc:
                error = classify_error(exc, operation="send_conversation")
                aggregator.fail(error)
                terminal = AssistantEvent.failed(error)

            if terminal is None:
                error = MalformedResponse(
                    "Reply stream ended without a completion event", operation="send_conversation"
                )
                aggregator.fail(error)
                terminal = AssistantEvent.failed(error)
            elif aggregator.error is not None and terminal.error is not aggregator.error:
                terminal = AssistantEvent.failed(aggregator.error)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()
            self._sending.discard(local_id)
            self._store.update_state(is_loading=bool(self._sending))

        await self._settle_send(aggregator, user_message, selected)
        yield terminal

    async def _settle_send(
        self, aggregator: StreamAggregator, user_message: Message, model: str
    ) -> None:
        if aggregator.error is None:
            self._failed_send = None
            self._succeeded(Intent.SEND_MESSAGE)
            if self._config.refresh_history_after_send and not aggregator.discarded:
                await self.fetch_history()
            return

        self._failed_send = _FailedSend(aggregator.conversation_id, user_message, model)
        error = self._handle_failure(aggregator.error, "send_conversation", Intent.SEND_MESSAGE)
        if isinstance(error, AuthenticationRequired):
            logger.info("[RelaySession] Authentication required - triggering sign-in")
            await self.fetch_models()
