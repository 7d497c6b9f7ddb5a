"""
Fold a send's :class:`AssistantEvent` stream into the trailing assistant message.

Two delivery modes are handled:

* incremental -- ``DELTA`` fragments concatenated in arrival order, ended by
  a bare ``COMPLETED`` marker;
* whole-object -- a single ``COMPLETED`` event carrying the finished
  conversation, whose last assistant message replaces whatever partial text
  was shown.

The aggregator writes only through :class:`ConversationStore`, addressed by
the local id of the conversation the send targeted; once that conversation
is no longer active, remaining events are consumed but discarded.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .events import AssistantEvent, EventKind
from .exceptions import MalformedResponse, OperationError
from .models import Message, Role
from .wire import coerce_detail

if TYPE_CHECKING:
    from .store import ConversationStore

logger = logging.getLogger("relay_session")

__all__ = ["StreamAggregator"]


class StreamAggregator:
    """Applies one send's events to the store, strictly in arrival order."""

    def __init__(self, store: ConversationStore, conversation_id: str) -> None:
        self._store = store
        self._conversation_id = conversation_id
        self._assistant_id: str | None = None
        self.finished = False
        self.discarded = False
        self.error: OperationError | None = None

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def assistant_message_id(self) -> str | None:
        return self._assistant_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(self, event: AssistantEvent) -> bool:
        """Apply *event*; returns ``True`` once the stream has ended."""
        if self.finished:
            logger.debug(
                "[RelaySession Stream] Ignoring %s event after stream end", event.kind.value
            )
            return True

        if not self._store.is_active(self._conversation_id):
            if not self.discarded:
                logger.debug(
                    "[RelaySession Stream] Conversation %s no longer active; discarding reply",
                    self._conversation_id,
                )
            self.discarded = True
            if event.is_terminal:
                self._finish(event.error if event.kind is EventKind.FAILED else None)
            return self.finished

        if event.kind is EventKind.DELTA:
            if event.text:
                self._store.append_to_message(
                    self._conversation_id, self._ensure_assistant(), event.text
                )
        elif event.kind is EventKind.STRUCTURED:
            if event.text:
                self._store.replace_message_content(
                    self._conversation_id, self._ensure_assistant(), event.text
                )
        elif event.kind is EventKind.TITLE_UPDATED:
            if event.title:
                self._store.set_title(self._conversation_id, event.title)
            if event.conversation_id:
                self._store.assign_remote_id(self._conversation_id, event.conversation_id)
        elif event.kind is EventKind.COMPLETED:
            self._complete(event)
        elif event.kind is EventKind.FAILED:
            self._finish(event.error or MalformedResponse("Stream failed without an error"))
        return self.finished

    def fail(self, error: OperationError) -> None:
        """End the stream with *error* (used when the transport itself raises)."""
        if not self.finished:
            self._finish(error)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_assistant(self) -> str:
        # Always a fresh message for this send, even if the conversation
        # already ends with an assistant reply from an earlier send.
        if self._assistant_id is None:
            message = Message(content="", role=Role.ASSISTANT)
            self._store.append_message(self._conversation_id, message)
            self._assistant_id = message.id
        return self._assistant_id

    def _complete(self, event: AssistantEvent) -> None:
        if event.detail is None:
            self._finish(None)
            return

        try:
            detail = coerce_detail(event.detail)
        except MalformedResponse as exc:
            self._finish(exc)
            return
        if not detail.messages:
            self._finish(MalformedResponse("Completed conversation carried no messages"))
            return
        reply = next((m for m in reversed(detail.messages) if m.role != "user"), None)
        if reply is None:
            self._finish(MalformedResponse("Completed conversation carried no assistant reply"))
            return

        self._store.replace_message_content(
            self._conversation_id, self._ensure_assistant(), reply.content
        )
        if detail.title:
            self._store.set_title(self._conversation_id, detail.title)
        self._store.assign_remote_id(self._conversation_id, detail.id)
        logger.info(
            "[RelaySession Stream] Reply complete for %s (%d chars)", detail.id, len(reply.content)
        )
        self._finish(None)

    def _finish(self, error: OperationError | None) -> None:
        self.finished = True
        self.error = error
        if error is not None:
            logger.warning("[RelaySession Stream] Stream ended with error: %s", error)
