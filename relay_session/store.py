"""
In-memory conversation store.

Holds the single active :class:`Conversation`, the history list, the model
list and the :class:`SessionState`. Writers address the active conversation
by its local id; a write aimed at a conversation that is no longer active is
refused (returns ``False``) so late results cannot overwrite a newer one.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import TYPE_CHECKING, Any

from ._threading import CriticalSection
from .models import Conversation, Intent, SessionSnapshot, SessionState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .models import HistoryEntry, Message, ModelDescriptor

logger = logging.getLogger("relay_session")

_STATE_FIELDS = frozenset(f.name for f in fields(SessionState))


class ConversationStore:
    """Single-owner store; every mutation notifies subscribed listeners."""

    def __init__(self, state: SessionState | None = None) -> None:
        self._state = state if state is not None else SessionState()
        self._active: Conversation | None = None
        self._history: list[HistoryEntry] = []
        self._models: list[ModelDescriptor] = []
        self._selected_history_id: str | None = None
        self._listeners: list[Callable[[SessionSnapshot], None]] = []
        self._cs = CriticalSection()

    # ------------------------------------------------------------------
    # Listeners and snapshots
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def snapshot(self) -> SessionSnapshot:
        with self._cs:
            return SessionSnapshot(
                state=self._state.copy(),
                conversation=self._active.copy() if self._active is not None else None,
                history=tuple(self._history),
                models=tuple(self._models),
                selected_history_id=self._selected_history_id,
            )

    def _changed(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("[RelaySession] Store listener %r failed", listener)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """A copy of the current session state."""
        with self._cs:
            return self._state.copy()

    def update_state(self, **changes: Any) -> None:
        unknown = set(changes) - _STATE_FIELDS
        if unknown:
            raise AttributeError(f"SessionState has no field(s): {', '.join(sorted(unknown))}")
        with self._cs:
            for name, value in changes.items():
                setattr(self._state, name, value)
        self._changed()

    def add_pending_intent(self, intent: Intent) -> None:
        with self._cs:
            self._state.pending_intents.add(intent)
        self._changed()

    def discard_pending_intent(self, intent: Intent) -> None:
        with self._cs:
            if intent not in self._state.pending_intents:
                return
            self._state.pending_intents.discard(intent)
        self._changed()

    # ------------------------------------------------------------------
    # History and models (replaced wholesale)
    # ------------------------------------------------------------------

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def models(self) -> tuple[ModelDescriptor, ...]:
        return tuple(self._models)

    def replace_history(self, entries: Iterable[HistoryEntry]) -> None:
        with self._cs:
            self._history = list(entries)
        self._changed()

    def replace_models(self, models: Iterable[ModelDescriptor]) -> None:
        with self._cs:
            self._models = list(models)
        self._changed()

    def find_history_entry(self, remote_id: str) -> HistoryEntry | None:
        for entry in self._history:
            if entry.remote_id == remote_id:
                return entry
        return None

    @property
    def selected_history_id(self) -> str | None:
        return self._selected_history_id

    def select_history(self, remote_id: str | None) -> None:
        with self._cs:
            self._selected_history_id = remote_id
        self._changed()

    # ------------------------------------------------------------------
    # Active conversation
    # ------------------------------------------------------------------

    @property
    def active(self) -> Conversation | None:
        """A copy of the active conversation, or ``None``."""
        with self._cs:
            return self._active.copy() if self._active is not None else None

    @property
    def active_id(self) -> str | None:
        return self._active.id if self._active is not None else None

    def is_active(self, local_id: str) -> bool:
        return self._active is not None and self._active.id == local_id

    def activate(
        self, conversation: Conversation, *, history_id: str | None = None
    ) -> Conversation:
        """Bind *conversation* to the UI, replacing whatever was active.

        ``history_id`` records which history entry the conversation was
        opened from (``None`` clears the selection).
        """
        with self._cs:
            self._active = conversation
            self._selected_history_id = history_id
        self._changed()
        return conversation.copy()

    def new_conversation(self) -> Conversation:
        """Activate a fresh empty conversation and clear the history selection."""
        with self._cs:
            self._active = Conversation()
            self._selected_history_id = None
        self._changed()
        return self._active.copy()

    def _target(self, local_id: str) -> Conversation | None:
        if self._active is None or self._active.id != local_id:
            logger.debug("[RelaySession] Ignoring write to inactive conversation %s", local_id)
            return None
        return self._active

    def append_message(self, local_id: str, message: Message) -> bool:
        with self._cs:
            conversation = self._target(local_id)
            if conversation is None:
                return False
            conversation.messages.append(message)
        self._changed()
        return True

    def _rewrite_last(self, local_id: str, message_id: str, rewrite: Callable[[str], str]) -> bool:
        with self._cs:
            conversation = self._target(local_id)
            if conversation is None:
                return False
            last = conversation.last_message
            if last is None or last.id != message_id:
                raise ValueError(f"Message {message_id} is not the trailing message; refusing rewrite")
            conversation.messages[-1] = last.with_content(rewrite(last.content))
        self._changed()
        return True

    def append_to_message(self, local_id: str, message_id: str, text: str) -> bool:
        """Concatenate *text* onto the trailing message."""
        return self._rewrite_last(local_id, message_id, lambda current: current + text)

    def replace_message_content(self, local_id: str, message_id: str, text: str) -> bool:
        """Replace the trailing message's content wholesale."""
        return self._rewrite_last(local_id, message_id, lambda _current: text)

    def replace_messages(
        self, local_id: str, messages: Iterable[Message], title: str | None = None
    ) -> bool:
        """Replace the whole message sequence (authoritative detail load)."""
        with self._cs:
            conversation = self._target(local_id)
            if conversation is None:
                return False
            conversation.messages = list(messages)
            if title:
                conversation.title = title
        self._changed()
        return True

    def set_title(self, local_id: str, title: str) -> bool:
        with self._cs:
            conversation = self._target(local_id)
            if conversation is None:
                return False
            conversation.title = title
        self._changed()
        return True

    def assign_remote_id(self, local_id: str, remote_id: str) -> bool:
        """Set the backend id once; a conflicting later id is refused."""
        with self._cs:
            conversation = self._target(local_id)
            if conversation is None:
                return False
            if conversation.remote_id == remote_id:
                return True
            if conversation.remote_id is not None:
                logger.warning(
                    "[RelaySession] Conversation %s already bound to %s; ignoring id %s",
                    local_id,
                    conversation.remote_id,
                    remote_id,
                )
                return False
            conversation.remote_id = remote_id
        self._changed()
        return True
