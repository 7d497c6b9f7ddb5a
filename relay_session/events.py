"""Tagged-variant events delivered while an assistant reply streams in."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import OperationError
from .models import ConversationDetail

__all__ = ["AssistantEvent", "EventKind"]


class EventKind(enum.Enum):
    DELTA = "delta"
    STRUCTURED = "structured"
    TITLE_UPDATED = "title_updated"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AssistantEvent:
    """One step of a send's reply stream.

    ``DELTA`` carries a text fragment to append, ``STRUCTURED`` the full
    reply text so far, ``TITLE_UPDATED`` a new title (and possibly the
    backend conversation id). ``COMPLETED`` and ``FAILED`` are terminal; a
    ``COMPLETED`` event with a ``detail`` carries the whole finished
    conversation.
    """

    kind: EventKind
    text: str = ""
    title: str | None = None
    conversation_id: str | None = None
    detail: Union[ConversationDetail, Mapping[str, Any], None] = None
    error: OperationError | None = None

    @classmethod
    def delta(cls, text: str) -> AssistantEvent:
        return cls(EventKind.DELTA, text=text)

    @classmethod
    def structured(cls, text: str) -> AssistantEvent:
        return cls(EventKind.STRUCTURED, text=text)

    @classmethod
    def title_updated(cls, title: str, conversation_id: str | None = None) -> AssistantEvent:
        return cls(EventKind.TITLE_UPDATED, title=title, conversation_id=conversation_id)

    @classmethod
    def completed(
        cls, detail: Union[ConversationDetail, Mapping[str, Any], None] = None
    ) -> AssistantEvent:
        return cls(EventKind.COMPLETED, detail=detail)

    @classmethod
    def failed(cls, error: OperationError) -> AssistantEvent:
        return cls(EventKind.FAILED, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (EventKind.COMPLETED, EventKind.FAILED)
