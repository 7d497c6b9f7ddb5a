"""
Fixture-backed service and gateway.

Replays a JSON document instead of talking to a real backend, for demos, the
command line and tests::

    {
      "authenticated": true,
      "stream_mode": "delta",          # or "object"
      "chunk_size": 8,
      "models": [{"slug": "gpt-4o", "title": "GPT-4o"}],
      "conversations": {
        "c1": {"id": "c1", "title": "Greetings", "create_time": 1700000000,
               "messages": [{"author": {"role": "user"}, "content": {"parts": ["hi"]}}]}
      },
      "replies": {"hi": "hello there", "default": "..."}
    }

While signed out, every call raises :class:`AuthenticationRequired` and
completes the simulated sign-in, so the next poll sees an authenticated
gateway.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from .events import AssistantEvent
from .exceptions import AuthenticationRequired, UnknownOperationError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger("relay_session")

__all__ = ["ReplayAuthGateway", "ReplayService", "derive_title", "load_fixture"]

_STREAM_MODES = frozenset({"delta", "object"})


def derive_title(message: str) -> str:
    """Readable conversation title from the opening message."""
    words = re.findall(r"[A-Za-z0-9']+", message)
    if not words:
        return "Untitled Conversation"
    title = " ".join(word[:1].upper() + word[1:].lower() for word in words[:8])
    if len(title) <= 60:
        return title
    return title[:60].rsplit(" ", 1)[0].strip() or title[:60]


def _wire_message(role: str, text: str) -> dict[str, Any]:
    return {"author": {"role": role}, "content": {"content_type": "text", "parts": [text]}}


class ReplayAuthGateway:
    """Authentication gateway whose sign-in completes as soon as it is requested."""

    def __init__(self, authenticated: bool = True) -> None:
        self._authenticated = authenticated
        self.window_visible = False
        self.sign_in_requests = 0

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def request_sign_in(self) -> None:
        self.sign_in_requests += 1
        self._authenticated = True

    def sign_out(self) -> None:
        self._authenticated = False

    def show_window(self) -> None:
        self.window_visible = True

    def hide_window(self) -> None:
        self.window_visible = False


class ReplayService:
    """Serves models, history and conversations from an in-memory fixture."""

    def __init__(
        self,
        fixture: dict[str, Any],
        gateway: ReplayAuthGateway,
        *,
        step_delay: float = 0.0,
    ) -> None:
        mode = fixture.get("stream_mode", "delta")
        if mode not in _STREAM_MODES:
            raise ValueError(f"stream_mode must be one of: {', '.join(sorted(_STREAM_MODES))}")
        chunk_size = fixture.get("chunk_size", 8)
        if type(chunk_size) is not int or chunk_size < 1:
            raise ValueError("chunk_size must be an int >= 1")

        self._fixture = copy.deepcopy(fixture)
        self._fixture.setdefault("models", [])
        self._fixture.setdefault("conversations", {})
        self._fixture.setdefault("replies", {})
        self._gateway = gateway
        self._stream_mode = mode
        self._chunk_size = chunk_size
        self._step_delay = step_delay

    @property
    def conversations(self) -> dict[str, Any]:
        return self._fixture["conversations"]

    def _require_auth(self, operation: str) -> None:
        if self._gateway.is_authenticated:
            return
        logger.info("[RelaySession Replay] %s while signed out; prompting sign-in", operation)
        self._gateway.request_sign_in()
        raise AuthenticationRequired("Sign-in required", operation=operation)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def list_models(self) -> dict[str, Any]:
        self._require_auth("list_models")
        return {"models": copy.deepcopy(self._fixture["models"])}

    async def list_history(self, offset: int, limit: int) -> dict[str, Any]:
        self._require_auth("list_history")
        ordered = sorted(
            self.conversations.values(),
            key=lambda conv: conv.get("create_time", 0),
            reverse=True,
        )
        items = [
            {"id": conv["id"], "title": conv.get("title", ""), "create_time": conv.get("create_time", 0)}
            for conv in ordered[offset : offset + limit]
        ]
        return {"items": items}

    async def get_conversation(self, remote_id: str) -> dict[str, Any]:
        self._require_auth("get_conversation")
        conversation = self.conversations.get(remote_id)
        if conversation is None:
            raise UnknownOperationError(
                f"Conversation {remote_id} not found", operation="get_conversation"
            )
        return copy.deepcopy(conversation)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _reply_for(self, message: str) -> str:
        replies = self._fixture["replies"]
        reply = replies.get(message.strip().lower(), replies.get("default"))
        return reply if isinstance(reply, str) else f"You said: {message}"

    async def send_conversation(
        self, message: str, conversation_id: str | None, model: str
    ) -> AsyncGenerator[AssistantEvent, None]:
        self._require_auth("send_conversation")

        created = conversation_id is None
        if created:
            conversation_id = f"replay-{uuid.uuid4().hex[:12]}"
            self.conversations[conversation_id] = {
                "id": conversation_id,
                "title": derive_title(message),
                "create_time": time.time(),
                "messages": [],
            }
        record = self.conversations.get(conversation_id)
        if record is None:
            raise UnknownOperationError(
                f"Conversation {conversation_id} not found", operation="send_conversation"
            )

        reply = self._reply_for(message)
        record["messages"].append(_wire_message("user", message))
        record["messages"].append(_wire_message("assistant", reply))
        logger.debug(
            "[RelaySession Replay] Replying in %s with model %s (%s mode)",
            conversation_id,
            model,
            self._stream_mode,
        )

        if self._stream_mode == "delta":
            for start in range(0, len(reply), self._chunk_size):
                await asyncio.sleep(self._step_delay)
                yield AssistantEvent.delta(reply[start : start + self._chunk_size])
            if created:
                yield AssistantEvent.title_updated(record["title"], conversation_id)
        else:
            await asyncio.sleep(self._step_delay)
        yield AssistantEvent.completed(copy.deepcopy(record))


def load_fixture(
    path: Union[str, Path], *, step_delay: float = 0.0
) -> tuple[ReplayService, ReplayAuthGateway]:
    """Read a JSON fixture and return a connected service and gateway."""
    fixture = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(fixture, dict):
        raise ValueError(f"Fixture {path} must contain a JSON object")
    gateway = ReplayAuthGateway(authenticated=bool(fixture.get("authenticated", True)))
    return ReplayService(fixture, gateway, step_delay=step_delay), gateway
