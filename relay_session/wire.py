"""
Parsing of backend payloads into typed values.

Payload shapes::

    listModels       -> {"models": [{"slug": ..., "title": ...}, ...]}
    listHistory      -> {"items": [{"id": ..., "title": ..., "create_time": ...}, ...]}
    getConversation  -> {"id": ..., "title": ..., "create_time": ...,
                         "messages": [{"author": {"role": "user"},
                                       "content": {"parts": ["hi"]}}, ...]}

Every shape violation raises :class:`MalformedResponse`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Union

from .exceptions import MalformedResponse
from .models import ConversationDetail, HistoryEntry, ModelDescriptor, WireMessage

__all__ = [
    "coerce_detail",
    "join_parts",
    "parse_conversation_detail",
    "parse_history",
    "parse_models",
    "parse_timestamp",
]

_TIMESTAMP_KEYS = ("create_time", "created_at", "createdAt", "created_time", "createdTime")


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedResponse(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require_list(payload: Mapping[str, Any], key: str, what: str) -> Sequence[Any]:
    value = payload.get(key)
    if not isinstance(value, (list, tuple)):
        raise MalformedResponse(f"{what} is missing a '{key}' list")
    return value


def _require_str(payload: Mapping[str, Any], key: str, what: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedResponse(f"{what} is missing a non-empty '{key}' string")
    return value


def parse_timestamp(raw: Any) -> datetime:
    """Accept epoch seconds, ISO-8601 text or a ``datetime``; always timezone-aware."""
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, bool):
        raise MalformedResponse(f"Invalid timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(float(raw), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedResponse(f"Invalid timestamp: {raw!r}") from exc
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedResponse(f"Invalid timestamp: {raw!r}") from exc
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
    raise MalformedResponse(f"Invalid timestamp: {raw!r}")


def _find_timestamp(payload: Mapping[str, Any]) -> Any:
    for key in _TIMESTAMP_KEYS:
        if payload.get(key) is not None:
            return payload[key]
    return None


def join_parts(parts: Sequence[Any]) -> str:
    """Join message content parts with newlines."""
    return "\n".join("" if part is None else str(part) for part in parts)


def parse_models(payload: Any) -> list[ModelDescriptor]:
    body = _require_mapping(payload, "Models response")
    models = []
    for raw in _require_list(body, "models", "Models response"):
        item = _require_mapping(raw, "Model entry")
        slug = _require_str(item, "slug", "Model entry")
        title = item.get("title")
        models.append(ModelDescriptor(slug=slug, title=title if isinstance(title, str) else slug))
    return models


def parse_history(payload: Any) -> list[HistoryEntry]:
    body = _require_mapping(payload, "History response")
    entries = []
    for raw in _require_list(body, "items", "History response"):
        item = _require_mapping(raw, "History entry")
        remote_id = _require_str(item, "id", "History entry")
        raw_time = _find_timestamp(item)
        if raw_time is None:
            raise MalformedResponse(f"History entry {remote_id} has no creation time")
        entries.append(
            HistoryEntry(
                remote_id=remote_id,
                title=str(item.get("title") or ""),
                created_at=parse_timestamp(raw_time),
            )
        )
    return entries


def _parse_wire_message(raw: Any) -> WireMessage:
    message = _require_mapping(raw, "Conversation message")
    author = _require_mapping(message.get("author"), "Message author")
    role = author.get("role")
    if not isinstance(role, str):
        raise MalformedResponse("Message author has no role")
    content = _require_mapping(message.get("content"), "Message content")
    parts = content.get("parts")
    if not isinstance(parts, (list, tuple)):
        raise MalformedResponse("Message content has no 'parts' list")
    return WireMessage(role=role, content=join_parts(parts))


def parse_conversation_detail(payload: Any) -> ConversationDetail:
    body = _require_mapping(payload, "Conversation detail")
    remote_id = _require_str(body, "id", "Conversation detail")
    raw_time = _find_timestamp(body)
    messages = tuple(
        _parse_wire_message(raw) for raw in _require_list(body, "messages", "Conversation detail")
    )
    return ConversationDetail(
        id=remote_id,
        title=str(body.get("title") or ""),
        messages=messages,
        created_at=parse_timestamp(raw_time) if raw_time is not None else None,
    )


def coerce_detail(detail: Union[ConversationDetail, Mapping[str, Any]]) -> ConversationDetail:
    """Return *detail* parsed when it is still a raw payload."""
    if isinstance(detail, ConversationDetail):
        return detail
    return parse_conversation_detail(detail)
