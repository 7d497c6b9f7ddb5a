"""Tests for relay_session.wire payload parsing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from relay_session.exceptions import MalformedResponse
from relay_session.models import ConversationDetail, HistoryEntry, ModelDescriptor, Role
from relay_session.wire import (
    coerce_detail,
    join_parts,
    parse_conversation_detail,
    parse_history,
    parse_models,
    parse_timestamp,
)

from .conftest import detail_payload, history_payload, models_payload


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


def test_parse_models():
    assert parse_models(models_payload("a", "b")) == [
        ModelDescriptor("a", "A"),
        ModelDescriptor("b", "B"),
    ]


def test_parse_models_title_defaults_to_slug():
    assert parse_models({"models": [{"slug": "x"}]}) == [ModelDescriptor("x", "x")]


@pytest.mark.parametrize(
    "payload",
    [None, [], {}, {"models": None}, {"models": [{"title": "no slug"}]}, {"models": ["text"]}],
)
def test_parse_models_rejects_bad_shapes(payload):
    with pytest.raises(MalformedResponse):
        parse_models(payload)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def test_parse_history_preserves_order():
    entries = parse_history(history_payload("c1", "c2"))
    assert [e.remote_id for e in entries] == ["c1", "c2"]
    assert entries[0] == HistoryEntry(
        "c1", "Title c1", datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    )


@pytest.mark.parametrize("key", ["create_time", "created_at", "createdAt", "created_time"])
def test_parse_history_timestamp_keys(key):
    entries = parse_history({"items": [{"id": "c1", "title": "T", key: "2024-05-01T10:00:00Z"}]})
    assert entries[0].created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


def test_parse_history_missing_title_is_blank():
    entries = parse_history({"items": [{"id": "c1", "create_time": 0}]})
    assert entries[0].title == ""


def test_parse_history_requires_timestamp():
    with pytest.raises(MalformedResponse, match="creation time"):
        parse_history({"items": [{"id": "c1", "title": "T"}]})


def test_parse_history_empty():
    assert parse_history({"items": []}) == []


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def test_parse_timestamp_epoch_float():
    parsed = parse_timestamp(1_700_000_000.5)
    assert parsed.tzinfo is not None
    assert parsed.microsecond == 500_000


def test_parse_timestamp_naive_iso_is_utc():
    assert parse_timestamp("2024-01-02T03:04:05").tzinfo == timezone.utc


def test_parse_timestamp_keeps_offset():
    parsed = parse_timestamp("2024-01-02T03:04:05+02:00")
    assert parsed.utcoffset() == timedelta(hours=2)


def test_parse_timestamp_datetime_passthrough():
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp(moment) is moment


@pytest.mark.parametrize("raw", [True, "yesterday", [], 1e20])
def test_parse_timestamp_rejects(raw):
    with pytest.raises(MalformedResponse):
        parse_timestamp(raw)


# ---------------------------------------------------------------------------
# Conversation detail
# ---------------------------------------------------------------------------


def test_parse_conversation_detail():
    detail = parse_conversation_detail(
        detail_payload("c1", "Greetings", ("user", "hi"), ("assistant", "hello"))
    )
    assert detail.id == "c1"
    assert detail.title == "Greetings"
    assert [m.role for m in detail.messages] == ["user", "assistant"]
    assert [m.role for m in detail.to_messages()] == [Role.USER, Role.ASSISTANT]
    assert detail.created_at is not None


def test_parts_are_joined_with_newlines():
    payload = {
        "id": "c1",
        "messages": [{"author": {"role": "assistant"}, "content": {"parts": ["a", None, 3]}}],
    }
    detail = parse_conversation_detail(payload)
    assert detail.messages[0].content == "a\n\n3"
    assert detail.created_at is None
    assert detail.title == ""


def test_join_parts_empty():
    assert join_parts([]) == ""


@pytest.mark.parametrize(
    "message",
    [
        {"content": {"parts": ["x"]}},
        {"author": {}, "content": {"parts": ["x"]}},
        {"author": {"role": "user"}},
        {"author": {"role": "user"}, "content": {"parts": "x"}},
    ],
)
def test_parse_conversation_detail_rejects_bad_messages(message):
    with pytest.raises(MalformedResponse):
        parse_conversation_detail({"id": "c1", "messages": [message]})


def test_coerce_detail_passthrough():
    detail = ConversationDetail(id="c1", title="T", messages=())
    assert coerce_detail(detail) is detail
    assert coerce_detail(detail_payload("c2", "U")).id == "c2"
