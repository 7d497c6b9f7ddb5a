"""
Shared fixtures and fakes for the relay_session test suite.

The fakes satisfy the ``AuthGateway`` / ``RemoteConversationService``
protocols without any network: read operations are ``AsyncMock`` objects
returning canned payloads, and each call to ``send_conversation`` replays
the next scripted list of events.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from relay_session.config import SessionConfig
from relay_session.controller import SessionController
from relay_session.events import AssistantEvent

# ---------------------------------------------------------------------------
# Payload factories
# ---------------------------------------------------------------------------


def models_payload(*slugs):
    """``{"models": [...]}`` with titles derived from the slugs."""
    return {"models": [{"slug": slug, "title": slug.upper()} for slug in slugs]}


def history_payload(*ids, base_time=1_700_000_000):
    """``{"items": [...]}``, newest first."""
    return {
        "items": [
            {"id": remote_id, "title": f"Title {remote_id}", "create_time": base_time - index}
            for index, remote_id in enumerate(ids)
        ]
    }


def detail_payload(remote_id, title, *turns, create_time=1_700_000_000):
    """Conversation detail; *turns* are ``(role, text)`` pairs."""
    return {
        "id": remote_id,
        "title": title,
        "create_time": create_time,
        "messages": [
            {"author": {"role": role}, "content": {"content_type": "text", "parts": [text]}}
            for role, text in turns
        ],
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGateway:
    """Mutable authentication flag plus window toggles."""

    def __init__(self, authenticated=True):
        self.authenticated = authenticated
        self.window_calls = []

    @property
    def is_authenticated(self):
        return self.authenticated

    def show_window(self):
        self.window_calls.append("show")

    def hide_window(self):
        self.window_calls.append("hide")


class PlainGateway:
    """A gateway without the optional window capability."""

    def __init__(self, authenticated=True):
        self.is_authenticated = authenticated


async def _scripted_stream(items):
    for item in items:
        if isinstance(item, asyncio.Event):
            await item.wait()
            continue
        if isinstance(item, BaseException):
            raise item
        yield item


class FakeService:
    """
    Service fake.

    ``script(*items)`` queues the items for the next send; an item may be an
    :class:`AssistantEvent`, an exception (raised at that point) or an
    :class:`asyncio.Event` (the stream waits on it). Unscripted sends
    complete immediately with no content.
    """

    def __init__(self, models=None, history=None, detail=None):
        self.list_models = AsyncMock(return_value=models or models_payload("gpt-4o", "o3"))
        self.list_history = AsyncMock(return_value=history or history_payload("c1", "c2"))
        self.get_conversation = AsyncMock(
            return_value=detail or detail_payload("c1", "Greetings", ("user", "hi"), ("assistant", "hello"))
        )
        self.sends = []
        self._scripts = []

    def script(self, *items):
        self._scripts.append(list(items))

    def send_conversation(self, message, conversation_id, model):
        self.sends.append((message, conversation_id, model))
        items = self._scripts.pop(0) if self._scripts else [AssistantEvent.completed()]
        return _scripted_stream(items)


async def collect(stream):
    """Drain an async iterator into a list."""
    return [event async for event in stream]


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway():
    return FakeGateway(authenticated=True)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def config():
    """Long poll interval so the background poll never interferes."""
    return SessionConfig(poll_interval=3600, refresh_history_after_send=False)


@pytest.fixture
async def controller(service, gateway, config):
    """An initialized controller; the initial refresh calls are reset."""
    ctl = SessionController(service, gateway, config=config)
    await ctl.initialize()
    service.list_models.reset_mock()
    service.list_history.reset_mock()
    yield ctl
    await ctl.close()


@pytest.fixture
def fixture_file(tmp_path):
    """Write a replay fixture to disk and return its path."""

    def _write(**overrides):
        data = {
            "authenticated": True,
            "stream_mode": "delta",
            "chunk_size": 4,
            "models": [{"slug": "gpt-4o", "title": "GPT-4o"}],
            "conversations": {
                "c1": detail_payload("c1", "Greetings", ("user", "hi"), ("assistant", "hello")),
            },
            "replies": {"hello there": "General Kenobi", "default": "Noted."},
        }
        data.update(overrides)
        path = tmp_path / "fixture.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
