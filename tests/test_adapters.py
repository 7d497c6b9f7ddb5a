"""
Tests for relay_session.adapters: the callback-SDK bridge.

The fake client completes every request on a worker thread, the way a
vendor SDK delivers completion handlers.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass

import pytest

from relay_session.adapters import CallbackServiceAdapter, QueueStreamHandler, to_payload
from relay_session.config import SessionConfig
from relay_session.controller import SessionController
from relay_session.events import AssistantEvent, EventKind
from relay_session.exceptions import AuthenticationRequired, TransportFailure
from relay_session.protocols import RemoteConversationService

from .conftest import FakeGateway, collect, detail_payload, history_payload, models_payload


class NotSignedIn(Exception):
    """The SDK's own authentication error."""


@dataclass
class SdkModel:
    slug: str
    title: str


class SdkObject:
    def __init__(self, **fields):
        for key, value in fields.items():
            setattr(self, key, value)
        self._private = "hidden"


class ThreadedClient:
    """Completion-handler client that answers from background threads."""

    def __init__(self, models=None, fail_with=None, stream=None):
        self.models = models if models is not None else models_payload("gpt-4o")
        self.fail_with = fail_with
        self.stream = stream or []
        self.calls = []
        self.threads = []

    def _complete(self, callback, result):
        def run():
            if self.fail_with is not None:
                callback(None, self.fail_with)
            else:
                callback(result, None)

        thread = threading.Thread(target=run)
        self.threads.append(thread)
        thread.start()

    def get_models(self, callback):
        self.calls.append(("get_models",))
        self._complete(callback, self.models)

    def get_conversation_history(self, offset, limit, callback):
        self.calls.append(("history", offset, limit))
        self._complete(callback, history_payload("c1"))

    def get_conversation_by_id(self, remote_id, callback):
        self.calls.append(("detail", remote_id))
        self._complete(callback, detail_payload(remote_id, "T", ("user", "hi"), ("assistant", "yo")))

    def send_conversation(self, *, message, conversation_id, model, handler):
        self.calls.append(("send", message, conversation_id, model))

        def run():
            for name, *args in self.stream:
                getattr(handler, name)(*args)

        thread = threading.Thread(target=run)
        self.threads.append(thread)
        thread.start()


# ---------------------------------------------------------------------------
# to_payload
# ---------------------------------------------------------------------------


def test_to_payload_converts_sdk_objects():
    value = SdkObject(models=[SdkModel("a", "A")], meta={"n": (1, 2)})
    assert to_payload(value) == {"models": [{"slug": "a", "title": "A"}], "meta": {"n": [1, 2]}}


def test_to_payload_leaves_scalars():
    assert to_payload("text") == "text"
    assert to_payload(None) is None


def test_adapter_satisfies_service_protocol():
    assert isinstance(CallbackServiceAdapter(ThreadedClient()), RemoteConversationService)


# ---------------------------------------------------------------------------
# Request/response operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_models_from_worker_thread():
    client = ThreadedClient(models=SdkObject(models=[SdkModel("gpt-4o", "GPT-4o")]))
    adapter = CallbackServiceAdapter(client)

    payload = await adapter.list_models()

    assert payload == {"models": [{"slug": "gpt-4o", "title": "GPT-4o"}]}


@pytest.mark.asyncio
async def test_history_and_detail_arguments_are_forwarded():
    client = ThreadedClient()
    adapter = CallbackServiceAdapter(client)

    history = await adapter.list_history(3, 7)
    detail = await adapter.get_conversation("c9")

    assert history["items"][0]["id"] == "c1"
    assert detail["id"] == "c9"
    assert client.calls == [("history", 3, 7), ("detail", "c9")]


@pytest.mark.asyncio
async def test_sdk_auth_error_is_translated():
    adapter = CallbackServiceAdapter(
        ThreadedClient(fail_with=NotSignedIn("login needed")),
        is_auth_error=lambda exc: isinstance(exc, NotSignedIn),
    )
    with pytest.raises(AuthenticationRequired) as exc_info:
        await adapter.list_models()
    assert isinstance(exc_info.value.__cause__, NotSignedIn)


@pytest.mark.asyncio
async def test_other_sdk_errors_propagate_unchanged():
    adapter = CallbackServiceAdapter(ThreadedClient(fail_with=ConnectionError("offline")))
    with pytest.raises(ConnectionError, match="offline"):
        await adapter.list_models()


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_callbacks_become_ordered_events():
    client = ThreadedClient(
        stream=[
            ("on_delta", "Hel"),
            ("on_delta", "lo"),
            ("on_title_updated", "Chat", "r1"),
            ("on_conversation_complete", None),
            ("on_delta", "ignored"),
        ]
    )
    adapter = CallbackServiceAdapter(client)

    events = await collect(adapter.send_conversation("hi", None, "auto"))

    assert [e.kind for e in events] == [
        EventKind.DELTA,
        EventKind.DELTA,
        EventKind.TITLE_UPDATED,
        EventKind.COMPLETED,
    ]
    assert "".join(e.text for e in events) == "Hello"
    assert client.calls == [("send", "hi", None, "auto")]


@pytest.mark.asyncio
async def test_stream_error_becomes_failed_event():
    client = ThreadedClient(stream=[("on_delta", "x"), ("on_error", TimeoutError("stalled"))])
    adapter = CallbackServiceAdapter(client)

    events = await collect(adapter.send_conversation("hi", "r1", "o3"))

    assert events[-1].kind is EventKind.FAILED
    assert isinstance(events[-1].error, TransportFailure)


@pytest.mark.asyncio
async def test_handler_drops_callbacks_after_terminal():
    loop = asyncio.get_running_loop()
    queue = asyncio.Queue()
    handler = QueueStreamHandler(loop, queue, lambda exc: exc)

    handler.on_conversation_complete({"id": "r1"})
    handler.on_error(RuntimeError("late"))
    await asyncio.sleep(0)

    assert queue.qsize() == 1
    event = queue.get_nowait()
    assert event == AssistantEvent.completed({"id": "r1"})


# ---------------------------------------------------------------------------
# End to end through the controller
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_controller_over_callback_client():
    client = ThreadedClient(
        stream=[
            ("on_delta", "hel"),
            (
                "on_conversation_complete",
                SdkObject(**detail_payload("r1", "Greeting", ("user", "hi"), ("assistant", "hello there"))),
            ),
        ]
    )
    adapter = CallbackServiceAdapter(client)
    config = SessionConfig(poll_interval=3600, refresh_history_after_send=False)

    async with SessionController(adapter, FakeGateway(), config=config) as controller:
        result = await controller.send_message("hi")

    assert result.ok
    assert [m.content for m in result.value.messages] == ["hi", "hello there"]
    assert result.value.remote_id == "r1"
    for thread in client.threads:
        thread.join(timeout=1)
