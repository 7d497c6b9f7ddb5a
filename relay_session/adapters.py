"""
Bridge from completion-handler SDK clients to :class:`RemoteConversationService`.

Many vendor SDKs expose callbacks instead of coroutines::

    client.get_models(callback)                      # callback(result, error)
    client.get_conversation_history(offset, limit, callback)
    client.get_conversation_by_id(remote_id, callback)
    client.send_conversation(message=..., conversation_id=..., model=..., handler=handler)

and may invoke those callbacks on any thread. :class:`CallbackServiceAdapter`
marshals every completion back onto the event loop that issued the request
before resolving the awaiting coroutine, and turns the streaming handler's
callbacks into one ordered async stream of :class:`AssistantEvent` values.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ._threading import call_on_owner, settle_future
from .events import AssistantEvent
from .exceptions import AuthenticationRequired, classify_error

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

logger = logging.getLogger("relay_session")

__all__ = ["CallbackServiceAdapter", "QueueStreamHandler", "to_payload"]


def to_payload(value: Any) -> Any:
    """Convert SDK response objects into plain mappings and lists."""
    if isinstance(value, Mapping):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_payload(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if hasattr(value, "__dict__") and not isinstance(value, type):
        return {
            key: to_payload(item) for key, item in vars(value).items() if not key.startswith("_")
        }
    return value


class QueueStreamHandler:
    """Streaming handler handed to the SDK; forwards callbacks as events.

    Safe to call from any thread. Callbacks after the terminal one are
    dropped.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[AssistantEvent],
        translate_error: Callable[[BaseException], BaseException],
    ) -> None:
        self._loop = loop
        self._queue = queue
        self._translate_error = translate_error
        self._terminated = False

    def _emit(self, event: AssistantEvent) -> None:
        if self._terminated:
            logger.debug("[RelaySession Stream] Handler callback after terminal event dropped")
            return
        if event.is_terminal:
            self._terminated = True
        call_on_owner(self._loop, self._queue.put_nowait, event)

    def on_delta(self, text: str) -> None:
        self._emit(AssistantEvent.delta(str(text)))

    def on_structured(self, text: str) -> None:
        self._emit(AssistantEvent.structured(str(text)))

    def on_title_updated(self, title: str, conversation_id: str | None = None) -> None:
        self._emit(AssistantEvent.title_updated(str(title), conversation_id))

    def on_conversation_complete(self, conversation: Any = None) -> None:
        detail = None if conversation is None else to_payload(conversation)
        self._emit(AssistantEvent.completed(detail))

    def on_error(self, error: BaseException) -> None:
        translated = self._translate_error(error)
        self._emit(AssistantEvent.failed(classify_error(translated, operation="send_conversation")))


class CallbackServiceAdapter:
    """Expose a callback-style SDK client through the async service protocol.

    Args:
        client: The SDK client.
        is_auth_error: Predicate recognising the SDK's own
            "authentication required" error so it can be reported as
            :class:`AuthenticationRequired`.
    """

    def __init__(
        self,
        client: Any,
        *,
        is_auth_error: Callable[[BaseException], bool] | None = None,
    ) -> None:
        self._client = client
        self._is_auth_error = is_auth_error

    def _translate(self, error: BaseException) -> BaseException:
        if self._is_auth_error is not None and self._is_auth_error(error):
            translated = AuthenticationRequired(str(error) or "authentication required")
            translated.__cause__ = error
            return translated
        return error

    async def _call(self, start: Callable[[Callable[..., None]], Any]) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def _completion(result: Any = None, error: BaseException | None = None) -> None:
            if error is not None:
                error = self._translate(error)
            call_on_owner(loop, settle_future, future, result, error)

        start(_completion)
        return to_payload(await future)

    async def list_models(self) -> Any:
        return await self._call(lambda done: self._client.get_models(done))

    async def list_history(self, offset: int, limit: int) -> Any:
        return await self._call(
            lambda done: self._client.get_conversation_history(offset, limit, done)
        )

    async def get_conversation(self, remote_id: str) -> Any:
        return await self._call(lambda done: self._client.get_conversation_by_id(remote_id, done))

    async def send_conversation(
        self, message: str, conversation_id: str | None, model: str
    ) -> AsyncGenerator[AssistantEvent, None]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[AssistantEvent] = asyncio.Queue()
        handler = QueueStreamHandler(loop, queue, self._translate)
        self._client.send_conversation(
            message=message,
            conversation_id=conversation_id,
            model=model,
            handler=handler,
        )
        while True:
            event = await queue.get()
            yield event
            if event.is_terminal:
                return
