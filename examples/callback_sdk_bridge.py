"""
Callback SDK bridge example.

Many vendor SDKs report results through completion handlers invoked on
their own worker threads. ``CallbackServiceAdapter`` turns such a client
into the async service the controller expects; this demo client answers
from a thread pool to show the marshaling.
"""

from __future__ import annotations

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor

from examples._support import configure_logging, report_error
from relay_session import (
    CallbackServiceAdapter,
    OperationError,
    SessionConfig,
    SessionController,
)


class SignInRequired(Exception):
    """The demo SDK's own authentication error."""


class DemoKeychain:
    def __init__(self) -> None:
        self.signed_in = False

    @property
    def is_authenticated(self) -> bool:
        return self.signed_in


class DemoSdkClient:
    """Completion-handler client; every callback fires on a pool thread."""

    def __init__(self, keychain: DemoKeychain) -> None:
        self._keychain = keychain
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="demo-sdk")
        self._conversations: dict[str, list[dict]] = {}

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def _respond(self, callback, result) -> None:
        def work():
            time.sleep(0.01)
            if not self._keychain.signed_in:
                self._keychain.signed_in = True  # sign-in sheet "completes"
                callback(None, SignInRequired("sign in to continue"))
            else:
                callback(result, None)

        self._pool.submit(work)

    def get_models(self, callback) -> None:
        self._respond(callback, {"models": [{"slug": "demo-large", "title": "Demo Large"}]})

    def get_conversation_history(self, offset, limit, callback) -> None:
        items = [
            {"id": remote_id, "title": f"Chat {remote_id}", "create_time": time.time()}
            for remote_id in list(self._conversations)[offset : offset + limit]
        ]
        self._respond(callback, {"items": items})

    def get_conversation_by_id(self, remote_id, callback) -> None:
        self._respond(callback, {"id": remote_id, "messages": self._conversations.get(remote_id, [])})

    def send_conversation(self, *, message, conversation_id, model, handler) -> None:
        remote_id = conversation_id or f"sdk-{len(self._conversations) + 1}"
        reply = f"[{model}] echo: {message}"

        def work():
            for word in reply.split(" "):
                time.sleep(0.02)
                handler.on_delta(word + " ")
            handler.on_title_updated(message.title(), remote_id)
            turns = self._conversations.setdefault(remote_id, [])
            turns.append({"author": {"role": "user"}, "content": {"parts": [message]}})
            turns.append({"author": {"role": "assistant"}, "content": {"parts": [reply]}})
            handler.on_conversation_complete(
                {"id": remote_id, "title": message.title(), "messages": list(turns)}
            )

        self._pool.submit(work)


async def main() -> None:
    keychain = DemoKeychain()
    client = DemoSdkClient(keychain)
    service = CallbackServiceAdapter(client, is_auth_error=lambda exc: isinstance(exc, SignInRequired))

    try:
        async with SessionController(
            service, keychain, config=SessionConfig(poll_interval=0.05)
        ) as controller:
            first = await controller.fetch_models()
            print(f"First fetch: {'ok' if first.ok else first.error.kind.value}")
            while not controller.state.authenticated:
                await asyncio.sleep(0.05)
            print("Models:", [model.slug for model in controller.snapshot().models])

            result = await controller.send_message("hello from the bridge")
            conversation = result.unwrap()
            for message in conversation.messages:
                print(f"[{message.role.value}] {message.content}")
            print(f"Remote id: {conversation.remote_id}, title: {conversation.title}")
    finally:
        client.close()


if __name__ == "__main__":
    configure_logging()
    try:
        asyncio.run(main())
    except OperationError as exc:
        report_error("callback_sdk_bridge.py", exc)
        raise SystemExit(2) from exc
