"""Desktop chat front end for relay_session built with Toga.

Highlights:
- history sidebar driven by the controller's history list
- model picker limited to "auto" plus the backend's models
- streamed replies rendered from store snapshots
- debug-view switch wired to the sign-in window gateway

Runs against the bundled replay fixture; point ``RELAY_CHAT_FIXTURE`` at
another fixture file to change the canned data.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import toga
from toga.constants import Direction
from toga.style import Pack
from toga.style.pack import COLUMN, ROW

from relay_session import (
    AUTO_MODEL,
    EventKind,
    SessionConfig,
    SessionController,
    SessionSnapshot,
    describe_error,
    load_fixture,
)

DEFAULT_FIXTURE = Path(__file__).resolve().parents[3] / "fixtures" / "demo_session.json"
COMPOSE_PLACEHOLDER = "Message"
AUTO_MODEL_LABEL = "Auto"
STREAM_STEP_DELAY_SECONDS = 0.03


def render_transcript(snapshot: SessionSnapshot) -> str:
    """Plain-text transcript for the active conversation."""
    conversation = snapshot.conversation
    if conversation is None:
        return "Pick a conversation or start typing."
    if not conversation.messages:
        return f"{conversation.title}\n\nNo messages yet."
    lines = [conversation.title, ""]
    for message in conversation.messages:
        speaker = "You" if message.is_user else "Assistant"
        lines.append(f"{speaker}: {message.content}")
        lines.append("")
    return "\n".join(lines).rstrip()


class RelayChatApp(toga.App):
    """Toga desktop app over a SessionController."""

    def startup(self) -> None:
        """Build UI, start the session and subscribe to store changes."""
        fixture = os.environ.get("RELAY_CHAT_FIXTURE", str(DEFAULT_FIXTURE))
        service, self.gateway = load_fixture(fixture, step_delay=STREAM_STEP_DELAY_SECONDS)
        self.controller = SessionController(service, self.gateway, config=SessionConfig.from_env())

        self._refreshing_lists = False
        self._history_ids: list[str] = []
        self._model_slugs: list[str] = []

        self._build_ui()
        self._unsubscribe = self.controller.store.subscribe(self._on_snapshot)
        self.main_window.show()

        self._session_task = asyncio.create_task(self._start_session())

    async def _start_session(self) -> None:
        await self.controller.initialize()
        if not self.controller.state.authenticated:
            await self.controller.authenticate()

    # -----------------------------------------------------------------------
    # UI Construction
    # -----------------------------------------------------------------------

    def _build_ui(self) -> None:
        self.history_table = toga.Table(
            headings=None,
            accessors=["title"],
            data=[],
            on_select=self._on_history_select,
            style=Pack(flex=1),
        )
        new_button = toga.Button("New chat", on_press=self.on_new_chat, style=Pack(margin=4))
        sidebar = toga.Box(style=Pack(direction=COLUMN, flex=1))
        sidebar.add(new_button)
        sidebar.add(self.history_table)

        self.model_select = toga.Selection(
            items=[AUTO_MODEL_LABEL], on_change=self._on_model_change, style=Pack(flex=1)
        )
        self.debug_switch = toga.Switch("Debug view", on_change=self._on_debug_toggle)
        self.status_label = toga.Label("Connecting...", style=Pack(margin=(0, 8)))
        header = toga.Box(style=Pack(direction=ROW, margin=8, align_items="center"))
        header.add(self.model_select)
        header.add(self.status_label)
        header.add(self.debug_switch)

        self.transcript_view = toga.MultilineTextInput(readonly=True, style=Pack(flex=1))

        self.prompt_input = toga.TextInput(
            placeholder=COMPOSE_PLACEHOLDER,
            on_confirm=self.on_send,
            style=Pack(flex=1),
        )
        self.send_button = toga.Button("↑", on_press=self.on_send, style=Pack(margin=(0, 0, 0, 8)))
        self.retry_button = toga.Button("Retry", on_press=self.on_retry, style=Pack(margin=(0, 0, 0, 8)))
        self.retry_button.enabled = False
        compose_row = toga.Box(style=Pack(direction=ROW, margin=8, align_items="center"))
        compose_row.add(self.prompt_input)
        compose_row.add(self.send_button)
        compose_row.add(self.retry_button)

        main_content = toga.Box(style=Pack(direction=COLUMN, flex=1))
        main_content.add(header)
        main_content.add(self.transcript_view)
        main_content.add(compose_row)

        split = toga.SplitContainer(direction=Direction.VERTICAL, style=Pack(flex=1))
        split.content = [(sidebar, 1), (main_content, 3)]

        self.main_window = toga.MainWindow(title=self.formal_name, size=(900, 640))
        self.main_window.content = split

    # -----------------------------------------------------------------------
    # Store rendering
    # -----------------------------------------------------------------------

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        self.transcript_view.value = render_transcript(snapshot)

        busy = snapshot.state.is_loading
        self.send_button.enabled = snapshot.state.initialized and not busy
        self.retry_button.enabled = snapshot.state.last_error is not None and not busy
        if snapshot.state.last_error is not None:
            self.status_label.text = snapshot.state.last_error.kind.value.replace("_", " ")
        else:
            self.status_label.text = "Replying..." if busy else snapshot.state.auth.value

        self._refresh_history(snapshot)
        self._refresh_models(snapshot)

    def _refresh_history(self, snapshot: SessionSnapshot) -> None:
        ids = [entry.remote_id for entry in snapshot.history]
        if ids == self._history_ids:
            return
        self._history_ids = ids
        # Suppress on_select while the data source is rebuilt
        self._refreshing_lists = True
        try:
            self.history_table.data.clear()
            for entry in snapshot.history:
                self.history_table.data.append({"title": entry.title, "_remote_id": entry.remote_id})
        finally:
            self._refreshing_lists = False

    def _refresh_models(self, snapshot: SessionSnapshot) -> None:
        slugs = [model.slug for model in snapshot.models]
        if slugs == self._model_slugs:
            return
        self._model_slugs = slugs
        self._refreshing_lists = True
        try:
            self.model_select.items = [AUTO_MODEL_LABEL, *slugs]
        finally:
            self._refreshing_lists = False

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def _on_history_select(self, widget: toga.Table, **kwargs: Any) -> None:
        if self._refreshing_lists or widget.selection is None:
            return
        remote_id = getattr(widget.selection, "_remote_id", None)
        if remote_id is None or remote_id == self.controller.snapshot().selected_history_id:
            return
        result = await self.controller.load_conversation(remote_id)
        if not result.ok:
            await self._show_error(result.error)

    def _on_model_change(self, widget: toga.Selection, **kwargs: Any) -> None:
        if self._refreshing_lists or widget.value is None:
            return
        slug = AUTO_MODEL if widget.value == AUTO_MODEL_LABEL else str(widget.value)
        self.controller.select_model(slug)

    def _on_debug_toggle(self, widget: toga.Switch, **kwargs: Any) -> None:
        self.controller.set_debug_view(bool(widget.value))

    async def on_new_chat(self, widget: toga.Widget, **kwargs: Any) -> None:
        self.controller.create_new_conversation()
        self.history_table.selection = None

    async def on_send(self, widget: toga.Widget, **kwargs: Any) -> None:
        text = self.prompt_input.value
        self.prompt_input.value = ""
        await self._consume(self.controller.send_conversation(text))

    async def on_retry(self, widget: toga.Widget, **kwargs: Any) -> None:
        await self._consume(self.controller.resend_last_message())

    async def _consume(self, stream: Any) -> None:
        async for event in stream:
            if event.kind is EventKind.FAILED and event.error is not None:
                await self._show_error(event.error)

    async def _show_error(self, error: Any) -> None:
        await self.main_window.dialog(toga.ErrorDialog("Request failed", describe_error(error)))

    def on_exit(self) -> bool:
        """Stop polling before the loop shuts down."""
        self._unsubscribe()
        asyncio.ensure_future(self.controller.close())
        return True


def main() -> RelayChatApp:
    """Briefcase entrypoint."""
    return RelayChatApp(formal_name="RelayChat", app_id="org.relaysession.chat")


if __name__ == "__main__":
    main().main_loop()
