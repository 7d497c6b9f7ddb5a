"""
Command line front end.

Drives a :class:`SessionController` against a JSON replay fixture::

    relay-session --fixture demo.json models
    relay-session --fixture demo.json history --limit 10
    relay-session --fixture demo.json show c1
    relay-session --fixture demo.json chat "Hello there"
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import click

from .config import SessionConfig
from .controller import SessionController
from .events import EventKind
from .exceptions import OperationError, describe_error
from .replay import load_fixture

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["cli", "cli_entry"]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _with_controller(
    fixture: str, action: Callable[[SessionController], Awaitable[Any]]
) -> Any:
    service, gateway = load_fixture(fixture)
    async with SessionController(service, gateway, config=SessionConfig.from_env()) as controller:
        if not controller.state.authenticated:
            # The first request prompts sign-in; the re-check then refreshes.
            await controller.authenticate()
            await controller.check_authentication()
        return await action(controller)


def _run(ctx: click.Context, action: Callable[[SessionController], Awaitable[Any]]) -> Any:
    return asyncio.run(_with_controller(ctx.obj["fixture"], action))


@click.group()
@click.option(
    "--fixture",
    envvar="RELAY_SESSION_FIXTURE",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON replay fixture to serve models, history and replies from.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, fixture: str, verbose: bool) -> None:
    """Talk to a conversation backend through the session controller."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["fixture"] = fixture


@cli.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List the available models."""

    async def action(controller: SessionController) -> None:
        result = (await controller.fetch_models()).unwrap()
        selected = controller.state.selected_model
        click.echo("* auto\tAuto" if selected == "auto" else "  auto\tAuto")
        for model in result:
            marker = "*" if model.slug == selected else " "
            click.echo(f"{marker} {model.slug}\t{model.title}")

    _run(ctx, action)


@cli.command()
@click.option("--offset", default=None, type=click.IntRange(min=0), help="First entry to list.")
@click.option("--limit", default=None, type=click.IntRange(min=1), help="Number of entries.")
@click.pass_context
def history(ctx: click.Context, offset: int | None, limit: int | None) -> None:
    """List previous conversations, most recent first."""

    async def action(controller: SessionController) -> None:
        entries = (await controller.fetch_history(offset, limit)).unwrap()
        if not entries:
            click.echo("No conversations.")
        for entry in entries:
            click.echo(f"{entry.remote_id}\t{entry.created_at:%Y-%m-%d}\t{entry.title}")

    _run(ctx, action)


@cli.command()
@click.argument("remote_id")
@click.pass_context
def show(ctx: click.Context, remote_id: str) -> None:
    """Print one conversation."""

    async def action(controller: SessionController) -> None:
        conversation = (await controller.load_conversation(remote_id)).unwrap()
        click.echo(conversation.title)
        for message in conversation.messages:
            click.echo(f"[{message.role.value}] {message.content}")

    _run(ctx, action)


@cli.command()
@click.argument("message")
@click.option("--model", default=None, help="Model slug (defaults to the configured model).")
@click.option("--conversation", "remote_id", default=None, help="Continue this conversation.")
@click.pass_context
def chat(ctx: click.Context, message: str, model: str | None, remote_id: str | None) -> None:
    """Send MESSAGE and stream the reply."""

    async def action(controller: SessionController) -> None:
        if remote_id is not None:
            (await controller.load_conversation(remote_id)).unwrap()
        else:
            controller.create_new_conversation()
        if model is not None and not controller.select_model(model):
            raise click.BadParameter(f"unknown model {model!r}", param_hint="--model")

        streamed = False
        async for event in controller.send_conversation(message):
            if event.kind is EventKind.DELTA and event.text:
                click.echo(event.text, nl=False)
                streamed = True
            elif event.kind is EventKind.FAILED and event.error is not None:
                if streamed:
                    click.echo()
                raise event.error

        conversation = controller.snapshot().conversation
        if streamed:
            click.echo()
        elif conversation is not None and conversation.last_message is not None:
            click.echo(conversation.last_message.content)
        if conversation is not None and conversation.remote_id:
            click.echo(f"({conversation.title} · {conversation.remote_id})", err=True)

    _run(ctx, action)


def cli_entry() -> None:
    """Console-script entry point; operation errors exit with status 2."""
    try:
        cli()
    except OperationError as exc:
        click.echo(describe_error(exc), err=True)
        raise SystemExit(2) from exc
