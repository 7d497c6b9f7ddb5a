"""
Streaming Reply Example

Signs in against the bundled replay backend, opens a stored conversation,
then streams two replies: one continuing that conversation and one in a
fresh conversation that the backend names on completion.
"""

import asyncio

from examples._support import configure_logging, open_demo_backend, report_error
from relay_session import EventKind, OperationError, SessionConfig, SessionController


async def stream_reply(controller: SessionController, prompt: str) -> None:
    print(f"User: {prompt}")
    print("Assistant: ", end="", flush=True)
    async for event in controller.send_conversation(prompt):
        if event.kind is EventKind.DELTA:
            print(event.text, end="", flush=True)
        elif event.kind is EventKind.FAILED:
            raise event.error
    print("\n")


async def main():
    """Run a scripted session over the replay backend."""
    print("=== Streaming Reply Example ===\n")

    service, gateway = open_demo_backend()
    config = SessionConfig(poll_interval=0.1)

    async with SessionController(service, gateway, config=config) as controller:
        # Signed out: the first request prompts sign-in, the poll picks it up.
        await controller.authenticate()
        while not controller.state.authenticated:
            await asyncio.sleep(0.05)

        snapshot = controller.snapshot()
        print("Models:", ", ".join(model.slug for model in snapshot.models))
        for entry in snapshot.history:
            print(f"  {entry.created_at:%Y-%m-%d}  {entry.title}")
        print()

        conversation = (await controller.load_conversation("c-weather")).unwrap()
        for message in conversation.messages:
            print(f"[{message.role.value}] {message.content}")
        print()
        await stream_reply(controller, "hello")

        controller.create_new_conversation()
        controller.select_model("o3")
        await stream_reply(controller, "Tell me a joke")

        active = controller.snapshot().conversation
        print(f"New conversation: {active.title} ({active.remote_id})")
        print(f"History now holds {len(controller.snapshot().history)} conversations")


if __name__ == "__main__":
    configure_logging()
    try:
        asyncio.run(main())
    except OperationError as exc:
        report_error("streaming_example.py", exc)
        raise SystemExit(2) from exc
