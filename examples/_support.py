"""
Shared support helpers for runnable examples.

Resolves the bundled replay fixture and reports operation errors the same
way the command line does.
"""

from __future__ import annotations

import logging
from pathlib import Path

from relay_session import OperationError, describe_error, load_fixture

__all__ = ["DEMO_FIXTURE", "configure_logging", "open_demo_backend", "report_error"]

DEMO_FIXTURE = Path(__file__).resolve().parent / "fixtures" / "demo_session.json"


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def open_demo_backend(step_delay: float = 0.02):
    """Return ``(service, gateway)`` backed by the bundled fixture."""
    return load_fixture(DEMO_FIXTURE, step_delay=step_delay)


def report_error(example_name: str, exc: OperationError) -> None:
    print(describe_error(exc, example_name))
