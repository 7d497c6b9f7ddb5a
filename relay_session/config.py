"""Controller configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .models import AUTO_MODEL

__all__ = ["SessionConfig"]

_ENV_PREFIX = "RELAY_SESSION_"
_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class SessionConfig:
    """Tunables for :class:`~relay_session.controller.SessionController`.

    Args:
        poll_interval: Seconds between authentication checks.
        history_offset: Default offset for ``fetch_history``.
        history_limit: Default page size for ``fetch_history``.
        default_model: Model slug selected at startup.
        refresh_history_after_send: Re-fetch history once a reply completes.
    """

    poll_interval: float = 2.0
    history_offset: int = 0
    history_limit: int = 50
    default_model: str = AUTO_MODEL
    refresh_history_after_send: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if type(self.history_offset) is not int or self.history_offset < 0:
            raise ValueError("history_offset must be an int >= 0")
        if type(self.history_limit) is not int or self.history_limit < 1:
            raise ValueError("history_limit must be an int >= 1")
        if not self.default_model.strip():
            raise ValueError("default_model must be a non-empty model slug")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionConfig:
        """Build a config from ``RELAY_SESSION_*`` variables; unset ones keep defaults."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        raw = env.get(f"{_ENV_PREFIX}POLL_INTERVAL")
        if raw is not None:
            kwargs["poll_interval"] = float(raw)
        raw = env.get(f"{_ENV_PREFIX}HISTORY_OFFSET")
        if raw is not None:
            kwargs["history_offset"] = int(raw)
        raw = env.get(f"{_ENV_PREFIX}HISTORY_LIMIT")
        if raw is not None:
            kwargs["history_limit"] = int(raw)
        raw = env.get(f"{_ENV_PREFIX}DEFAULT_MODEL")
        if raw is not None:
            kwargs["default_model"] = raw.strip()
        name = f"{_ENV_PREFIX}REFRESH_HISTORY_AFTER_SEND"
        raw = env.get(name)
        if raw is not None:
            kwargs["refresh_history_after_send"] = _parse_bool(name, raw)

        return cls(**kwargs)  # type: ignore[arg-type]
