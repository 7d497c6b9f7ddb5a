"""
Error taxonomy for remote session operations.

Every failure the controller observes is normalised into an
:class:`OperationError` subclass and then carried as a value (a failed
:class:`Result` or a ``FAILED`` stream event) so nothing escapes the
controller boundary uncaught.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, TypeVar

__all__ = [
    "AuthenticationRequired",
    "ErrorKind",
    "MalformedResponse",
    "OperationError",
    "Result",
    "SendInProgress",
    "SessionNotInitialized",
    "TransportFailure",
    "UnknownOperationError",
    "classify_error",
    "describe_error",
]

T = TypeVar("T")

# Errors that mean the backend could not be reached.
_TRANSPORT_ERRORS = (TimeoutError, ConnectionError, OSError)


class ErrorKind(enum.Enum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT_FAILURE = "transport_failure"
    NOT_INITIALIZED = "not_initialized"
    SEND_IN_PROGRESS = "send_in_progress"
    UNKNOWN = "unknown"


class OperationError(RuntimeError):
    """Base class for every failure surfaced by a session operation."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", *, operation: str | None = None) -> None:
        super().__init__(message or self.kind.value.replace("_", " "))
        self.operation = operation

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class AuthenticationRequired(OperationError):
    """The session is not signed in; the gateway will prompt for sign-in."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED


class MalformedResponse(OperationError):
    """The backend returned data that violates the payload contract."""

    kind = ErrorKind.MALFORMED_RESPONSE


class TransportFailure(OperationError):
    """The backend could not be reached."""

    kind = ErrorKind.TRANSPORT_FAILURE


class UnknownOperationError(OperationError):
    """Catch-all for failures that fit no other category."""

    kind = ErrorKind.UNKNOWN


class SessionNotInitialized(OperationError):
    """An operation was invoked before ``initialize()``."""

    kind = ErrorKind.NOT_INITIALIZED


class SendInProgress(OperationError):
    """A send is already streaming into the target conversation."""

    kind = ErrorKind.SEND_IN_PROGRESS


def classify_error(exc: BaseException, *, operation: str | None = None) -> OperationError:
    """Map an arbitrary exception onto the taxonomy.

    ``OperationError`` instances pass through (their ``operation`` is filled
    in when missing); anything else is wrapped with the original chained as
    ``__cause__``.
    """
    if isinstance(exc, OperationError):
        if exc.operation is None:
            exc.operation = operation
        return exc

    detail = f"{type(exc).__name__}: {exc}"
    error: OperationError
    if isinstance(exc, _TRANSPORT_ERRORS):
        error = TransportFailure(detail, operation=operation)
    else:
        error = UnknownOperationError(detail, operation=operation)
    error.__cause__ = exc
    return error


_HINTS = {
    ErrorKind.AUTHENTICATION_REQUIRED: "Sign in when prompted, then refresh or resend.",
    ErrorKind.MALFORMED_RESPONSE: "The backend reply could not be understood. Try again later.",
    ErrorKind.TRANSPORT_FAILURE: "Check the network connection, then retry.",
    ErrorKind.NOT_INITIALIZED: "Call initialize() before issuing requests.",
    ErrorKind.SEND_IN_PROGRESS: "Wait for the conversation to finish loading or replying, then send again.",
    ErrorKind.UNKNOWN: "Retry the action; if it keeps failing, enable debug logging.",
}


def describe_error(error: OperationError, context: str | None = None) -> str:
    """Build a user-facing message for *error*."""
    label = (context or error.operation or "relay_session").strip() or "relay_session"
    lines = [f"[{label}] {error.kind.value.replace('_', ' ').capitalize()}."]
    if error.message:
        lines.append(f"Reason: {error.message}")
    lines.append(_HINTS[error.kind])
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Result value
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a controller operation: a value or an :class:`OperationError`."""

    value: T | None = None
    error: OperationError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: OperationError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
