"""Tests for relay_session.exceptions: taxonomy, classification and Result."""

from __future__ import annotations

import pytest

from relay_session.exceptions import (
    AuthenticationRequired,
    ErrorKind,
    MalformedResponse,
    OperationError,
    Result,
    SendInProgress,
    SessionNotInitialized,
    TransportFailure,
    UnknownOperationError,
    classify_error,
    describe_error,
)


def test_all_errors_are_operation_errors():
    for cls in (
        AuthenticationRequired,
        MalformedResponse,
        TransportFailure,
        UnknownOperationError,
        SessionNotInitialized,
        SendInProgress,
    ):
        assert issubclass(cls, OperationError)
        assert issubclass(cls, RuntimeError)


def test_default_message_comes_from_kind():
    assert str(AuthenticationRequired()) == "authentication required"
    assert AuthenticationRequired().kind is ErrorKind.AUTHENTICATION_REQUIRED


def test_operation_is_recorded():
    error = TransportFailure("down", operation="fetch_models")
    assert error.operation == "fetch_models"
    assert error.message == "down"


@pytest.mark.parametrize(
    "exc, expected",
    [
        (TimeoutError("slow"), TransportFailure),
        (ConnectionRefusedError("refused"), TransportFailure),
        (OSError("socket"), TransportFailure),
        (KeyError("id"), UnknownOperationError),
        (TypeError("bad"), UnknownOperationError),
        (ValueError("bad"), UnknownOperationError),
        (RuntimeError("???"), UnknownOperationError),
    ],
)
def test_classify_error(exc, expected):
    error = classify_error(exc, operation="op")
    assert type(error) is expected
    assert error.__cause__ is exc
    assert error.operation == "op"
    assert type(exc).__name__ in error.message


def test_classify_passes_operation_errors_through():
    original = AuthenticationRequired("sign in")
    assert classify_error(original, operation="send") is original
    assert original.operation == "send"

    tagged = MalformedResponse("bad", operation="first")
    assert classify_error(tagged, operation="second").operation == "first"


def test_describe_error():
    text = describe_error(TransportFailure("socket closed", operation="fetch_history"))
    assert text.startswith("[fetch_history] Transport failure.")
    assert "Reason: socket closed" in text
    assert "network" in text


def test_describe_error_context_override():
    text = describe_error(AuthenticationRequired(), "relay-session chat")
    assert text.startswith("[relay-session chat]")
    assert "Sign in" in text


def test_result_success_and_failure():
    ok = Result.success([1, 2])
    assert ok.ok
    assert ok.unwrap() == [1, 2]

    error = UnknownOperationError("boom")
    failed = Result.failure(error)
    assert not failed.ok
    with pytest.raises(UnknownOperationError, match="boom"):
        failed.unwrap()
