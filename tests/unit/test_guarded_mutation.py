"""Guarded mutation: single flight and error capture."""

import threading

import pytest

from purchase_flow.integrations.api_client import ApiError, MalformedResponseError
from purchase_flow.models.outcome import ErrorKind, Failed, Ok
from purchase_flow.services.guarded_mutation import (
    GENERIC_FAILURE_MESSAGE,
    GuardedMutation,
    MutationRejected,
    describe_api_error,
)


def test_success_returns_value_and_releases():
    guard = GuardedMutation("save")

    assert guard.run(lambda: 42) == Ok(42)
    assert guard.busy is False


def test_reentry_is_refused_without_calling():
    guard = GuardedMutation("save")
    calls = []

    def outer():
        calls.append("outer")
        return guard.run(lambda: calls.append("inner"))

    inner = guard.run(outer).value

    assert calls == ["outer"]
    assert isinstance(inner, Failed)
    assert inner.kind is ErrorKind.ALREADY_IN_FLIGHT


def test_duplicate_from_other_thread_is_not_queued():
    guard = GuardedMutation("save")
    started, release = threading.Event(), threading.Event()
    calls = []

    def slow():
        calls.append("slow")
        started.set()
        release.wait(timeout=5)
        return "done"

    results = []
    worker = threading.Thread(target=lambda: results.append(guard.run(slow)))
    worker.start()
    assert started.wait(timeout=5)

    duplicate = guard.run(lambda: calls.append("duplicate"))
    release.set()
    worker.join(timeout=5)

    assert duplicate.kind is ErrorKind.ALREADY_IN_FLIGHT
    assert results == [Ok("done")]
    assert calls == ["slow"]


def test_rejection_keeps_its_kind():
    guard = GuardedMutation("add")

    def reject():
        raise MutationRejected(ErrorKind.INSUFFICIENT_STOCK, "Insufficient stock for Widget")

    outcome = guard.run(reject)

    assert outcome == Failed(ErrorKind.INSUFFICIENT_STOCK, "Insufficient stock for Widget")
    assert guard.busy is False


def test_api_error_becomes_remote_failure_with_status():
    guard = GuardedMutation("send")

    def fail():
        raise ApiError(404, "not here")

    outcome = guard.run(fail)

    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert outcome.status_code == 404
    assert outcome.message == "The requested resource was not found. (not here)"
    assert guard.busy is False


def test_unexpected_exception_is_released_and_generic():
    guard = GuardedMutation("send")

    def explode():
        raise KeyError("data")

    outcome = guard.run(explode)

    assert outcome == Failed(ErrorKind.REMOTE_FAILURE, GENERIC_FAILURE_MESSAGE)
    assert guard.run(lambda: "again") == Ok("again")


@pytest.mark.parametrize(
    "error,expected",
    [
        (ApiError(0, "Network error occurred"), "Network error occurred"),
        (ApiError(401, "token expired"), "Your session has expired. Please log in again. (token expired)"),
        (ApiError(418, "teapot"), "teapot"),
        (MalformedResponseError(200), GENERIC_FAILURE_MESSAGE),
    ],
)
def test_describe_api_error(error, expected):
    assert describe_api_error(error) == expected
