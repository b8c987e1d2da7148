"""Guarded Mutation Helper

Wraps exactly one externally visible mutation with:

- re-entry protection: a second ``run()`` while one is outstanding returns
  ``Failed(ALREADY_IN_FLIGHT)`` immediately and performs no call (no queueing)
- guaranteed release of the busy flag on success, failure and exception
- a tagged outcome instead of an exception escaping to the caller

Operations signal an expected business refusal by raising
:class:`MutationRejected` with the matching :class:`ErrorKind`. Anything else
that goes wrong (HTTP errors, unreachable backend, garbage responses,
unexpected exceptions) becomes ``REMOTE_FAILURE``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from purchase_flow.integrations.api_client import ApiError, MalformedResponseError
from purchase_flow.models.outcome import ErrorKind, Failed, Ok, Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENERIC_FAILURE_MESSAGE = "Unexpected response from server"


class MutationRejected(Exception):
    """Raised inside a guarded operation to refuse the mutation cleanly."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value


def describe_api_error(exc: ApiError) -> str:
    """Human-readable detail for a failed backend call."""
    if isinstance(exc, MalformedResponseError):
        return GENERIC_FAILURE_MESSAGE
    friendly = exc.friendly_message
    if exc.status and exc.message and exc.message != friendly:
        return f"{friendly} ({exc.message})"
    return friendly


class GuardedMutation:
    """Single-flight wrapper around one remote mutation.

    The busy flag is a non-blocking lock acquisition, so duplicate requests
    arriving on other worker threads are refused rather than serialized
    behind the first one.
    """

    def __init__(self, name: str = "mutation"):
        self.name = name
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def run(self, op: Callable[[], T]) -> Outcome:
        if not self._lock.acquire(blocking=False):
            logger.debug("Guarded mutation %s already running; ignoring re-entry", self.name)
            return Failed(ErrorKind.ALREADY_IN_FLIGHT, f"{self.name} already in progress")

        try:
            value = op()
        except MutationRejected as exc:
            logger.info("Guarded mutation %s rejected: %s", self.name, exc.message)
            return Failed(exc.kind, exc.message)
        except ApiError as exc:
            logger.warning(
                "Guarded mutation %s failed: status=%s message=%s",
                self.name, exc.status, exc.message,
            )
            return Failed(
                ErrorKind.REMOTE_FAILURE,
                describe_api_error(exc),
                status_code=exc.status or None,
            )
        except Exception:
            logger.exception("Guarded mutation %s raised unexpectedly", self.name)
            return Failed(ErrorKind.REMOTE_FAILURE, GENERIC_FAILURE_MESSAGE)
        finally:
            self._lock.release()

        return Ok(value)
