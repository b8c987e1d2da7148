"""Tagged outcomes returned by guarded mutations and the lifecycle controller.

Callers branch on ``outcome.ok`` (or ``isinstance(outcome, Ok)``) instead of
catching exceptions; nothing raised by a remote call escapes past this
boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure taxonomy shared by the controller, the cart and the HTTP layer."""

    ILLEGAL_TRANSITION = "illegal_transition"
    """Requested action is not reachable from the current status."""

    ALREADY_IN_FLIGHT = "already_in_flight"
    """Duplicate request while a call is outstanding. Never shown to users."""

    REMOTE_FAILURE = "remote_failure"
    """Backend returned an error, was unreachable, or answered garbage."""

    INSUFFICIENT_STOCK = "insufficient_stock"
    """Cart add rejected by the stock check."""

    INVALID_QUANTITY = "invalid_quantity"
    """Cart add with a quantity below one."""

    MISSING_PAYLOAD = "missing_payload"
    """Receive confirmation without received_date/quality_check."""

    NO_PENDING_REQUEST = "no_pending_request"
    """confirm()/abandon() called with nothing selected."""

    @property
    def user_visible(self) -> bool:
        return self is not ErrorKind.ALREADY_IN_FLIGHT


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: Optional[T] = None

    ok = True


@dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    message: str = ""
    status_code: Optional[int] = None

    ok = False

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
        }


Outcome = Union[Ok[Any], Failed]
