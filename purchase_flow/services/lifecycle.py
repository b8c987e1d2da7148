"""PURCHASE RECEIPT LIFECYCLE RULES

The only allowed transitions for purchase receipts, as a lookup table.

- No remote calls
- No state mutation
- Single source of truth for which actions a listed receipt offers
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Union

from purchase_flow.models.purchase_receipt import ReceiptStatus, TransitionKind

TERMINAL_STATES = frozenset({
    ReceiptStatus.COMPLETED,
    ReceiptStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[ReceiptStatus, FrozenSet[TransitionKind]] = {
    ReceiptStatus.DRAFT: frozenset({
        TransitionKind.APPROVE,
        TransitionKind.CANCEL,
        TransitionKind.DELETE,
    }),
    ReceiptStatus.PENDING: frozenset({
        TransitionKind.APPROVE,
        TransitionKind.CANCEL,
    }),
    ReceiptStatus.APPROVED: frozenset({
        TransitionKind.SEND,
        TransitionKind.CANCEL,
    }),
    ReceiptStatus.SENT: frozenset({
        TransitionKind.RECEIVE,
        TransitionKind.CANCEL,
    }),
    ReceiptStatus.PARTIAL: frozenset({
        TransitionKind.RECEIVE,
        TransitionKind.CANCEL,
    }),
    ReceiptStatus.RECEIVED: frozenset({
        TransitionKind.COMPLETE,
        TransitionKind.CANCEL,
    }),
    ReceiptStatus.COMPLETED: frozenset(),
    ReceiptStatus.CANCELLED: frozenset(),
}

PAYLOAD_REQUIRED = frozenset({TransitionKind.RECEIVE})


def can_transition(*, status: Union[ReceiptStatus, str], kind: Union[TransitionKind, str]) -> bool:
    try:
        status = ReceiptStatus(status)
        kind = TransitionKind(kind)
    except ValueError:
        return False

    if status in TERMINAL_STATES:
        return False

    return kind in ALLOWED_TRANSITIONS.get(status, frozenset())


def available_transitions(status: Union[ReceiptStatus, str]) -> List[TransitionKind]:
    """Legal actions for a status, in menu order."""
    try:
        status = ReceiptStatus(status)
    except ValueError:
        return []
    allowed = ALLOWED_TRANSITIONS.get(status, frozenset())
    return [kind for kind in TransitionKind if kind in allowed]


def requires_payload(kind: TransitionKind) -> bool:
    return kind in PAYLOAD_REQUIRED
