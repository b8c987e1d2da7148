"""Purchase Receipt Model & Lifecycle State Definition

A PurchaseReceipt is the unified purchase order + goods receipt record owned
by the remote Order Service. This package only ever holds a cached, advisory
copy of it: the authoritative status is whatever the next re-fetch returns.

Lifecycle (wire values in parentheses):

  draft ──APPROVE──▶ approved ──SEND──▶ sent (ordered) ──RECEIVE──▶ received ──COMPLETE──▶ completed
  pending ──APPROVE──▶ approved
  partial ──RECEIVE──▶ received
  any non-terminal ──CANCEL──▶ cancelled
  draft ──DELETE──▶ (record removed)

completed and cancelled are terminal.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


class ReceiptStatus(str, Enum):
    """Purchase receipt lifecycle states, using the backend's wire values."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    SENT = "ordered"
    PARTIAL = "partial"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransitionKind(str, Enum):
    """User-selectable actions on a listed purchase receipt."""

    APPROVE = "approve"
    SEND = "send"
    RECEIVE = "receive"
    COMPLETE = "complete"
    CANCEL = "cancel"
    DELETE = "delete"

    @property
    def label(self) -> str:
        """Verb phrase used in user-facing messages."""
        return {
            TransitionKind.APPROVE: "approve",
            TransitionKind.SEND: "send to supplier",
            TransitionKind.RECEIVE: "receive",
            TransitionKind.COMPLETE: "complete",
            TransitionKind.CANCEL: "cancel",
            TransitionKind.DELETE: "delete",
        }[self]


class PurchaseReceipt(BaseModel):
    """Cached view of a purchase receipt as returned by the Order Service.

    Only ``id``, ``receipt_number`` and ``status`` drive lifecycle decisions.
    The remaining fields are descriptive and carried for display and logging.
    """

    id: str = Field(..., description="Opaque identifier assigned by the backend")
    receipt_number: str = Field(
        default="",
        description="Human-readable label, immutable once assigned",
    )
    status: ReceiptStatus = Field(
        default=ReceiptStatus.DRAFT,
        description="Current lifecycle state (source of truth for legal transitions)",
    )

    supplier_id: Optional[str] = None
    order_date: Optional[datetime] = None
    expected_date: Optional[datetime] = None
    reference: Optional[str] = None
    total_amount: float = 0.0
    currency: str = "MYR"
    received_date: Optional[datetime] = None
    quality_check: bool = False

    model_config = {"extra": "ignore"}

    @property
    def display_name(self) -> str:
        return self.receipt_number or self.id


class ReceivePayload(BaseModel):
    """Data required to record a goods receipt.

    ``received_date`` and ``quality_check`` are mandatory. Per-line
    reconciliation (accepted/rejected/damaged quantities, batches) belongs
    to the receipt editor and is not part of this payload.
    """

    received_date: date
    quality_check: bool

    received_by_id: Optional[str] = None
    delivery_date: Optional[date] = None
    delivery_note: Optional[str] = Field(default=None, max_length=100)
    invoice_number: Optional[str] = Field(default=None, max_length=100)
    invoice_date: Optional[date] = None
    vehicle_number: Optional[str] = Field(default=None, max_length=50)
    driver_name: Optional[str] = Field(default=None, max_length=100)
    quality_notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_notes: Optional[str] = Field(default=None, max_length=1000)

    def to_request_body(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class TransitionRequest(BaseModel):
    """A single pending action against one purchase receipt.

    Created when the user picks an action, confirmed or abandoned, and
    discarded once the remote call succeeds. The controller never edits
    ``target`` or ``kind`` on an existing request; picking another action
    builds a new one.
    """

    target: PurchaseReceipt
    kind: TransitionKind
    payload: Optional[ReceivePayload] = None
    confirmed: bool = False
    in_flight: bool = False
    attempts: int = 0
    last_error: Optional[str] = None
    requested_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"use_enum_values": False}  # Keep enum instances, not strings


PayloadInput = Union[ReceivePayload, dict, None]


def coerce_payload(payload: PayloadInput) -> Optional[ReceivePayload]:
    """Accept a ReceivePayload, a plain mapping, or None."""
    if payload is None or isinstance(payload, ReceivePayload):
        return payload
    return ReceivePayload.model_validate(payload)
