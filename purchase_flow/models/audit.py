"""Audit Event Model

Immutable audit log for purchase receipt transitions and cart rejections.

Key Principles:
- Append-only (no updates or deletes)
- Events are never modified after creation
- Captures who did what, when, and with what outcome
- Stored in a separate SQLite database (audit.db)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Audit event types for the purchase receipt lifecycle."""

    TRANSITION_REQUESTED = "TRANSITION_REQUESTED"
    """User picked an action; awaiting confirmation."""

    TRANSITION_CONFIRMED = "TRANSITION_CONFIRMED"
    """User confirmed; remote call about to be issued."""

    TRANSITION_SUCCEEDED = "TRANSITION_SUCCEEDED"
    """Order Service acknowledged the transition."""

    TRANSITION_FAILED = "TRANSITION_FAILED"
    """Remote call failed; receipt left as it was."""

    TRANSITION_ABANDONED = "TRANSITION_ABANDONED"
    """Pending action dismissed without a remote call."""

    CART_ITEM_REJECTED = "CART_ITEM_REJECTED"
    """Cart add refused by the stock check."""


class AuditEvent(BaseModel):
    """Immutable audit event record.

    Attributes:
        event_id: Unique identifier for this audit event
        event_type: Type of operation being audited
        timestamp: When the business event occurred (UTC)
        actor: Who performed this action (user id or "SYSTEM")
        receipt_id: Target purchase receipt (None for cart events)
        data: Event-specific context (kind, errors, attempt counts)
        created_at: When this audit record was persisted

    Example:
        >>> event = AuditEvent(
        ...     event_type=AuditEventType.TRANSITION_SUCCEEDED,
        ...     actor="SYSTEM",
        ...     receipt_id="7b0e4a2c-9f0e-4a43-9d55-3b1f1c5f7a10",
        ...     data={"kind": "approve", "receipt_number": "PR-000123"},
        ... )
        >>> audit_repo.save_event(event)
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier for this audit event"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of operation being audited"
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the business event occurred (UTC timezone)"
    )

    actor: str = Field(
        ...,
        description="Who performed this action (user id or 'SYSTEM')"
    )

    receipt_id: Optional[str] = Field(
        None,
        description="Target purchase receipt id (None for cart events)"
    )

    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific context"
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When this audit record was persisted to database"
    )
