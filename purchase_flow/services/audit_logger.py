"""Audit Logger Service

Best-effort audit event logging for lifecycle and cart operations.

Key Principles:
- Audit failures NEVER block business operations
- All exceptions are caught and logged as warnings
- Uses "SYSTEM" as default actor
- Stores only safe metadata (ids, kinds, messages)
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from purchase_flow.models.audit import AuditEvent, AuditEventType
from purchase_flow.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)


def _serialize_for_audit(obj: Any) -> Any:
    """Convert objects to a JSON-serializable form for audit data.

    Handles Decimal, UUID, Enum, date/datetime, and recurses into
    dicts and lists.
    """
    if isinstance(obj, Decimal):
        return float(obj)
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {key: _serialize_for_audit(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_for_audit(item) for item in obj]
    else:
        return obj


class AuditLogger:
    """Best-effort audit event logger.

    Wraps AuditRepository with an error boundary so that a locked or
    unwritable audit database never changes the outcome of a transition.

    Example:
        audit_logger = AuditLogger(AuditRepository(":memory:"))
        audit_logger.log(
            event_type=AuditEventType.TRANSITION_SUCCEEDED,
            receipt_id="42",
            data={"kind": "approve"},
        )
    """

    DEFAULT_ACTOR = "SYSTEM"

    def __init__(self, repository: Optional[AuditRepository] = None):
        self.repository = repository or AuditRepository()

    def log(
        self,
        event_type: AuditEventType,
        actor: Optional[str] = None,
        receipt_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an audit event (best-effort, never raises)."""
        try:
            event = AuditEvent(
                event_type=event_type,
                actor=actor or self.DEFAULT_ACTOR,
                receipt_id=str(receipt_id) if receipt_id is not None else None,
                data=_serialize_for_audit(data or {}),
            )
            self.repository.save_event(event)

        except Exception as exc:
            logger.warning(
                f"Audit logging failed for event_type={event_type}, "
                f"receipt_id={receipt_id}: {exc}"
            )
