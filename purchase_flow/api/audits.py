"""Read-Only Audit API Endpoints

Endpoints:
- GET /api/audits/receipt/{receipt_id} - Audit trail for one purchase receipt
- GET /api/audits/recent               - Most recent events
- GET /api/audits/type/{event_type}    - Events of one type

Also owns the process-wide audit repository and logger that the transition
and cart routers write through.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from purchase_flow.models.audit import AuditEvent, AuditEventType
from purchase_flow.repositories.audit_repository import AuditRepository
from purchase_flow.services.audit_logger import AuditLogger
from purchase_flow.services.config_service import ConfigService

router = APIRouter(prefix="/audits", tags=["audit"])

_audit_repository: Optional[AuditRepository] = None
_audit_logger: Optional[AuditLogger] = None


def get_audit_repository() -> AuditRepository:
    """Get or create AuditRepository singleton."""
    global _audit_repository
    if _audit_repository is None:
        _audit_repository = AuditRepository(ConfigService().get_audit_db_path())
    return _audit_repository


def get_audit_logger() -> AuditLogger:
    """Get or create AuditLogger singleton."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(get_audit_repository())
    return _audit_logger


class AuditEventResponse(BaseModel):
    """Audit event with JSON-safe serialization."""

    event_id: str = Field(..., description="Unique event identifier")
    event_type: str = Field(..., description="Type of audit event")
    timestamp: str = Field(..., description="When event occurred (ISO 8601)")
    actor: str = Field(..., description="Who performed the action")
    receipt_id: Optional[str] = Field(None, description="Target purchase receipt (if applicable)")
    data: dict = Field(..., description="Event-specific metadata")
    created_at: str = Field(..., description="When event was written to audit log (ISO 8601)")

    class Config:
        json_schema_extra = {
            "example": {
                "event_id": "9e30ad46-1d71-4aed-942e-ea3faec480af",
                "event_type": "TRANSITION_SUCCEEDED",
                "timestamp": "2026-03-02T09:16:41.141000+00:00",
                "actor": "SYSTEM",
                "receipt_id": "42",
                "data": {
                    "kind": "approve",
                    "receipt_number": "PR-000042",
                    "status_before": "draft",
                    "attempts": 1,
                    "refresh_token": 3,
                },
                "created_at": "2026-03-02T09:16:41.141000+00:00",
            }
        }


def _to_response(event: AuditEvent) -> AuditEventResponse:
    return AuditEventResponse(
        event_id=str(event.event_id),
        event_type=event.event_type.value,
        timestamp=event.timestamp.isoformat(),
        actor=event.actor,
        receipt_id=event.receipt_id,
        data=event.data,
        created_at=event.created_at.isoformat(),
    )


@router.get("/receipt/{receipt_id}", response_model=List[AuditEventResponse])
def get_receipt_audit_trail(
    receipt_id: str,
    limit: int = Query(200, ge=1, le=1000, description="Maximum number of events to return"),
) -> List[AuditEventResponse]:
    """Audit trail for a purchase receipt, newest first."""
    try:
        events = get_audit_repository().get_events_for_receipt(receipt_id, limit=limit)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve audit events: {str(exc)}",
        )
    return [_to_response(event) for event in events]


@router.get("/recent", response_model=List[AuditEventResponse])
def get_recent_audit_events(
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of events to return"),
) -> List[AuditEventResponse]:
    try:
        events = get_audit_repository().get_recent_events(limit=limit)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve audit events: {str(exc)}",
        )
    return [_to_response(event) for event in events]


@router.get("/type/{event_type}", response_model=List[AuditEventResponse])
def get_audit_events_by_type(
    event_type: str,
    limit: int = Query(200, ge=1, le=1000, description="Maximum number of events to return"),
) -> List[AuditEventResponse]:
    """Events of one type, e.g. TRANSITION_FAILED."""
    try:
        event_type_enum = AuditEventType(event_type.upper())
    except ValueError:
        valid = ", ".join(t.value for t in AuditEventType)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid event type '{event_type}'. Valid types: {valid}",
        )

    try:
        events = get_audit_repository().get_events_by_type(event_type_enum, limit=limit)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve audit events: {str(exc)}",
        )
    return [_to_response(event) for event in events]
