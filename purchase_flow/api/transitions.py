"""Purchase Receipt Transition Endpoints

JSON surface for the Order Lifecycle Controller. A rendering layer drives the
confirm-then-call flow with these calls and re-fetches its list whenever the
returned ``refresh_token`` changes.

Endpoints:
- GET  /api/purchase-receipts/{id}/actions             - Receipt + legal actions
- GET  /api/purchase-receipts/{id}/transition          - Pending action snapshot
- POST /api/purchase-receipts/{id}/transition          - Select an action
- POST /api/purchase-receipts/{id}/transition/confirm  - Confirm and call backend
- POST /api/purchase-receipts/{id}/transition/abandon  - Dismiss the pending action

A controller exists only for a receipt that was read successfully and still
has an action pending. Controllers never share state or locks; the refresh
token is kept by the registry so it keeps counting after they are released.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from purchase_flow.api.audits import get_audit_logger
from purchase_flow.api.responses import failure_response, raise_for_api_error
from purchase_flow.integrations.api_client import ApiError
from purchase_flow.integrations.order_service import OrderService
from purchase_flow.models.outcome import ErrorKind, Failed, Ok, Outcome
from purchase_flow.models.purchase_receipt import (
    PayloadInput,
    PurchaseReceipt,
    ReceivePayload,
    TransitionKind,
)
from purchase_flow.services import lifecycle
from purchase_flow.services.lifecycle_controller import OrderLifecycleController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchase-receipts", tags=["purchase-receipts"])

_order_service: Optional[OrderService] = None


def get_order_service() -> OrderService:
    """Get or create OrderService singleton."""
    global _order_service
    if _order_service is None:
        _order_service = OrderService()
    return _order_service


class ControllerRegistry:
    """Lifecycle controllers keyed by receipt id, held only while pending.

    A controller is created when an action is selected on a receipt that was
    just read from the backend, and released as soon as its request is gone
    (succeeded, abandoned or dropped). A failed request stays registered so
    it can be retried or abandoned.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._controllers: Dict[str, OrderLifecycleController] = {}
        self._refresh_token = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    @property
    def refresh_token(self) -> int:
        return self._refresh_token

    def get(self, receipt_id: str) -> Optional[OrderLifecycleController]:
        with self._lock:
            return self._controllers.get(receipt_id)

    def reset(self) -> None:
        with self._lock:
            self._controllers.clear()
            self._refresh_token = 0

    def request(
        self,
        receipt_id: str,
        receipt: PurchaseReceipt,
        kind: TransitionKind,
        payload: PayloadInput,
        order_service: Any,
    ) -> Outcome:
        with self._lock:
            controller = self._controllers.get(receipt_id)
            if controller is None:
                controller = OrderLifecycleController(order_service, audit_logger=get_audit_logger())
            outcome = controller.request_transition(receipt, kind, payload)
            if controller.pending is not None:
                if receipt_id not in self._controllers:
                    logger.debug("Registered lifecycle controller for purchase receipt %s", receipt_id)
                self._controllers[receipt_id] = controller
        return outcome

    def confirm(self, receipt_id: str, payload: PayloadInput = None) -> Outcome:
        controller = self.get(receipt_id)
        if controller is None:
            return Failed(ErrorKind.NO_PENDING_REQUEST, "No purchase receipt action is awaiting confirmation")

        # The remote call runs outside the registry lock.
        outcome = controller.confirm(payload)

        with self._lock:
            if outcome.ok:
                self._refresh_token += 1
                outcome = Ok(self._refresh_token)
            self._release_if_idle(receipt_id, controller)
        return outcome

    def abandon(self, receipt_id: str) -> Outcome:
        with self._lock:
            controller = self._controllers.get(receipt_id)
            if controller is None:
                return Failed(ErrorKind.NO_PENDING_REQUEST, "Nothing to abandon")
            outcome = controller.abandon()
            self._release_if_idle(receipt_id, controller)
        return outcome

    def snapshot(self, receipt_id: str) -> Dict[str, Any]:
        controller = self.get(receipt_id)
        if controller is None:
            snapshot: Dict[str, Any] = {"pending": None, "last_error": None}
        else:
            snapshot = controller.snapshot()
        snapshot["refresh_token"] = self._refresh_token
        return snapshot

    def _release_if_idle(self, receipt_id: str, controller: OrderLifecycleController) -> None:
        if self._controllers.get(receipt_id) is controller and controller.pending is None:
            del self._controllers[receipt_id]
            logger.debug("Released lifecycle controller for purchase receipt %s", receipt_id)


registry = ControllerRegistry()


def reset_controllers() -> None:
    registry.reset()


# ============================================================================
# Request/Response Models
# ============================================================================

class TransitionRequestBody(BaseModel):
    kind: TransitionKind = Field(..., description="Action to perform on the receipt")
    payload: Optional[ReceivePayload] = Field(
        None,
        description="Receive details; may instead be supplied on confirm",
    )


class ConfirmRequestBody(BaseModel):
    payload: Optional[ReceivePayload] = None


class ActionsResponse(BaseModel):
    receipt: Dict[str, Any]
    actions: List[TransitionKind]
    refresh_token: int


def _fetch_receipt(order_service: OrderService, receipt_id: str) -> PurchaseReceipt:
    try:
        return order_service.get(receipt_id)
    except ApiError as exc:
        raise_for_api_error(exc, f"Purchase receipt {receipt_id}")


# ============================================================================
# API Endpoints
# ============================================================================

@router.get("/{receipt_id}/actions", response_model=ActionsResponse)
def list_actions(
    receipt_id: str,
    order_service: OrderService = Depends(get_order_service),
) -> ActionsResponse:
    """Current receipt as the backend reports it, with the actions it offers."""
    receipt = _fetch_receipt(order_service, receipt_id)
    return ActionsResponse(
        receipt=receipt.model_dump(mode="json"),
        actions=lifecycle.available_transitions(receipt.status),
        refresh_token=registry.refresh_token,
    )


@router.get("/{receipt_id}/transition")
def get_transition(receipt_id: str) -> Dict[str, Any]:
    return registry.snapshot(receipt_id)


@router.post("/{receipt_id}/transition")
def request_transition(
    receipt_id: str,
    body: TransitionRequestBody,
    order_service: OrderService = Depends(get_order_service),
) -> Any:
    """Select an action. Legality is judged against a fresh read of the receipt.

    Example:
        POST /api/purchase-receipts/42/transition
        {"kind": "approve"}
    """
    receipt = _fetch_receipt(order_service, receipt_id)
    outcome = registry.request(receipt_id, receipt, body.kind, body.payload, order_service)
    if isinstance(outcome, Failed):
        return failure_response(outcome)
    return {"ok": True, **registry.snapshot(receipt_id)}


@router.post("/{receipt_id}/transition/confirm")
def confirm_transition(
    receipt_id: str,
    body: Optional[ConfirmRequestBody] = None,
) -> Any:
    """Confirm the pending action and issue its backend call.

    Example:
        POST /api/purchase-receipts/42/transition/confirm
        {"payload": {"received_date": "2026-03-02", "quality_check": true}}
    """
    outcome = registry.confirm(receipt_id, body.payload if body else None)
    if isinstance(outcome, Failed):
        return failure_response(outcome)
    return {"ok": True, "refresh_token": outcome.value}


@router.post("/{receipt_id}/transition/abandon")
def abandon_transition(receipt_id: str) -> Any:
    outcome = registry.abandon(receipt_id)
    if isinstance(outcome, Failed):
        return failure_response(outcome)
    return {"ok": True, **registry.snapshot(receipt_id)}
