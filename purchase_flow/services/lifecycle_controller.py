"""Order Lifecycle Controller

Drives one purchase receipt through a user-confirmed transition:

    request_transition() ──▶ awaiting confirmation ──confirm()──▶ remote call
                                   │                                 │
                               abandon()                  ok ──▶ refresh token +1, back to neutral
                                   │                      error ──▶ in_flight cleared, error recorded
                                   ▼
                                neutral

Rules:
- Legality comes from ``lifecycle.ALLOWED_TRANSITIONS`` only.
- One request per controller; nothing new starts while a call is in flight.
  Duplicate clicks are refused, not queued.
- The cached receipt is never patched. Success bumps the refresh token and
  listeners re-fetch; failure leaves the cached copy exactly as it was.
- Every operation returns ``Ok`` or ``Failed``; nothing raises into callers.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from purchase_flow.integrations.api_client import ApiError
from purchase_flow.models.audit import AuditEventType
from purchase_flow.models.outcome import ErrorKind, Failed, Ok, Outcome
from purchase_flow.models.purchase_receipt import (
    PayloadInput,
    PurchaseReceipt,
    TransitionKind,
    TransitionRequest,
    coerce_payload,
)
from purchase_flow.services import lifecycle
from purchase_flow.services.audit_logger import AuditLogger
from purchase_flow.services.guarded_mutation import GuardedMutation, MutationRejected
from purchase_flow.utils.logging_utils import log_transition_event

logger = logging.getLogger(__name__)

RefreshListener = Callable[[int], None]
EditorListener = Callable[[PurchaseReceipt], None]

# Order Service method invoked for each kind (RECEIVE also takes the payload).
_REMOTE_OPERATIONS: Dict[TransitionKind, str] = {
    TransitionKind.APPROVE: "approve",
    TransitionKind.SEND: "send",
    TransitionKind.RECEIVE: "receive",
    TransitionKind.COMPLETE: "complete",
    TransitionKind.CANCEL: "cancel",
    TransitionKind.DELETE: "delete",
}


class OrderLifecycleController:
    """Confirm-then-call state machine for purchase receipt actions.

    Instances are independent; the HTTP layer keeps one per receipt with an
    action pending.

    Args:
        order_service: object exposing get/approve/send/receive/complete/cancel/delete
        audit_logger: best-effort audit sink. If None, creates default.
        actor: user id recorded on audit events (defaults to "SYSTEM")
    """

    def __init__(
        self,
        order_service: Any,
        audit_logger: Optional[AuditLogger] = None,
        actor: Optional[str] = None,
    ):
        self.order_service = order_service
        self.audit_logger = audit_logger or AuditLogger()
        self.actor = actor

        self._guard = GuardedMutation("purchase receipt transition")
        self._state_lock = threading.Lock()
        self._pending: Optional[TransitionRequest] = None
        self._refresh_token = 0
        self._last_error: Optional[Failed] = None
        self._refresh_listeners: List[RefreshListener] = []
        self._editor_listeners: List[EditorListener] = []

    # -----------------
    # Read-only state
    # -----------------
    @property
    def pending(self) -> Optional[TransitionRequest]:
        with self._state_lock:
            return self._pending.model_copy(deep=True) if self._pending else None

    @property
    def refresh_token(self) -> int:
        return self._refresh_token

    @property
    def last_error(self) -> Optional[Failed]:
        return self._last_error

    @property
    def in_flight(self) -> bool:
        pending = self._pending
        return bool(pending and pending.in_flight)

    def available_transitions(self, receipt: PurchaseReceipt) -> List[TransitionKind]:
        return lifecycle.available_transitions(receipt.status)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view for the rendering layer."""
        with self._state_lock:
            pending = self._pending
            return {
                "pending": None if pending is None else {
                    "receipt_id": pending.target.id,
                    "receipt_number": pending.target.receipt_number,
                    "status": pending.target.status.value,
                    "kind": pending.kind.value,
                    "confirmed": pending.confirmed,
                    "in_flight": pending.in_flight,
                    "attempts": pending.attempts,
                    "has_payload": pending.payload is not None,
                    "last_error": pending.last_error,
                },
                "refresh_token": self._refresh_token,
                "last_error": self._last_error.to_dict() if self._last_error else None,
            }

    # -----------------
    # Listeners
    # -----------------
    def on_refresh(self, listener: RefreshListener) -> None:
        """Called with the new refresh token after every successful transition."""
        self._refresh_listeners.append(listener)

    def on_open_receipt_editor(self, listener: EditorListener) -> None:
        """Called when a RECEIVE is requested so the line-level editor can open."""
        self._editor_listeners.append(listener)

    # -----------------
    # Operations
    # -----------------
    def request_transition(
        self,
        receipt: PurchaseReceipt,
        kind: Union[TransitionKind, str],
        payload: PayloadInput = None,
    ) -> Outcome:
        """Select an action on a receipt and wait for confirmation.

        Fails without changing anything if the action is not legal from the
        receipt's status or a transition is already in flight. A previous
        unconfirmed selection is replaced wholesale.
        """
        try:
            kind = TransitionKind(kind)
        except ValueError:
            return self._reject(
                ErrorKind.ILLEGAL_TRANSITION,
                f"Unknown action '{kind}' for purchase receipt {receipt.display_name}",
                receipt_id=receipt.id,
            )

        with self._state_lock:
            if self._pending is not None and self._pending.in_flight:
                return self._busy()

            if not lifecycle.can_transition(status=receipt.status, kind=kind):
                return self._reject_locked(
                    ErrorKind.ILLEGAL_TRANSITION,
                    f"Cannot {kind.label} purchase receipt {receipt.display_name} "
                    f"while it is {receipt.status.value}",
                    receipt_id=receipt.id,
                )

            try:
                parsed_payload = coerce_payload(payload)
            except ValidationError as exc:
                return self._reject_locked(
                    ErrorKind.MISSING_PAYLOAD,
                    f"Invalid receipt details: {exc.error_count()} error(s)",
                    receipt_id=receipt.id,
                )

            request = TransitionRequest(
                target=receipt.model_copy(deep=True),
                kind=kind,
                payload=parsed_payload,
            )
            replaced = self._pending
            self._pending = request
            self._last_error = None

        if replaced is not None:
            logger.info(
                "Replaced unconfirmed %s on %s with %s",
                replaced.kind.value, replaced.target.id, kind.value,
            )

        self._record(AuditEventType.TRANSITION_REQUESTED, request)

        if kind is TransitionKind.RECEIVE:
            self._notify(self._editor_listeners, request.target.model_copy(deep=True))

        return Ok(request.model_copy(deep=True))

    def confirm(self, payload: PayloadInput = None) -> Outcome:
        """Confirm the pending action and issue its remote call once.

        For RECEIVE, ``payload`` (or the one given at request time) must be
        present. After a failure the request stays confirmed; calling
        ``confirm()`` again is an explicit retry, issued only after a fresh
        read shows the action is still legal. Otherwise the request is
        dropped with ``ILLEGAL_TRANSITION``.
        """
        with self._state_lock:
            request = self._pending
            if request is None:
                return self._reject_locked(
                    ErrorKind.NO_PENDING_REQUEST, "No purchase receipt action is awaiting confirmation"
                )
            if request.in_flight:
                return self._busy()

            try:
                effective_payload = coerce_payload(payload) or request.payload
            except ValidationError as exc:
                return self._reject_locked(
                    ErrorKind.MISSING_PAYLOAD,
                    f"Invalid receipt details: {exc.error_count()} error(s)",
                    receipt_id=request.target.id,
                )

            if lifecycle.requires_payload(request.kind) and effective_payload is None:
                return self._reject_locked(
                    ErrorKind.MISSING_PAYLOAD,
                    f"Received date and quality check are required to receive "
                    f"purchase receipt {request.target.display_name}",
                    receipt_id=request.target.id,
                )

            is_retry = request.attempts > 0
            request.payload = effective_payload
            request.confirmed = True
            request.in_flight = True
            request.attempts += 1

        self._record(AuditEventType.TRANSITION_CONFIRMED, request)

        outcome = self._guard.run(lambda: self._dispatch(request, revalidate=is_retry))

        if isinstance(outcome, Failed) and outcome.kind is ErrorKind.ALREADY_IN_FLIGHT:
            # Another controller call holds the guard; leave its request alone.
            return outcome

        if isinstance(outcome, Failed) and outcome.kind is ErrorKind.ILLEGAL_TRANSITION:
            # The receipt moved on (possibly through our own lost attempt); the request is stale.
            with self._state_lock:
                self._pending = None
                self._last_error = outcome

            logger.warning(
                "Purchase receipt %s: dropped %s retry: %s",
                request.target.id, request.kind.value, outcome.message,
            )
            self._record(AuditEventType.TRANSITION_FAILED, request, error=outcome.message)
            return outcome

        if outcome.ok:
            with self._state_lock:
                self._refresh_token += 1
                token = self._refresh_token
                self._pending = None
                self._last_error = None

            logger.info(
                "Purchase receipt %s: %s succeeded (refresh_token=%d)",
                request.target.id, request.kind.value, token,
            )
            self._record(AuditEventType.TRANSITION_SUCCEEDED, request, refresh_token=token)
            self._notify(self._refresh_listeners, token)
            return Ok(token)

        failure = Failed(
            ErrorKind.REMOTE_FAILURE,
            f"Failed to {request.kind.label} purchase receipt "
            f"{request.target.display_name}: {outcome.message}",
            status_code=outcome.status_code,
        )
        with self._state_lock:
            request.in_flight = False
            request.last_error = failure.message
            self._last_error = failure

        logger.warning(
            "Purchase receipt %s: %s failed on attempt %d: %s",
            request.target.id, request.kind.value, request.attempts, outcome.message,
        )
        self._record(AuditEventType.TRANSITION_FAILED, request, error=failure.message)
        return failure

    def abandon(self) -> Outcome:
        """Drop the pending action without contacting the backend."""
        with self._state_lock:
            request = self._pending
            if request is None:
                return Failed(ErrorKind.NO_PENDING_REQUEST, "Nothing to abandon")
            if request.in_flight:
                return self._busy()
            self._pending = None
            self._last_error = None

        self._record(AuditEventType.TRANSITION_ABANDONED, request)
        return Ok(None)

    # -----------------
    # Internals
    # -----------------
    def _dispatch(self, request: TransitionRequest, revalidate: bool = False) -> Any:
        if revalidate:
            self._revalidate(request)
        operation = getattr(self.order_service, _REMOTE_OPERATIONS[request.kind])
        if request.kind is TransitionKind.RECEIVE:
            return operation(request.target.id, request.payload)
        return operation(request.target.id)

    def _revalidate(self, request: TransitionRequest) -> None:
        """Re-read the receipt before a retry; an earlier attempt may have landed."""
        name = request.target.display_name
        try:
            current = self.order_service.get(request.target.id)
        except ApiError as exc:
            if exc.status == 404:
                raise MutationRejected(
                    ErrorKind.ILLEGAL_TRANSITION,
                    f"Purchase receipt {name} no longer exists",
                ) from exc
            raise

        if not lifecycle.can_transition(status=current.status, kind=request.kind):
            raise MutationRejected(
                ErrorKind.ILLEGAL_TRANSITION,
                f"Cannot {request.kind.label} purchase receipt {name} "
                f"while it is {current.status.value}",
            )

    def _busy(self) -> Failed:
        logger.debug("Transition already in flight; ignoring duplicate request")
        return Failed(ErrorKind.ALREADY_IN_FLIGHT, "A transition is already in progress")

    def _reject(self, kind: ErrorKind, message: str, receipt_id: Optional[str] = None) -> Failed:
        with self._state_lock:
            return self._reject_locked(kind, message, receipt_id=receipt_id)

    def _reject_locked(self, kind: ErrorKind, message: str, receipt_id: Optional[str] = None) -> Failed:
        failure = Failed(kind, message)
        self._last_error = failure
        logger.info("Rejected purchase receipt action (%s): %s", kind.value, message)
        log_transition_event({
            "event": "rejected",
            "error_kind": kind.value,
            "receipt_id": receipt_id,
            "message": message,
        })
        return failure

    def _record(self, event_type: AuditEventType, request: TransitionRequest, **extra: Any) -> None:
        data = {
            "kind": request.kind,
            "receipt_number": request.target.receipt_number,
            "status_before": request.target.status,
            "attempts": request.attempts,
            **extra,
        }
        log_transition_event({"event": event_type.value, "receipt_id": request.target.id, **data})
        self.audit_logger.log(
            event_type=event_type,
            actor=self.actor,
            receipt_id=request.target.id,
            data=data,
        )

    def _notify(self, listeners: List[Callable[[Any], None]], value: Any) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Lifecycle listener %r failed", listener)
