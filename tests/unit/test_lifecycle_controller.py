"""Order Lifecycle Controller: confirm-then-call behaviour."""

import threading

from purchase_flow.integrations.api_client import ApiError, MalformedResponseError
from purchase_flow.models.audit import AuditEventType
from purchase_flow.models.outcome import ErrorKind, Failed, Ok
from purchase_flow.models.purchase_receipt import ReceiptStatus, ReceivePayload, TransitionKind


def test_approve_draft_then_refetch_shows_approved(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)

    requested = controller.request_transition(receipt, TransitionKind.APPROVE)
    assert isinstance(requested, Ok)
    assert controller.pending.confirmed is False
    assert order_service.calls == []

    confirmed = controller.confirm()

    assert confirmed == Ok(1)
    assert controller.refresh_token == 1
    assert controller.pending is None
    assert order_service.calls == [("approve", "42")]
    assert order_service.get("42").status == ReceiptStatus.APPROVED


def test_illegal_transition_changes_nothing(controller, order_service):
    receipt = order_service.add("7", ReceiptStatus.COMPLETED)

    outcome = controller.request_transition(receipt, TransitionKind.CANCEL)

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert controller.pending is None
    assert controller.refresh_token == 0
    assert receipt.status == ReceiptStatus.COMPLETED
    assert order_service.calls == []


def test_receive_from_approved_is_illegal(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.APPROVED)

    outcome = controller.request_transition(receipt, TransitionKind.RECEIVE)

    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert order_service.calls == []


def test_unknown_kind_is_illegal(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)

    outcome = controller.request_transition(receipt, "archive")

    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert controller.pending is None


def test_illegal_request_keeps_existing_selection(controller, order_service):
    draft = order_service.add("1", ReceiptStatus.DRAFT)
    controller.request_transition(draft, TransitionKind.APPROVE)

    outcome = controller.request_transition(draft, TransitionKind.COMPLETE)

    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert controller.pending.kind is TransitionKind.APPROVE


def test_receive_without_payload_makes_no_remote_call(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.SENT)
    assert controller.request_transition(receipt, TransitionKind.RECEIVE).ok

    outcome = controller.confirm()

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.MISSING_PAYLOAD
    assert order_service.calls == []
    assert controller.pending is not None
    assert controller.pending.in_flight is False


def test_receive_with_payload_on_confirm(controller, order_service, receive_payload):
    receipt = order_service.add("42", ReceiptStatus.SENT)
    controller.request_transition(receipt, TransitionKind.RECEIVE)

    outcome = controller.confirm(receive_payload)

    assert outcome == Ok(1)
    action, receipt_id, payload = order_service.calls[0]
    assert (action, receipt_id) == ("receive", "42")
    assert isinstance(payload, ReceivePayload)
    assert payload.quality_check is True
    assert payload.to_request_body()["received_date"] == "2026-03-02"


def test_receive_payload_given_at_request_time_is_used(controller, order_service, receive_payload):
    receipt = order_service.add("42", ReceiptStatus.PARTIAL)
    controller.request_transition(receipt, TransitionKind.RECEIVE, receive_payload)

    assert controller.confirm().ok
    assert order_service.calls[0][2].delivery_note == "DN-7781"


def test_invalid_receive_payload_is_missing_payload(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.SENT)
    controller.request_transition(receipt, TransitionKind.RECEIVE)

    outcome = controller.confirm({"quality_check": True})

    assert outcome.kind is ErrorKind.MISSING_PAYLOAD
    assert order_service.calls == []


def test_receive_request_opens_receipt_editor(controller, order_service):
    opened = []
    controller.on_open_receipt_editor(opened.append)
    receipt = order_service.add("42", ReceiptStatus.SENT)

    controller.request_transition(receipt, TransitionKind.RECEIVE)
    controller.request_transition(receipt, TransitionKind.CANCEL)

    assert [r.id for r in opened] == ["42"]


def test_remote_failure_leaves_receipt_and_token_untouched(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.APPROVED, receipt_number="PR-000042")
    order_service.fail_with = ApiError(409, "Purchase receipt already sent")
    controller.request_transition(receipt, TransitionKind.SEND)

    outcome = controller.confirm()

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert outcome.status_code == 409
    assert "send to supplier purchase receipt PR-000042" in outcome.message
    assert "Purchase receipt already sent" in outcome.message
    assert controller.refresh_token == 0
    assert controller.last_error == outcome
    assert receipt.status == ReceiptStatus.APPROVED
    assert order_service.get("42").status == ReceiptStatus.APPROVED

    pending = controller.pending
    assert pending.confirmed is True
    assert pending.in_flight is False
    assert pending.last_error == outcome.message


def test_network_failure_is_reported_as_remote_failure(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = ApiError(0, "Network error occurred")
    controller.request_transition(receipt, TransitionKind.APPROVE)

    outcome = controller.confirm()

    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert outcome.status_code is None
    assert "Network error occurred" in outcome.message


def test_malformed_response_gets_generic_message(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = MalformedResponseError(200)
    controller.request_transition(receipt, TransitionKind.APPROVE)

    outcome = controller.confirm()

    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert outcome.message.endswith("Unexpected response from server")


def test_unexpected_exception_is_captured(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = RuntimeError("boom")
    controller.request_transition(receipt, TransitionKind.APPROVE)

    outcome = controller.confirm()

    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert controller.in_flight is False


def test_confirm_again_after_failure_retries(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = ApiError(503, "maintenance")
    controller.request_transition(receipt, TransitionKind.APPROVE)
    assert not controller.confirm().ok

    order_service.fail_with = None
    outcome = controller.confirm()

    assert outcome == Ok(1)
    assert len(order_service.calls) == 2
    assert order_service.reads == ["42"]
    assert controller.last_error is None


def test_first_attempt_does_not_reread(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.APPROVE)

    controller.confirm()

    assert order_service.reads == []


def test_retry_after_lost_response_is_not_resent(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.lose_responses = True
    controller.request_transition(receipt, TransitionKind.APPROVE)
    assert controller.confirm().kind is ErrorKind.REMOTE_FAILURE
    assert order_service.get("42").status == ReceiptStatus.APPROVED
    order_service.lose_responses = False

    outcome = controller.confirm()

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert "while it is approved" in outcome.message
    assert order_service.calls == [("approve", "42")]
    assert controller.pending is None
    assert controller.last_error == outcome
    assert controller.refresh_token == 0


def test_retry_of_lost_delete_reports_receipt_gone(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.lose_responses = True
    controller.request_transition(receipt, TransitionKind.DELETE)
    controller.confirm()
    order_service.lose_responses = False

    outcome = controller.confirm()

    assert outcome.kind is ErrorKind.ILLEGAL_TRANSITION
    assert "no longer exists" in outcome.message
    assert order_service.calls == [("delete", "42")]


def test_retry_reread_failure_keeps_request(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = ApiError(503, "maintenance")
    controller.request_transition(receipt, TransitionKind.APPROVE)
    controller.confirm()

    def unreachable(_receipt_id):
        raise ApiError(0, "Network error occurred")

    order_service.get = unreachable
    outcome = controller.confirm()

    assert outcome.kind is ErrorKind.REMOTE_FAILURE
    assert len(order_service.calls) == 1
    assert controller.pending.attempts == 2
    assert controller.pending.in_flight is False


def test_abandon_after_failure_clears_selection(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.fail_with = ApiError(500, "oops")
    controller.request_transition(receipt, TransitionKind.APPROVE)
    controller.confirm()

    assert controller.abandon() == Ok(None)
    assert controller.pending is None
    assert len(order_service.calls) == 1


def test_abandon_makes_no_remote_call(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.DELETE)

    assert controller.abandon().ok
    assert controller.pending is None
    assert order_service.calls == []
    assert controller.refresh_token == 0


def test_confirm_and_abandon_without_selection(controller):
    assert controller.confirm().kind is ErrorKind.NO_PENDING_REQUEST
    assert controller.abandon().kind is ErrorKind.NO_PENDING_REQUEST


def test_new_request_replaces_unconfirmed_one(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.APPROVE)

    controller.request_transition(receipt, TransitionKind.CANCEL)
    controller.confirm()

    assert order_service.calls == [("cancel", "42")]


def test_reentrant_confirm_during_call_is_ignored(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    nested = []
    order_service.during_call = lambda: nested.append(
        (controller.confirm(), controller.request_transition(receipt, TransitionKind.CANCEL), controller.abandon())
    )
    controller.request_transition(receipt, TransitionKind.APPROVE)

    outcome = controller.confirm()

    assert outcome == Ok(1)
    assert len(order_service.calls) == 1
    assert all(result.kind is ErrorKind.ALREADY_IN_FLIGHT for result in nested[0])
    assert not ErrorKind.ALREADY_IN_FLIGHT.user_visible


def test_concurrent_confirm_issues_one_remote_call(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    order_service.gate = threading.Event()
    controller.request_transition(receipt, TransitionKind.APPROVE)

    results = []
    worker = threading.Thread(target=lambda: results.append(controller.confirm()))
    worker.start()
    assert order_service.entered.wait(timeout=5)

    duplicate = controller.confirm()
    assert controller.in_flight is True
    order_service.gate.set()
    worker.join(timeout=5)

    assert duplicate.kind is ErrorKind.ALREADY_IN_FLIGHT
    assert results == [Ok(1)]
    assert len(order_service.calls) == 1
    # The duplicate is not recorded as the user's error.
    assert controller.last_error is None


def test_refresh_listeners_receive_each_new_token(controller, order_service):
    tokens = []
    controller.on_refresh(tokens.append)
    receipt = order_service.add("42", ReceiptStatus.DRAFT)

    controller.request_transition(receipt, TransitionKind.APPROVE)
    controller.confirm()
    controller.request_transition(order_service.get("42"), TransitionKind.SEND)
    controller.confirm()

    assert tokens == [1, 2]


def test_failing_listener_does_not_break_success(controller, order_service):
    def broken(_token):
        raise RuntimeError("listener crashed")

    controller.on_refresh(broken)
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.APPROVE)

    assert controller.confirm() == Ok(1)


def test_full_lifecycle(controller, order_service, receive_payload):
    order_service.add("42", ReceiptStatus.DRAFT)
    steps = [
        (TransitionKind.APPROVE, ReceiptStatus.APPROVED),
        (TransitionKind.SEND, ReceiptStatus.SENT),
        (TransitionKind.RECEIVE, ReceiptStatus.RECEIVED),
        (TransitionKind.COMPLETE, ReceiptStatus.COMPLETED),
    ]

    for kind, expected in steps:
        receipt = order_service.get("42")
        assert kind in controller.available_transitions(receipt)
        controller.request_transition(receipt, kind)
        assert controller.confirm(receive_payload if kind is TransitionKind.RECEIVE else None).ok
        assert order_service.get("42").status == expected

    assert controller.refresh_token == 4
    assert controller.available_transitions(order_service.get("42")) == []


def test_snapshot_reports_pending_selection(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.SENT, receipt_number="PR-000042")
    controller.request_transition(receipt, TransitionKind.RECEIVE)

    snapshot = controller.snapshot()

    assert snapshot["pending"]["kind"] == "receive"
    assert snapshot["pending"]["status"] == "ordered"
    assert snapshot["pending"]["receipt_number"] == "PR-000042"
    assert snapshot["pending"]["has_payload"] is False
    assert snapshot["refresh_token"] == 0


def test_cached_receipt_is_never_modified(controller, order_service):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.APPROVE)
    controller.confirm()

    assert receipt.status == ReceiptStatus.DRAFT


def test_audit_trail_records_lifecycle(controller, order_service, audit_repository):
    receipt = order_service.add("42", ReceiptStatus.DRAFT)
    controller.request_transition(receipt, TransitionKind.APPROVE)
    controller.confirm()

    types = {event.event_type for event in audit_repository.get_events_for_receipt("42")}
    assert types == {
        AuditEventType.TRANSITION_REQUESTED,
        AuditEventType.TRANSITION_CONFIRMED,
        AuditEventType.TRANSITION_SUCCEEDED,
    }
    succeeded = audit_repository.get_events_by_type(AuditEventType.TRANSITION_SUCCEEDED)[0]
    assert succeeded.data["kind"] == "approve"
    assert succeeded.data["refresh_token"] == 1


def test_controllers_are_independent(order_service, audit_logger):
    from purchase_flow.services.lifecycle_controller import OrderLifecycleController

    first = OrderLifecycleController(order_service, audit_logger=audit_logger)
    second = OrderLifecycleController(order_service, audit_logger=audit_logger)
    first.request_transition(order_service.add("1", ReceiptStatus.DRAFT), TransitionKind.APPROVE)
    second.request_transition(order_service.add("2", ReceiptStatus.DRAFT), TransitionKind.APPROVE)

    assert first.confirm().ok
    assert second.confirm().ok
    assert first.refresh_token == 1
    assert second.refresh_token == 1
