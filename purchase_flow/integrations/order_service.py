"""Order Service integration.

Remote operations on purchase receipts. Each method issues exactly one HTTP
request; retries are the caller's decision and only after re-reading the
receipt's current status.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from purchase_flow.integrations.api_client import ApiClient, MalformedResponseError
from purchase_flow.models.purchase_receipt import PurchaseReceipt, ReceivePayload

logger = logging.getLogger(__name__)

RESOURCE = "/purchase-receipts"


class OrderService:
    """Client for the backend's purchase receipt endpoints."""

    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or ApiClient()

    def get(self, receipt_id: str) -> PurchaseReceipt:
        """Authoritative read of one purchase receipt.

        Raises:
            ApiError: backend error or unreachable
            MalformedResponseError: body does not describe a purchase receipt
        """
        data = self.client.get(f"{RESOURCE}/{receipt_id}")
        if not isinstance(data, dict):
            raise MalformedResponseError(200, "Purchase receipt payload missing")
        try:
            return PurchaseReceipt.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponseError(200, f"Invalid purchase receipt payload: {exc.error_count()} error(s)") from exc

    def approve(self, receipt_id: str) -> Any:
        return self.client.post(f"{RESOURCE}/{receipt_id}/approve")

    def send(self, receipt_id: str) -> Any:
        return self.client.post(f"{RESOURCE}/{receipt_id}/send")

    def receive(self, receipt_id: str, payload: ReceivePayload) -> Any:
        return self.client.post(
            f"{RESOURCE}/{receipt_id}/receive",
            data=payload.to_request_body(),
        )

    def complete(self, receipt_id: str) -> Any:
        return self.client.post(f"{RESOURCE}/{receipt_id}/complete")

    def cancel(self, receipt_id: str) -> Any:
        return self.client.post(f"{RESOURCE}/{receipt_id}/cancel")

    def delete(self, receipt_id: str) -> Any:
        return self.client.delete(f"{RESOURCE}/{receipt_id}")
