"""Inventory Service integration (stock availability lookups)."""

from __future__ import annotations

import logging
from typing import Optional

from purchase_flow.integrations.api_client import ApiClient, MalformedResponseError

logger = logging.getLogger(__name__)


class InventoryService:
    """Answers "are N units of product P available right now?".

    Availability is the sum of ``quantity - reserved_quantity`` across all
    inventory locations reported for the product. The answer can be stale
    by the time the sale is checked out.
    """

    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or ApiClient()

    def available_quantity(self, product_id: str) -> int:
        records = self.client.get(f"/products/{product_id}/inventory")
        if records is None:
            return 0
        if isinstance(records, dict):
            records = [records]
        if not isinstance(records, list):
            raise MalformedResponseError(200, "Inventory payload is not a list")

        total = 0
        for record in records:
            try:
                quantity = int(record.get("quantity", 0) or 0)
                reserved = int(record.get("reserved_quantity", 0) or 0)
            except (AttributeError, TypeError, ValueError) as exc:
                raise MalformedResponseError(200, "Invalid inventory record") from exc
            total += max(quantity - reserved, 0)
        return total

    def check_stock(self, product_id: str, quantity: int) -> bool:
        available = self.available_quantity(product_id)
        logger.debug(
            "Stock check product=%s requested=%d available=%d",
            product_id, quantity, available,
        )
        return available >= quantity
