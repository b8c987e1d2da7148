"""POS Cart Service

Adds, updates and removes cart lines under an Inventory Service stock check.
Every mutation that may contact the Inventory Service goes through a
:class:`GuardedMutation`, so a double-clicked "Add" cannot issue two stock
checks or add the line twice.

The stock check and the cart mutation are not one transaction: stock can
move between them. Checkout is expected to re-verify.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from purchase_flow.models.audit import AuditEventType
from purchase_flow.models.cart import Cart, CartLine, Product
from purchase_flow.models.outcome import ErrorKind, Failed, Outcome
from purchase_flow.services.audit_logger import AuditLogger
from purchase_flow.services.config_service import ConfigService
from purchase_flow.services.guarded_mutation import GuardedMutation, MutationRejected
from purchase_flow.utils.logging_utils import log_cart_event

logger = logging.getLogger(__name__)


class CartService:
    """In-memory cart for one POS session.

    Args:
        inventory_service: object exposing ``check_stock(product_id, quantity)``
        cart: existing cart to operate on. If None, starts empty.
        audit_logger: best-effort audit sink. If None, creates default.
        tax_rate: overrides the configured ``CART_TAX_RATE`` for a new cart
    """

    def __init__(
        self,
        inventory_service: Any,
        cart: Optional[Cart] = None,
        audit_logger: Optional[AuditLogger] = None,
        tax_rate: Optional[float] = None,
        config_service: Optional[ConfigService] = None,
    ):
        self.inventory_service = inventory_service
        self.audit_logger = audit_logger or AuditLogger()
        if cart is None:
            config = config_service or ConfigService()
            cart = Cart(tax_rate=tax_rate if tax_rate is not None else config.get_cart_tax_rate())
        self.cart = cart
        self._guard = GuardedMutation("cart update")

    def add_item(self, product: Product, quantity: int = 1) -> Outcome:
        """Add ``quantity`` units of ``product``, merging with an existing line.

        The stock check covers the quantity already in the cart plus the new
        units. On ``INSUFFICIENT_STOCK`` the cart is left exactly as it was.
        """
        if quantity <= 0:
            return Failed(ErrorKind.INVALID_QUANTITY, f"Quantity for {product.name} must be at least 1")

        def _add() -> Cart:
            requested = self.cart.quantity_of(product.id) + quantity
            self._ensure_stock(product.id, product.name, requested)

            line = self.cart.find(product.id)
            if line is None:
                self.cart.lines.append(CartLine(
                    product_id=product.id,
                    name=product.name,
                    sku=product.sku,
                    unit_price=product.price,
                    quantity=quantity,
                ))
            else:
                line.quantity = requested

            log_cart_event({"event": "item_added", "product_id": product.id, "quantity": requested})
            return self.cart

        return self._guard.run(_add)

    def update_quantity(self, product_id: str, quantity: int) -> Outcome:
        """Set a line's quantity. Zero or less removes the line.

        Only increases are re-checked against stock. Unknown products are
        ignored.
        """
        def _update() -> Cart:
            line = self.cart.find(product_id)
            if line is None:
                return self.cart
            if quantity <= 0:
                self._drop(product_id)
                return self.cart
            if quantity > line.quantity:
                self._ensure_stock(product_id, line.name, quantity)
            line.quantity = quantity
            log_cart_event({"event": "quantity_updated", "product_id": product_id, "quantity": quantity})
            return self.cart

        return self._guard.run(_update)

    def remove_item(self, product_id: str) -> Outcome:
        def _remove() -> Cart:
            self._drop(product_id)
            return self.cart

        return self._guard.run(_remove)

    def clear(self) -> Outcome:
        def _clear() -> Cart:
            self.cart.lines.clear()
            log_cart_event({"event": "cleared"})
            return self.cart

        return self._guard.run(_clear)

    def validate_stock(self) -> Outcome:
        """Re-check every line against current stock, e.g. right before checkout.

        Stops at the first short line. The cart itself is never modified.
        """
        def _validate() -> Cart:
            for line in list(self.cart.lines):
                if not self.inventory_service.check_stock(line.product_id, line.quantity):
                    logger.info(
                        "Cart stock re-check failed: product=%s quantity=%d",
                        line.product_id, line.quantity,
                    )
                    log_cart_event({"event": "stock_invalid", "product_id": line.product_id, "quantity": line.quantity})
                    raise MutationRejected(ErrorKind.INSUFFICIENT_STOCK, f"Insufficient stock for {line.name}")
            return self.cart

        return self._guard.run(_validate)

    def summary(self) -> dict:
        return self.cart.summary()

    # -----------------
    # Internal helpers
    # -----------------
    def _ensure_stock(self, product_id: str, name: str, requested: int) -> None:
        if self.inventory_service.check_stock(product_id, requested):
            return

        message = f"Insufficient stock for {name}"
        logger.info("Cart add rejected: product=%s requested=%d", product_id, requested)
        log_cart_event({"event": "item_rejected", "product_id": product_id, "quantity": requested})
        self.audit_logger.log(
            event_type=AuditEventType.CART_ITEM_REJECTED,
            data={"product_id": product_id, "requested": requested},
        )
        raise MutationRejected(ErrorKind.INSUFFICIENT_STOCK, message)

    def _drop(self, product_id: str) -> None:
        before = self.cart.line_count
        self.cart.lines = [line for line in self.cart.lines if line.product_id != product_id]
        if self.cart.line_count != before:
            log_cart_event({"event": "item_removed", "product_id": product_id})
