"""POS Cart Endpoints

Endpoints:
- GET    /api/cart                      - Cart lines and totals
- POST   /api/cart/items                - Add a product (stock checked)
- PUT    /api/cart/items/{product_id}   - Set a line's quantity
- DELETE /api/cart/items/{product_id}   - Remove a line
- DELETE /api/cart                      - Empty the cart
- POST   /api/cart/validate             - Re-check every line against stock

A single cart per process, matching one POS terminal session.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from purchase_flow.api.audits import get_audit_logger
from purchase_flow.api.responses import failure_response
from purchase_flow.integrations.inventory_service import InventoryService
from purchase_flow.models.cart import Product
from purchase_flow.models.outcome import Failed, Outcome
from purchase_flow.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])

_cart_service: Optional[CartService] = None


def get_cart_service() -> CartService:
    """Get or create CartService singleton."""
    global _cart_service
    if _cart_service is None:
        _cart_service = CartService(InventoryService(), audit_logger=get_audit_logger())
    return _cart_service


class AddItemRequest(BaseModel):
    product: Product
    quantity: int = Field(1, description="Units to add; must be at least 1")


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., description="New quantity; zero or less removes the line")


def _respond(service: CartService, outcome: Outcome) -> Any:
    if isinstance(outcome, Failed):
        return failure_response(outcome)
    return service.summary()


@router.get("")
def get_cart(service: CartService = Depends(get_cart_service)) -> dict:
    return service.summary()


@router.post("/items")
def add_item(request: AddItemRequest, service: CartService = Depends(get_cart_service)) -> Any:
    """Add a product after checking stock with the Inventory Service.

    Example:
        POST /api/cart/items
        {"product": {"id": "p-1", "name": "Widget", "sku": "W-1", "price": 12.5}, "quantity": 2}
    """
    return _respond(service, service.add_item(request.product, request.quantity))


@router.put("/items/{product_id}")
def update_item(
    product_id: str,
    request: UpdateQuantityRequest,
    service: CartService = Depends(get_cart_service),
) -> Any:
    return _respond(service, service.update_quantity(product_id, request.quantity))


@router.delete("/items/{product_id}")
def remove_item(product_id: str, service: CartService = Depends(get_cart_service)) -> Any:
    return _respond(service, service.remove_item(product_id))


@router.delete("")
def clear_cart(service: CartService = Depends(get_cart_service)) -> Any:
    return _respond(service, service.clear())


@router.post("/validate")
def validate_cart(service: CartService = Depends(get_cart_service)) -> Any:
    """Re-check the whole cart against current stock before checkout."""
    return _respond(service, service.validate_stock())
