"""Pytest configuration and shared fixtures for purchase flow tests.

- Isolated SQLite audit database per test
- Transition log redirected to a temp directory
- In-process fakes for the Order and Inventory services (no HTTP)
- FastAPI TestClient wired to those fakes
"""

import os
import sys
import tempfile
import threading
from pathlib import Path
from typing import Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from purchase_flow.integrations.api_client import ApiError
from purchase_flow.models.cart import Product
from purchase_flow.models.purchase_receipt import PurchaseReceipt, ReceiptStatus
from purchase_flow.repositories.audit_repository import AuditRepository
from purchase_flow.services.audit_logger import AuditLogger
from purchase_flow.services.cart_service import CartService
from purchase_flow.services.lifecycle_controller import OrderLifecycleController


class FakeOrderService:
    """Order Service stand-in that applies transitions to an in-memory store.

    ``fail_with`` makes every mutation raise that exception. ``gate`` blocks
    mutations until it is set; ``entered`` is set as soon as one starts.
    ``lose_responses`` applies the mutation and then raises a network error,
    as when the reply is lost on the way back.
    """

    RESULTING_STATUS = {
        "approve": ReceiptStatus.APPROVED,
        "send": ReceiptStatus.SENT,
        "receive": ReceiptStatus.RECEIVED,
        "complete": ReceiptStatus.COMPLETED,
        "cancel": ReceiptStatus.CANCELLED,
    }

    def __init__(self) -> None:
        self.receipts: Dict[str, PurchaseReceipt] = {}
        self.calls: List[Tuple] = []
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.during_call = None
        self.lose_responses = False
        self.reads: List[str] = []

    def add(self, receipt_id: str, status: ReceiptStatus, receipt_number: str = "") -> PurchaseReceipt:
        receipt = PurchaseReceipt(
            id=receipt_id,
            receipt_number=receipt_number or f"PR-{receipt_id.zfill(6)}",
            status=status,
        )
        self.receipts[receipt_id] = receipt
        return receipt.model_copy(deep=True)

    def get(self, receipt_id: str) -> PurchaseReceipt:
        self.reads.append(receipt_id)
        if receipt_id not in self.receipts:
            raise ApiError(404, "purchase receipt not found")
        return self.receipts[receipt_id].model_copy(deep=True)

    def _mutate(self, action: str, receipt_id: str, *args) -> dict:
        self.calls.append((action, receipt_id) + args)
        self.entered.set()
        if self.during_call is not None:
            self.during_call()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_with is not None:
            raise self.fail_with
        if action == "delete":
            self.receipts.pop(receipt_id, None)
        else:
            self.receipts[receipt_id].status = self.RESULTING_STATUS[action]
        if self.lose_responses:
            raise ApiError(0, "Network error occurred")
        if action == "delete":
            return {}
        return self.receipts[receipt_id].model_dump(mode="json")

    def approve(self, receipt_id: str) -> dict:
        return self._mutate("approve", receipt_id)

    def send(self, receipt_id: str) -> dict:
        return self._mutate("send", receipt_id)

    def receive(self, receipt_id: str, payload) -> dict:
        return self._mutate("receive", receipt_id, payload)

    def complete(self, receipt_id: str) -> dict:
        return self._mutate("complete", receipt_id)

    def cancel(self, receipt_id: str) -> dict:
        return self._mutate("cancel", receipt_id)

    def delete(self, receipt_id: str) -> dict:
        return self._mutate("delete", receipt_id)


class FakeInventoryService:
    """Inventory Service stand-in answering from a {product_id: units} map."""

    def __init__(self, stock: Optional[Dict[str, int]] = None) -> None:
        self.stock = dict(stock or {})
        self.checks: List[Tuple[str, int]] = []
        self.fail_with: Optional[Exception] = None

    def check_stock(self, product_id: str, quantity: int) -> bool:
        self.checks.append((product_id, quantity))
        if self.fail_with is not None:
            raise self.fail_with
        return self.stock.get(product_id, 0) >= quantity


@pytest.fixture(scope="function")
def test_db_path() -> Generator[str, None, None]:
    """Create a temporary database for each test."""
    with tempfile.NamedTemporaryFile(delete=False, suffix='.db') as f:
        db_path = f.name

    yield db_path

    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture(autouse=True)
def transition_log_dir(tmp_path, monkeypatch) -> Path:
    """Keep structured event logs out of the working tree."""
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("TRANSITION_LOG_DIR", str(log_dir))
    return log_dir


@pytest.fixture
def audit_repository(test_db_path: str) -> AuditRepository:
    return AuditRepository(db_path=test_db_path)


@pytest.fixture
def audit_logger(audit_repository: AuditRepository) -> AuditLogger:
    return AuditLogger(repository=audit_repository)


@pytest.fixture
def order_service() -> FakeOrderService:
    return FakeOrderService()


@pytest.fixture
def inventory_service() -> FakeInventoryService:
    return FakeInventoryService({"p-1": 10, "p-2": 3})


@pytest.fixture
def controller(order_service: FakeOrderService, audit_logger: AuditLogger) -> OrderLifecycleController:
    return OrderLifecycleController(order_service, audit_logger=audit_logger)


@pytest.fixture
def cart_service(inventory_service: FakeInventoryService, audit_logger: AuditLogger) -> CartService:
    return CartService(inventory_service, audit_logger=audit_logger, tax_rate=0.10)


@pytest.fixture
def widget() -> Product:
    return Product(id="p-1", name="Widget", sku="W-1", price=12.50)


@pytest.fixture
def gadget() -> Product:
    return Product(id="p-2", name="Gadget", sku="G-2", price=4.00)


@pytest.fixture
def receive_payload() -> dict:
    return {
        "received_date": "2026-03-02",
        "quality_check": True,
        "delivery_note": "DN-7781",
        "driver_name": "A. Rahman",
    }


@pytest.fixture
def api_client(
    order_service: FakeOrderService,
    cart_service: CartService,
    audit_logger: AuditLogger,
    audit_repository: AuditRepository,
    monkeypatch,
):
    """FastAPI test client backed by the fake services."""
    from purchase_flow.api import audits, cart, transitions
    from purchase_flow.main import app

    monkeypatch.setattr(audits, "_audit_repository", audit_repository)
    monkeypatch.setattr(audits, "_audit_logger", audit_logger)
    app.dependency_overrides[transitions.get_order_service] = lambda: order_service
    app.dependency_overrides[cart.get_cart_service] = lambda: cart_service
    transitions.reset_controllers()

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    transitions.reset_controllers()
