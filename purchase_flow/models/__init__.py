"""Models package for the purchase receipt lifecycle service.

PurchaseReceipt, ReceiptStatus, TransitionKind: cached receipt state
TransitionRequest, ReceivePayload: pending action held by the controller
Ok, Failed, ErrorKind: tagged outcomes
Cart, CartLine, Product: POS cart state
"""

from purchase_flow.models.cart import Cart, CartLine, Product
from purchase_flow.models.outcome import ErrorKind, Failed, Ok, Outcome
from purchase_flow.models.purchase_receipt import (
    PurchaseReceipt,
    ReceiptStatus,
    ReceivePayload,
    TransitionKind,
    TransitionRequest,
)

__all__ = [
    "Cart",
    "CartLine",
    "ErrorKind",
    "Failed",
    "Ok",
    "Outcome",
    "Product",
    "PurchaseReceipt",
    "ReceiptStatus",
    "ReceivePayload",
    "TransitionKind",
    "TransitionRequest",
]
