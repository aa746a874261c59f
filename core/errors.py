"""Exceptions raised by the document engine."""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErpError(Exception):
    """Base exception for all engine errors."""
    def __init__(self, message: str = "An internal error occurred", payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        rv = dict(self.payload or ())
        rv["message"] = self.message
        rv["status"] = "error"
        return rv


class FormValidationError(ErpError):
    """Field-level validation failure, raised before any backend call."""
    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(message or next(iter(self.errors.values()), "Invalid form"), {"errors": self.errors})


class StockExceededError(ErpError):
    """Raised when a line would commit more units than the snapshot holds."""
    def __init__(self, remaining: int, already_committed: int, requested: int, item_name: str = ""):
        self.remaining = max(0, int(remaining))
        self.already_committed = int(already_committed)
        self.requested = int(requested)
        self.item_name = item_name
        message = f"Only {self.remaining} items available ({self.already_committed} already in cart)"
        super().__init__(message, {"remaining": self.remaining, "alreadyCommitted": self.already_committed})


class BackendError(ErpError):
    """A persistence or numbering call failed. The document is left as it was."""
    def __init__(self, message: str = "Backend request failed", status_code: Optional[int] = None, payload=None):
        super().__init__(message, payload)
        self.status_code = status_code


class SettlementPartialFailure(ErpError):
    """The transaction was recorded but the invoice status update failed."""
    def __init__(self, transaction, cause: Optional[BaseException] = None):
        self.transaction = transaction
        self.cause = cause
        detail = getattr(cause, "message", None) or str(cause or "status update failed")
        message = (
            f"Payment {transaction.transaction_id} was recorded but the invoice status "
            f"could not be updated: {detail}"
        )
        super().__init__(message, {"transactionId": transaction.transaction_id})


class RenderError(ErpError):
    """Rasterization, export or print failure."""


class InvalidTransitionError(ErpError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change status from {current} to {target}")


class DocumentIdImmutableError(ErpError):
    def __init__(self, current: str, attempted: str):
        super().__init__(f"Document id {current} cannot be changed to {attempted}")


class OperationInProgressError(ErpError):
    def __init__(self, operation: str = "operation"):
        self.operation = operation
        super().__init__(f"Another {operation} is already in progress")
