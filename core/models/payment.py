from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .document import PaymentMethod

CASH = "Cash"
NOT_APPLICABLE = "N/A"
BANK_METHODS = ("Bank Transfer", "Bank Deposit", "Cheque")


class PaymentDetails(BaseModel):
    """Settlement form state. Validated by the settlement flow, not here."""
    method: PaymentMethod = CASH
    bank_name: str = ""
    account_number: str = ""
    transaction_ref: str = ""
    amount: Optional[float] = None
    transaction_date: Optional[date] = None


class PaymentTransaction(BaseModel):
    """A recorded financial movement. Never modified after creation."""
    transaction_id: str
    method: PaymentMethod
    bank_name: str
    account_number: str
    transaction_ref: str
    amount: float
    transaction_date: datetime
    document_ref: str

    class Config:
        frozen = True

    def to_backend(self) -> Dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "transactionDate": self.transaction_date.isoformat(),
            "paymentMethod": {
                "type": self.method,
                "bankName": self.bank_name,
                "accountNumber": self.account_number,
                "transactionRef": self.transaction_ref,
            },
            "invoice": {"invoiceId": self.document_ref},
            "amount": f"{self.amount:.2f}",
        }

    @classmethod
    def from_backend(cls, d: Dict[str, Any]) -> "PaymentTransaction":
        pm = d.get("paymentMethod") or {}
        inv = d.get("invoice") or {}
        return cls(
            transaction_id=d["transactionId"],
            method=pm.get("type") or CASH,
            bank_name=pm.get("bankName") or "",
            account_number=pm.get("accountNumber") or "",
            transaction_ref=pm.get("transactionRef") or "",
            amount=float(d.get("amount") or 0),
            transaction_date=datetime.fromisoformat(str(d["transactionDate"]).replace("Z", "+00:00")),
            document_ref=inv.get("invoiceId") if isinstance(inv, dict) else str(inv),
        )
