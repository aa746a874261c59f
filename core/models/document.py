from __future__ import annotations
from datetime import date
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from core.errors import DocumentIdImmutableError
from core.services.totals import Totals, compute_totals
from .common import days_from_today, gen_id, parse_date, ref_id
from .customer import Customer

PaymentStatus = Literal["Pending", "Completed", "Rejected"]
QuotationStatus = Literal["Pending", "Accepted", "Rejected", "Expired"]
PaymentMethod = Literal["Cash", "Card", "Bank Deposit", "Bank Transfer", "Cheque"]
DocumentKind = Literal["invoice", "quotation"]

PAYMENT_METHODS: Tuple[str, ...] = ("Cash", "Card", "Bank Deposit", "Bank Transfer", "Cheque")
DEFAULT_TAX_RATE = 0.18
DEFAULT_TERM_DAYS = 30


class LineItem(BaseModel):
    id: str = Field(default_factory=gen_id)
    inventory_ref: str
    item_name: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    total: float = 0.0

    def model_post_init(self, __context: Any) -> None:
        if not self.total:
            self.total = self.quantity * self.unit_price


class Document(BaseModel):
    """
    Common part of invoices and quotations.
    Totals are derived: call recalculate() after touching items, discount or tax.
    """
    kind: ClassVar[str] = "document"
    id_field: ClassVar[str] = "documentId"

    id: Optional[str] = None                 # backend primary key (_id)
    document_id: Optional[str] = None        # INV-2026-0001, set once
    customer_ref: Optional[str] = None
    customer_snapshot: Optional[Customer] = None

    items: List[LineItem] = Field(default_factory=list)
    sub_total: float = 0.0
    discount_percentage: float = 0.0
    discount_amount: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0

    issue_date: date = Field(default_factory=date.today)
    payment_method: Optional[PaymentMethod] = "Cash"
    notes: Optional[str] = None

    class Config:
        extra = "ignore"

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "document_id":
            current = self.__dict__.get("document_id")
            if current and value != current:
                raise DocumentIdImmutableError(current, value)
        super().__setattr__(name, value)

    # ---------- Totals ---------- #

    def tax_inputs(self) -> Tuple[bool, float]:
        return False, 0.0

    def recalculate(self) -> Totals:
        for li in self.items:
            li.total = li.quantity * li.unit_price
        apply_tax, rate = self.tax_inputs()
        t = compute_totals(self.items, self.discount_percentage, apply_tax, rate)
        self.sub_total = t.sub_total
        self.discount_amount = t.discount_amount
        self.tax_amount = t.tax_amount
        self.total_amount = t.total_amount
        return t

    # ---------- Helpers ---------- #

    @property
    def is_saved(self) -> bool:
        return bool(self.id)

    def attach_customer(self, customer: Optional[Customer]) -> None:
        self.customer_ref = customer.id if customer else None
        self.customer_snapshot = customer.model_copy(deep=True) if customer else None

    def find_item(self, item_id: str) -> Optional[LineItem]:
        return next((li for li in self.items if li.id == item_id), None)

    # ---------- Wire format ---------- #

    def to_backend(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            self.id_field: self.document_id,
            "customer": self.customer_ref,
            "items": [
                {"item": li.inventory_ref, "quantity": li.quantity, "unitPrice": li.unit_price, "total": li.total}
                for li in self.items
            ],
            "subTotal": self.sub_total,
            "discount": self.discount_amount,
            "totalAmount": self.total_amount,
            "paymentMethod": self.payment_method,
            "issueDate": self.issue_date.isoformat(),
            "notes": self.notes or "",
        }
        if self.id:
            d["_id"] = self.id
        return d

    @staticmethod
    def _items_from_backend(rows: List[Dict[str, Any]]) -> List[LineItem]:
        out: List[LineItem] = []
        for r in rows or []:
            item = r.get("item")
            ref = ref_id(item) or ""
            name = item.get("product_name") if isinstance(item, dict) else None
            qty = int(r.get("quantity") or 0)
            price = float(r.get("unitPrice") or 0)
            out.append(LineItem(
                inventory_ref=ref,
                item_name=name or r.get("itemName") or ref,
                quantity=qty,
                unit_price=price,
                total=float(r.get("total") if r.get("total") is not None else qty * price),
            ))
        return out

    @classmethod
    def _common_from_backend(cls, d: Dict[str, Any]) -> Dict[str, Any]:
        """Persisted totals are kept verbatim so a reload shows exactly what was saved."""
        sub = float(d.get("subTotal") or 0)
        discount = float(d.get("discount") or 0)
        customer = d.get("customer")
        snapshot = None
        if isinstance(customer, dict):
            try:
                snapshot = Customer.from_backend(customer)
            except ValidationError:
                snapshot = None
        return dict(
            id=d.get("_id"),
            document_id=d.get(cls.id_field),
            customer_ref=ref_id(customer),
            customer_snapshot=snapshot,
            items=cls._items_from_backend(d.get("items") or []),
            sub_total=sub,
            discount_amount=discount,
            discount_percentage=(discount / sub * 100) if sub > 0 else 0.0,
            total_amount=float(d.get("totalAmount") or 0),
            issue_date=parse_date(d.get("issueDate")) or date.today(),
            payment_method=d.get("paymentMethod") or None,
            notes=d.get("notes") or None,
        )


class Invoice(Document):
    kind: ClassVar[str] = "invoice"
    id_field: ClassVar[str] = "invoiceId"

    apply_tax: bool = False
    tax_rate: float = DEFAULT_TAX_RATE
    due_date: date = Field(default_factory=lambda: days_from_today(DEFAULT_TERM_DAYS))
    payment_status: PaymentStatus = "Pending"
    bank_deposit_date: Optional[date] = None
    vehicle_number: Optional[str] = None

    def tax_inputs(self) -> Tuple[bool, float]:
        return self.apply_tax, self.tax_rate

    def to_backend(self) -> Dict[str, Any]:
        d = super().to_backend()
        d.update({
            "applyVat": self.apply_tax,
            "vatAmount": self.tax_amount,
            "taxRate": self.tax_rate,
            "paymentStatus": self.payment_status,
            "dueDate": self.due_date.isoformat(),
            "bankDepositDate": self.bank_deposit_date.isoformat() if self.bank_deposit_date else None,
            "vehicleNumber": self.vehicle_number or "",
        })
        return d

    @classmethod
    def from_backend(cls, d: Dict[str, Any]) -> "Invoice":
        base = cls._common_from_backend(d)
        apply_tax = bool(d.get("applyVat", False))
        rate = d.get("taxRate")
        return cls(
            **base,
            apply_tax=apply_tax,
            tax_rate=float(rate) if rate is not None else DEFAULT_TAX_RATE,
            tax_amount=float(d.get("vatAmount") or 0),
            due_date=parse_date(d.get("dueDate")) or days_from_today(DEFAULT_TERM_DAYS),
            payment_status=d.get("paymentStatus") or "Pending",
            bank_deposit_date=parse_date(d.get("bankDepositDate")),
            vehicle_number=d.get("vehicleNumber") or None,
        )


class Quotation(Document):
    kind: ClassVar[str] = "quotation"
    id_field: ClassVar[str] = "quotationId"

    valid_until: date = Field(default_factory=lambda: days_from_today(DEFAULT_TERM_DAYS))
    status: QuotationStatus = "Pending"

    def to_backend(self) -> Dict[str, Any]:
        d = super().to_backend()
        d.update({
            "validUntil": self.valid_until.isoformat(),
            "status": self.status,
        })
        return d

    @classmethod
    def from_backend(cls, d: Dict[str, Any]) -> "Quotation":
        base = cls._common_from_backend(d)
        return cls(
            **base,
            valid_until=parse_date(d.get("validUntil")) or days_from_today(DEFAULT_TERM_DAYS),
            status=d.get("status") or "Pending",
        )


DOCUMENT_CLASSES = {"invoice": Invoice, "quotation": Quotation}
