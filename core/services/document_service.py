from __future__ import annotations
import logging
from datetime import date
from typing import Any, Dict, Optional

from core.errors import FormValidationError, InvalidTransitionError
from core.models.common import days_from_today
from core.models.customer import Customer
from core.models.document import DOCUMENT_CLASSES, Document, DocumentKind, Invoice, LineItem, Quotation, QuotationStatus
from core.services.customer_service import CustomerDirectory, CustomerResolver
from core.services.gate import BusyGate
from core.services.inventory_service import InventoryReadModel
from core.services.line_items import LineItemManager
from core.services.payment_service import PaymentStateMachine
from core.services.totals import DiscountInput
from core.settings import Settings
from core.storage.backend import Backend

log = logging.getLogger(__name__)

SAVE_REQUIREMENTS = "Please add customer and at least one item before saving"

QUOTATION_TRANSITIONS: Dict[str, frozenset] = {
    "Pending": frozenset({"Accepted", "Rejected", "Expired"}),
    "Rejected": frozenset({"Pending"}),
    "Expired": frozenset({"Pending"}),
    "Accepted": frozenset(),
}


class DocumentSession:
    """
    Editing state of one invoice or quotation: line items, customer,
    discount, dates, save and (invoices) payment status.
    """

    def __init__(
        self,
        document: Document,
        backend: Backend,
        inventory: InventoryReadModel,
        customers: CustomerDirectory,
        settings: Optional[Settings] = None,
    ):
        self.document = document
        self.backend = backend
        self.settings = settings or Settings()
        self.items = LineItemManager(document, inventory, self.settings.stock_enforcement)
        self.customers = CustomerResolver(document, customers)
        self.discount = DiscountInput(document.discount_percentage)
        self.gate = BusyGate("save")
        self.dirty = False
        self._payments: Optional[PaymentStateMachine] = None

    # ---------- Construction ---------- #

    @classmethod
    def new(cls, kind: DocumentKind, backend: Backend, inventory: InventoryReadModel,
            customers: CustomerDirectory, settings: Optional[Settings] = None) -> "DocumentSession":
        """Blank document. The number is fetched on first save."""
        settings = settings or Settings()
        if kind == "invoice":
            doc: Document = Invoice(
                tax_rate=settings.tax_rate,
                due_date=days_from_today(settings.invoice_due_days),
            )
        else:
            doc = Quotation(valid_until=days_from_today(settings.quotation_valid_days))
        return cls(doc, backend, inventory, customers, settings)

    @classmethod
    def load(cls, kind: DocumentKind, doc_id: str, backend: Backend, inventory: InventoryReadModel,
             customers: CustomerDirectory, settings: Optional[Settings] = None) -> "DocumentSession":
        record = backend.get_document(kind, doc_id)
        doc = DOCUMENT_CLASSES[kind].from_backend(record)
        if doc.customer_snapshot is None and doc.customer_ref:
            doc.customer_snapshot = customers.get(doc.customer_ref)
        return cls(doc, backend, inventory, customers, settings)

    @property
    def kind(self) -> str:
        return self.document.kind

    @property
    def is_processing(self) -> bool:
        return self.gate.is_processing

    # ---------- Items ---------- #

    def add_item(self, inventory_ref: str, quantity: Any, unit_price: Any = None) -> LineItem:
        row = self.items.add_item(inventory_ref, quantity, unit_price)
        self.dirty = True
        return row

    def update_quantity(self, item_id: str, value: Any) -> int:
        qty = self.items.update_quantity(item_id, value)
        self.dirty = True
        return qty

    def update_unit_price(self, item_id: str, value: Any) -> float:
        price = self.items.update_unit_price(item_id, value)
        self.dirty = True
        return price

    def remove_item(self, item_id: str) -> None:
        self.items.remove_item(item_id)
        self.dirty = True

    # ---------- Customer ---------- #

    def select_customer(self, customer: Customer) -> None:
        self.customers.select(customer)
        self.dirty = True

    def clear_customer(self) -> None:
        self.customers.clear()
        self.dirty = True

    # ---------- Discount / tax / fields ---------- #

    def set_discount_input(self, text: str) -> float:
        """While typing: unclamped value drives live totals."""
        self.document.discount_percentage = self.discount.set_raw(text)
        self.document.recalculate()
        self.dirty = True
        return self.document.discount_percentage

    def commit_discount(self) -> float:
        self.document.discount_percentage = self.discount.commit()
        self.document.recalculate()
        return self.document.discount_percentage

    def set_apply_tax(self, apply: bool) -> None:
        if not isinstance(self.document, Invoice):
            raise FormValidationError({"apply_tax": "Quotations do not carry tax"})
        self.document.apply_tax = bool(apply)
        self.document.recalculate()
        self.dirty = True

    def set_fields(self, **fields: Any) -> None:
        """Plain field edits (issue_date, due_date, valid_until, notes, payment_method, ...)."""
        for k, v in fields.items():
            if k in ("document_id", "id", "items") or k not in type(self.document).model_fields:
                raise FormValidationError({k: f"{k} cannot be edited here"})
            setattr(self.document, k, v)
        self.dirty = True

    # ---------- Save ---------- #

    def validate_for_save(self) -> Dict[str, str]:
        if not self.document.customer_ref or not self.document.items:
            return {"document": SAVE_REQUIREMENTS}
        return {}

    def save(self) -> Document:
        """
        Create (first save) or update the document. The document number is
        fetched right before the first create and is not reserved.
        """
        errors = self.validate_for_save()
        if errors:
            raise FormValidationError(errors)
        self.commit_discount()

        over = self.items.warnings()
        if over:
            if self.items.stock_enforcement == "strict":
                raise FormValidationError({"items": "; ".join(over.values())})
            log.warning("Saving %s with quantities above stock: %s", self.kind, "; ".join(over.values()))

        doc = self.document
        with self.gate.hold():
            payload = doc.to_backend()
            if doc.id:
                # statuses move only through their own endpoints
                payload.pop("paymentStatus", None)
                payload.pop("status", None)
                self.backend.update_document(self.kind, doc.id, payload)
            else:
                number = doc.document_id or self.backend.next_document_id(self.kind)
                payload[doc.id_field] = number
                saved = self.backend.create_document(self.kind, payload)
                doc.document_id = number
                doc.id = saved.get("_id")
                log.info("%s %s saved", self.kind.capitalize(), number)
        self.dirty = False
        return doc

    # ---------- Status ---------- #

    def payments(self) -> PaymentStateMachine:
        if not isinstance(self.document, Invoice):
            raise FormValidationError({"payment_status": "Only invoices carry a payment status"})
        if self._payments is None:
            self._payments = PaymentStateMachine(
                self.document, self.backend, has_unsaved_changes=lambda: self.dirty
            )
        return self._payments

    def update_quotation_status(self, target: QuotationStatus) -> None:
        doc = self.document
        if not isinstance(doc, Quotation):
            raise FormValidationError({"status": "Only quotations carry an acceptance status"})
        if target == doc.status:
            return
        if target not in QUOTATION_TRANSITIONS.get(doc.status, frozenset()):
            raise InvalidTransitionError(doc.status, target)
        if not doc.id:
            raise FormValidationError({"status": "Save the quotation before changing its status"})
        with self.gate.hold():
            self.backend.update_quotation_status(doc.id, target)
        doc.status = target

    def expire_if_due(self, today: Optional[date] = None) -> bool:
        """Marks a pending quotation Expired once its validity date has passed."""
        doc = self.document
        today = today or date.today()
        if isinstance(doc, Quotation) and doc.status == "Pending" and doc.id and doc.valid_until < today:
            self.update_quotation_status("Expired")
            return True
        return False
