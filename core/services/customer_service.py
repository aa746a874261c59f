from __future__ import annotations
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from core.errors import BackendError, FormValidationError
from core.models.customer import Customer, CustomerDraft
from core.models.document import Document
from core.services.gate import BusyGate
from core.storage.backend import Backend

log = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2

REQUIRED_FIELDS = {
    "full_name": "Full name is required",
    "email": "Email is required",
    "phone": "Phone is required",
    "vat_number": "VAT number is required",
}


class CustomerDirectory:
    """Cached customer list; search runs locally over the last refresh()."""

    def __init__(self, backend: Backend):
        self.backend = backend
        self._customers: List[Customer] = []

    def refresh(self) -> List[Customer]:
        out: List[Customer] = []
        for d in self.backend.list_customers():
            try:
                out.append(Customer.from_backend(d))
            except ValidationError:
                # invalid entries are skipped so the list stays usable
                log.warning("Skipping invalid customer record %r", d.get("_id"))
                continue
        self._customers = out
        return list(out)

    def all(self) -> List[Customer]:
        return list(self._customers)

    def get(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self._customers if c.id == customer_id), None)

    def search(self, term: str) -> List[Customer]:
        term = (term or "").strip().lower()
        if len(term) < MIN_SEARCH_LENGTH:
            return []
        return [
            c for c in self._customers
            if term in (c.phone or "").lower()
            or term in c.full_name.lower()
            or term in (c.email or "").lower()
        ]


class CustomerResolver:
    """Search, select, create and update the customer attached to a document."""

    def __init__(self, document: Document, directory: CustomerDirectory):
        self.document = document
        self.directory = directory
        self.gate = BusyGate("customer save")

    @property
    def is_processing(self) -> bool:
        return self.gate.is_processing

    @property
    def selected(self) -> Optional[Customer]:
        return self.document.customer_snapshot

    def search(self, term: str) -> List[Customer]:
        return self.directory.search(term)

    @staticmethod
    def prefill_guess(term: str) -> CustomerDraft:
        return CustomerDraft.from_search_term(term)

    def select(self, customer: Customer) -> None:
        self.document.attach_customer(customer)

    def clear(self) -> None:
        self.document.attach_customer(None)

    @staticmethod
    def validate(draft: CustomerDraft) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        for field, message in REQUIRED_FIELDS.items():
            if not str(getattr(draft, field) or "").strip():
                errors[field] = message
        return errors

    def create(self, draft: CustomerDraft) -> Customer:
        errors = self.validate(draft)
        if errors:
            raise FormValidationError(errors, "Please fill in all required fields")
        with self.gate.hold():
            saved = self.directory.backend.create_customer(draft.to_backend())
            return self._adopt(saved, "created")

    def update(self, customer_id: str, draft: CustomerDraft) -> Customer:
        errors = self.validate(draft)
        if errors:
            raise FormValidationError(errors, "Please fill in all required fields")
        with self.gate.hold():
            saved = self.directory.backend.update_customer(customer_id, draft.to_backend())
            return self._adopt(saved, "updated")

    def _adopt(self, saved: dict, verb: str) -> Customer:
        try:
            customer = Customer.from_backend(saved)
        except ValidationError as e:
            raise BackendError(f"Customer {verb} but the response was invalid: {e}") from e
        self.document.attach_customer(customer)
        self.directory.refresh()
        log.info("Customer %s %s", customer.full_name, verb)
        return customer
