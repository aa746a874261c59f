from __future__ import annotations
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import BackendError
from core.models.document import DocumentKind
from core.settings import Numbering
from .backend import Backend
from .json_repo import JsonRepository

log = logging.getLogger(__name__)

_ID_FIELDS = {"invoice": "invoiceId", "quotation": "quotationId"}


class JsonBackend(Backend):
    """
    Local backend over JSON files in the data dir:
    inventory.json, customers.json, invoices.json, quotations.json, transactions.json
    Read paths return populated copies (customer and item objects), like the REST API.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        numbering: Optional[Numbering] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        base = Path(data_dir)
        base.mkdir(parents=True, exist_ok=True)
        self.numbering = numbering or Numbering()
        self._today = today
        self.inventory = JsonRepository(base / "inventory.json", entity_name="inventory item")
        self.customers = JsonRepository(base / "customers.json", entity_name="customer")
        self.transactions = JsonRepository(base / "transactions.json", entity_name="transaction")
        self._docs = {
            "invoice": JsonRepository(base / "invoices.json", entity_name="invoice"),
            "quotation": JsonRepository(base / "quotations.json", entity_name="quotation"),
        }

    # ---------- Helpers ---------- #

    def _repo(self, kind: DocumentKind) -> JsonRepository:
        try:
            return self._docs[kind]
        except KeyError:
            raise BackendError(f"Unknown document kind: {kind}") from None

    def _prefix(self, kind: str) -> str:
        year = self._today().year
        p = {
            "invoice": self.numbering.invoice_prefix,
            "quotation": self.numbering.quotation_prefix,
            "transaction": self.numbering.transaction_prefix,
        }[kind]
        return f"{p}-{year}-"

    def _populate(self, record: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(record)
        cust_id = out.get("customer")
        if isinstance(cust_id, str):
            cust = self.customers.get_by_id(cust_id)
            if cust:
                out["customer"] = cust
        items = []
        for row in out.get("items") or []:
            row = dict(row)
            ref = row.get("item")
            if isinstance(ref, str):
                inv = self.inventory.get_by_id(ref)
                if inv:
                    row["item"] = inv
            items.append(row)
        out["items"] = items
        return out

    def _find_doc(self, kind: DocumentKind, doc_id: str) -> Optional[Dict[str, Any]]:
        repo = self._repo(kind)
        rec = repo.get_by_id(doc_id)
        if rec is None:
            field = _ID_FIELDS[kind]
            rec = repo.find_one(lambda r: r.get(field) == doc_id)
        return rec

    # ---------- Read models ---------- #

    def list_inventory(self) -> List[Dict[str, Any]]:
        return self.inventory.list_all()

    def list_customers(self) -> List[Dict[str, Any]]:
        return self.customers.list_all()

    # ---------- Customers ---------- #

    def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(data)
        record.pop("_id", None)
        record["customerCode"] = self.customers.next_sequence("customerCode", f"{self.numbering.customer_prefix}-")
        record["created_at"] = datetime.now().isoformat()
        try:
            saved = self.customers.add(record)
        except (ValueError, OSError) as e:
            raise BackendError(f"Failed to create customer: {e}") from e
        log.info("Customer %s created (%s)", saved["customerCode"], saved.get("fullName"))
        return saved

    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        patch = {k: v for k, v in data.items() if k not in ("_id", "customerCode")}
        patch["_id"] = customer_id
        patch["updated_at"] = datetime.now().isoformat()
        try:
            return self.customers.update(patch)
        except KeyError as e:
            raise BackendError("Customer not found", status_code=404) from e
        except OSError as e:
            raise BackendError(f"Failed to update customer: {e}") from e

    # ---------- Numbering ---------- #

    def next_document_id(self, kind: DocumentKind) -> str:
        return self._repo(kind).next_sequence(_ID_FIELDS[kind], self._prefix(kind))

    def next_transaction_id(self) -> str:
        return self.transactions.next_sequence("transactionId", self._prefix("transaction"))

    # ---------- Documents ---------- #

    def create_document(self, kind: DocumentKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(payload)
        field = _ID_FIELDS[kind]
        if not record.get(field):
            raise BackendError(f"Failed to create {kind}: missing {field}", status_code=400)
        if not record.get("customer"):
            raise BackendError(f"Failed to create {kind}: customer is required", status_code=400)
        record.pop("_id", None)
        record["created_at"] = datetime.now().isoformat()
        try:
            saved = self._repo(kind).add(record)
        except (ValueError, OSError) as e:
            raise BackendError(f"Failed to create {kind}: {e}") from e
        log.info("%s %s created", kind, saved[field])
        return self._populate(saved)

    def update_document(self, kind: DocumentKind, doc_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        existing = self._find_doc(kind, doc_id)
        if existing is None:
            raise BackendError(f"{kind.capitalize()} not found", status_code=404)
        record = dict(patch)
        record["_id"] = existing["_id"]
        record["updated_at"] = datetime.now().isoformat()
        try:
            saved = self._repo(kind).update(record)
        except OSError as e:
            raise BackendError(f"Failed to update {kind}: {e}") from e
        return self._populate(saved)

    def get_document(self, kind: DocumentKind, doc_id: str) -> Dict[str, Any]:
        rec = self._find_doc(kind, doc_id)
        if rec is None:
            raise BackendError(f"{kind.capitalize()} not found", status_code=404)
        return self._populate(rec)

    def update_payment_status(self, invoice_id: str, status: str) -> Dict[str, Any]:
        return self.update_document("invoice", invoice_id, {"paymentStatus": status})

    def update_quotation_status(self, quotation_id: str, status: str) -> Dict[str, Any]:
        return self.update_document("quotation", quotation_id, {"status": status})

    # ---------- Finance ---------- #

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(payload)
        if not record.get("transactionId"):
            raise BackendError("Failed to create transaction: missing transactionId", status_code=400)
        try:
            saved = self.transactions.add(record)
        except (ValueError, OSError) as e:
            raise BackendError(f"Failed to create transaction: {e}") from e
        log.info("Transaction %s recorded (%s)", saved["transactionId"], saved.get("amount"))
        return saved
