import copy
import os
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

# Qt widgets and QPainter-on-QImage need a platform plugin even in CI
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from core.errors import BackendError
from core.services.customer_service import CustomerDirectory
from core.services.inventory_service import InventoryReadModel
from core.settings import Settings
from core.storage.backend import Backend
from core.storage.json_backend import JsonBackend


INVENTORY = [
    {
        "_id": "inv-oil", "product_name": "Engine Oil 5W-30", "product_code": "EO-530",
        "quantity": 5, "sell_price": 1000,
        "vehicle": {"brand": "Toyota", "model": "Corolla", "chassis_no": "NZE121", "year": 2008},
    },
    {"_id": "inv-filter", "product_name": "Oil Filter", "product_code": "OF-02", "quantity": 10, "sell_price": 500},
    {"_id": "inv-pad", "product_name": "Brake Pad Set", "product_code": "BP-11", "quantity": 3, "sell_price": 4500,
     "vehicle": {"brand": "Honda", "model": "Civic"}},
]

CUSTOMERS = [
    {
        "_id": "cus-1", "fullName": "Nimal Perera", "email": "nimal.perera@gmail.com", "phone": "0771234567",
        "vatNumber": "VAT-001", "address": {"street": "12 Galle Rd", "city": "Colombo", "country": "Sri Lanka", "zip": "00300"},
        "customerCode": "CUS-0001", "vehicle_number": "CAB-1234", "vehicle_model": "Corolla", "year_of_manufacture": 2008,
    },
    {
        "_id": "cus-2", "fullName": "Kamala Silva", "email": "kamala.silva@yahoo.com", "phone": "0719876543",
        "vatNumber": "VAT-002", "address": {"city": "Kandy"}, "customerCode": "CUS-0002",
    },
]


class FakeBackend(Backend):
    """In-memory backend with call log and per-method failure injection."""

    def __init__(self, inventory=None, customers=None):
        self.inventory = copy.deepcopy(inventory if inventory is not None else INVENTORY)
        self.customers = copy.deepcopy(customers if customers is not None else CUSTOMERS)
        self.documents: Dict[str, List[Dict[str, Any]]] = {"invoice": [], "quotation": []}
        self.transactions: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.failures: Dict[str, BackendError] = {}

    def fail(self, method: str, message: str = "Server unavailable") -> None:
        self.failures[method] = BackendError(message)

    def recover(self, method: str) -> None:
        self.failures.pop(method, None)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def _find(self, kind: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return next((d for d in self.documents[kind] if doc_id in (d.get("_id"), d.get(f"{kind}Id"))), None)

    def list_inventory(self):
        self._call("list_inventory")
        return copy.deepcopy(self.inventory)

    def list_customers(self):
        self._call("list_customers")
        return copy.deepcopy(self.customers)

    def create_customer(self, data):
        self._call("create_customer")
        record = dict(data, _id=uuid4().hex, customerCode=f"CUS-{len(self.customers) + 1:04d}")
        self.customers.append(record)
        return copy.deepcopy(record)

    def update_customer(self, customer_id, data):
        self._call("update_customer")
        for c in self.customers:
            if c["_id"] == customer_id:
                c.update(data)
                return copy.deepcopy(c)
        raise BackendError("Customer not found", status_code=404)

    def next_document_id(self, kind):
        self._call("next_document_id")
        prefix = "INV" if kind == "invoice" else "QUO"
        return f"{prefix}-2026-{len(self.documents[kind]) + 1:04d}"

    def next_transaction_id(self):
        self._call("next_transaction_id")
        return f"TRX-2026-{len(self.transactions) + 1:04d}"

    def create_document(self, kind, payload):
        self._call("create_document")
        record = dict(copy.deepcopy(payload), _id=uuid4().hex)
        self.documents[kind].append(record)
        return copy.deepcopy(record)

    def update_document(self, kind, doc_id, patch):
        self._call("update_document")
        rec = self._find(kind, doc_id)
        if rec is None:
            raise BackendError(f"{kind} not found", status_code=404)
        rec.update(copy.deepcopy(patch))
        return copy.deepcopy(rec)

    def get_document(self, kind, doc_id):
        self._call("get_document")
        rec = self._find(kind, doc_id)
        if rec is None:
            raise BackendError(f"{kind} not found", status_code=404)
        return copy.deepcopy(rec)

    def update_payment_status(self, invoice_id, status):
        self._call("update_payment_status")
        return self.update_document("invoice", invoice_id, {"paymentStatus": status})

    def update_quotation_status(self, quotation_id, status):
        self._call("update_quotation_status")
        return self.update_document("quotation", quotation_id, {"status": status})

    def create_transaction(self, payload):
        self._call("create_transaction")
        self.transactions.append(copy.deepcopy(payload))
        return copy.deepcopy(payload)


@pytest.fixture(scope='function')
def settings(tmp_path):
    """Default settings pointed at a temporary data dir."""
    return Settings(data_dir=tmp_path / "data", exports_dir=tmp_path / "exports")


@pytest.fixture(scope='function')
def backend():
    """In-memory backend seeded with inventory and customers."""
    return FakeBackend()


@pytest.fixture(scope='function')
def inventory(backend):
    """Refreshed inventory snapshot."""
    model = InventoryReadModel(backend)
    model.refresh()
    return model


@pytest.fixture(scope='function')
def directory(backend):
    """Refreshed customer directory."""
    d = CustomerDirectory(backend)
    d.refresh()
    return d


@pytest.fixture(scope='function')
def json_backend(tmp_path):
    """JSON-file backend in a temp dir, seeded with inventory and customers."""
    jb = JsonBackend(tmp_path / "data", today=lambda: date(2026, 3, 1))
    for row in INVENTORY:
        jb.inventory.add(row)
    for row in CUSTOMERS:
        jb.customers.add(row)
    return jb
