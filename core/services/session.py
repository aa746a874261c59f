from __future__ import annotations
import logging
from typing import Optional

from core.models.document import DocumentKind
from core.services.customer_service import CustomerDirectory
from core.services.document_service import DocumentSession
from core.services.inventory_service import InventoryReadModel
from core.settings import Settings, load_settings
from core.storage.backend import Backend
from core.storage.http_backend import HttpBackend
from core.storage.json_backend import JsonBackend

log = logging.getLogger(__name__)


def make_backend(settings: Settings) -> Backend:
    if settings.api_url:
        log.info("Using REST backend at %s", settings.api_url)
        return HttpBackend(settings.api_url, timeout=settings.api_timeout)
    log.info("Using local JSON backend in %s", settings.data_dir)
    return JsonBackend(settings.data_dir, numbering=settings.numbering)


class ErpSession:
    """
    Operator session: owns the inventory and customer read models shared by
    every open document. Both are refreshed explicitly, never on a timer.
    """

    def __init__(self, backend: Backend, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.backend = backend
        self.inventory = InventoryReadModel(backend)
        self.customers = CustomerDirectory(backend)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ErpSession":
        settings = settings or load_settings()
        return cls(make_backend(settings), settings)

    def refresh(self) -> None:
        self.inventory.refresh()
        self.customers.refresh()

    def new_document(self, kind: DocumentKind) -> DocumentSession:
        return DocumentSession.new(kind, self.backend, self.inventory, self.customers, self.settings)

    def new_invoice(self) -> DocumentSession:
        return self.new_document("invoice")

    def new_quotation(self) -> DocumentSession:
        return self.new_document("quotation")

    def open_document(self, kind: DocumentKind, doc_id: str) -> DocumentSession:
        return DocumentSession.load(kind, doc_id, self.backend, self.inventory, self.customers, self.settings)
