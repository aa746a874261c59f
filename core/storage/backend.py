from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from core.models.document import DocumentKind


class Backend(ABC):
    """
    Persistence and numbering collaborator. Every method either returns the
    stored record (plain dicts in wire format) or raises BackendError.
    """

    # ----- read models ----- #

    @abstractmethod
    def list_inventory(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def list_customers(self) -> List[Dict[str, Any]]: ...

    # ----- customers ----- #

    @abstractmethod
    def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ----- numbering (fetched just in time, never reserved) ----- #

    @abstractmethod
    def next_document_id(self, kind: DocumentKind) -> str: ...

    @abstractmethod
    def next_transaction_id(self) -> str: ...

    # ----- documents ----- #

    @abstractmethod
    def create_document(self, kind: DocumentKind, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    def update_document(self, kind: DocumentKind, doc_id: str, patch: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    def get_document(self, kind: DocumentKind, doc_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def update_payment_status(self, invoice_id: str, status: str) -> Dict[str, Any]: ...

    @abstractmethod
    def update_quotation_status(self, quotation_id: str, status: str) -> Dict[str, Any]: ...

    # ----- finance ----- #

    @abstractmethod
    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...
