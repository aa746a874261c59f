"""REST backend client (inventory, customers, invoices, quotations, finance)."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import requests

from core.errors import BackendError
from core.models.document import DocumentKind
from .backend import Backend

log = logging.getLogger(__name__)

_COLLECTIONS = {"invoice": "invoices", "quotation": "quotations"}
_NEXT_ID_KEYS = {"invoice": "nextInvoiceId", "quotation": "nextQuotationId"}


class HttpBackend(Backend):
    """Client for the ERP REST API."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. http://localhost:5000/api
            timeout: per-request timeout in seconds
            session: optional pre-configured requests.Session (auth headers, adapters)
        """
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Content-Type", "application/json")

    def _request(self, method: str, path: str, failure: str, json: Any = None) -> Any:
        """
        Perform a request and return the decoded JSON body.

        Raises:
            BackendError: with the server's `message` when the body carries one,
                otherwise with the generic `failure` text.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            message = failure
            status = e.response.status_code if e.response is not None else None
            try:
                body = e.response.json() if e.response is not None else None
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                body = None
            log.error("%s %s failed (%s): %s", method, url, status, message)
            raise BackendError(message, status_code=status, payload=body if isinstance(body, dict) else None) from e
        except requests.RequestException as e:
            log.error("%s %s failed: %s", method, url, e)
            raise BackendError(failure) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{failure}: invalid response") from e

    # ---------- Read models ---------- #

    def list_inventory(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/inventory-items", "Failed to fetch inventory items") or []

    def list_customers(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/customers", "Failed to fetch customers") or []

    # ---------- Customers ---------- #

    def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/customers", "Failed to create customer", json=data)

    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/customers/{customer_id}", "Failed to update customer", json=data)

    # ---------- Numbering ---------- #

    def next_document_id(self, kind: DocumentKind) -> str:
        body = self._request("GET", f"/{_COLLECTIONS[kind]}/next-id", f"Failed to get next {kind} ID")
        try:
            return body[_NEXT_ID_KEYS[kind]]
        except (KeyError, TypeError) as e:
            raise BackendError(f"Failed to get next {kind} ID") from e

    def next_transaction_id(self) -> str:
        body = self._request("GET", "/finance/next-id", "Failed to get next transaction ID")
        try:
            return body["nextTransactionId"]
        except (KeyError, TypeError) as e:
            raise BackendError("Failed to get next transaction ID") from e

    # ---------- Documents ---------- #

    def create_document(self, kind: DocumentKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/{_COLLECTIONS[kind]}", f"Failed to create {kind}", json=payload)

    def update_document(self, kind: DocumentKind, doc_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/{_COLLECTIONS[kind]}/{doc_id}", f"Failed to update {kind}", json=patch)

    def get_document(self, kind: DocumentKind, doc_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/{_COLLECTIONS[kind]}/{doc_id}", f"Failed to fetch {kind}")

    def update_payment_status(self, invoice_id: str, status: str) -> Dict[str, Any]:
        return self._request(
            "PUT", f"/invoices/{invoice_id}/payment-status", "Failed to update payment status",
            json={"paymentStatus": status},
        )

    def update_quotation_status(self, quotation_id: str, status: str) -> Dict[str, Any]:
        return self._request(
            "PUT", f"/quotations/{quotation_id}/status", "Failed to update quotation status",
            json={"status": status},
        )

    # ---------- Finance ---------- #

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/finance", "Failed to create transaction", json=payload)
