from __future__ import annotations
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from core.models.inventory import InventoryItem
from core.storage.backend import Backend

log = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


class InventoryReadModel:
    """
    Stock snapshot taken at refresh() time. Quantities are not updated by
    other sessions until the next explicit refresh.
    """

    def __init__(self, backend: Backend):
        self.backend = backend
        self._items: Dict[str, InventoryItem] = {}
        self.loaded = False

    def refresh(self) -> List[InventoryItem]:
        rows = self.backend.list_inventory()
        items: Dict[str, InventoryItem] = {}
        for d in rows:
            try:
                it = InventoryItem.from_backend(d)
            except (ValidationError, TypeError, ValueError) as e:
                log.warning("Skipping invalid inventory row %r: %s", d.get("_id"), e)
                continue
            items[it.id] = it
        self._items = items
        self.loaded = True
        log.debug("Inventory snapshot refreshed: %d items", len(items))
        return list(items.values())

    def items(self) -> List[InventoryItem]:
        return list(self._items.values())

    def get(self, inventory_ref: str) -> Optional[InventoryItem]:
        return self._items.get(inventory_ref)

    def search(self, term: str) -> List[InventoryItem]:
        """Name, code, vehicle brand or model; case-insensitive, 2 chars minimum."""
        term = (term or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            return []
        return [it for it in self._items.values() if it.matches(term)]
