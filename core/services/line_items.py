from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from core.errors import FormValidationError, StockExceededError
from core.models.document import Document, LineItem, Quotation
from core.settings import StockEnforcement
from core.services.inventory_service import InventoryReadModel

log = logging.getLogger(__name__)


# ---------- Helpers ---------- #

def _parse_int(v: Any) -> Optional[int]:
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if v.is_integer() else None
    s = str(v).strip()
    if s.lstrip("-").isdigit():
        return int(s)
    return None


def _parse_price(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None or v == "":
        return None
    try:
        f = float(str(v).strip().replace(",", "."))
    except ValueError:
        return None
    return None if f != f else f


# ---------- Manager ---------- #

class LineItemManager:
    """
    Owns the line items of one document against the inventory snapshot.

    Rows are keyed by inventory ref, so adding an item already on the
    document merges quantities instead of creating a second row. Every
    mutation republishes document.items and recalculates totals.
    """

    def __init__(
        self,
        document: Document,
        inventory: InventoryReadModel,
        stock_enforcement: StockEnforcement = "advisory",
    ):
        self.document = document
        self.inventory = inventory
        self.stock_enforcement = stock_enforcement
        self._rows: Dict[str, LineItem] = {}
        merged = False
        for li in document.items:
            existing = self._rows.get(li.inventory_ref)
            if existing:
                existing.quantity += li.quantity
                existing.total = existing.quantity * existing.unit_price
                merged = True
            else:
                self._rows[li.inventory_ref] = li
        if merged:
            log.warning("Duplicate rows merged on %s", document.document_id)
            self._publish()

    # ----- queries ----- #

    @property
    def items(self) -> List[LineItem]:
        return list(self._rows.values())

    def committed(self, inventory_ref: str) -> int:
        row = self._rows.get(inventory_ref)
        return row.quantity if row else 0

    def available(self, inventory_ref: str) -> int:
        """Units still addable: snapshot stock minus what this document holds."""
        item = self.inventory.get(inventory_ref)
        if item is None:
            return 0
        return item.quantity - self.committed(inventory_ref)

    def stock_warning(self, inventory_ref: str, quantity: Any) -> Optional[str]:
        """Live advisory text for the add form, None when the quantity fits."""
        item = self.inventory.get(inventory_ref)
        qty = _parse_int(quantity)
        if item is None or qty is None or qty <= 0:
            return None
        already = self.committed(inventory_ref)
        remaining = item.quantity - already
        if qty > remaining:
            return StockExceededError(remaining, already, qty, item.product_name).message
        return None

    def overcommitted(self) -> List[LineItem]:
        """Rows whose quantity exceeds the snapshot stock."""
        out = []
        for row in self._rows.values():
            item = self.inventory.get(row.inventory_ref)
            if item is not None and row.quantity > item.quantity:
                out.append(row)
        return out

    def warnings(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for row in self.overcommitted():
            item = self.inventory.get(row.inventory_ref)
            out[row.id] = f"Only {item.quantity} items in stock ({row.quantity} on this document)"
        return out

    # ----- mutations ----- #

    def add_item(self, inventory_ref: str, quantity: Any, unit_price: Any = None) -> LineItem:
        errors: Dict[str, str] = {}
        item = self.inventory.get(inventory_ref) if inventory_ref else None
        if item is None:
            errors["item"] = "Please select an item"
        qty = _parse_int(quantity)
        if qty is None or qty <= 0:
            errors["quantity"] = "Quantity must be a positive whole number"
        price: Optional[float] = None
        if item is not None:
            if unit_price is None or isinstance(self.document, Quotation):
                price = item.sell_price
            else:
                price = _parse_price(unit_price)
            if price is None or price < 0:
                errors["unit_price"] = "Unit price must be zero or more"
        if errors:
            raise FormValidationError(errors)

        existing = self._rows.get(inventory_ref)
        already = existing.quantity if existing else 0
        remaining = item.quantity - already
        if qty > remaining:
            err = StockExceededError(remaining, already, qty, item.product_name)
            log.info("Add rejected for %s: %s", item.product_name, err.message)
            raise err

        if existing:
            # merged row keeps its current unit price
            existing.quantity += qty
            row = existing
        else:
            row = LineItem(inventory_ref=inventory_ref, item_name=item.product_name, quantity=qty, unit_price=price)
            self._rows[inventory_ref] = row
        self._publish()
        return row

    def update_quantity(self, item_id: str, value: Any) -> int:
        """Returns the quantity in effect; invalid input keeps the previous one."""
        row = self._row_by_id(item_id)
        qty = _parse_int(value)
        if qty is None or qty <= 0:
            log.debug("Invalid quantity %r for %s, keeping %d", value, row.item_name, row.quantity)
            self._publish()
            return row.quantity

        item = self.inventory.get(row.inventory_ref)
        if item is not None and qty > item.quantity:
            if self.stock_enforcement == "strict":
                raise StockExceededError(item.quantity - row.quantity, row.quantity, qty - row.quantity, row.item_name)
            log.warning("%s: quantity %d exceeds stock %d", row.item_name, qty, item.quantity)

        row.quantity = qty
        self._publish()
        return row.quantity

    def update_unit_price(self, item_id: str, value: Any) -> float:
        row = self._row_by_id(item_id)
        if isinstance(self.document, Quotation):
            raise FormValidationError({"unit_price": "Quotation prices follow the catalog"})
        price = _parse_price(value)
        if price is None or price < 0:
            log.debug("Invalid price %r for %s, keeping %.2f", value, row.item_name, row.unit_price)
        else:
            row.unit_price = price
        self._publish()
        return row.unit_price

    def remove_item(self, item_id: str) -> None:
        for ref, row in list(self._rows.items()):
            if row.id == item_id:
                del self._rows[ref]
                break
        self._publish()

    def clear(self) -> None:
        self._rows.clear()
        self._publish()

    # ----- internals ----- #

    def _row_by_id(self, item_id: str) -> LineItem:
        for row in self._rows.values():
            if row.id == item_id:
                return row
        raise FormValidationError({"item": f"Unknown line item {item_id}"})

    def _publish(self) -> None:
        self.document.items = list(self._rows.values())
        self.document.recalculate()
