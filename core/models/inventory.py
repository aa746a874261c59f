from __future__ import annotations
from typing import Any, Dict, Optional

from pydantic import BaseModel


class Vehicle(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    chassis_no: Optional[str] = None
    year: Optional[str] = None

    class Config:
        frozen = True


class InventoryItem(BaseModel):
    """One row of the stock snapshot. Read-only to the engine."""
    id: str
    product_name: str
    product_code: Optional[str] = None
    quantity: int = 0
    sell_price: float = 0.0
    vehicle: Optional[Vehicle] = None
    status: Optional[str] = None

    class Config:
        frozen = True
        extra = "ignore"

    @classmethod
    def from_backend(cls, d: Dict[str, Any]) -> "InventoryItem":
        veh = d.get("vehicle")
        year = veh.get("year") if isinstance(veh, dict) else None
        return cls(
            id=str(d.get("_id") or d.get("id")),
            product_name=d.get("product_name") or d.get("name") or "",
            product_code=d.get("product_code"),
            quantity=int(d.get("quantity") or 0),
            sell_price=float(d.get("sell_price") or 0),
            vehicle=Vehicle(
                brand=veh.get("brand"),
                model=veh.get("model"),
                chassis_no=veh.get("chassis_no"),
                year=str(year) if year not in (None, "") else None,
            ) if isinstance(veh, dict) else None,
            status=d.get("status"),
        )

    def matches(self, term: str) -> bool:
        t = term.lower()
        fields = [self.product_name, self.product_code]
        if self.vehicle:
            fields += [self.vehicle.brand, self.vehicle.model]
        return any(t in (f or "").lower() for f in fields)
