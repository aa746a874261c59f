from __future__ import annotations
from typing import Iterable, Optional, Protocol

from pydantic import BaseModel

DISCOUNT_MIN = 0.0
DISCOUNT_MAX = 100.0


class _Priced(Protocol):
    quantity: int
    unit_price: float


class Totals(BaseModel):
    sub_total: float = 0.0
    discount_amount: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0

    class Config:
        frozen = True


def compute_totals(
    items: Iterable[_Priced],
    discount_percentage: float,
    apply_tax: bool,
    tax_rate: float = 0.18,
) -> Totals:
    """
    sub      = sum(qty * unit_price)
    discount = sub * pct / 100
    tax      = sub * rate when tax applies (on the pre-discount subtotal)
    total    = max(0, sub + tax - discount)
    No intermediate rounding; round only for display.
    """
    sub = sum(li.quantity * li.unit_price for li in items)
    discount = sub * float(discount_percentage or 0) / 100
    tax = sub * tax_rate if apply_tax else 0.0
    total = max(0.0, sub + tax - discount)
    return Totals(sub_total=sub, discount_amount=discount, tax_amount=tax, total_amount=total)


def format_money(amount: float, currency: str = "LKR") -> str:
    return f"{currency} {float(amount or 0):.2f}"


def _parse_percentage(text: str) -> Optional[float]:
    try:
        v = float(str(text).strip().replace(",", "."))
    except (TypeError, ValueError):
        return None
    if v != v:  # NaN
        return None
    return v


class DiscountInput:
    """
    Discount field with two phases:
    - while typing, the raw text is parsed as-is (no clamp) and drives live totals
    - on commit (blur), unparseable becomes 0 and the value is clamped to [0, 100]
    """

    def __init__(self, value: float = 0.0):
        self.committed_value = self._clamp(value)
        self.raw_input = self._fmt(self.committed_value)

    @staticmethod
    def _clamp(v: float) -> float:
        return min(DISCOUNT_MAX, max(DISCOUNT_MIN, float(v or 0)))

    @staticmethod
    def _fmt(v: float) -> str:
        return str(int(v)) if float(v).is_integer() else f"{v:g}"

    @property
    def live_value(self) -> float:
        v = _parse_percentage(self.raw_input)
        return v if v is not None else 0.0

    def set_raw(self, text: str) -> float:
        self.raw_input = "" if text is None else str(text)
        return self.live_value

    def commit(self) -> float:
        v = _parse_percentage(self.raw_input)
        self.committed_value = self._clamp(v if v is not None else 0.0)
        self.raw_input = self._fmt(self.committed_value)
        return self.committed_value
