from __future__ import annotations
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field

from .common import gen_id

_DIGITS = re.compile(r"^\d+$")


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None

    def one_line(self) -> str:
        return ", ".join(p for p in (self.street, self.city, self.country, self.zip) if p)


class Customer(BaseModel):
    id: str = Field(default_factory=gen_id)
    full_name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    vat_number: Optional[str] = None
    address: Address = Field(default_factory=Address)
    customer_code: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_model: Optional[str] = None
    year_of_manufacture: Optional[str] = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_backend(cls, d: Dict[str, Any]) -> "Customer":
        addr = d.get("address") or {}
        year = d.get("year_of_manufacture")
        return cls(
            id=str(d.get("_id") or d.get("id") or gen_id()),
            full_name=d.get("fullName") or d.get("full_name") or "",
            email=d.get("email") or None,
            phone=d.get("phone") or None,
            vat_number=d.get("vatNumber") or d.get("vat_number") or None,
            address=Address(**{k: addr.get(k) for k in ("street", "city", "country", "zip")}) if isinstance(addr, dict) else Address(),
            customer_code=d.get("customerCode") or d.get("customer_code"),
            vehicle_number=d.get("vehicle_number"),
            vehicle_model=d.get("vehicle_model"),
            year_of_manufacture=str(year) if year not in (None, "") else None,
        )

    def to_backend(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "vatNumber": self.vat_number,
            "address": self.address.model_dump(),
            "customerCode": self.customer_code,
            "vehicle_number": self.vehicle_number,
            "vehicle_model": self.vehicle_model,
            "year_of_manufacture": self.year_of_manufacture,
        }


class CustomerDraft(BaseModel):
    """Free-form create/edit form state; validated by the resolver, not by pydantic."""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    vat_number: str = ""
    address: Address = Field(default_factory=Address)
    vehicle_number: str = ""
    vehicle_model: str = ""
    year_of_manufacture: str = ""

    @staticmethod
    def guess_field(term: str) -> Optional[str]:
        """Which form field a search term most likely belongs to."""
        term = (term or "").strip()
        if _DIGITS.match(term) and len(term) >= 2:
            return "phone"
        if " " in term:
            return "full_name"
        if "@" in term:
            return "email"
        return None

    @classmethod
    def from_search_term(cls, term: str) -> "CustomerDraft":
        field = cls.guess_field(term)
        if not field:
            return cls()
        return cls(**{field: term.strip()})

    @classmethod
    def from_customer(cls, c: Customer) -> "CustomerDraft":
        return cls(
            full_name=c.full_name,
            email=c.email or "",
            phone=c.phone or "",
            vat_number=c.vat_number or "",
            address=c.address.model_copy(),
            vehicle_number=c.vehicle_number or "",
            vehicle_model=c.vehicle_model or "",
            year_of_manufacture=c.year_of_manufacture or "",
        )

    def to_backend(self) -> Dict[str, Any]:
        return {
            "fullName": self.full_name.strip(),
            "email": self.email.strip(),
            "phone": self.phone.strip(),
            "vatNumber": self.vat_number.strip(),
            "address": self.address.model_dump(),
            "vehicle_number": self.vehicle_number.strip() or None,
            "vehicle_model": self.vehicle_model.strip() or None,
            "year_of_manufacture": self.year_of_manufacture.strip() or None,
        }
