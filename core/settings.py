# core/settings.py
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)

# --- Base paths ---
ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"
EXPORTS_DIR = ROOT_DIR / "exports"
SETTINGS_JSON = "settings.json"

StockEnforcement = Literal["advisory", "strict"]

INVOICE_TERMS = [
    "Warranty covers only manufacturer defects.",
    "Damages caused by misuse, power fluctuations or accidents are not covered.",
    "Repairs outside warranty will be charged.",
    "Physical damage voids the warranty.",
    "Goods sold are non-returnable.",
    "Overdue payments will bear interest at the prevailing bank rate.",
]

QUOTATION_TERMS = [
    "This quotation is valid until {valid_until}.",
    "Prices are subject to change without prior notice.",
    "Payment terms: {payment_method}.",
    "Delivery within 3-5 working days after confirmation.",
    "Warranty covers only manufacturer defects.",
]


class CompanyInfo(BaseModel):
    name: str = "Company"
    vat_number: str = "VAT123456789"
    bank_account: str = ""
    account_name: str = ""


class Numbering(BaseModel):
    invoice_prefix: str = "INV"
    quotation_prefix: str = "QUO"
    transaction_prefix: str = "TRX"
    customer_prefix: str = "CUS"


class RenderScales(BaseModel):
    preview: float = Field(0.85, ge=0.5, le=0.9)
    print: float = 2.0
    export: float = 2.0


class Templates(BaseModel):
    """Background images painted under the layout. Relative paths resolve from the data dir."""
    invoice: Optional[str] = None
    quotation: Optional[str] = None


class Settings(BaseModel):
    data_dir: Path = DATA_DIR
    exports_dir: Path = EXPORTS_DIR
    api_url: Optional[str] = None
    api_timeout: float = 10.0

    company: CompanyInfo = Field(default_factory=CompanyInfo)
    numbering: Numbering = Field(default_factory=Numbering)
    currency: str = "LKR"
    tax_rate: float = Field(0.18, ge=0)
    invoice_due_days: int = 30
    quotation_valid_days: int = 30
    stock_enforcement: StockEnforcement = "advisory"

    scales: RenderScales = Field(default_factory=RenderScales)
    templates: Templates = Field(default_factory=Templates)
    invoice_terms: List[str] = Field(default_factory=lambda: list(INVOICE_TERMS))
    quotation_terms: List[str] = Field(default_factory=lambda: list(QUOTATION_TERMS))

    class Config:
        extra = "ignore"

    def template_path(self, kind: str) -> Optional[Path]:
        raw = getattr(self.templates, kind, None)
        if not raw:
            return None
        p = Path(raw)
        return p if p.is_absolute() else self.data_dir / p


# ---------- Loading ---------- #

def _load_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.warning("Unreadable settings file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(data_dir: Optional[str | Path] = None) -> Settings:
    """
    Settings resolution:
    - data/settings.json (or $ERP_DATA_DIR/settings.json)
    - env overrides: ERP_API_URL, ERP_STOCK_ENFORCEMENT, ERP_EXPORTS_DIR
    An invalid file falls back to defaults.
    """
    base = Path(data_dir or os.environ.get("ERP_DATA_DIR") or DATA_DIR)
    raw = _load_json(base / SETTINGS_JSON)
    raw["data_dir"] = base

    env_api = os.environ.get("ERP_API_URL")
    if env_api:
        raw["api_url"] = env_api
    env_policy = os.environ.get("ERP_STOCK_ENFORCEMENT")
    if env_policy:
        raw["stock_enforcement"] = env_policy.strip().lower()
    env_exports = os.environ.get("ERP_EXPORTS_DIR")
    if env_exports:
        raw["exports_dir"] = env_exports

    try:
        return Settings(**raw)
    except ValidationError as e:
        log.warning("Invalid settings in %s, using defaults: %s", base / SETTINGS_JSON, e)
        return Settings(data_dir=base)
