from datetime import date, datetime, timedelta
from typing import Any, Optional
import uuid

def gen_id() -> str:
    return uuid.uuid4().hex

def days_from_today(days: int) -> date:
    return date.today() + timedelta(days=days)

def parse_date(value: Any) -> Optional[date]:
    """Accepts date, datetime or ISO strings (with or without a time part)."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        return date.fromisoformat(s[:10])

def ref_id(value: Any) -> Optional[str]:
    """Backend references arrive either as an id or as a populated object."""
    if value is None:
        return None
    if isinstance(value, dict):
        v = value.get("_id") or value.get("id")
        return str(v) if v is not None else None
    return str(value)

