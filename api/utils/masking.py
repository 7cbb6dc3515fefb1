from __future__ import annotations

from typing import Any, Dict, Optional

# Roles allowed to see raw caller names and numbers.
CUSTOMER_DATA_ROLES = ("owner", "admin")


def can_view_customer_data(role: Optional[str]) -> bool:
    return role in CUSTOMER_DATA_ROLES


def mask_phone_number(phone_number: Optional[str]) -> str:
    if not phone_number:
        return "N/A"
    return f"***-***-{phone_number[-4:]}"


def mask_customer_name(name: Optional[str]) -> str:
    if not name:
        return "N/A"
    return f"{name[0]}***"


def get_masked_customer_data(record: Dict[str, Any], can_view: bool) -> Dict[str, Any]:
    """Copy of a call-log record with caller PII masked unless ``can_view``."""
    if can_view:
        return record
    out = dict(record)
    out["customer_name"] = mask_customer_name(record["customer_name"]) if record.get("customer_name") else None
    out["customer_number"] = mask_phone_number(record["customer_number"]) if record.get("customer_number") else None
    if record.get("booking_customer_name"):
        out["booking_customer_name"] = mask_customer_name(record["booking_customer_name"])
    return out
