from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from config import log


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(value: Any) -> Optional[datetime]:
    """
    Parses a Postgres/ISO-8601 timestamp ("...Z" or with an offset) into an
    aware UTC datetime. Naive values are taken as UTC. Missing or malformed
    values give None.
    """
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        log.warning("Unparseable timestamp %r", value)
        return None
    return ts.astimezone(timezone.utc) if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
