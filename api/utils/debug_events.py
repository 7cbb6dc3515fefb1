from __future__ import annotations

import itertools
import time
from collections import Counter, deque
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from config import DEBUG_CONSOLE_ENABLED, DEBUG_EVENTS_MAX

_LOCK = Lock()
_EVENTS: Deque[Dict[str, Any]] = deque(maxlen=DEBUG_EVENTS_MAX)
_IDS = itertools.count(1)


def debug_enabled() -> bool:
    return bool(DEBUG_CONSOLE_ENABLED)


def record_event(
    category: str,
    message: str,
    *,
    data: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    level: str = "info",
) -> Dict[str, Any]:
    if not debug_enabled():
        return {}
    event = {
        "ts": time.time(),
        "level": level,
        "category": category,
        "message": message,
        "request_id": request_id or "",
        "user_id": user_id or "",
        "data": data or {},
    }
    with _LOCK:
        event["id"] = next(_IDS)
        _EVENTS.append(event)
    return event


def list_events(since_id: int = 0, category: Optional[str] = None) -> List[Dict[str, Any]]:
    with _LOCK:
        events = list(_EVENTS)
    if since_id > 0:
        events = [e for e in events if e["id"] > since_id]
    if category:
        events = [e for e in events if e["category"] == category]
    return events


def event_counts() -> Dict[str, int]:
    with _LOCK:
        return dict(Counter(e["category"] for e in _EVENTS))


def clear_events() -> None:
    with _LOCK:
        _EVENTS.clear()
