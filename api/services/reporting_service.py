from __future__ import annotations

import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import config
from config import log
from schemas.reporting import DailySummaryEntry, DashboardMetrics, SummaryMetrics
from storage.call_log_store import call_logs_with_bookings, phone_numbers_for_project
from storage.onboarding_store import list_by_contact_numbers
from storage.project_store import get_membership
from utils.errors import ServiceError
from utils.masking import can_view_customer_data, get_masked_customer_data
from utils.time_helpers import parse_iso


UNKNOWN_AGENT = "Unknown Agent"
SHORT_CALL_SECS = 10
DROPPED_REASONS = ("dropped", "missed")

# =========================
# Call-log cache
# =========================
_CACHE: "OrderedDict[Tuple[Any, ...], Tuple[float, List[Dict[str, Any]]]]" = OrderedDict()
_CACHE_LOCK = threading.Lock()


def _cache_expired(ts: float, now: float) -> bool:
    return now - ts > config.CALL_LOGS_CACHE_TTL_SECS


def _cache_get(key: Tuple[Any, ...]) -> Optional[List[Dict[str, Any]]]:
    with _CACHE_LOCK:
        hit = _CACHE.get(key)
        if not hit:
            return None
        ts, logs = hit
        if _cache_expired(ts, time.time()):
            _CACHE.pop(key, None)
            return None
        _CACHE.move_to_end(key)
        return logs


def _cache_put(key: Tuple[Any, ...], logs: List[Dict[str, Any]]) -> None:
    """Stores one query result; expired entries are swept and the least recently used dropped past the cap."""
    now = time.time()
    with _CACHE_LOCK:
        for k in [k for k, (ts, _) in _CACHE.items() if _cache_expired(ts, now)]:
            _CACHE.pop(k, None)
        _CACHE[key] = (now, logs)
        _CACHE.move_to_end(key)
        while len(_CACHE) > max(1, config.CALL_LOGS_CACHE_MAX_ENTRIES):
            _CACHE.popitem(last=False)


def invalidate_call_logs(project_id: Optional[str] = None) -> int:
    """Drops cached call logs for one project (or all). Safe to call repeatedly."""
    with _CACHE_LOCK:
        keys = [k for k in _CACHE if project_id is None or k[0] == project_id]
        for k in keys:
            _CACHE.pop(k, None)
    log.info("[Reports] call-log cache invalidated project_id=%s entries=%d", project_id or "*", len(keys))
    return len(keys)


# =========================
# Fetch
# =========================
def fetch_call_logs(
    project_id: str,
    search_term: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Call logs for a project's phone numbers, enriched with the owning agent."""
    key = (project_id, search_term or "", date_from or "", date_to or "")
    cached = _cache_get(key)
    if cached is not None:
        return cached

    numbers = phone_numbers_for_project(project_id)
    if numbers is None:
        raise ServiceError("Failed to fetch phone numbers", 500, "persistence_error")
    if not numbers:
        return []

    phone_strings = [n["phone_number"] for n in numbers]
    number_ids = {n["phone_number"]: n["id"] for n in numbers}

    agents = list_by_contact_numbers(project_id, phone_strings)
    if agents is None:
        log.warning("[Reports] agent lookup failed project_id=%s; logs will be unattributed", project_id)
        agents = []
    agent_map = {
        a["contact_number"]: {
            "agent_id": a["id"],
            "agent_name": a.get("business_name") or UNKNOWN_AGENT,
            "wants_daily_summary": bool(a.get("wants_daily_summary")),
        }
        for a in agents
    }

    rows = call_logs_with_bookings(
        [n["id"] for n in numbers],
        phone_strings,
        search_term=search_term,
        date_from=date_from,
        date_to=date_to,
    )
    if rows is None:
        raise ServiceError("Failed to fetch call logs", 500, "persistence_error")

    enriched = []
    for row in rows:
        agent = agent_map.get(row.get("phone_number")) or {}
        enriched.append({
            **row,
            "phone_number_id": number_ids.get(row.get("phone_number")),
            "agent_id": agent.get("agent_id"),
            "agent_name": agent.get("agent_name"),
            "wants_daily_summary": agent.get("wants_daily_summary"),
        })

    _cache_put(key, enriched)
    return enriched


# =========================
# Metrics
# =========================
def format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}m {rest}s" if rest else f"{minutes}m"


def _duration(call: Dict[str, Any]) -> Optional[float]:
    return call.get("total_call_time")


def _is_booking(call: Dict[str, Any]) -> bool:
    return call.get("booking_id") is not None


def _is_dropped(call: Dict[str, Any]) -> bool:
    d = _duration(call)
    return not d or d < SHORT_CALL_SECS or call.get("ended_reason") in DROPPED_REASONS


def _is_inquiry(call: Dict[str, Any]) -> bool:
    d = _duration(call)
    return not _is_booking(call) and bool(d) and d >= SHORT_CALL_SECS


def _average_duration(calls: List[Dict[str, Any]]) -> str:
    valid = [d for d in (_duration(c) for c in calls) if d is not None and d > 0]
    # round half up, matching how the dashboard has always displayed it
    avg = int(sum(valid) / len(valid) + 0.5) if valid else 0
    return format_duration(avg)


def compute_dashboard_metrics(logs: List[Dict[str, Any]]) -> DashboardMetrics:
    total = len(logs)
    bookings = sum(1 for c in logs if _is_booking(c))
    return {
        "totalCalls": total,
        "totalBookings": bookings,
        "successfulBookings": bookings,
        "informationInquiries": sum(1 for c in logs if _is_inquiry(c)),
        "droppedMissed": sum(1 for c in logs if _is_dropped(c)),
        "averageCallDuration": _average_duration(logs),
        "conversionRate": (bookings / total) * 100 if total else 0,
    }


# =========================
# Daily summary
# =========================
def _started(call: Dict[str, Any]) -> Optional[datetime]:
    return parse_iso(call.get("started_at"))


def _format_hour(hour: int) -> str:
    hour %= 24
    period = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:00 {period}"


def peak_time(calls: Iterable[Dict[str, Any]]) -> str:
    """Busiest two-hour window by call start hour (UTC), e.g. "9:00 AM – 11:00 AM"."""
    counts = [0] * 24
    seen = False
    for call in calls:
        ts = _started(call)
        if ts is not None:
            counts[ts.hour] += 1
            seen = True
    if not seen:
        return "N/A"

    best, start = 0, 0
    for hour in range(23):
        window = counts[hour] + counts[hour + 1]
        if window > best:
            best, start = window, hour
    return f"{_format_hour(start)} – {_format_hour(start + 2)}"


def summary_metrics(calls: List[Dict[str, Any]]) -> SummaryMetrics:
    taken = len(calls)
    bookings = sum(1 for c in calls if _is_booking(c))
    return {
        "callsTaken": taken,
        "avgDuration": _average_duration(calls),
        "bookingsMade": bookings,
        "missed": sum(1 for c in calls if _is_dropped(c)),
        "informationInquiries": sum(1 for c in calls if _is_inquiry(c)),
        "conversionRate": f"{int(bookings / taken * 100 + 0.5)}%" if taken else "0%",
        "peakTime": peak_time(calls),
    }


def _formatted_date(day: datetime) -> str:
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def build_daily_summary(logs: List[Dict[str, Any]]) -> List[DailySummaryEntry]:
    """
    Per-day summary for agents that opted into daily summaries.

    Calls are grouped by UTC calendar date, then by agent. Each date entry
    carries its totals plus one row per agent (sorted by name). Ids follow
    first-seen order ("01", "01-1", ...); dates are returned newest first.
    """
    grouped: "OrderedDict[str, OrderedDict[str, List[Dict[str, Any]]]]" = OrderedDict()
    for call in logs:
        if call.get("wants_daily_summary") is not True or not call.get("agent_id"):
            continue
        ts = _started(call)
        if ts is None:
            continue
        day_key = ts.date().isoformat()
        grouped.setdefault(day_key, OrderedDict()).setdefault(call["agent_id"], []).append(call)

    entries: List[DailySummaryEntry] = []
    for date_index, (day_key, agents) in enumerate(grouped.items(), start=1):
        day = datetime.fromisoformat(day_key)
        date_id = f"{date_index:02d}"
        formatted = _formatted_date(day)

        agent_rows: List[DailySummaryEntry] = []
        for agent_index, (agent_id, calls) in enumerate(agents.items(), start=1):
            first = calls[0]
            row: DailySummaryEntry = {
                "id": f"{date_id}-{agent_index}",
                "date": day_key,
                "formattedDate": formatted,
                **summary_metrics(calls),
                "phone_number": first.get("phone_number"),
                "agent_id": agent_id,
                "agent_name": first.get("agent_name") or UNKNOWN_AGENT,
                "wants_summary": first.get("wants_daily_summary"),
                "isDateSummary": False,
            }
            agent_rows.append(row)
        agent_rows.sort(key=lambda r: r["agent_name"].lower())

        all_calls = [c for calls in agents.values() for c in calls]
        entries.append({
            "id": date_id,
            "date": day_key,
            "formattedDate": formatted,
            **summary_metrics(all_calls),
            "isDateSummary": True,
            "agentSummaries": agent_rows,
        })

    entries.sort(key=lambda e: e["date"], reverse=True)
    return entries


# =========================
# Project-scoped views
# =========================
def _member_role(project_id: Optional[str], user_id: str) -> str:
    if not project_id:
        raise ServiceError("projectId is required", 400, "validation_error")
    membership = get_membership(project_id, user_id)
    if not membership:
        raise ServiceError("You do not have access to this project", 403, "forbidden")
    return membership.get("role") or "member"


def call_logs_view(user: Dict[str, Any], project_id: Optional[str], **filters: Optional[str]) -> List[Dict[str, Any]]:
    role = _member_role(project_id, user["id"])
    logs = fetch_call_logs(project_id, **filters)  # type: ignore[arg-type]
    can_view = can_view_customer_data(role)
    return [get_masked_customer_data(c, can_view) for c in logs]


def metrics_view(user: Dict[str, Any], project_id: Optional[str], **filters: Optional[str]) -> DashboardMetrics:
    _member_role(project_id, user["id"])
    return compute_dashboard_metrics(fetch_call_logs(project_id, **filters))  # type: ignore[arg-type]


def daily_summary_view(user: Dict[str, Any], project_id: Optional[str], **filters: Optional[str]) -> List[DailySummaryEntry]:
    _member_role(project_id, user["id"])
    return build_daily_summary(fetch_call_logs(project_id, **filters))  # type: ignore[arg-type]
