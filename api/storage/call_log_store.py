from __future__ import annotations

from typing import Any, Dict, List, Optional

from storage.supabase_store import TABLE_PHONE_NUMBERS, build_query, call_rpc, eq, select_rows


def phone_numbers_for_project(project_id: str) -> Optional[List[Dict[str, Any]]]:
    url = build_query(TABLE_PHONE_NUMBERS, {"project_id": eq(project_id)}, select="id,phone_number,project_id")
    return select_rows(url, "phone numbers for project")


def call_logs_with_bookings(
    phone_number_ids: List[str],
    phone_numbers: List[str],
    search_term: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> Optional[List[Dict[str, Any]]]:
    out = call_rpc(
        "get_call_logs_with_bookings",
        {
            "phone_number_ids": phone_number_ids,
            "phone_numbers": phone_numbers,
            "search_term": search_term or None,
            "date_from": date_from or None,
            "date_to": date_to or None,
        },
        "get_call_logs_with_bookings",
    )
    if out is None:
        return None
    return out if isinstance(out, list) else []
