from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from storage.supabase_store import (
    TABLE_ONBOARDING,
    build_query,
    eq,
    in_list,
    insert_rows,
    select_one,
    select_rows,
    update_rows,
)


RESPONSE_COLUMNS = (
    "id,user_id,project_id,business_name,business_type,primary_location,contact_number,"
    "ai_assistant_name,ai_voice_style,ai_greeting_style,ai_handling_unknown,ai_handling_phone_number,"
    "ai_call_schedule,appointment_duration,schedule_full_action,services,business_days,business_hours,"
    "wants_email_confirmations,wants_daily_summary,reminder_settings,faq_data,created_at,updated_at"
)


def insert_response(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    rows = insert_rows(TABLE_ONBOARDING, row, "insert onboarding response")
    if rows is None:
        return None
    return rows[0] if rows else row


def get_response(response_id: str, select: str = "*") -> Optional[Dict[str, Any]]:
    url = build_query(TABLE_ONBOARDING, {"id": eq(response_id)}, select=select)
    return select_one(url, "get onboarding response")


def latest_response(user_id: str, project_id: Optional[str] = None, select: str = "*") -> Optional[Dict[str, Any]]:
    filters = {"user_id": eq(user_id)}
    if project_id:
        filters["project_id"] = eq(project_id)
    url = build_query(TABLE_ONBOARDING, filters, select=select, order="created_at.desc", limit=1)
    return select_one(url, "latest onboarding response")


def list_responses(
    user_id: Optional[str] = None,
    project_id: Optional[str] = None,
    select: str = RESPONSE_COLUMNS,
) -> Optional[List[Dict[str, Any]]]:
    filters = {}
    if user_id:
        filters["user_id"] = eq(user_id)
    if project_id:
        filters["project_id"] = eq(project_id)
    url = build_query(TABLE_ONBOARDING, filters, select=select, order="created_at.desc")
    return select_rows(url, "list onboarding responses")


def list_by_contact_numbers(project_id: str, numbers: Iterable[str]) -> Optional[List[Dict[str, Any]]]:
    numbers = list(numbers)
    if not numbers:
        return []
    url = build_query(
        TABLE_ONBOARDING,
        {"project_id": eq(project_id), "contact_number": in_list(numbers)},
        select="id,contact_number,business_name,wants_daily_summary",
    )
    return select_rows(url, "agents by contact number")


def update_response(response_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    url = build_query(TABLE_ONBOARDING, {"id": eq(response_id)})
    rows = update_rows(url, changes, "update onboarding response")
    if not rows:
        return None
    return rows[0]
