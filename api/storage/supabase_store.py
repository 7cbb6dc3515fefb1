from __future__ import annotations

import os
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from config import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_TIMEOUT_SECS, SUPABASE_URL, log


def supabase_enabled() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)


def supabase_headers(prefer: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "apikey": SUPABASE_SERVICE_ROLE_KEY,
        "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}",
        "Content-Type": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers


def supabase_anon_headers(access_token: Optional[str] = None) -> Dict[str, str]:
    key = SUPABASE_ANON_KEY or SUPABASE_SERVICE_ROLE_KEY
    return {
        "apikey": key,
        "Authorization": f"Bearer {access_token or key}",
        "Content-Type": "application/json",
    }


def supabase_table_url(table_name: str) -> str:
    return f"{SUPABASE_URL}/rest/v1/{table_name}"


def supabase_rpc_url(function_name: str) -> str:
    return f"{SUPABASE_URL}/rest/v1/rpc/{function_name}"


def supabase_auth_url(path: str) -> str:
    return f"{SUPABASE_URL}/auth/v1/{path.lstrip('/')}"


def eq(value: Any) -> str:
    """PostgREST equality filter value, e.g. ``user_id=eq.<id>``."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"eq.{quote(str(value), safe='')}"


def ilike(value: str) -> str:
    """Case-insensitive exact match; LIKE wildcards in the value are escaped."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"ilike.{quote(escaped, safe='')}"


def in_list(values: Iterable[Any]) -> str:
    quoted = ",".join(f'"{v}"' for v in values)
    return f"in.({quote(quoted, safe=',')})"


def build_query(table_name: str, filters: Optional[Dict[str, str]] = None, **params: Any) -> str:
    """
    Builds a PostgREST URL. ``filters`` maps column -> operator expression
    (``eq(...)``, ``in_list(...)``, ``ilike(...)``); ``params`` carries
    select/order/limit.
    """
    parts = [f"{col}={expr}" for col, expr in (filters or {}).items()]
    for key in ("select", "order", "limit", "offset"):
        if params.get(key) is not None:
            parts.append(f"{key}={params[key]}")
    url = supabase_table_url(table_name)
    return f"{url}?{'&'.join(parts)}" if parts else url


def supabase_get(url: str, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
    return requests.get(
        url,
        headers=headers or supabase_headers(),
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_post(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json: Optional[Any] = None,
    timeout: Optional[float] = None,
):
    return requests.post(
        url,
        headers=headers or supabase_headers(),
        json=json,
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_patch(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json: Optional[dict] = None,
    timeout: Optional[float] = None,
):
    return requests.patch(
        url,
        headers=headers or supabase_headers(),
        json=json,
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_delete(url: str, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
    return requests.delete(
        url,
        headers=headers or supabase_headers(),
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


TABLE_ONBOARDING = os.environ.get("VOICERA_ONBOARDING_TABLE_SUPABASE", "onboarding_responses")
TABLE_PROJECTS = os.environ.get("VOICERA_PROJECTS_TABLE_SUPABASE", "projects")
TABLE_PROJECT_MEMBERS = os.environ.get("VOICERA_PROJECT_MEMBERS_TABLE_SUPABASE", "project_members")
TABLE_INVITATIONS = os.environ.get("VOICERA_INVITATIONS_TABLE_SUPABASE", "project_invitations")
TABLE_PROFILES = os.environ.get("VOICERA_PROFILES_TABLE_SUPABASE", "profiles")
TABLE_GOOGLE_INTEGRATIONS = os.environ.get("VOICERA_GOOGLE_TABLE_SUPABASE", "google_integrations")
TABLE_PHONE_NUMBERS = os.environ.get("VOICERA_PHONE_NUMBERS_TABLE_SUPABASE", "phone_numbers")


# =========================
# Row helpers
# =========================
# Each helper logs backend failures and returns None so callers can decide
# whether a missing result is an error for their operation.
def select_rows(url: str, what: str) -> Optional[List[Dict[str, Any]]]:
    try:
        resp = supabase_get(url)
        if resp.status_code >= 400:
            log.warning("Supabase %s failed: status=%s body=%s", what, resp.status_code, resp.text)
            return None
        return resp.json() or []
    except requests.RequestException:
        log.exception("Supabase %s error", what)
        return None


def select_one(url: str, what: str) -> Optional[Dict[str, Any]]:
    rows = select_rows(url, what)
    return rows[0] if rows else None


def insert_rows(table_name: str, payload: Any, what: str, prefer: str = "return=representation") -> Optional[List[Dict[str, Any]]]:
    try:
        resp = supabase_post(supabase_table_url(table_name), headers=supabase_headers(prefer), json=payload)
        if resp.status_code >= 400:
            log.warning("Supabase %s failed: status=%s body=%s", what, resp.status_code, resp.text)
            raise_if_unique_violation(resp)
            return None
        if "return=minimal" in prefer:
            return []
        return resp.json() or []
    except requests.RequestException:
        log.exception("Supabase %s error", what)
        return None


def update_rows(url: str, changes: Dict[str, Any], what: str) -> Optional[List[Dict[str, Any]]]:
    try:
        resp = supabase_patch(url, headers=supabase_headers("return=representation"), json=changes)
        if resp.status_code >= 400:
            log.warning("Supabase %s failed: status=%s body=%s", what, resp.status_code, resp.text)
            return None
        return resp.json() or []
    except requests.RequestException:
        log.exception("Supabase %s error", what)
        return None


def delete_rows(url: str, what: str) -> bool:
    try:
        resp = supabase_delete(url, headers=supabase_headers("return=minimal"))
        if resp.status_code >= 400:
            log.warning("Supabase %s failed: status=%s body=%s", what, resp.status_code, resp.text)
            return False
        return True
    except requests.RequestException:
        log.exception("Supabase %s error", what)
        return False


def call_rpc(function_name: str, args: Dict[str, Any], what: str) -> Optional[Any]:
    try:
        resp = supabase_post(supabase_rpc_url(function_name), json=args)
        if resp.status_code >= 400:
            log.warning("Supabase rpc %s failed: status=%s body=%s", what, resp.status_code, resp.text)
            return None
        if not resp.content:
            return {}
        return resp.json()
    except requests.RequestException:
        log.exception("Supabase rpc %s error", what)
        return None


class UniqueViolation(Exception):
    """Raised when PostgREST reports a unique constraint violation (23505)."""


def raise_if_unique_violation(resp) -> None:
    if resp.status_code != 409:
        return
    try:
        body = resp.json() or {}
    except ValueError:
        body = {}
    if body.get("code") == "23505":
        raise UniqueViolation(body.get("message") or "duplicate key value")
