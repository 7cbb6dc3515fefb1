from __future__ import annotations

from typing import Any, Dict, Optional

from storage.supabase_store import (
    TABLE_GOOGLE_INTEGRATIONS,
    build_query,
    call_rpc,
    eq,
    insert_rows,
    select_one,
    update_rows,
)


INTEGRATION_METADATA = "id,user_id,project_id,agent_id,token_expires_at,scopes,user_email,is_active,created_at,updated_at"


def active_refresh_token(user_id: str, user_email: str) -> Optional[str]:
    url = build_query(
        TABLE_GOOGLE_INTEGRATIONS,
        {"user_id": eq(user_id), "user_email": eq(user_email), "is_active": eq(True)},
        select="refresh_token",
        limit=1,
    )
    row = select_one(url, "existing refresh token")
    return (row or {}).get("refresh_token") or None


def upsert_integration(row: Dict[str, Any]) -> bool:
    # One integration per agent; conflicts on agent_id replace the row.
    table = f"{TABLE_GOOGLE_INTEGRATIONS}?on_conflict=agent_id"
    return insert_rows(table, row, "upsert google integration", prefer="resolution=merge-duplicates,return=minimal") is not None


def active_for_project(project_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    filters = {"project_id": eq(project_id), "is_active": eq(True)}
    if user_id:
        filters["user_id"] = eq(user_id)
    url = build_query(TABLE_GOOGLE_INTEGRATIONS, filters, select=INTEGRATION_METADATA, limit=1)
    return select_one(url, "active integration for project")


def oldest_active_for_email(email: str) -> Optional[Dict[str, Any]]:
    url = build_query(
        TABLE_GOOGLE_INTEGRATIONS,
        {"user_email": eq(email), "is_active": eq(True)},
        select=INTEGRATION_METADATA,
        order="created_at.asc",
        limit=1,
    )
    return select_one(url, "integration by email")


def get_tokens(integration_id: str, requesting_user_id: str, encryption_key: str) -> Optional[Dict[str, Any]]:
    """Decrypted access/refresh tokens via the security-definer function."""
    out = call_rpc(
        "get_google_integration_tokens",
        {
            "_integration_id": integration_id,
            "_requesting_user_id": requesting_user_id,
            "_encryption_key": encryption_key,
        },
        "get_google_integration_tokens",
    )
    if isinstance(out, list):
        return out[0] if out else None
    return out or None


def store_refreshed_token(
    integration_id: str,
    access_token: str,
    expires_at: str,
    requesting_user_id: str,
    encryption_key: str,
) -> bool:
    out = call_rpc(
        "update_encrypted_access_token",
        {
            "_integration_id": integration_id,
            "_access_token": access_token,
            "_expires_at": expires_at,
            "_requesting_user_id": requesting_user_id,
            "_encryption_key": encryption_key,
        },
        "update_encrypted_access_token",
    )
    return out is not None


def deactivate_for_project(project_id: str) -> bool:
    url = build_query(TABLE_GOOGLE_INTEGRATIONS, {"project_id": eq(project_id)})
    return update_rows(url, {"is_active": False}, "disconnect google integration") is not None


def cleanup_orphaned() -> bool:
    return call_rpc("cleanup_orphaned_google_integrations", {}, "cleanup_orphaned_google_integrations") is not None
