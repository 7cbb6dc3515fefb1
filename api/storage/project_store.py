from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from storage.supabase_store import (
    TABLE_INVITATIONS,
    TABLE_PROFILES,
    TABLE_PROJECT_MEMBERS,
    TABLE_PROJECTS,
    build_query,
    delete_rows,
    eq,
    ilike,
    in_list,
    insert_rows,
    select_one,
    select_rows,
    update_rows,
)


# =========================
# Projects / members
# =========================
def list_memberships(user_id: str) -> Optional[List[Dict[str, Any]]]:
    url = build_query(
        TABLE_PROJECT_MEMBERS,
        {"user_id": eq(user_id)},
        select="id,project_id,role,created_at",
        order="created_at.asc",
    )
    return select_rows(url, "list memberships")


def first_membership(user_id: str) -> Optional[Dict[str, Any]]:
    rows = list_memberships(user_id)
    return rows[0] if rows else None


def get_membership(project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    url = build_query(
        TABLE_PROJECT_MEMBERS,
        {"project_id": eq(project_id), "user_id": eq(user_id)},
        select="id,project_id,user_id,role",
        limit=1,
    )
    return select_one(url, "get membership")


def add_member(project_id: str, user_id: str, role: str) -> Optional[Dict[str, Any]]:
    rows = insert_rows(
        TABLE_PROJECT_MEMBERS,
        {"project_id": project_id, "user_id": user_id, "role": role},
        "add project member",
    )
    if rows is None:
        return None
    return rows[0] if rows else {"project_id": project_id, "user_id": user_id, "role": role}


def remove_member(project_id: str, user_id: str) -> bool:
    url = build_query(TABLE_PROJECT_MEMBERS, {"project_id": eq(project_id), "user_id": eq(user_id)})
    return delete_rows(url, "remove project member")


def get_project(project_id: str, select: str = "id,name,description") -> Optional[Dict[str, Any]]:
    url = build_query(TABLE_PROJECTS, {"id": eq(project_id)}, select=select)
    return select_one(url, "get project")


def project_names(project_ids: Iterable[str]) -> Optional[Dict[str, str]]:
    ids = list(project_ids)
    if not ids:
        return {}
    rows = select_rows(build_query(TABLE_PROJECTS, {"id": in_list(ids)}, select="id,name"), "project names")
    if rows is None:
        return None
    return {r["id"]: r.get("name") for r in rows}


# =========================
# Profiles
# =========================
def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    url = build_query(TABLE_PROFILES, {"id": eq(user_id)}, select="id,full_name,email")
    return select_one(url, "get profile")


def find_profile_by_email(email: str) -> Optional[Dict[str, Any]]:
    url = build_query(TABLE_PROFILES, {"email": ilike(email)}, select="id,full_name,email", limit=1)
    return select_one(url, "find profile by email")


# =========================
# Invitations
# =========================
def create_invitation(project_id: str, inviter_id: str, email: str, role: str) -> Optional[Dict[str, Any]]:
    rows = insert_rows(
        TABLE_INVITATIONS,
        {
            "project_id": project_id,
            "inviter_id": inviter_id,
            "email": email,
            "role": role,
            "status": "pending",
        },
        "create invitation",
    )
    return rows[0] if rows else None


def pending_invitation_by_token(token: str) -> Optional[Dict[str, Any]]:
    url = build_query(
        TABLE_INVITATIONS,
        {"token": eq(token), "status": eq("pending")},
        select="id,project_id,inviter_id,email,role,status,token,expires_at",
        limit=1,
    )
    return select_one(url, "pending invitation by token")


def pending_invitations_for_email(email: str) -> Optional[List[Dict[str, Any]]]:
    url = build_query(
        TABLE_INVITATIONS,
        {"status": eq("pending"), "email": ilike(email)},
        select="id,project_id,role,expires_at,token,status,email,inviter_id",
    )
    return select_rows(url, "pending invitations for email")


def set_invitation_status(invitation_id: str, status: str) -> bool:
    url = build_query(TABLE_INVITATIONS, {"id": eq(invitation_id)})
    return update_rows(url, {"status": status}, f"mark invitation {status}") is not None
