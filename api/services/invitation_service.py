from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import config
from clients.gotrue_client import AuthApiError, invite_user_by_email
from config import log
from schemas.invitation import AcceptResult, InvitationSummary
from storage.project_store import (
    add_member,
    create_invitation,
    find_profile_by_email,
    get_membership,
    get_profile,
    get_project,
    list_memberships,
    pending_invitation_by_token,
    pending_invitations_for_email,
    project_names,
    remove_member as delete_member,
    set_invitation_status,
)
from storage.supabase_store import UniqueViolation
from utils.errors import ServiceError
from utils.time_helpers import parse_iso, utc_now


INVITABLE_ROLES = ("admin", "member")
MANAGER_ROLES = ("owner", "admin")

ALREADY_IN_PROJECT = "USER_ALREADY_IN_PROJECT"


def _norm_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_expired(invitation: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expires_at = parse_iso(invitation.get("expires_at"))
    if expires_at is None:
        return False
    return expires_at < (now or utc_now())


def already_in_project_error(same_project: bool) -> ServiceError:
    if same_project:
        return ServiceError("This user is already a member of this project", 409, ALREADY_IN_PROJECT)
    return ServiceError("This user is already part of another project", 409, ALREADY_IN_PROJECT)


def _require_manager(project_id: str, user_id: str) -> Dict[str, Any]:
    membership = get_membership(project_id, user_id)
    if not membership or membership.get("role") not in MANAGER_ROLES:
        raise ServiceError("Only project owners and admins can manage members", 403, "forbidden")
    return membership


def _load_pending(token: Optional[str]) -> Dict[str, Any]:
    if not token:
        raise ServiceError("Token is required", 400, "validation_error")
    invitation = pending_invitation_by_token(token)
    if not invitation:
        raise ServiceError("Invalid or expired invitation", 404, "not_found")
    return invitation


def _require_invitee(invitation: Dict[str, Any], user: Dict[str, Any]) -> None:
    user_email = _norm_email(user.get("email"))
    if not user_email or _norm_email(invitation.get("email")) != user_email:
        log.warning(
            "[Invites] email mismatch invitation=%s invited=%s user=%s",
            invitation.get("id"), invitation.get("email"), user.get("email"),
        )
        raise ServiceError(
            "This invitation was sent to a different email address. Please sign in with the invited email.",
            403,
            "forbidden",
        )


def invitation_url(invitation: Dict[str, Any]) -> str:
    query = urlencode({"project": invitation["project_id"], "invitation": invitation["id"], "token": invitation.get("token") or ""})
    return f"{config.APP_ORIGIN}/invite?{query}"


# =========================
# Send
# =========================
def send_invite(inviter: Dict[str, Any], email: str, project_id: str, role: str = "member") -> Dict[str, Any]:
    email = _norm_email(email)
    if not email or not project_id:
        raise ServiceError("Missing required fields: email, projectId", 400, "validation_error")
    if role not in INVITABLE_ROLES:
        raise ServiceError(f"Invalid role: {role}", 400, "validation_error")

    inviter_id = inviter["id"]
    _require_manager(project_id, inviter_id)

    existing = find_profile_by_email(email)
    if existing:
        memberships = list_memberships(existing["id"]) or []
        if memberships:
            same = any(m.get("project_id") == project_id for m in memberships)
            raise already_in_project_error(same)

    invitation = create_invitation(project_id, inviter_id, email, role)
    if not invitation:
        raise ServiceError("Failed to create invitation record", 500, "persistence_error")
    log.info("[Invites] created invitation id=%s project=%s role=%s", invitation.get("id"), project_id, role)

    project = get_project(project_id, select="name") or {}
    inviter_profile = get_profile(inviter_id) or {}
    url = invitation_url(invitation)

    email_sent = True
    try:
        invite_user_by_email(
            email,
            {
                "project_name": project.get("name") or "Voicera Project",
                "inviter_name": inviter_profile.get("full_name") or inviter_profile.get("email") or "Team Member",
                "role": role,
                "invitation_id": invitation["id"],
            },
            redirect_to=url,
        )
    except AuthApiError as e:
        # Existing accounts cannot receive an auth invite; the link is shared directly.
        log.warning("[Invites] invite email failed for invitation=%s: %s", invitation.get("id"), e.message)
        email_sent = False

    return {
        "success": True,
        "invitationId": invitation["id"],
        "token": invitation.get("token"),
        "expiresAt": invitation.get("expires_at"),
        "invitationUrl": url,
        "emailSent": email_sent,
        "message": f"Invitation sent to {email}" if email_sent else "Invitation created; share the link directly",
    }


# =========================
# Lookup
# =========================
def get_invite_details(token: Optional[str]) -> Dict[str, Any]:
    if not token:
        raise ServiceError("Token is required", 400, "validation_error")
    invitation = pending_invitation_by_token(token)
    if not invitation:
        raise ServiceError("Invitation not found or has already been used", 404, "not_found")
    if is_expired(invitation):
        raise ServiceError("This invitation has expired", 410, "invitation_expired")

    project = get_project(invitation["project_id"])
    if project is None:
        raise ServiceError("Failed to load project details", 500, "persistence_error")
    inviter = get_profile(invitation.get("inviter_id") or "") or {}

    return {
        "success": True,
        "invitation": {
            "email": invitation.get("email"),
            "role": invitation.get("role"),
            "expires_at": invitation.get("expires_at"),
            "project_id": invitation.get("project_id"),
        },
        "project": {"name": project.get("name"), "description": project.get("description")},
        "inviter": {"name": inviter.get("full_name") or inviter.get("email") or "Someone"},
    }


def list_user_invitations(user: Dict[str, Any]) -> List[InvitationSummary]:
    email = _norm_email(user.get("email"))
    if not email:
        raise ServiceError("User email is required", 400, "validation_error")

    invites = pending_invitations_for_email(email)
    if invites is None:
        raise ServiceError("Failed to fetch invitations", 500, "persistence_error")

    names = project_names({i["project_id"] for i in invites})
    if names is None:
        log.warning("[Invites] project names unavailable; returning invitations without names")
        names = {}

    return [
        {
            "id": i["id"],
            "project_id": i["project_id"],
            "project_name": names.get(i["project_id"]),
            "role": i.get("role"),
            "expires_at": i.get("expires_at"),
            "token": i.get("token"),
            "status": i.get("status"),
            "email": i.get("email"),
            "inviter_id": i.get("inviter_id"),
        }
        for i in invites
    ]


# =========================
# Accept / decline
# =========================
def _mark(invitation: Dict[str, Any], status: str) -> bool:
    ok = set_invitation_status(invitation["id"], status)
    if not ok:
        log.warning("[Invites] failed to mark invitation=%s %s", invitation["id"], status)
    return ok


def _already_member_result(invitation: Dict[str, Any]) -> AcceptResult:
    _mark(invitation, "accepted")
    return {
        "success": True,
        "message": "You are already a member of this project",
        "projectId": invitation["project_id"],
        "alreadyMember": True,
    }


def accept_invite(user: Dict[str, Any], token: Optional[str]) -> AcceptResult:
    """
    Joins the invited project. Retrying is safe: an existing membership is
    reported as already-a-member, and once the invitation is accepted it is
    no longer pending so a later call gets 404 without touching membership.
    """
    invitation = _load_pending(token)
    if is_expired(invitation):
        raise ServiceError("Invitation has expired", 400, "invitation_expired")
    _require_invitee(invitation, user)

    user_id = user["id"]
    project_id = invitation["project_id"]

    if get_membership(project_id, user_id):
        return _already_member_result(invitation)

    memberships = list_memberships(user_id)
    if memberships is None:
        raise ServiceError("Failed to check project membership", 500, "persistence_error")
    if any(m.get("project_id") != project_id for m in memberships):
        raise already_in_project_error(False)

    try:
        member = add_member(project_id, user_id, invitation.get("role") or "member")
    except UniqueViolation:
        # Lost a race with a concurrent accept, or the one-project constraint fired.
        if get_membership(project_id, user_id):
            return _already_member_result(invitation)
        raise already_in_project_error(False)

    if member is None:
        raise ServiceError("Failed to add user to project", 500, "persistence_error")

    _mark(invitation, "accepted")
    log.info("[Invites] user=%s joined project=%s", user_id, project_id)
    return {
        "success": True,
        "message": "Successfully joined project",
        "projectId": project_id,
        "alreadyMember": False,
    }


def decline_invite(user: Dict[str, Any], token: Optional[str]) -> Dict[str, Any]:
    invitation = _load_pending(token)
    _require_invitee(invitation, user)
    if not _mark(invitation, "declined"):
        raise ServiceError("Failed to decline invitation", 500, "persistence_error")
    log.info("[Invites] invitation=%s declined", invitation["id"])
    return {"success": True}


# =========================
# Members
# =========================
def remove_member(actor: Dict[str, Any], project_id: str, user_id: str) -> Dict[str, Any]:
    _require_manager(project_id, actor["id"])
    target = get_membership(project_id, user_id)
    if not target:
        raise ServiceError("Member not found", 404, "not_found")
    if target.get("role") == "owner":
        raise ServiceError("The project owner cannot be removed", 400, "bad_request")
    if not delete_member(project_id, user_id):
        raise ServiceError("Failed to remove user", 500, "persistence_error")
    return {"success": True}
