from __future__ import annotations

from flask import Blueprint, request

from config import log
from services import invitation_service
from utils.auth_helpers import current_user
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

invitations_bp = Blueprint("invitations", __name__)


def _body() -> dict:
    return request.get_json(force=True, silent=True) or {}


@invitations_bp.post("/invitations/send")
def invitations_send():
    """Body: { email, projectId, role? }"""
    data = _body()
    try:
        user = current_user()
        out = invitation_service.send_invite(
            user,
            data.get("email") or "",
            data.get("projectId") or "",
            (data.get("role") or "member").strip(),
        )
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@invitations_bp.post("/invitations/details")
def invitations_details():
    """Public: the invite page shows project and inviter before sign-in."""
    try:
        return jok(invitation_service.get_invite_details(_body().get("token")))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@invitations_bp.post("/invitations/accept")
def invitations_accept():
    try:
        user = current_user()
        return jok(invitation_service.accept_invite(user, _body().get("token")))
    except ServiceError as e:
        log.info("[Invites] accept rejected code=%s", e.code)
        return jerror(e.message, e.status, e.code)


@invitations_bp.post("/invitations/decline")
def invitations_decline():
    try:
        user = current_user()
        return jok(invitation_service.decline_invite(user, _body().get("token")))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@invitations_bp.get("/invitations")
def invitations_list():
    try:
        user = current_user()
        return jok({"invitations": invitation_service.list_user_invitations(user)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@invitations_bp.delete("/projects/<project_id>/members/<user_id>")
def project_member_remove(project_id: str, user_id: str):
    try:
        actor = current_user()
        return jok(invitation_service.remove_member(actor, project_id, user_id))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
