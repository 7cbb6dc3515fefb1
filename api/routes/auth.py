from __future__ import annotations

from flask import Blueprint, request

from config import log
from services import auth_service
from utils.auth_helpers import current_user, get_bearer_token, get_session_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

auth_bp = Blueprint("auth", __name__)


def _body() -> dict:
    return request.get_json(force=True, silent=True) or {}


@auth_bp.post("/auth/signup")
def auth_signup():
    data = _body()
    try:
        out = auth_service.sign_up(
            data.get("email") or "",
            data.get("password") or "",
            confirm_password=data.get("confirmPassword"),
            full_name=data.get("fullName"),
        )
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/signin")
def auth_signin():
    data = _body()
    try:
        return jok(auth_service.sign_in(data.get("email") or "", data.get("password") or ""))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/signout")
def auth_signout():
    """Always succeeds locally; the wizard draft for this tab is discarded too."""
    out = auth_service.sign_out(get_bearer_token(), get_session_id(required=False))
    return jok(out)


@auth_bp.post("/auth/magic-link")
def auth_magic_link():
    data = _body()
    try:
        return jok(auth_service.send_magic_link(data.get("email") or "", data.get("fullName")))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/password-reset")
def auth_password_reset_link():
    data = _body()
    try:
        return jok(auth_service.send_password_reset_link(data.get("email") or ""))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/password/update")
def auth_password_update():
    data = _body()
    try:
        user = current_user()
        out = auth_service.update_password(
            user,
            get_bearer_token() or "",
            data.get("currentPassword") or "",
            data.get("newPassword") or "",
        )
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/password/reset")
def auth_password_reset():
    """Completes a recovery flow; the bearer token is the recovery session."""
    data = _body()
    token = get_bearer_token()
    if not token:
        return jerror("Missing recovery session", 401, "unauthenticated")
    try:
        out = auth_service.reset_password(token, data.get("password") or "", data.get("confirmPassword"))
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.get("/auth/user")
def auth_user():
    try:
        return jok({"user": current_user()})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@auth_bp.post("/auth/email-exists")
def auth_email_exists():
    data = _body()
    try:
        exists = auth_service.check_email_exists(data.get("email") or "")
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    log.info("[Auth] email-exists check exists=%s", exists)
    return jok({"exists": exists})
