from __future__ import annotations

from typing import Any, Dict, Optional

import config
from clients import gotrue_client
from clients.gotrue_client import AuthApiError
from config import log
from storage.draft_store import discard_draft
from utils.errors import ServiceError


MIN_PASSWORD_LENGTH = 6
_CHECK_PASSWORD = "dummy-password-for-check-only"


def _is_valid_email(email: str) -> bool:
    return bool(email) and "@" in email and "." in email.split("@")[-1]


def _require_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not _is_valid_email(email):
        raise ServiceError("A valid email is required.", 400, "validation_error")
    return email


def validate_new_password(password: str, confirm_password: Optional[str] = None) -> None:
    if not password:
        raise ServiceError("Password is required.", 400, "validation_error")
    if confirm_password is not None and password != confirm_password:
        raise ServiceError("Passwords do not match", 400, "validation_error")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400, "validation_error")


def _auth_error(e: AuthApiError) -> ServiceError:
    status = e.status if e.status in (400, 401, 403, 404, 422, 429) else 502
    return ServiceError(e.message, status, "auth_error")


def sign_up(email: str, password: str, confirm_password: Optional[str] = None, full_name: Optional[str] = None) -> Dict[str, Any]:
    email = _require_email(email)
    validate_new_password(password, confirm_password)
    try:
        out = gotrue_client.sign_up(email, password, {"full_name": full_name}, redirect_to=config.APP_ORIGIN)
    except AuthApiError as e:
        raise _auth_error(e)
    log.info("[Auth] sign up email=%s", email)
    return out


def sign_in(email: str, password: str) -> Dict[str, Any]:
    email = _require_email(email)
    if not password:
        raise ServiceError("Password is required.", 400, "validation_error")
    try:
        return gotrue_client.sign_in_with_password(email, password)
    except AuthApiError as e:
        raise _auth_error(e)


def sign_out(access_token: Optional[str], session_id: Optional[str] = None) -> Dict[str, Any]:
    """Always discards the tab's onboarding draft; a failed remote sign-out is logged only."""
    if session_id:
        discard_draft(session_id)
    if access_token:
        try:
            gotrue_client.sign_out(access_token, scope="global")
        except AuthApiError as e:
            log.warning("[Auth] remote sign out failed: %s", e.message)
    return {"signed_out": True}


def send_magic_link(email: str, full_name: Optional[str] = None) -> Dict[str, Any]:
    email = _require_email(email)
    try:
        gotrue_client.send_otp(email, {"full_name": full_name}, redirect_to=f"{config.APP_ORIGIN}/auth/complete-signup")
    except AuthApiError as e:
        raise _auth_error(e)
    return {"sent": True}


def send_password_reset_link(email: str) -> Dict[str, Any]:
    email = _require_email(email)
    try:
        gotrue_client.send_recovery(email, redirect_to=f"{config.APP_ORIGIN}/auth/reset-password")
    except AuthApiError as e:
        raise _auth_error(e)
    return {"sent": True}


def check_email_exists(email: str) -> bool:
    """
    Tries sign-in with a throwaway password: "invalid credentials" means the
    account exists, anything else (unknown, unconfirmed) means it does not.
    """
    email = _require_email(email)
    try:
        gotrue_client.sign_in_with_password(email, _CHECK_PASSWORD)
    except AuthApiError as e:
        msg = e.message.lower()
        return "invalid" in msg or "credentials" in msg
    return True


def update_password(user: Dict[str, Any], access_token: str, current_password: str, new_password: str) -> Dict[str, Any]:
    email = user.get("email")
    if not email:
        raise ServiceError("No email found", 400, "validation_error")
    validate_new_password(new_password)
    try:
        gotrue_client.sign_in_with_password(email, current_password or "")
    except AuthApiError:
        raise ServiceError("Current password is incorrect", 400, "validation_error")
    try:
        gotrue_client.update_user(access_token, {"password": new_password})
    except AuthApiError as e:
        raise _auth_error(e)
    return {"updated": True}


def reset_password(access_token: str, new_password: str, confirm_password: Optional[str] = None) -> Dict[str, Any]:
    """Recovery flow: the recovery session's token replaces the current password check."""
    validate_new_password(new_password, confirm_password)
    try:
        gotrue_client.update_user(access_token, {"password": new_password})
    except AuthApiError as e:
        raise _auth_error(e)
    return {"updated": True}
