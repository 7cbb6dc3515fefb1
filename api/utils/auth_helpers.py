from __future__ import annotations

from typing import Any, Dict, Optional

from flask import g, request

from clients.gotrue_client import AuthApiError, get_user
from config import log
from utils.errors import ServiceError, Unauthenticated


# =========================
# Auth helpers
# =========================
def get_bearer_token() -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def current_user(required: bool = True) -> Optional[Dict[str, Any]]:
    """
    Resolves the Supabase user behind the request's bearer JWT.
    Cached on flask.g for the rest of the request.
    """
    if "auth_user" in g:
        user = g.auth_user
    else:
        user = None
        token = get_bearer_token()
        if token:
            try:
                user = get_user(token)
            except AuthApiError as e:
                log.warning("Supabase user lookup failed: %s", e.message)
        g.auth_user = user if user and user.get("id") else None
        user = g.auth_user

    if user is None and required:
        raise Unauthenticated()
    return user


def get_session_id(required: bool = True) -> Optional[str]:
    """Draft scope: one id per browser tab, sent as X-Session-Id."""
    sid = request.headers.get("X-Session-Id") or request.args.get("session_id")
    if not sid:
        data = request.get_json(force=True, silent=True)
        sid = data.get("session_id") if isinstance(data, dict) else None
    sid = sid.strip() if isinstance(sid, str) else ""
    if not sid and required:
        raise ServiceError("Missing X-Session-Id", 400, "validation_error")
    return sid or None
