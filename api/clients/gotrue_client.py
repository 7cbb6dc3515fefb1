from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from config import SUPABASE_TIMEOUT_SECS
from storage.supabase_store import supabase_anon_headers, supabase_auth_url, supabase_headers


# =========================
# Supabase Auth (GoTrue) REST calls
# =========================
class AuthApiError(RuntimeError):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status


def _error_message(resp) -> str:
    try:
        body = resp.json() or {}
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    return (
        body.get("error_description")
        or body.get("msg")
        or body.get("message")
        or body.get("error")
        or f"HTTP {resp.status_code}"
    )


def _auth_call(
    method: str,
    path: str,
    *,
    headers: Dict[str, str],
    json_body: Optional[dict] = None,
    params: Optional[dict] = None,
) -> Dict[str, Any]:
    r = requests.request(
        method,
        supabase_auth_url(path),
        headers=headers,
        json=json_body,
        params=params,
        timeout=SUPABASE_TIMEOUT_SECS,
    )
    if r.status_code >= 400:
        raise AuthApiError(_error_message(r), r.status_code)
    if not r.content:
        return {}
    return r.json()


def sign_up(email: str, password: str, data: Dict[str, Any], redirect_to: str) -> Dict[str, Any]:
    return _auth_call(
        "POST",
        "signup",
        headers=supabase_anon_headers(),
        json_body={"email": email, "password": password, "data": data},
        params={"redirect_to": redirect_to},
    )


def sign_in_with_password(email: str, password: str) -> Dict[str, Any]:
    return _auth_call(
        "POST",
        "token",
        headers=supabase_anon_headers(),
        json_body={"email": email, "password": password},
        params={"grant_type": "password"},
    )


def sign_out(access_token: str, scope: str = "global") -> None:
    _auth_call("POST", "logout", headers=supabase_anon_headers(access_token), params={"scope": scope})


def send_otp(email: str, data: Dict[str, Any], redirect_to: str) -> None:
    _auth_call(
        "POST",
        "otp",
        headers=supabase_anon_headers(),
        json_body={"email": email, "create_user": True, "data": data},
        params={"redirect_to": redirect_to},
    )


def send_recovery(email: str, redirect_to: str) -> None:
    _auth_call(
        "POST",
        "recover",
        headers=supabase_anon_headers(),
        json_body={"email": email},
        params={"redirect_to": redirect_to},
    )


def get_user(access_token: str) -> Dict[str, Any]:
    return _auth_call("GET", "user", headers=supabase_anon_headers(access_token))


def update_user(access_token: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    return _auth_call("PUT", "user", headers=supabase_anon_headers(access_token), json_body=changes)


def invite_user_by_email(email: str, data: Dict[str, Any], redirect_to: str) -> Dict[str, Any]:
    """Admin invite; needs the service-role key."""
    return _auth_call(
        "POST",
        "invite",
        headers=supabase_headers(),
        json_body={"email": email, "data": data},
        params={"redirect_to": redirect_to},
    )
