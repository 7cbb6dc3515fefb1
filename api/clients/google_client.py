from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from config import (
    GOOGLE_AUTH_BASE,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_OAUTH_REDIRECT_URI,
    GOOGLE_OAUTH_SCOPES,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
)


class GoogleApiError(RuntimeError):
    pass


def google_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and GOOGLE_OAUTH_REDIRECT_URI)


# =========================
# OAuth
# =========================
def build_authorize_url(state: str) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_OAUTH_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_OAUTH_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_BASE}?{urlencode(params)}"


def exchange_code(code: str) -> Dict[str, Any]:
    r = requests.post(
        GOOGLE_TOKEN_URL,
        data={
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": GOOGLE_OAUTH_REDIRECT_URI,
        },
        timeout=20,
    )
    if r.status_code >= 400:
        raise GoogleApiError(f"Google token exchange -> {r.status_code} {r.text}")
    return r.json()


def fetch_userinfo(access_token: str) -> Dict[str, Any]:
    r = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise GoogleApiError(f"Google userinfo -> {r.status_code} {r.text}")
    return r.json()


def refresh_access_token(refresh_token: str) -> Tuple[str, dt.datetime]:
    """Returns (access_token, expiry as aware UTC datetime)."""
    creds = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URL,
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
    )
    creds.refresh(GoogleAuthRequest())
    expiry = creds.expiry or (dt.datetime.now(dt.timezone.utc).replace(tzinfo=None) + dt.timedelta(hours=1))
    return creds.token, expiry.replace(tzinfo=dt.timezone.utc)


# =========================
# Calendar
# =========================
def _calendar(access_token: str):
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def iso(dt_obj: dt.datetime) -> str:
    if dt_obj.tzinfo is None:
        dt_obj = dt_obj.replace(tzinfo=dt.timezone.utc)
    return dt_obj.isoformat().replace("+00:00", "Z")


def normalize_event_datetime(dt_str: str) -> str:
    """
    Accepts 'YYYY-MM-DDTHH:MM' (seconds appended) or a full RFC3339 value.
    Values without an offset rely on the event's separate 'timeZone'.
    """
    if not dt_str:
        raise ValueError("Empty datetime string")
    dt_str = dt_str.strip()
    if "T" in dt_str:
        date_part, time_part = dt_str.split("T", 1)
        if len(time_part) == 5:
            dt_str = f"{date_part}T{time_part}:00"
    return dt_str


def list_upcoming_events(access_token: str, max_results: int = 10) -> Dict[str, Any]:
    return _calendar(access_token).events().list(
        calendarId="primary",
        maxResults=max_results,
        orderBy="startTime",
        singleEvents=True,
        timeMin=iso(dt.datetime.now(dt.timezone.utc)),
    ).execute()


def create_event(access_token: str, event: Dict[str, Any]) -> Dict[str, Any]:
    body = dict(event)
    for edge in ("start", "end"):
        slot = body.get(edge)
        if isinstance(slot, dict) and slot.get("dateTime"):
            body[edge] = {**slot, "dateTime": normalize_event_datetime(slot["dateTime"])}
    return _calendar(access_token).events().insert(calendarId="primary", body=body).execute()


def list_calendars(access_token: str) -> Dict[str, Any]:
    return _calendar(access_token).calendarList().list().execute()


def token_expiry(expires_in: Optional[int]) -> str:
    seconds = int(expires_in or 3600)
    return iso(dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=seconds))
