from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

import config
from clients import google_client
from clients.google_client import GoogleApiError
from config import log
from services.agent_service import get_agent
from storage import integration_store
from storage.onboarding_store import get_response
from storage.project_store import get_membership
from utils.errors import ServiceError
from utils.time_helpers import parse_iso, utc_now


ONBOARDING_FLOW = "onboarding"
AGENT_MANAGEMENT_FLOW = "agent-management"

# error code -> message shown in the onboarding popup
ERROR_MESSAGES: Dict[str, str] = {
    "missing_parameters": "Missing required parameters",
    "server_configuration": "Server configuration error",
    "token_exchange_failed": "Token exchange failed",
    "user_info_failed": "Failed to read Google account",
    "agent_not_found": "Agent not found",
    "project_not_found": "Project or user not found",
    "storage_failed": "Failed to store integration",
    "unexpected_error": "Unexpected error occurred",
}


@dataclass
class OAuthOutcome:
    agent_id: Optional[str]
    flow: str
    ok: bool
    email: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_onboarding(self) -> bool:
        return self.flow == ONBOARDING_FLOW

    def redirect_url(self, origin: str) -> str:
        params: Dict[str, str] = {"agentId": self.agent_id or "unknown"}
        if self.ok:
            params.update({"oauth": "success", "email": self.email or "", "popup": "true"})
        else:
            params.update({"oauth": "error", "error": self.error or "unexpected_error"})
        return f"{origin.rstrip('/')}/agent-management?{urlencode(params)}"


def parse_state(state: Optional[str]) -> Tuple[Optional[str], str]:
    """state is "<agentId>|<flow>"; a bare agent id means the agent-management flow."""
    if not state:
        return None, AGENT_MANAGEMENT_FLOW
    agent_id, _, flow = state.partition("|")
    return agent_id or None, flow or AGENT_MANAGEMENT_FLOW


def _failed(agent_id: Optional[str], flow: str, code: str, message: Optional[str] = None) -> OAuthOutcome:
    log.warning("[Google] oauth callback failed agent_id=%s code=%s", agent_id, code)
    return OAuthOutcome(
        agent_id=agent_id,
        flow=flow,
        ok=False,
        error=code,
        message=message or ERROR_MESSAGES.get(code, code),
    )


# =========================
# Authorize / callback
# =========================
def authorize_url(user: Dict[str, Any], agent_id: str, flow: str = AGENT_MANAGEMENT_FLOW) -> str:
    if not google_client.google_configured():
        raise ServiceError("Google OAuth is not configured", 500, "config_error")
    if flow not in (ONBOARDING_FLOW, AGENT_MANAGEMENT_FLOW):
        raise ServiceError(f"Invalid flow: {flow}", 400, "validation_error")
    get_agent(agent_id, user["id"])
    return google_client.build_authorize_url(f"{agent_id}|{flow}")


def handle_oauth_callback(code: Optional[str], state: Optional[str], error: Optional[str]) -> OAuthOutcome:
    agent_id, flow = parse_state(state)
    log.info("[Google] oauth callback agent_id=%s flow=%s has_code=%s error=%s", agent_id, flow, bool(code), error)

    try:
        return _complete_oauth(code, agent_id, flow, error)
    except Exception:
        # The popup/redirect must always render, whatever went wrong.
        log.exception("[Google] unexpected error in oauth callback")
        return _failed(agent_id, flow, "unexpected_error")


def _complete_oauth(code: Optional[str], agent_id: Optional[str], flow: str, error: Optional[str]) -> OAuthOutcome:
    if error:
        return _failed(agent_id, flow, error, f"OAuth Error: {error}")
    if not code or not agent_id:
        return _failed(agent_id, flow, "missing_parameters")
    if not (google_client.google_configured() and config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE_KEY):
        return _failed(agent_id, flow, "server_configuration")

    try:
        token_data = google_client.exchange_code(code)
    except (GoogleApiError, ValueError) as e:
        log.warning("[Google] token exchange failed: %s", e)
        return _failed(agent_id, flow, "token_exchange_failed")

    try:
        user_info = google_client.fetch_userinfo(token_data["access_token"])
    except (GoogleApiError, KeyError, ValueError) as e:
        log.warning("[Google] userinfo failed: %s", e)
        return _failed(agent_id, flow, "user_info_failed")
    email = user_info.get("email")

    agent = get_response(agent_id, select="project_id,user_id")
    if not agent:
        return _failed(agent_id, flow, "agent_not_found")
    if not agent.get("project_id") or not agent.get("user_id"):
        return _failed(agent_id, flow, "project_not_found")

    # Google only returns a refresh token on first consent; keep the one we have.
    existing_refresh = integration_store.active_refresh_token(agent["user_id"], email) if email else None
    refresh_token = existing_refresh or token_data.get("refresh_token")
    log.info("[Google] token reuse=%s email=%s", bool(existing_refresh), email)

    stored = integration_store.upsert_integration({
        "user_id": agent["user_id"],
        "project_id": agent["project_id"],
        "agent_id": agent_id,
        "access_token": token_data["access_token"],
        "refresh_token": refresh_token,
        "token_expires_at": google_client.token_expiry(token_data.get("expires_in")),
        "scopes": (token_data.get("scope") or "").split(),
        "user_email": email,
        "is_active": True,
    })
    if not stored:
        return _failed(agent_id, flow, "storage_failed")

    log.info("[Google] integration stored agent_id=%s project_id=%s", agent_id, agent["project_id"])
    return OAuthOutcome(agent_id=agent_id, flow=flow, ok=True, email=email)


# =========================
# Tokens
# =========================
def _require_service_key(provided_key: Optional[str]) -> None:
    if not provided_key:
        raise ServiceError("Missing authorization header", 401, "unauthorized")
    if not config.SUPABASE_SERVICE_ROLE_KEY or provided_key != config.SUPABASE_SERVICE_ROLE_KEY:
        raise ServiceError("Invalid service role key", 401, "unauthorized")


def _is_expired(expires_at: Optional[str]) -> bool:
    ts = parse_iso(expires_at)
    return ts is None or ts <= utc_now()


def _load_fresh_tokens(integration: Dict[str, Any]) -> Dict[str, Any]:
    """Decrypted tokens for an integration, refreshing the access token when expired."""
    tokens = integration_store.get_tokens(
        integration["id"],
        integration["user_id"],
        config.SUPABASE_SERVICE_ROLE_KEY,
    )
    if not tokens:
        raise ServiceError("Failed to retrieve integration tokens", 500, "persistence_error")

    out = {
        "access_token": tokens.get("access_token"),
        "refresh_token": tokens.get("refresh_token"),
        "token_expires_at": tokens.get("token_expires_at"),
        "token_refreshed": False,
    }
    if not _is_expired(out["token_expires_at"]):
        return out

    log.info("[Google] refreshing access token integration=%s", integration["id"])
    try:
        access_token, expiry = google_client.refresh_access_token(out["refresh_token"])
    except (RefreshError, TransportError) as e:
        log.warning("[Google] token refresh failed: %s", e)
        raise ServiceError("Failed to refresh Google token", 500, "token_refresh_failed")

    out["access_token"] = access_token
    out["token_expires_at"] = google_client.iso(expiry)
    out["token_refreshed"] = True
    if not integration_store.store_refreshed_token(
        integration["id"],
        access_token,
        out["token_expires_at"],
        integration["user_id"],
        config.SUPABASE_SERVICE_ROLE_KEY,
    ):
        log.warning("[Google] failed to persist refreshed token integration=%s", integration["id"])
    return out


def get_google_tokens(provided_key: Optional[str], email: Optional[str]) -> Dict[str, Any]:
    _require_service_key(provided_key)
    if not email:
        raise ServiceError("email is required", 400, "validation_error")

    integration = integration_store.oldest_active_for_email(email)
    if not integration:
        raise ServiceError("Google integration not found for this email", 404, "not_found")

    tokens = _load_fresh_tokens(integration)
    log.info("[Google] tokens retrieved email=%s user=%s refreshed=%s", email, integration["user_id"], tokens["token_refreshed"])
    return {
        **tokens,
        "user_email": integration.get("user_email"),
        "scopes": integration.get("scopes"),
        "is_active": integration.get("is_active"),
        "user_id": integration.get("user_id"),
        "project_id": integration.get("project_id"),
        "created_at": integration.get("created_at"),
        "updated_at": integration.get("updated_at"),
    }


# =========================
# Calendar
# =========================
CALENDAR_ACTIONS: Dict[str, Callable[[str, Optional[Dict[str, Any]]], Dict[str, Any]]] = {
    "list_events": lambda token, _: google_client.list_upcoming_events(token),
    "create_event": lambda token, event: google_client.create_event(token, event or {}),
    "list_calendars": lambda token, _: google_client.list_calendars(token),
}


def calendar_action(
    user: Dict[str, Any],
    project_id: Optional[str],
    action: Optional[str],
    event_data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    handler = CALENDAR_ACTIONS.get(action or "")
    if handler is None:
        raise ServiceError("Invalid action", 400, "validation_error")
    if not project_id:
        raise ServiceError("projectId is required", 400, "validation_error")
    if action == "create_event" and not event_data:
        raise ServiceError("eventData is required for create_event", 400, "validation_error")

    integration = integration_store.active_for_project(project_id, user["id"])
    if not integration:
        raise ServiceError("Google integration not found", 404, "not_found")

    tokens = _load_fresh_tokens(integration)
    try:
        return handler(tokens["access_token"], event_data)
    except HttpError as e:
        log.warning("[Google] calendar %s failed: %s", action, e)
        raise ServiceError(f"Google Calendar {action} failed", 502, "upstream_error")


# =========================
# Integration status
# =========================
def _require_member(project_id: str, user_id: str) -> None:
    if get_membership(project_id, user_id) is None:
        raise ServiceError("You do not have access to this project", 403, "forbidden")


def get_integration(user: Dict[str, Any], project_id: str) -> Optional[Dict[str, Any]]:
    _require_member(project_id, user["id"])
    return integration_store.active_for_project(project_id)


def disconnect_integration(user: Dict[str, Any], project_id: str) -> Dict[str, Any]:
    _require_member(project_id, user["id"])
    if not integration_store.deactivate_for_project(project_id):
        raise ServiceError("Failed to disconnect Google Calendar", 500, "persistence_error")
    log.info("[Google] integration disconnected project_id=%s", project_id)
    return {"disconnected": True}


def cleanup_orphaned_integrations(provided_key: Optional[str]) -> Dict[str, Any]:
    _require_service_key(provided_key)
    if not integration_store.cleanup_orphaned():
        raise ServiceError("Cleanup function failed", 500, "persistence_error")
    return {
        "success": True,
        "message": "Orphaned Google integrations cleanup completed",
        "timestamp": utc_now().isoformat(),
    }
