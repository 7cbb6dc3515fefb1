from __future__ import annotations

import html
import json

from flask import Blueprint, Response, redirect, request

import config
from services import google_integration_service as gsvc
from services.google_integration_service import OAuthOutcome
from utils.auth_helpers import current_user, get_bearer_token
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

google_bp = Blueprint("google", __name__)


_POPUP_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{title}</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, sans-serif; text-align: center; padding: 20px; }}
      .headline {{ color: {color}; margin-bottom: 20px; }}
      .status {{ color: #6b7280; font-size: 14px; }}
    </style>
  </head>
  <body>
    <div class="headline">{headline}</div>
    <div class="status" id="status">Closing window...</div>
    <script>
      try {{ window.opener && window.opener.postMessage({message}, '*'); }} catch (e) {{}}
      setTimeout(function () {{
        try {{ window.close(); }} catch (e) {{
          document.getElementById('status').textContent = 'Please close this window manually';
        }}
      }}, 1000);
    </script>
  </body>
</html>
"""


def _popup_page(outcome: OAuthOutcome) -> Response:
    """Self-closing page that reports the result to the opener window."""
    if outcome.ok:
        message = {"type": "OAUTH_SUCCESS", "email": outcome.email, "agentId": outcome.agent_id}
        title, headline, color = "Google Calendar Connected", "Google Calendar Connected Successfully", "#22c55e"
    else:
        message = {"type": "OAUTH_ERROR", "error": outcome.message, "agentId": outcome.agent_id}
        title, headline, color = "Connection Failed", f"Connection failed: {outcome.message}", "#ef4444"

    # json.dumps output is embedded in a <script>; keep "</" from closing it.
    payload = json.dumps(message).replace("</", "<\\/")
    body = _POPUP_TEMPLATE.format(
        title=html.escape(title),
        headline=html.escape(headline),
        color=color,
        message=payload,
    )
    return Response(body, mimetype="text/html")


# =========================
# OAuth
# =========================
@google_bp.get("/google/oauth/authorize")
def google_oauth_authorize():
    agent_id = (request.args.get("agent_id") or "").strip()
    if not agent_id:
        return jerror("agent_id is required", 400, "validation_error")
    flow = (request.args.get("flow") or gsvc.AGENT_MANAGEMENT_FLOW).strip()
    try:
        user = current_user()
        return jok({"url": gsvc.authorize_url(user, agent_id, flow)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@google_bp.get("/google/oauth/callback")
def google_oauth_callback():
    outcome = gsvc.handle_oauth_callback(
        request.args.get("code"),
        request.args.get("state"),
        request.args.get("error"),
    )
    if outcome.is_onboarding:
        return _popup_page(outcome)
    origin = request.headers.get("Origin") or config.APP_ORIGIN
    return redirect(outcome.redirect_url(origin), code=302)


# =========================
# Tokens (service-to-service)
# =========================
@google_bp.post("/google/tokens")
def google_tokens():
    """Body: { email }. Authorization must carry the service-role key."""
    data = request.get_json(force=True, silent=True) or {}
    try:
        return jok(gsvc.get_google_tokens(get_bearer_token(), data.get("email")))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@google_bp.post("/google/integrations/cleanup")
def google_integrations_cleanup():
    try:
        return jok(gsvc.cleanup_orphaned_integrations(get_bearer_token()))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


# =========================
# Calendar
# =========================
@google_bp.post("/google/calendar")
def google_calendar():
    """Body: { projectId, action: list_events|create_event|list_calendars, eventData? }"""
    data = request.get_json(force=True, silent=True) or {}
    try:
        user = current_user()
        out = gsvc.calendar_action(user, data.get("projectId"), data.get("action"), data.get("eventData"))
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


# =========================
# Integration status
# =========================
@google_bp.get("/google/integration")
def google_integration_get():
    project_id = (request.args.get("project_id") or "").strip()
    if not project_id:
        return jerror("project_id is required", 400, "validation_error")
    try:
        user = current_user()
        return jok({"integration": gsvc.get_integration(user, project_id)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@google_bp.post("/google/integration/disconnect")
def google_integration_disconnect():
    data = request.get_json(force=True, silent=True) or {}
    project_id = (data.get("projectId") or "").strip()
    if not project_id:
        return jerror("projectId is required", 400, "validation_error")
    try:
        user = current_user()
        return jok(gsvc.disconnect_integration(user, project_id))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
