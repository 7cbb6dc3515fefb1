from __future__ import annotations

from flask import Blueprint, request

import config
from config import log
from services import reporting_service
from utils.auth_helpers import current_user, get_bearer_token
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

reports_bp = Blueprint("reports", __name__)


def _filters() -> dict:
    return {
        "search_term": request.args.get("search") or None,
        "date_from": request.args.get("from") or None,
        "date_to": request.args.get("to") or None,
    }


@reports_bp.get("/reports/call-logs")
def reports_call_logs():
    try:
        user = current_user()
        logs = reporting_service.call_logs_view(user, request.args.get("project_id"), **_filters())
        return jok({"call_logs": logs, "count": len(logs)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reports_bp.get("/reports/metrics")
def reports_metrics():
    try:
        user = current_user()
        return jok(reporting_service.metrics_view(user, request.args.get("project_id"), **_filters()))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reports_bp.get("/reports/daily-summary")
def reports_daily_summary():
    try:
        user = current_user()
        entries = reporting_service.daily_summary_view(user, request.args.get("project_id"), **_filters())
        return jok({"entries": entries})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reports_bp.post("/webhooks/call-logs")
def webhook_call_logs():
    """
    Database webhook for call_logs inserts/updates/deletes.
    Drops cached call logs so the next read refetches; redelivery is harmless.
    """
    token = get_bearer_token()
    if not config.SUPABASE_SERVICE_ROLE_KEY or token != config.SUPABASE_SERVICE_ROLE_KEY:
        return jerror("Invalid service role key", 401, "unauthorized")

    data = request.get_json(force=True, silent=True) or {}
    log.info("[Reports] call_logs webhook type=%s", data.get("type"))
    dropped = reporting_service.invalidate_call_logs(data.get("project_id"))
    return jok({"invalidated": dropped})
