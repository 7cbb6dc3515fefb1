from __future__ import annotations

import json

from flask import Blueprint, request

from config import log
from services.onboarding_service import (
    DRAFT_KEYS,
    collect_onboarding_data,
    get_latest_onboarding_response,
    list_onboarding_responses,
    onboarding_status,
    submit_draft,
)
from storage.draft_store import discard_draft, get_draft, remove_item, set_item
from utils.auth_helpers import current_user, get_session_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

onboarding_bp = Blueprint("onboarding", __name__)


# =========================
# Draft
# =========================
@onboarding_bp.get("/onboarding/draft")
def onboarding_draft_get():
    try:
        session_id = get_session_id()
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    return jok({"session_id": session_id, "items": get_draft(session_id)})


@onboarding_bp.put("/onboarding/draft/<key>")
def onboarding_draft_put(key: str):
    """
    Stores one wizard answer as text.
    Body: { value: "..." }  (non-string values are stored as their JSON text)
    """
    if key not in DRAFT_KEYS:
        return jerror(f"Unknown draft key: {key}", 400, "validation_error")

    data = request.get_json(force=True, silent=True) or {}
    if "value" not in data:
        return jerror("Missing value", 400, "validation_error")
    value = data["value"]
    if not isinstance(value, str):
        value = json.dumps(value)

    try:
        session_id = get_session_id()
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    set_item(session_id, key, value)
    log.info("[Onboarding] draft set session=%s key=%s", session_id, key)
    return jok({"key": key, "value": value})


@onboarding_bp.delete("/onboarding/draft/<key>")
def onboarding_draft_remove(key: str):
    try:
        removed = remove_item(get_session_id(), key)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    return jok({"key": key, "removed": removed})


@onboarding_bp.delete("/onboarding/draft")
def onboarding_draft_discard():
    try:
        discard_draft(get_session_id())
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    return jok({"discarded": True})


@onboarding_bp.get("/onboarding/draft/preview")
def onboarding_draft_preview():
    """The payload a submit would send right now, without saving it."""
    try:
        session_id = get_session_id()
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    return jok(collect_onboarding_data(get_draft(session_id)))


# =========================
# Submit / status
# =========================
@onboarding_bp.post("/onboarding/submit")
def onboarding_submit():
    data = request.get_json(force=True, silent=True) or {}
    try:
        user = current_user(required=False)
        created = submit_draft(
            user["id"] if user else None,
            get_session_id(),
            project_id=data.get("projectId"),
        )
        return jok(created, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@onboarding_bp.get("/onboarding/status")
def onboarding_status_get():
    user = current_user(required=False)
    status = onboarding_status(user["id"] if user else None, request.args.get("project_id"))
    return jok(status)


@onboarding_bp.get("/onboarding/latest")
def onboarding_latest():
    try:
        user = current_user()
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    return jok({"response": get_latest_onboarding_response(user["id"])})


# =========================
# External read API
# =========================
@onboarding_bp.get("/onboarding/responses")
def onboarding_responses():
    api_key = request.args.get("api_key") or request.headers.get("X-Api-Key")
    try:
        return jok(list_onboarding_responses(request.args.get("user_id"), api_key))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
