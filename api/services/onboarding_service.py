from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

import config
from config import log
from schemas.onboarding import OnboardingApiResponse, OnboardingData, OnboardingStatus
from storage.draft_store import discard_draft, get_draft
from storage.onboarding_store import insert_response, latest_response, list_responses
from storage.project_store import first_membership, get_membership
from utils.errors import ServiceError, Unauthenticated


# ============================================================
# Draft fields
# ============================================================
# (draft key, declared shape). The payload field has the same name as the
# draft key; the FAQ pair is handled separately.
DRAFT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("businessName", "string"),
    ("businessType", "string"),
    ("primaryLocation", "string"),
    ("contactNumber", "string"),
    ("aiVoiceStyle", "string"),
    ("aiGreetingStyle", "json"),
    ("aiAssistantName", "string"),
    ("aiHandlingUnknown", "string"),
    ("aiHandlingPhoneNumber", "string"),
    ("aiCallSchedule", "string"),
    ("services", "json"),
    ("businessDays", "json"),
    ("businessHours", "json"),
    ("appointmentDuration", "string"),
    ("scheduleFullAction", "string"),
    ("wantsDailySummary", "boolean"),
    ("wantsEmailConfirmations", "boolean"),
    ("reminderSettings", "json"),
)

FAQ_QUESTIONS_KEY = "faqQuestions"
FAQ_ANSWERS_KEY = "faqAnswers"

DRAFT_KEYS = frozenset([k for k, _ in DRAFT_FIELDS] + [FAQ_QUESTIONS_KEY, FAQ_ANSWERS_KEY])

# payload field -> onboarding_responses column
COLUMN_MAP: Dict[str, str] = {
    "businessName": "business_name",
    "businessType": "business_type",
    "primaryLocation": "primary_location",
    "contactNumber": "contact_number",
    "aiVoiceStyle": "ai_voice_style",
    "aiGreetingStyle": "ai_greeting_style",
    "aiAssistantName": "ai_assistant_name",
    "aiHandlingUnknown": "ai_handling_unknown",
    "aiHandlingPhoneNumber": "ai_handling_phone_number",
    "aiCallSchedule": "ai_call_schedule",
    "services": "services",
    "businessDays": "business_days",
    "businessHours": "business_hours",
    "appointmentDuration": "appointment_duration",
    "scheduleFullAction": "schedule_full_action",
    "wantsDailySummary": "wants_daily_summary",
    "wantsEmailConfirmations": "wants_email_confirmations",
    "reminderSettings": "reminder_settings",
    "faqData": "faq_data",
}

DASHBOARD_PATH = "/dashboard"
WIZARD_START_PATH = "/onboarding/business-intro"

_PARSE_FAILED = object()


def _parse_json(raw: str, field: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        log.warning("[Onboarding] failed to parse %s from draft", field)
        return _PARSE_FAILED


# ============================================================
# Aggregation
# ============================================================
def collect_onboarding_data(draft: Mapping[str, str]) -> OnboardingData:
    """
    Builds the submission payload from a wizard draft.

    Only keys that are present and non-empty appear in the result. Booleans
    are stored as the literal text "true"/"false"; structured values are
    JSON. A value that fails to parse is logged and left out without
    affecting the other fields.
    """
    data: Dict[str, Any] = {}

    for key, shape in DRAFT_FIELDS:
        raw = draft.get(key)
        if not raw:
            continue
        if shape == "string":
            data[key] = raw
        elif shape == "boolean":
            data[key] = raw == "true"
        else:
            value = _parse_json(raw, key)
            if value is not _PARSE_FAILED:
                data[key] = value

    questions_raw = draft.get(FAQ_QUESTIONS_KEY)
    answers_raw = draft.get(FAQ_ANSWERS_KEY)
    if questions_raw and answers_raw:
        questions = _parse_json(questions_raw, FAQ_QUESTIONS_KEY)
        answers = _parse_json(answers_raw, FAQ_ANSWERS_KEY)
        if questions is not _PARSE_FAILED and answers is not _PARSE_FAILED:
            data["faqData"] = {"questions": questions, "answers": answers}

    return data  # type: ignore[return-value]


def to_row(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {COLUMN_MAP[field]: value for field, value in data.items() if field in COLUMN_MAP}


# ============================================================
# Submission
# ============================================================
def resolve_project_id(user_id: str, project_id: Optional[str] = None) -> Optional[str]:
    """An explicit project must be one the user belongs to; otherwise the first membership."""
    if project_id:
        if not get_membership(project_id, user_id):
            raise ServiceError("You do not have access to this project", 403, "forbidden")
        return project_id
    membership = first_membership(user_id)
    return membership.get("project_id") if membership else None


def save_onboarding_response(
    user_id: Optional[str],
    data: Mapping[str, Any],
    project_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Inserts one new onboarding_responses row. Never updates an existing one."""
    if not user_id:
        raise Unauthenticated("You must be signed in to submit onboarding")

    row = to_row(data)
    row["user_id"] = user_id
    row["project_id"] = resolve_project_id(user_id, project_id)

    created = insert_response(row)
    if created is None:
        raise ServiceError("Failed to save onboarding response", 500, "persistence_error")

    log.info("[Onboarding] saved response id=%s user_id=%s project_id=%s", created.get("id"), user_id, row["project_id"])
    return created


def submit_draft(user_id: Optional[str], session_id: str, project_id: Optional[str] = None) -> Dict[str, Any]:
    """Aggregates the session's draft, persists it and discards the draft on success."""
    if not user_id:
        raise Unauthenticated("You must be signed in to submit onboarding")

    data = collect_onboarding_data(get_draft(session_id))
    created = save_onboarding_response(user_id, data, project_id)
    discard_draft(session_id)
    return created


# ============================================================
# Status
# ============================================================
def has_completed_onboarding(user_id: Optional[str], project_id: Optional[str] = None) -> bool:
    """
    Complete when a submission exists for the user (within the project when
    given) or when the user already belongs to a project, which covers
    invited members who never run the wizard.
    """
    if not user_id:
        return False
    if latest_response(user_id, project_id, select="id"):
        return True
    return first_membership(user_id) is not None


def onboarding_status(user_id: Optional[str], project_id: Optional[str] = None) -> OnboardingStatus:
    completed = has_completed_onboarding(user_id, project_id)
    return {
        "completed": completed,
        "redirect_to": DASHBOARD_PATH if completed else WIZARD_START_PATH,
    }


def get_latest_onboarding_response(user_id: str) -> Optional[Dict[str, Any]]:
    return latest_response(user_id)


# ============================================================
# External read API
# ============================================================
def list_onboarding_responses(user_id: Optional[str] = None, api_key: Optional[str] = None) -> OnboardingApiResponse:
    if api_key and api_key != config.ONBOARDING_API_KEY:
        raise ServiceError("Invalid API key", 401, "unauthorized")

    log.info("[Onboarding] read API called user_id=%s has_api_key=%s", user_id, bool(api_key))
    rows = list_responses(user_id=user_id)
    if rows is None:
        raise ServiceError("Failed to fetch onboarding data", 500, "persistence_error")

    return {
        "success": True,
        "data": rows,
        "count": len(rows),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
