from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from config import log
from services.onboarding_service import COLUMN_MAP
from storage.onboarding_store import get_response, list_responses, update_response
from storage.project_store import get_membership
from utils.errors import ServiceError


# Columns the agent-management console may edit.
EDITABLE_COLUMNS = frozenset(COLUMN_MAP.values())


def _require_access(agent: Dict[str, Any], user_id: str) -> None:
    project_id = agent.get("project_id")
    if project_id:
        if get_membership(project_id, user_id) is None:
            raise ServiceError("You do not have access to this agent", 403, "forbidden")
    elif agent.get("user_id") != user_id:
        raise ServiceError("You do not have access to this agent", 403, "forbidden")


def list_agents(project_id: str, user_id: str) -> List[Dict[str, Any]]:
    if get_membership(project_id, user_id) is None:
        raise ServiceError("You do not have access to this project", 403, "forbidden")
    rows = list_responses(project_id=project_id)
    if rows is None:
        raise ServiceError("Failed to load agents", 500, "persistence_error")
    return rows


def get_agent(agent_id: str, user_id: str) -> Dict[str, Any]:
    agent = get_response(agent_id)
    if not agent:
        raise ServiceError("Agent not found", 404, "not_found")
    _require_access(agent, user_id)
    return agent


def normalize_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Accepts payload (camelCase) or column (snake_case) names."""
    out: Dict[str, Any] = {}
    unknown = []
    for key, value in changes.items():
        column = COLUMN_MAP.get(key, key)
        if column not in EDITABLE_COLUMNS:
            unknown.append(key)
            continue
        out[column] = value
    if unknown:
        raise ServiceError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}", 400, "validation_error")
    if not out:
        raise ServiceError("No changes supplied", 400, "validation_error")
    return out


def update_agent(agent_id: str, user_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
    columns = normalize_changes(changes)
    get_agent(agent_id, user_id)

    columns["updated_at"] = datetime.now(timezone.utc).isoformat()
    updated = update_response(agent_id, columns)
    if updated is None:
        raise ServiceError("Failed to update agent", 500, "persistence_error")
    log.info("[Agents] updated agent_id=%s fields=%s", agent_id, sorted(columns))
    return updated
