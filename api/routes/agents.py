from __future__ import annotations

from flask import Blueprint, request

from services.agent_service import get_agent, list_agents, update_agent
from utils.auth_helpers import current_user
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

agents_bp = Blueprint("agents", __name__)


@agents_bp.get("/agents")
def agents_list():
    project_id = (request.args.get("project_id") or "").strip()
    if not project_id:
        return jerror("project_id is required", 400, "validation_error")
    try:
        user = current_user()
        return jok({"agents": list_agents(project_id, user["id"])})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@agents_bp.get("/agents/<agent_id>")
def agents_get(agent_id: str):
    try:
        user = current_user()
        return jok({"agent": get_agent(agent_id, user["id"])})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@agents_bp.patch("/agents/<agent_id>")
def agents_update(agent_id: str):
    """Body: a partial set of agent fields, camelCase or column names."""
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return jerror("Expected a JSON object", 400, "validation_error")
    try:
        user = current_user()
        return jok({"agent": update_agent(agent_id, user["id"], data)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
