from __future__ import annotations

from typing import Optional, TypedDict


class AcceptResult(TypedDict):
    success: bool
    message: str
    projectId: str
    alreadyMember: bool


class InvitationSummary(TypedDict):
    id: str
    project_id: str
    project_name: Optional[str]
    role: str
    expires_at: Optional[str]
    token: str
    status: str
    email: str
    inviter_id: str
