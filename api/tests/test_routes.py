from flask import Flask

import routes.invitations as invitation_routes
import routes.onboarding as onboarding_routes
import routes.reports as report_routes
import services.invitation_service as invitation_service
import services.onboarding_service as onboarding_service
import services.reporting_service as reporting_service
import utils.auth_helpers as auth_helpers
import utils.debug_events as debug_events
from app import create_app
from utils.errors import Unauthenticated

USER = {"id": "user-1", "email": "user@example.com"}


def _make_app(*blueprints) -> Flask:
    app = Flask(__name__)
    for bp in blueprints:
        app.register_blueprint(bp)
    app.config.update(TESTING=True)
    return app


def _signed_in(required=True):
    return USER


def _anonymous(required=True):
    if required:
        raise Unauthenticated()
    return None


def test_health_and_request_id():
    client = create_app().test_client()

    resp = client.get("/health", headers={"X-Request-Id": "rid-123"})
    body = resp.get_json()

    assert resp.status_code == 200, "health should be up"
    assert body["ok"] is True, "expected ok envelope"
    assert body["request_id"] == "rid-123", "request id echoed in the envelope"
    assert resp.headers["X-Request-Id"] == "rid-123", "request id echoed in headers"


def test_unknown_route_is_json_404():
    client = create_app().test_client()

    resp = client.get("/nope")

    assert resp.status_code == 404, "expected 404"
    assert resp.get_json()["error"]["code"] == "not_found", "expected JSON error envelope"


def test_draft_put_and_preview():
    client = _make_app(onboarding_routes.onboarding_bp).test_client()
    headers = {"X-Session-Id": "tab-1"}

    assert client.put("/onboarding/draft/businessName", json={"value": "Acme"}, headers=headers).status_code == 200
    assert client.put("/onboarding/draft/wantsDailySummary", json={"value": True}, headers=headers).status_code == 200
    assert client.put("/onboarding/draft/services", json={"value": ["Cut"]}, headers=headers).status_code == 200

    preview = client.get("/onboarding/draft/preview", headers=headers).get_json()["data"]

    assert preview == {"businessName": "Acme", "services": ["Cut"], "wantsDailySummary": True}, "preview aggregates typed values"


def test_draft_rejects_unknown_key():
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    resp = client.put("/onboarding/draft/favouriteColour", json={"value": "blue"})

    assert resp.status_code == 400, "unknown draft keys are rejected"


def test_submit_anonymous_is_unauthenticated(monkeypatch):
    writes = []
    monkeypatch.setattr(onboarding_routes, "current_user", _anonymous)
    monkeypatch.setattr(onboarding_service, "insert_response", lambda row: writes.append(row))
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    resp = client.post("/onboarding/submit", json={}, headers={"X-Session-Id": "tab-1"})

    assert resp.status_code == 401, "anonymous submit is rejected"
    assert resp.get_json()["error"]["code"] == "unauthenticated", "expected unauthenticated code"
    assert writes == [], "nothing written"


def test_submit_signed_in(monkeypatch):
    monkeypatch.setattr(onboarding_routes, "current_user", _signed_in)
    monkeypatch.setattr(onboarding_service, "insert_response", lambda row: {"id": "resp-1", **row})
    monkeypatch.setattr(onboarding_service, "get_membership", lambda pid, uid: {"role": "owner"})
    monkeypatch.setattr(onboarding_service, "first_membership", lambda uid: None)
    client = _make_app(onboarding_routes.onboarding_bp).test_client()
    headers = {"X-Session-Id": "tab-1"}
    client.put("/onboarding/draft/businessName", json={"value": "Acme"}, headers=headers)

    resp = client.post("/onboarding/submit", json={"projectId": "proj-1"}, headers=headers)
    body = resp.get_json()

    assert resp.status_code == 201, "created"
    assert body["data"]["project_id"] == "proj-1", "explicit project is used"
    assert client.get("/onboarding/draft", headers=headers).get_json()["data"]["items"] == {}, "draft cleared"


def test_status_for_anonymous(monkeypatch):
    monkeypatch.setattr(onboarding_routes, "current_user", _anonymous)
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    body = client.get("/onboarding/status").get_json()

    assert body["data"] == {"completed": False, "redirect_to": "/onboarding/business-intro"}, "anonymous starts the wizard"


def test_accept_conflict_code(monkeypatch):
    monkeypatch.setattr(invitation_routes, "current_user", _signed_in)
    monkeypatch.setattr(
        invitation_service,
        "pending_invitation_by_token",
        lambda token: {"id": "inv-1", "project_id": "proj-1", "email": "user@example.com", "expires_at": None},
    )
    monkeypatch.setattr(invitation_service, "get_membership", lambda pid, uid: None)
    monkeypatch.setattr(invitation_service, "list_memberships", lambda uid: [{"project_id": "proj-2"}])
    client = _make_app(invitation_routes.invitations_bp).test_client()

    resp = client.post("/invitations/accept", json={"token": "tok"})

    assert resp.status_code == 409, "already in another project"
    assert resp.get_json()["error"]["code"] == "USER_ALREADY_IN_PROJECT", "stable code for the UI"


def test_accept_requires_sign_in(monkeypatch):
    monkeypatch.setattr(invitation_routes, "current_user", _anonymous)
    client = _make_app(invitation_routes.invitations_bp).test_client()

    resp = client.post("/invitations/accept", json={"token": "tok"})

    assert resp.status_code == 401, "accepting needs a signed-in user"


def test_call_logs_webhook_invalidates(monkeypatch):
    monkeypatch.setattr(report_routes.config, "SUPABASE_SERVICE_ROLE_KEY", "service-key")
    reporting_service._cache_put(("proj-1", "", "", ""), [{"id": "c1"}])
    client = _make_app(report_routes.reports_bp).test_client()

    denied = client.post("/webhooks/call-logs", json={}, headers={"Authorization": "Bearer wrong"})
    ok = client.post("/webhooks/call-logs", json={"type": "INSERT"}, headers={"Authorization": "Bearer service-key"})
    again = client.post("/webhooks/call-logs", json={"type": "INSERT"}, headers={"Authorization": "Bearer service-key"})

    assert denied.status_code == 401, "webhook needs the service key"
    assert ok.get_json()["data"]["invalidated"] == 1, "cached query dropped"
    assert again.status_code == 200, "redelivery is harmless"


def test_draft_requires_session_id():
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    put = client.put("/onboarding/draft/businessName", json={"value": "Acme Dental"})
    get = client.get("/onboarding/draft")
    bad_type = client.put("/onboarding/draft/businessName", json={"value": "Acme", "session_id": 42})

    assert put.status_code == 400, "writes without a session id are rejected"
    assert put.get_json()["error"]["code"] == "validation_error", "expected validation_error"
    assert get.status_code == 400, "reads without a session id are rejected"
    assert bad_type.status_code == 400, "non-string session ids are rejected, not a 500"


def test_drafts_are_isolated_per_session():
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    client.put("/onboarding/draft/businessName", json={"value": "Acme Dental"}, headers={"X-Session-Id": "tab-a"})
    other = client.get("/onboarding/draft", headers={"X-Session-Id": "tab-b"}).get_json()["data"]

    assert other["items"] == {}, "another tab sees nothing"


def test_submit_into_foreign_project_is_forbidden(monkeypatch):
    writes = []
    monkeypatch.setattr(onboarding_routes, "current_user", _signed_in)
    monkeypatch.setattr(onboarding_service, "insert_response", lambda row: writes.append(row))
    monkeypatch.setattr(onboarding_service, "get_membership", lambda pid, uid: None)
    client = _make_app(onboarding_routes.onboarding_bp).test_client()
    headers = {"X-Session-Id": "tab-1"}
    client.put("/onboarding/draft/businessName", json={"value": "Acme"}, headers=headers)

    resp = client.post("/onboarding/submit", json={"projectId": "victim-project"}, headers=headers)

    assert resp.status_code == 403, "submit into a project the user is not in"
    assert writes == [], "nothing written"


def test_latest_response_route(monkeypatch):
    monkeypatch.setattr(onboarding_routes, "current_user", _signed_in)
    monkeypatch.setattr(onboarding_routes, "get_latest_onboarding_response", lambda uid: {"id": "r1", "user_id": uid})
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    body = client.get("/onboarding/latest").get_json()

    assert body["data"]["response"] == {"id": "r1", "user_id": "user-1"}, "latest row for the signed-in user"


def test_latest_response_requires_sign_in(monkeypatch):
    monkeypatch.setattr(onboarding_routes, "current_user", _anonymous)
    client = _make_app(onboarding_routes.onboarding_bp).test_client()

    assert client.get("/onboarding/latest").status_code == 401, "anonymous callers get 401"


def test_request_events_carry_blueprint_and_user(monkeypatch):
    monkeypatch.setattr(debug_events, "DEBUG_CONSOLE_ENABLED", True)
    monkeypatch.setattr(auth_helpers, "get_user", lambda token: USER)
    monkeypatch.setattr(onboarding_routes, "get_latest_onboarding_response", lambda uid: None)
    debug_events.clear_events()
    client = create_app().test_client()

    client.get("/onboarding/latest", headers={"Authorization": "Bearer jwt", "X-Request-Id": "rid-9"})
    events = debug_events.list_events(category="onboarding")
    debug_events.clear_events()

    assert len(events) == 2, "start and end recorded under the blueprint's category"
    assert events[-1]["user_id"] == "user-1", "end event names the resolved user"
    assert events[-1]["request_id"] == "rid-9", "request id carried through"
