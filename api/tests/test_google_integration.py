from datetime import datetime, timedelta, timezone

import pytest
from flask import Flask
from google.auth.exceptions import RefreshError, TransportError

import routes.google as google_routes
import services.google_integration_service as gsvc
from clients.google_client import GoogleApiError
from utils.errors import ServiceError


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(gsvc.google_client, "google_configured", lambda: True)
    monkeypatch.setattr(gsvc.config, "SUPABASE_URL", "https://db.example.com")
    monkeypatch.setattr(gsvc.config, "SUPABASE_SERVICE_ROLE_KEY", "service-key")


@pytest.fixture
def happy_path(monkeypatch, configured):
    stored = []
    monkeypatch.setattr(
        gsvc.google_client,
        "exchange_code",
        lambda code: {"access_token": "at", "refresh_token": "new-rt", "expires_in": 3600, "scope": "a b"},
    )
    monkeypatch.setattr(gsvc.google_client, "fetch_userinfo", lambda token: {"email": "owner@example.com"})
    monkeypatch.setattr(gsvc, "get_response", lambda aid, select="*": {"project_id": "proj-1", "user_id": "user-1"})
    monkeypatch.setattr(gsvc.integration_store, "active_refresh_token", lambda uid, email: None)
    monkeypatch.setattr(gsvc.integration_store, "upsert_integration", lambda row: stored.append(row) or True)
    return stored


def test_parse_state():
    assert gsvc.parse_state("agent-1|onboarding") == ("agent-1", "onboarding"), "agent and flow"
    assert gsvc.parse_state("agent-1") == ("agent-1", "agent-management"), "bare agent id defaults the flow"
    assert gsvc.parse_state(None) == (None, "agent-management"), "missing state"


def test_callback_success_stores_integration(happy_path):
    outcome = gsvc.handle_oauth_callback("code", "agent-1|agent-management", None)

    assert outcome.ok is True, "expected success"
    assert outcome.email == "owner@example.com", "email from userinfo"
    row = happy_path[0]
    assert row["agent_id"] == "agent-1" and row["project_id"] == "proj-1", "row scoped to agent and project"
    assert row["refresh_token"] == "new-rt", "first consent stores the new refresh token"
    assert row["scopes"] == ["a", "b"], "scope string split into a list"


def test_callback_reuses_existing_refresh_token(happy_path, monkeypatch):
    monkeypatch.setattr(gsvc.integration_store, "active_refresh_token", lambda uid, email: "old-rt")

    gsvc.handle_oauth_callback("code", "agent-1", None)

    assert happy_path[0]["refresh_token"] == "old-rt", "existing refresh token wins"


@pytest.mark.parametrize(
    "code,state,error,expected",
    [
        (None, None, "access_denied", "access_denied"),
        (None, "agent-1", None, "missing_parameters"),
        ("code", None, None, "missing_parameters"),
    ],
)
def test_callback_parameter_errors(code, state, error, expected):
    outcome = gsvc.handle_oauth_callback(code, state, error)

    assert outcome.ok is False, "expected failure"
    assert outcome.error == expected, f"expected {expected}"


def test_callback_server_configuration(monkeypatch):
    monkeypatch.setattr(gsvc.google_client, "google_configured", lambda: False)

    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "server_configuration", "missing client config"


def test_callback_token_exchange_failure(happy_path, monkeypatch):
    def _fail(code):
        raise GoogleApiError("bad code")

    monkeypatch.setattr(gsvc.google_client, "exchange_code", _fail)

    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "token_exchange_failed", "exchange failure code"


def test_callback_agent_and_project_errors(happy_path, monkeypatch):
    monkeypatch.setattr(gsvc, "get_response", lambda aid, select="*": None)
    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "agent_not_found", "unknown agent"

    monkeypatch.setattr(gsvc, "get_response", lambda aid, select="*": {"project_id": None, "user_id": "u"})
    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "project_not_found", "agent without project"


def test_callback_storage_failure(happy_path, monkeypatch):
    monkeypatch.setattr(gsvc.integration_store, "upsert_integration", lambda row: False)

    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "storage_failed", "upsert failure code"


def test_callback_unexpected_error(happy_path, monkeypatch):
    def _boom(token):
        raise RuntimeError("boom")

    monkeypatch.setattr(gsvc.google_client, "fetch_userinfo", _boom)

    assert gsvc.handle_oauth_callback("code", "agent-1", None).error == "unexpected_error", "anything else is unexpected"


def test_redirect_url_shapes():
    ok = gsvc.OAuthOutcome(agent_id="agent-1", flow="agent-management", ok=True, email="a@b.com")
    bad = gsvc.OAuthOutcome(agent_id=None, flow="agent-management", ok=False, error="storage_failed")

    assert ok.redirect_url("https://app.example.com/") == (
        "https://app.example.com/agent-management?agentId=agent-1&oauth=success&email=a%40b.com&popup=true"
    ), "success redirect"
    assert bad.redirect_url("https://app.example.com") == (
        "https://app.example.com/agent-management?agentId=unknown&oauth=error&error=storage_failed"
    ), "error redirect"


def _make_app() -> Flask:
    app = Flask(__name__)
    app.register_blueprint(google_routes.google_bp)
    app.config.update(TESTING=True)
    return app


def test_callback_route_onboarding_popup(happy_path):
    client = _make_app().test_client()

    resp = client.get("/google/oauth/callback?code=c&state=agent-1%7Conboarding")
    body = resp.get_data(as_text=True)

    assert resp.status_code == 200, "popup page is a 200"
    assert resp.mimetype == "text/html", "popup is HTML"
    assert '"type": "OAUTH_SUCCESS"' in body, "posts a success message to the opener"
    assert "window.close" in body, "page closes itself"


def test_callback_route_agent_management_redirect(monkeypatch):
    monkeypatch.setattr(google_routes.config, "APP_ORIGIN", "https://app.example.com")
    client = _make_app().test_client()

    resp = client.get("/google/oauth/callback?state=agent-1&error=access_denied")

    assert resp.status_code == 302, "agent-management flow redirects"
    assert resp.headers["Location"].endswith("oauth=error&error=access_denied"), "error code in redirect"


def test_tokens_require_service_key(configured):
    with pytest.raises(ServiceError) as exc:
        gsvc.get_google_tokens("nope", "owner@example.com")

    assert exc.value.status == 401, "wrong key is unauthorized"


def test_tokens_refresh_when_expired(configured, monkeypatch):
    integration = {"id": "int-1", "user_id": "user-1", "user_email": "owner@example.com", "is_active": True}
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
    persisted = []

    monkeypatch.setattr(gsvc.integration_store, "oldest_active_for_email", lambda email: integration)
    monkeypatch.setattr(
        gsvc.integration_store,
        "get_tokens",
        lambda iid, uid, key: {"access_token": "stale", "refresh_token": "rt", "token_expires_at": past},
    )
    new_expiry = datetime.now(timezone.utc) + timedelta(hours=1)
    monkeypatch.setattr(gsvc.google_client, "refresh_access_token", lambda rt: ("fresh", new_expiry))
    monkeypatch.setattr(
        gsvc.integration_store,
        "store_refreshed_token",
        lambda iid, token, expires, uid, key: persisted.append(token) or True,
    )

    out = gsvc.get_google_tokens("service-key", "owner@example.com")

    assert out["access_token"] == "fresh", "expired token replaced"
    assert out["token_refreshed"] is True, "refresh flagged"
    assert persisted == ["fresh"], "refreshed token written back"


def test_tokens_refresh_failure(configured, monkeypatch):
    integration = {"id": "int-1", "user_id": "user-1"}
    monkeypatch.setattr(gsvc.integration_store, "oldest_active_for_email", lambda email: integration)
    monkeypatch.setattr(
        gsvc.integration_store,
        "get_tokens",
        lambda iid, uid, key: {"access_token": "stale", "refresh_token": "rt", "token_expires_at": None},
    )

    def _fail(rt):
        raise RefreshError("invalid_grant")

    monkeypatch.setattr(gsvc.google_client, "refresh_access_token", _fail)

    with pytest.raises(ServiceError) as exc:
        gsvc.get_google_tokens("service-key", "owner@example.com")

    assert exc.value.code == "token_refresh_failed", "refresh failure surfaces"


def test_calendar_action_validation():
    with pytest.raises(ServiceError) as exc:
        gsvc.calendar_action({"id": "u1"}, "proj-1", "delete_everything")
    assert exc.value.status == 400, "unknown action"

    with pytest.raises(ServiceError) as exc:
        gsvc.calendar_action({"id": "u1"}, "proj-1", "create_event", None)
    assert exc.value.status == 400, "create_event needs eventData"


def test_calendar_action_missing_integration(monkeypatch):
    monkeypatch.setattr(gsvc.integration_store, "active_for_project", lambda pid, uid=None: None)

    with pytest.raises(ServiceError) as exc:
        gsvc.calendar_action({"id": "u1"}, "proj-1", "list_events")

    assert exc.value.status == 404, "no integration, no calendar"


def test_tokens_refresh_network_failure(configured, monkeypatch):
    monkeypatch.setattr(gsvc.integration_store, "oldest_active_for_email", lambda email: {"id": "int-1", "user_id": "user-1"})
    monkeypatch.setattr(
        gsvc.integration_store,
        "get_tokens",
        lambda iid, uid, key: {"access_token": "stale", "refresh_token": "rt", "token_expires_at": None},
    )

    def _unreachable(rt):
        raise TransportError("connection reset")

    monkeypatch.setattr(gsvc.google_client, "refresh_access_token", _unreachable)

    with pytest.raises(ServiceError) as exc:
        gsvc.get_google_tokens("service-key", "owner@example.com")

    assert exc.value.code == "token_refresh_failed", "network failure during refresh is mapped, not a bare 500"


def test_expiry_check():
    future = (datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat()
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat().replace("+00:00", "Z")

    assert gsvc._is_expired(future) is False, "future expiry is still valid"
    assert gsvc._is_expired(past) is True, "Z-suffixed past expiry is expired"
    assert gsvc._is_expired(None) is True, "missing expiry forces a refresh"
    assert gsvc._is_expired("yesterday") is True, "malformed expiry forces a refresh"


def test_integration_status_requires_membership(monkeypatch):
    lookups = []
    monkeypatch.setattr(gsvc, "get_membership", lambda pid, uid: None)
    monkeypatch.setattr(gsvc.integration_store, "active_for_project", lambda pid, uid=None: lookups.append(pid))

    with pytest.raises(ServiceError) as exc:
        gsvc.get_integration({"id": "outsider"}, "proj-1")

    assert exc.value.status == 403, "non-members cannot see another project's integration"
    assert lookups == [], "no integration lookup for outsiders"


def test_disconnect_requires_membership(monkeypatch):
    deactivated = []
    monkeypatch.setattr(gsvc, "get_membership", lambda pid, uid: None)
    monkeypatch.setattr(gsvc.integration_store, "deactivate_for_project", lambda pid: deactivated.append(pid) or True)

    with pytest.raises(ServiceError) as exc:
        gsvc.disconnect_integration({"id": "outsider"}, "proj-1")

    assert exc.value.status == 403, "non-members cannot disconnect"
    assert deactivated == [], "nothing deactivated"


def test_disconnect_for_member(monkeypatch):
    deactivated = []
    monkeypatch.setattr(gsvc, "get_membership", lambda pid, uid: {"role": "member"})
    monkeypatch.setattr(gsvc.integration_store, "deactivate_for_project", lambda pid: deactivated.append(pid) or True)

    out = gsvc.disconnect_integration({"id": "user-1"}, "proj-1")

    assert out == {"disconnected": True}, "member disconnects"
    assert deactivated == ["proj-1"], "integration deactivated for the project"


def test_authorize_url_carries_agent_and_flow(configured, monkeypatch):
    monkeypatch.setattr(gsvc, "get_agent", lambda aid, uid: {"id": aid})

    url = gsvc.authorize_url({"id": "user-1"}, "agent-1", gsvc.ONBOARDING_FLOW)

    assert "state=agent-1%7Conboarding" in url, "state encodes agent and flow"
    assert "access_type=offline" in url and "prompt=consent" in url, "refresh token requested"

    with pytest.raises(ServiceError) as exc:
        gsvc.authorize_url({"id": "user-1"}, "agent-1", "sideways")
    assert exc.value.status == 400, "unknown flow rejected"


def test_cleanup_requires_service_key(configured, monkeypatch):
    runs = []
    monkeypatch.setattr(gsvc.integration_store, "cleanup_orphaned", lambda: runs.append(1) or True)

    with pytest.raises(ServiceError) as exc:
        gsvc.cleanup_orphaned_integrations("nope")
    assert exc.value.status == 401, "wrong key is unauthorized"

    out = gsvc.cleanup_orphaned_integrations("service-key")
    assert out["success"] is True and runs == [1], "cleanup runs once with the service key"
