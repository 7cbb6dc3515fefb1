from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from flask import Flask, g, request, got_request_exception
from flask_cors import CORS

from config import DEBUG, FLASK_SECRET, PORT
from utils.debug_events import debug_enabled, record_event
from utils.error_handlers import register_error_handlers


def _event_category() -> str:
    """Debug events are grouped by blueprint (onboarding, invitations, google, ...)."""
    return request.blueprint or "request"


def _request_user_id() -> Optional[str]:
    # Only set once a handler has resolved the bearer token.
    user = g.get("auth_user")
    return user.get("id") if user else None


def _request_data() -> Dict[str, Any]:
    data: Dict[str, Any] = {"method": request.method, "path": request.path}
    if request.query_string:
        data["query"] = request.query_string.decode("utf-8")
    session_id = request.headers.get("X-Session-Id")
    if session_id:
        data["session_id"] = session_id
    return data


def _register_blueprints(app: Flask) -> None:
    from routes.agents import agents_bp
    from routes.auth import auth_bp
    from routes.debug import debug_bp
    from routes.google import google_bp
    from routes.invitations import invitations_bp
    from routes.meta import meta_bp
    from routes.onboarding import onboarding_bp
    from routes.reports import reports_bp

    for bp in (meta_bp, auth_bp, onboarding_bp, agents_bp, invitations_bp, google_bp, reports_bp, debug_bp):
        app.register_blueprint(bp)


def create_app() -> Flask:
    app = Flask(__name__)
    app.secret_key = FLASK_SECRET
    CORS(app, supports_credentials=True)

    @app.before_request
    def _request_start():
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        g.request_start_ts = time.time()
        if debug_enabled():
            record_event(
                _event_category(),
                f"{request.method} {request.path} start",
                data=_request_data(),
                request_id=g.request_id,
            )

    @app.after_request
    def _request_end(response):
        rid = getattr(g, "request_id", None)
        start_ts = getattr(g, "request_start_ts", None)
        response.headers["X-Request-Id"] = rid or response.headers.get("X-Request-Id", "")
        if debug_enabled():
            record_event(
                _event_category(),
                f"{request.method} {request.path} {response.status_code}",
                data={
                    "status": response.status_code,
                    "duration_ms": int((time.time() - start_ts) * 1000) if start_ts else None,
                },
                request_id=rid,
                user_id=_request_user_id(),
                level="warning" if response.status_code >= 400 else "info",
            )
        return response

    def _log_exception(sender, exception, **extra):
        if not debug_enabled():
            return
        record_event(
            "error",
            type(exception).__name__,
            data={"error": str(exception), **_request_data()},
            request_id=getattr(g, "request_id", None),
            user_id=_request_user_id(),
            level="error",
        )

    got_request_exception.connect(_log_exception, app)

    _register_blueprints(app)
    register_error_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    # Local dev only; production runs under gunicorn.
    app.run(host="0.0.0.0", port=PORT, debug=DEBUG)
