from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

# -------------------------------------------------------------------
# Paths
# -------------------------------------------------------------------
BASE_DIR = os.path.dirname(os.path.abspath(__file__))     # api/
ROOT_DIR = os.path.dirname(BASE_DIR)                      # project root

# =========================
# Config & Initialization
# =========================
# Load root .env first, then api/.env if present, then any CWD .env.
load_dotenv(os.path.join(ROOT_DIR, ".env"))
load_dotenv(os.path.join(BASE_DIR, ".env"))
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


APP_NAME = os.getenv("APP_NAME", "Voicera AI API")
APP_VERSION = os.getenv("APP_VERSION", "0.3.0")
PORT = int(os.getenv("PORT", "5050"))
DEBUG = _env_flag("DEBUG", "true")
FLASK_SECRET = os.getenv("FLASK_SECRET", "voicera_dev_secret")

# Public URL of the dashboard; used for OAuth/invite redirects when the
# request carries no Origin header.
APP_ORIGIN = os.getenv("APP_ORIGIN", "http://localhost:8080").rstrip("/")

# Supabase (PostgREST + GoTrue)
SUPABASE_URL = os.getenv("VOICERA_SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("VOICERA_SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("VOICERA_SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_TIMEOUT_SECS = float(os.getenv("VOICERA_SUPABASE_TIMEOUT_SECS", "5"))

# Google OAuth / Calendar
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_OAUTH_REDIRECT_URI = os.getenv(
    "GOOGLE_OAUTH_REDIRECT_URI",
    f"{SUPABASE_URL}/functions/v1/google-oauth-callback" if SUPABASE_URL else "",
)
GOOGLE_OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar",
]
GOOGLE_AUTH_BASE = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# External onboarding read API
ONBOARDING_API_KEY = os.getenv("ONBOARDING_API_KEY", "")

# Drafts: on serverless platforms the code dir is read-only, so use /tmp.
DRAFT_DIR = os.getenv("VOICERA_DRAFT_DIR", "/tmp/voicera_drafts")
DRAFT_TTL_SECS = int(os.getenv("VOICERA_DRAFT_TTL_SECS", str(6 * 60 * 60)))

CALL_LOGS_CACHE_TTL_SECS = int(os.getenv("CALL_LOGS_CACHE_TTL_SECS", "30"))
CALL_LOGS_CACHE_MAX_ENTRIES = int(os.getenv("CALL_LOGS_CACHE_MAX_ENTRIES", "256"))

DEBUG_CONSOLE_ENABLED = _env_flag("DEBUG_CONSOLE_ENABLED", "false")
DEBUG_EVENTS_MAX = int(os.getenv("DEBUG_EVENTS_MAX", "500"))

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("voicera")

