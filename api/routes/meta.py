from __future__ import annotations

from flask import Blueprint

from clients.google_client import google_configured
from config import APP_NAME, APP_VERSION
from storage.supabase_store import supabase_enabled
from utils.json_helpers import jok

meta_bp = Blueprint("meta", __name__)


# =========================
# Meta / Health
# =========================
@meta_bp.get("/health")
def health():
    return jok(
        {
            "name": APP_NAME,
            "version": APP_VERSION,
            "supabase": supabase_enabled(),
            "google_oauth": google_configured(),
        }
    )


@meta_bp.get("/version")
def version():
    return jok({"name": APP_NAME, "version": APP_VERSION})
