import os
import sys

import pytest

# Ensure api/ is on sys.path so imports like "services.*" work in tests.
API_DIR = os.path.dirname(os.path.dirname(__file__))
if API_DIR not in sys.path:
    sys.path.insert(0, API_DIR)

import config  # noqa: E402
import storage.draft_store as draft_store  # noqa: E402
import services.reporting_service as reporting_service  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Fresh draft dir and empty in-process caches for every test."""
    monkeypatch.setattr(config, "DRAFT_DIR", str(tmp_path / "drafts"))
    draft_store._DRAFTS.clear()
    draft_store._DRAFTS_TS.clear()
    reporting_service._CACHE.clear()
    yield
    draft_store._DRAFTS.clear()
    draft_store._DRAFTS_TS.clear()
    reporting_service._CACHE.clear()
