from __future__ import annotations

import os
import re
import time
from threading import Lock
from typing import Dict, Optional

import config
from config import log
from utils.json_helpers import read_json, write_json


# Session-scoped wizard drafts: one flat {key: raw string} map per browser
# tab, mirrored to disk so a worker restart does not lose a wizard in
# progress. Values are stored exactly as the wizard sent them.
_DRAFTS: Dict[str, Dict[str, str]] = {}
_DRAFTS_TS: Dict[str, float] = {}
_LOCK = Lock()


def _draft_dir() -> str:
    os.makedirs(config.DRAFT_DIR, exist_ok=True)
    return config.DRAFT_DIR


def _safe_session_id(session_id: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", session_id)


def _draft_path(session_id: str) -> str:
    return os.path.join(_draft_dir(), f"{_safe_session_id(session_id)}.json")


def _expired(ts: Optional[float]) -> bool:
    if not ts:
        return True
    return config.DRAFT_TTL_SECS > 0 and time.time() - ts > config.DRAFT_TTL_SECS


def _load_from_disk(session_id: str) -> Optional[Dict[str, str]]:
    blob = read_json(_draft_path(session_id), None)
    if not isinstance(blob, dict):
        return None
    if _expired(blob.get("updated_at")):
        _delete_from_disk(session_id)
        return None
    items = blob.get("items")
    if not isinstance(items, dict):
        return None
    return {str(k): str(v) for k, v in items.items()}


def _save_to_disk(session_id: str, items: Dict[str, str], ts: float) -> None:
    try:
        write_json(_draft_path(session_id), {"updated_at": ts, "items": items})
    except OSError:
        log.exception("Failed to save draft to disk session=%s", session_id)


def _delete_from_disk(session_id: str) -> None:
    try:
        path = _draft_path(session_id)
        if os.path.exists(path):
            os.remove(path)
    except OSError:
        log.exception("Failed to delete draft from disk session=%s", session_id)


def _load(session_id: str) -> Dict[str, str]:
    """Caller must hold _LOCK."""
    items = _DRAFTS.get(session_id)
    if items is not None and not _expired(_DRAFTS_TS.get(session_id)):
        return items
    _DRAFTS.pop(session_id, None)
    _DRAFTS_TS.pop(session_id, None)

    items = _load_from_disk(session_id)
    if not items:
        return {}
    _DRAFTS[session_id] = items
    _DRAFTS_TS[session_id] = time.time()
    return items


def _sweep_expired() -> None:
    """Caller must hold _LOCK. Drops idle drafts from memory; disk copies expire on their next load."""
    for sid in [sid for sid, ts in _DRAFTS_TS.items() if _expired(ts)]:
        _DRAFTS.pop(sid, None)
        _DRAFTS_TS.pop(sid, None)


def _touch(session_id: str, items: Dict[str, str]) -> None:
    """Caller must hold _LOCK."""
    ts = time.time()
    _sweep_expired()
    _DRAFTS[session_id] = items
    _DRAFTS_TS[session_id] = ts
    _save_to_disk(session_id, items, ts)


def get_draft(session_id: str) -> Dict[str, str]:
    with _LOCK:
        return dict(_load(session_id))


def get_item(session_id: str, key: str) -> Optional[str]:
    with _LOCK:
        return _load(session_id).get(key)


def set_item(session_id: str, key: str, value: str) -> None:
    with _LOCK:
        items = dict(_load(session_id))
        items[key] = value
        _touch(session_id, items)


def remove_item(session_id: str, key: str) -> bool:
    with _LOCK:
        items = dict(_load(session_id))
        if key not in items:
            return False
        items.pop(key)
        _touch(session_id, items)
        return True


def discard_draft(session_id: str) -> None:
    with _LOCK:
        _DRAFTS.pop(session_id, None)
        _DRAFTS_TS.pop(session_id, None)
        _delete_from_disk(session_id)
    log.info("[Draft] discarded session=%s", session_id)
