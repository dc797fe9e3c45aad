"""
LLM Provider Models

Models fetched from each provider's API. Users enable the ones they want in
the model picker; a single model across all providers is the default.
Models no longer returned by the provider are archived: an archived model
is disabled, never the default, and cannot be enabled until unarchived.
"""

import re
import sqlite3
from typing import Optional, List, Dict, Any, Iterable

from modloc.config import PROVIDER_NAME_PATTERN
from modloc.core import database as db
from modloc.errors import InvalidDataError, NotFoundError
from modloc.logger import get_logger

logger = get_logger(__name__)


def _row(row) -> Dict[str, Any]:
    item = dict(row)
    for flag in ("is_enabled", "is_default", "is_archived"):
        item[flag] = bool(item[flag])
    return item


def _select(where: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(f"""
            SELECT * FROM llm_provider_models
            WHERE {where}
            ORDER BY display_name COLLATE NOCASE ASC, model_id ASC
        """, list(params))
        return [_row(row) for row in cursor.fetchall()]


def validate_model(provider_code: str, model_id: str) -> Optional[str]:
    if not provider_code or not re.match(PROVIDER_NAME_PATTERN, provider_code):
        return f"Invalid provider code: {provider_code!r}"
    if not (model_id or "").strip():
        return "Model id cannot be empty"
    return None


# ============================================================
# Queries
# ============================================================

def get_by_id(model_pk: str) -> Dict[str, Any]:
    models = _select("id = ?", (model_pk,))
    if not models:
        raise NotFoundError(f"Model not found: {model_pk}")
    return models[0]


def get_by_provider(provider_code: str, include_archived: bool = False) -> List[Dict[str, Any]]:
    if include_archived:
        return _select("provider_code = ?", (provider_code,))
    return _select("provider_code = ? AND is_archived = 0", (provider_code,))


def get_enabled_by_provider(provider_code: str) -> List[Dict[str, Any]]:
    return _select("provider_code = ? AND is_enabled = 1 AND is_archived = 0", (provider_code,))


def get_available_by_provider(provider_code: str) -> List[Dict[str, Any]]:
    """Non-archived models, enabled or not."""
    return _select("provider_code = ? AND is_archived = 0", (provider_code,))


def get_default_by_provider(provider_code: str) -> Optional[Dict[str, Any]]:
    models = _select("provider_code = ? AND is_default = 1 AND is_archived = 0", (provider_code,))
    return models[0] if models else None


def get_global_default() -> Optional[Dict[str, Any]]:
    models = _select("is_default = 1 AND is_archived = 0")
    return models[0] if models else None


# ============================================================
# State changes
# ============================================================

def _update(model_pk: str, assignments: str, params: Iterable[Any] = ()):
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"UPDATE llm_provider_models SET {assignments}, updated_at = ? WHERE id = ?",
            [*params, db.now_ts(), model_pk],
        )
        conn.commit()


def enable(model_pk: str) -> Dict[str, Any]:
    model = get_by_id(model_pk)
    if model["is_archived"]:
        raise InvalidDataError("Cannot enable an archived model", details={"id": model_pk})
    _update(model_pk, "is_enabled = 1")
    return get_by_id(model_pk)


def disable(model_pk: str) -> Dict[str, Any]:
    get_by_id(model_pk)
    _update(model_pk, "is_enabled = 0")
    return get_by_id(model_pk)


def toggle_enabled(model_pk: str) -> Dict[str, Any]:
    model = get_by_id(model_pk)
    if model["is_enabled"]:
        return disable(model_pk)
    return enable(model_pk)


def set_as_default(model_pk: str) -> Dict[str, Any]:
    """Make the model the single default across all providers and enable it."""
    model = get_by_id(model_pk)
    if model["is_archived"]:
        raise InvalidDataError("Cannot set an archived model as default", details={"id": model_pk})

    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE llm_provider_models SET is_default = 0, updated_at = ? WHERE is_default = 1", (ts,))
        cursor.execute("""
            UPDATE llm_provider_models SET is_default = 1, is_enabled = 1, updated_at = ?
            WHERE id = ?
        """, (ts, model_pk))
        conn.commit()
    logger.info(f"Default model set to {model['provider_code']}/{model['model_id']}")
    return get_by_id(model_pk)


def archive(model_pk: str) -> Dict[str, Any]:
    get_by_id(model_pk)
    _update(model_pk, "is_archived = 1, is_enabled = 0, is_default = 0")
    return get_by_id(model_pk)


def unarchive(model_pk: str) -> Dict[str, Any]:
    get_by_id(model_pk)
    _update(model_pk, "is_archived = 0")
    return get_by_id(model_pk)


def reset_provider_models(provider_code: str) -> int:
    """Delete every stored model of a provider; returns the deleted count."""
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM llm_provider_models WHERE provider_code = ?", (provider_code,))
        conn.commit()
        deleted = cursor.rowcount
    logger.info(f"Reset {deleted} models for {provider_code}")
    return deleted


# ============================================================
# Fetch synchronisation
# ============================================================

def upsert_many(provider_code: str, models: List[Dict[str, str]], fetched_at: int = None) -> int:
    """
    Insert fetched models or refresh existing ones.

    New models start disabled. Existing rows keep their enabled, default and
    archived flags; only display_name and last_fetched_at change.

    Raises:
        InvalidDataError: If any model is invalid; nothing is written.
    """
    for model in models:
        error = validate_model(provider_code, model.get("model_id"))
        if error:
            raise InvalidDataError(f"Invalid model in batch: {model.get('model_id')} - {error}")

    ts = fetched_at if fetched_at is not None else db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.executemany("""
            INSERT INTO llm_provider_models (
                id, provider_code, model_id, display_name, is_enabled, is_default,
                is_archived, created_at, updated_at, last_fetched_at
            ) VALUES (?, ?, ?, ?, 0, 0, 0, ?, ?, ?)
            ON CONFLICT(provider_code, model_id) DO UPDATE SET
                display_name = excluded.display_name,
                last_fetched_at = excluded.last_fetched_at,
                updated_at = excluded.updated_at
        """, [
            (db.new_id(), provider_code, m["model_id"].strip(),
             m.get("display_name") or m["model_id"].strip(), ts, ts, ts)
            for m in models
        ])
        conn.commit()
    return len(models)


def archive_stale_models(provider_code: str, since_timestamp: int) -> int:
    """Archive models last fetched before ``since_timestamp``; returns the archived count."""
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE llm_provider_models
            SET is_archived = 1, is_enabled = 0, is_default = 0, updated_at = ?
            WHERE provider_code = ? AND last_fetched_at < ? AND is_archived = 0
        """, (db.now_ts(), provider_code, since_timestamp))
        conn.commit()
        archived = cursor.rowcount
    if archived:
        logger.info(f"Archived {archived} stale {provider_code} models")
    return archived
