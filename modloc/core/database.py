"""
Database CRUD Operations Module

This module handles the shared database CRUD operations for:
- App Config
- Languages
- Game Installations
- Projects, project languages, translation units and versions

Feature-specific tables (glossaries, compilations, LLM models and rules,
ignored source texts) keep their queries next to the services that own them.

For schema management and migrations, see core/schema.py
"""

import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable

from modloc.errors import AlreadyExistsError

DB_FILE = Path(__file__).parent.parent / "modloc.db"

# Keys present in most mods that never count as compilation conflicts
EXCLUDED_CONFLICT_KEYS = ("PLACEHOLDER", "PLACEHOLDER1", "HIDDEN")

# SQLite parameter limit is 999; leave room for project id parameters
KEY_BATCH_SIZE = 400


def get_connection():
    """Get a database connection with foreign key enforcement enabled."""
    conn = sqlite3.connect(DB_FILE)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def now_ts() -> int:
    """Current time as integer epoch seconds (the unit every table uses)."""
    return int(time.time())


def new_id() -> str:
    return uuid.uuid4().hex


def placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


# ============================================================
# App Config Operations
# ============================================================

def get_app_config(key: str) -> Optional[str]:
    """Get an app config value by key."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(key: str, value: str):
    """Set an app config value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO app_config (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (key, value))
        conn.commit()


# ============================================================
# Language Operations
# ============================================================

def get_active_languages() -> List[Dict[str, Any]]:
    """Get active languages ordered by name."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM languages WHERE is_active = 1 ORDER BY name ASC")
        return [dict(row) for row in cursor.fetchall()]


def get_all_languages() -> List[Dict[str, Any]]:
    """Get all languages, active or not."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM languages ORDER BY name ASC")
        return [dict(row) for row in cursor.fetchall()]


def get_language_by_id(language_id: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM languages WHERE id = ?", (language_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_language_by_code(code: str) -> Optional[Dict[str, Any]]:
    """Get a language by its code (case-insensitive)."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM languages WHERE LOWER(code) = LOWER(?)", (code,))
        row = cursor.fetchone()
        return dict(row) if row else None


def insert_language(code: str, name: str, native_name: str = None,
                    is_active: bool = True, language_id: str = None) -> Dict[str, Any]:
    """
    Insert a new language.

    Raises:
        AlreadyExistsError: If the code already exists.
    """
    language_id = language_id or f"lang_{code.lower()}"
    if get_language_by_code(code):
        raise AlreadyExistsError(f"Language already exists: {code}", details={"code": code})
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO languages (id, code, name, native_name, is_active)
            VALUES (?, ?, ?, ?, ?)
        """, (language_id, code, name, native_name or name, 1 if is_active else 0))
        conn.commit()
    return get_language_by_id(language_id)


# ============================================================
# Game Installation Operations
# ============================================================

def get_all_game_installations() -> List[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM game_installations ORDER BY game_name ASC")
        return [dict(row) for row in cursor.fetchall()]


def get_game_installation_by_id(installation_id: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM game_installations WHERE id = ?", (installation_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_game_installation_by_game_code(game_code: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM game_installations WHERE game_code = ?", (game_code,))
        row = cursor.fetchone()
        return dict(row) if row else None


def insert_game_installation(game_code: str, game_name: str, installation_path: str = None,
                             steam_workshop_path: str = None, steam_app_id: str = None,
                             is_auto_detected: bool = False) -> Dict[str, Any]:
    """
    Insert a game installation.

    Raises:
        AlreadyExistsError: If an installation with the same game code exists.
    """
    if get_game_installation_by_game_code(game_code):
        raise AlreadyExistsError(f"Game installation already exists: {game_code}",
                                 details={"game_code": game_code})
    installation_id = new_id()
    ts = now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO game_installations (
                id, game_code, game_name, installation_path, steam_workshop_path,
                steam_app_id, is_auto_detected, is_valid, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
        """, (installation_id, game_code, game_name, installation_path, steam_workshop_path,
              steam_app_id, 1 if is_auto_detected else 0, ts, ts))
        conn.commit()
    return get_game_installation_by_id(installation_id)


# ============================================================
# Project Operations
# ============================================================

def create_project(name: str, game_installation_id: str, mod_steam_id: str = None,
                   metadata: Optional[Dict[str, Any]] = None) -> str:
    """Create a new translation project and return its id."""
    project_id = new_id()
    ts = now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO projects (id, name, mod_steam_id, game_installation_id, metadata,
                                  created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (project_id, name, mod_steam_id, game_installation_id,
              json.dumps(metadata, ensure_ascii=False) if metadata else None, ts, ts))
        conn.commit()
    return project_id


def get_project_by_id(project_id: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_all_projects(game_installation_id: str = None) -> List[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        if game_installation_id:
            cursor.execute("SELECT * FROM projects WHERE game_installation_id = ? ORDER BY name ASC",
                           (game_installation_id,))
        else:
            cursor.execute("SELECT * FROM projects ORDER BY name ASC")
        return [dict(row) for row in cursor.fetchall()]


def get_project_display_name(project: Dict[str, Any]) -> str:
    """Return the mod title stored in project metadata, falling back to the project name."""
    raw = project.get("metadata") or project.get("project_metadata")
    if raw:
        try:
            metadata = json.loads(raw)
            if isinstance(metadata, dict) and metadata.get("mod_title"):
                return metadata["mod_title"]
        except (TypeError, ValueError):
            pass
    return project.get("name") or project.get("project_name") or ""


def add_project_language(project_id: str, language_id: str) -> str:
    """Attach a target language to a project; returns the project_language id."""
    ts = now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR IGNORE INTO project_languages (id, project_id, language_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """, (new_id(), project_id, language_id, ts, ts))
        cursor.execute("""
            SELECT id FROM project_languages WHERE project_id = ? AND language_id = ?
        """, (project_id, language_id))
        row = cursor.fetchone()
        conn.commit()
        return row[0]


def upsert_translation_unit(project_id: str, key: str, source_text: str,
                            source_loc_file: str = None, is_obsolete: bool = False) -> str:
    """Insert or update a translation unit identified by (project, key); returns its id."""
    ts = now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO translation_units (id, project_id, key, source_text, source_loc_file,
                                           is_obsolete, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id, key) DO UPDATE SET
                source_text = excluded.source_text,
                source_loc_file = excluded.source_loc_file,
                is_obsolete = excluded.is_obsolete,
                updated_at = excluded.updated_at
        """, (new_id(), project_id, key, source_text, source_loc_file,
              1 if is_obsolete else 0, ts, ts))
        cursor.execute("SELECT id FROM translation_units WHERE project_id = ? AND key = ?",
                       (project_id, key))
        unit_id = cursor.fetchone()[0]
        conn.commit()
        return unit_id


def upsert_translation_version(unit_id: str, project_language_id: str, translated_text: str,
                               status: str = "translated", is_manually_edited: bool = False) -> str:
    """Insert or update the translation of a unit for one project language."""
    ts = now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO translation_versions (id, unit_id, project_language_id, translated_text,
                                              is_manually_edited, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(unit_id, project_language_id) DO UPDATE SET
                translated_text = excluded.translated_text,
                is_manually_edited = excluded.is_manually_edited,
                status = excluded.status,
                updated_at = excluded.updated_at
        """, (new_id(), unit_id, project_language_id, translated_text,
              1 if is_manually_edited else 0, status, ts, ts))
        cursor.execute("""
            SELECT id FROM translation_versions WHERE unit_id = ? AND project_language_id = ?
        """, (unit_id, project_language_id))
        version_id = cursor.fetchone()[0]
        conn.commit()
        return version_id


def get_translated_units(project_id: str, language_id: str,
                         skip_condition: str = None) -> List[Dict[str, Any]]:
    """
    Get the active units of a project that have a translation for a language.

    Args:
        project_id: Project identifier.
        language_id: Target language identifier.
        skip_condition: Optional SQL condition on ``tu`` rows to exclude
            (e.g. the ignored source text filter).

    Returns:
        Rows with key, source_text and translated_text ordered by key.
    """
    query = """
        SELECT tu.id AS unit_id, tu.key, tu.source_text, tu.source_loc_file,
               tv.translated_text, tv.status
        FROM translation_units tu
        INNER JOIN project_languages pl ON pl.project_id = tu.project_id AND pl.language_id = ?
        INNER JOIN translation_versions tv ON tv.unit_id = tu.id AND tv.project_language_id = pl.id
        WHERE tu.project_id = ?
          AND tu.is_obsolete = 0
          AND tv.translated_text IS NOT NULL
          AND tv.translated_text != ''
    """
    if skip_condition:
        query += f" AND NOT ({skip_condition})"
    query += " ORDER BY tu.key ASC"
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, (language_id, project_id))
        return [dict(row) for row in cursor.fetchall()]


# ============================================================
# Conflict Queries
# ============================================================

def find_duplicate_keys_across_projects(project_ids: List[str]) -> List[str]:
    """
    Find unit keys defined by more than one of the given projects.

    Obsolete units and the placeholder keys listed in EXCLUDED_CONFLICT_KEYS
    (compared case-insensitively) are ignored.
    """
    if len(project_ids) < 2:
        return []

    excluded = " AND ".join("UPPER(key) != ?" for _ in EXCLUDED_CONFLICT_KEYS)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"""
            SELECT key
            FROM translation_units
            WHERE project_id IN ({placeholders(len(project_ids))})
              AND is_obsolete = 0
              AND {excluded}
            GROUP BY key
            HAVING COUNT(DISTINCT project_id) > 1
            ORDER BY key ASC
        """, (*project_ids, *EXCLUDED_CONFLICT_KEYS))
        return [row[0] for row in cursor.fetchall()]


def get_units_for_keys_across_projects(project_ids: List[str], keys: Iterable[str],
                                       language_id: str) -> List[Dict[str, Any]]:
    """
    Get units for specific keys across projects, with their translation for a language.

    Keys are queried in batches of KEY_BATCH_SIZE. Rows are ordered by key,
    then project name, so conflict pairing is stable.
    """
    keys = list(keys)
    if not project_ids or not keys:
        return []

    results: List[Dict[str, Any]] = []
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        for start in range(0, len(keys), KEY_BATCH_SIZE):
            batch = keys[start:start + KEY_BATCH_SIZE]
            cursor.execute(f"""
                SELECT
                    tu.id AS unit_id,
                    tu.project_id,
                    tu.key,
                    tu.source_text,
                    tu.source_loc_file,
                    tu.updated_at AS unit_updated_at,
                    p.name AS project_name,
                    p.metadata AS project_metadata,
                    tv.id AS version_id,
                    tv.translated_text,
                    tv.status,
                    tv.is_manually_edited,
                    tv.updated_at AS version_updated_at
                FROM translation_units tu
                INNER JOIN projects p ON tu.project_id = p.id
                INNER JOIN project_languages pl ON pl.project_id = tu.project_id AND pl.language_id = ?
                LEFT JOIN translation_versions tv ON tv.unit_id = tu.id AND tv.project_language_id = pl.id
                WHERE tu.project_id IN ({placeholders(len(project_ids))})
                  AND tu.key IN ({placeholders(len(batch))})
                  AND tu.is_obsolete = 0
                ORDER BY tu.key ASC, p.name ASC
            """, (language_id, *project_ids, *batch))
            results.extend(dict(row) for row in cursor.fetchall())
    return results
