"""
Glossary CRUD Operations

SQL access for the glossaries and glossary_entries tables.
Validation and business rules live in glossary/service.py.
"""

import sqlite3
from typing import Optional, List, Dict, Any

from modloc.core import database as db

_GLOSSARY_SELECT = """
    SELECT g.*, COUNT(e.id) AS entry_count
    FROM glossaries g
    LEFT JOIN glossary_entries e ON e.glossary_id = g.id
"""


def _glossary(row) -> Dict[str, Any]:
    glossary = dict(row)
    glossary["is_global"] = bool(glossary["is_global"])
    return glossary


def _entry(row) -> Dict[str, Any]:
    entry = dict(row)
    entry["case_sensitive"] = bool(entry["case_sensitive"])
    return entry


# ============================================================
# Glossaries
# ============================================================

def insert_glossary(name: str, description: Optional[str], is_global: bool,
                    game_installation_id: Optional[str],
                    target_language_id: Optional[str]) -> str:
    glossary_id = db.new_id()
    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO glossaries (id, name, description, is_global, game_installation_id,
                                    target_language_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (glossary_id, name, description, 1 if is_global else 0,
              game_installation_id, target_language_id, ts, ts))
        conn.commit()
    return glossary_id


def get_glossary_by_id(glossary_id: str) -> Optional[Dict[str, Any]]:
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(_GLOSSARY_SELECT + " WHERE g.id = ? GROUP BY g.id", (glossary_id,))
        row = cursor.fetchone()
        return _glossary(row) if row else None


def get_glossary_by_name(name: str) -> Optional[Dict[str, Any]]:
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(_GLOSSARY_SELECT + " WHERE g.name = ? GROUP BY g.id", (name,))
        row = cursor.fetchone()
        return _glossary(row) if row else None


def get_glossaries_by_ids(glossary_ids: List[str]) -> List[Dict[str, Any]]:
    if not glossary_ids:
        return []
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(
            _GLOSSARY_SELECT
            + f" WHERE g.id IN ({db.placeholders(len(glossary_ids))}) GROUP BY g.id ORDER BY g.name ASC",
            list(glossary_ids),
        )
        return [_glossary(row) for row in cursor.fetchall()]


def get_all_glossaries(game_installation_id: str = None,
                       include_universal: bool = True) -> List[Dict[str, Any]]:
    """
    List glossaries with their entry counts, ordered by name.

    With a game: global glossaries plus that game's glossaries (only the
    game's when include_universal is False). Without a game: everything, or
    only game-specific glossaries when include_universal is False.
    """
    conditions = []
    params: List[Any] = []
    if game_installation_id:
        if include_universal:
            conditions.append("(g.is_global = 1 OR g.game_installation_id = ?)")
        else:
            conditions.append("g.game_installation_id = ?")
        params.append(game_installation_id)
    elif not include_universal:
        conditions.append("g.is_global = 0")

    query = _GLOSSARY_SELECT
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " GROUP BY g.id ORDER BY g.name ASC"

    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [_glossary(row) for row in cursor.fetchall()]


def update_glossary(glossary_id: str, name: str = None, description: str = None):
    with db.get_connection() as conn:
        cursor = conn.cursor()
        updates = []
        params = []

        if name is not None:
            updates.append("name = ?")
            params.append(name)
        if description is not None:
            updates.append("description = ?")
            params.append(description or None)

        if updates:
            updates.append("updated_at = ?")
            params.append(db.now_ts())
            params.append(glossary_id)
            cursor.execute(f"UPDATE glossaries SET {', '.join(updates)} WHERE id = ?", params)
            conn.commit()


def delete_glossary(glossary_id: str) -> int:
    """Delete a glossary; entries go with it through ON DELETE CASCADE."""
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM glossaries WHERE id = ?", (glossary_id,))
        conn.commit()
        return cursor.rowcount


# ============================================================
# Glossary Entries
# ============================================================

def insert_entry(glossary_id: str, target_language_code: str, source_term: str,
                 target_term: str, case_sensitive: bool = False, notes: str = None) -> str:
    entry_id = db.new_id()
    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO glossary_entries (id, glossary_id, target_language_code, source_term,
                                          target_term, notes, case_sensitive, usage_count,
                                          created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        """, (entry_id, glossary_id, target_language_code, source_term, target_term, notes,
              1 if case_sensitive else 0, ts, ts))
        cursor.execute("UPDATE glossaries SET updated_at = ? WHERE id = ?", (ts, glossary_id))
        conn.commit()
    return entry_id


def get_entry_by_id(entry_id: str) -> Optional[Dict[str, Any]]:
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM glossary_entries WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
        return _entry(row) if row else None


def find_entry(glossary_id: str, target_language_code: str, source_term: str,
               exclude_id: str = None) -> Optional[Dict[str, Any]]:
    """Entry with the same glossary, language (any case) and exact source term. case_sensitive is not compared."""
    query = """
        SELECT * FROM glossary_entries
        WHERE glossary_id = ? AND LOWER(target_language_code) = LOWER(?) AND source_term = ?
    """
    params: List[Any] = [glossary_id, target_language_code, source_term]
    if exclude_id:
        query += " AND id != ?"
        params.append(exclude_id)
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        return _entry(row) if row else None


def get_entries_by_glossary(glossary_id: str,
                            target_language_code: str = None) -> List[Dict[str, Any]]:
    query = "SELECT * FROM glossary_entries WHERE glossary_id = ?"
    params: List[Any] = [glossary_id]
    if target_language_code:
        query += " AND LOWER(target_language_code) = LOWER(?)"
        params.append(target_language_code)
    query += " ORDER BY source_term COLLATE NOCASE ASC"
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [_entry(row) for row in cursor.fetchall()]


def update_entry(entry_id: str, **fields):
    """Update the given entry columns (target_language_code, source_term, target_term, notes, case_sensitive)."""
    allowed = ("target_language_code", "source_term", "target_term", "notes", "case_sensitive")
    updates = []
    params: List[Any] = []
    for column in allowed:
        if column in fields:
            value = fields[column]
            if column == "case_sensitive":
                value = 1 if value else 0
            updates.append(f"{column} = ?")
            params.append(value)
    if not updates:
        return

    updates.append("updated_at = ?")
    params.append(db.now_ts())
    params.append(entry_id)
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE glossary_entries SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()


def delete_entry(entry_id: str) -> int:
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM glossary_entries WHERE id = ?", (entry_id,))
        conn.commit()
        return cursor.rowcount


def delete_entries(entry_ids: List[str]) -> int:
    if not entry_ids:
        return 0
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"DELETE FROM glossary_entries WHERE id IN ({db.placeholders(len(entry_ids))})",
            list(entry_ids),
        )
        conn.commit()
        return cursor.rowcount


def search_entries(query: str, glossary_ids: List[str] = None,
                   target_language_code: str = None, limit: int = 500) -> List[Dict[str, Any]]:
    """Case-insensitive substring search on source and target terms."""
    pattern = f"%{query.lower()}%"
    sql = """
        SELECT * FROM glossary_entries
        WHERE (LOWER(source_term) LIKE ? OR LOWER(target_term) LIKE ?)
    """
    params: List[Any] = [pattern, pattern]
    if glossary_ids:
        sql += f" AND glossary_id IN ({db.placeholders(len(glossary_ids))})"
        params.extend(glossary_ids)
    if target_language_code:
        sql += " AND LOWER(target_language_code) = LOWER(?)"
        params.append(target_language_code)
    sql += " ORDER BY source_term COLLATE NOCASE ASC LIMIT ?"
    params.append(limit)
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(sql, params)
        return [_entry(row) for row in cursor.fetchall()]


def increment_usage_count(entry_ids: List[str]) -> int:
    if not entry_ids:
        return 0
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"UPDATE glossary_entries SET usage_count = usage_count + 1 "
            f"WHERE id IN ({db.placeholders(len(entry_ids))})",
            list(entry_ids),
        )
        conn.commit()
        return cursor.rowcount
