"""
Compilation CRUD Operations

SQL access for the compilations and compilation_projects tables.
"""

import sqlite3
from typing import Optional, List, Dict, Any

from modloc.core import database as db


def insert_compilation(name: str, prefix: str, pack_name: str, game_installation_id: str,
                       language_id: Optional[str]) -> str:
    compilation_id = db.new_id()
    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO compilations (id, name, prefix, pack_name, game_installation_id,
                                      language_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (compilation_id, name, prefix, pack_name, game_installation_id, language_id, ts, ts))
        conn.commit()
    return compilation_id


def get_compilation_by_id(compilation_id: str) -> Optional[Dict[str, Any]]:
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM compilations WHERE id = ?", (compilation_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_all_compilations(game_installation_id: str = None) -> List[Dict[str, Any]]:
    """List compilations with their game name and project count, most recently updated first."""
    query = """
        SELECT c.*, gi.game_name, COUNT(cp.id) AS project_count
        FROM compilations c
        LEFT JOIN game_installations gi ON gi.id = c.game_installation_id
        LEFT JOIN compilation_projects cp ON cp.compilation_id = c.id
    """
    params: List[Any] = []
    if game_installation_id:
        query += " WHERE c.game_installation_id = ?"
        params.append(game_installation_id)
    query += " GROUP BY c.id ORDER BY c.updated_at DESC, c.name ASC"
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]


def update_compilation(compilation_id: str, **fields):
    """Update name, prefix, pack_name and/or language_id."""
    allowed = ("name", "prefix", "pack_name", "language_id")
    updates = []
    params: List[Any] = []
    for column in allowed:
        if column in fields:
            updates.append(f"{column} = ?")
            params.append(fields[column])
    if not updates:
        return

    updates.append("updated_at = ?")
    params.append(db.now_ts())
    params.append(compilation_id)
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE compilations SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()


def delete_compilation(compilation_id: str) -> int:
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM compilations WHERE id = ?", (compilation_id,))
        conn.commit()
        return cursor.rowcount


def set_compilation_projects(compilation_id: str, project_ids: List[str]):
    """Replace the project list; list order becomes sort_order."""
    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM compilation_projects WHERE compilation_id = ?", (compilation_id,))
        cursor.executemany("""
            INSERT INTO compilation_projects (id, compilation_id, project_id, sort_order, added_at)
            VALUES (?, ?, ?, ?, ?)
        """, [(db.new_id(), compilation_id, project_id, index, ts)
              for index, project_id in enumerate(dict.fromkeys(project_ids))])
        cursor.execute("UPDATE compilations SET updated_at = ? WHERE id = ?", (ts, compilation_id))
        conn.commit()


def get_compilation_projects(compilation_id: str) -> List[Dict[str, Any]]:
    """Projects of a compilation in sort order."""
    with db.get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT p.*, cp.sort_order, cp.added_at
            FROM compilation_projects cp
            INNER JOIN projects p ON p.id = cp.project_id
            WHERE cp.compilation_id = ?
            ORDER BY cp.sort_order ASC
        """, (compilation_id,))
        return [dict(row) for row in cursor.fetchall()]


def update_after_generation(compilation_id: str, output_path: str):
    ts = db.now_ts()
    with db.get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE compilations
            SET last_output_path = ?, last_generated_at = ?, updated_at = ?
            WHERE id = ?
        """, (output_path, ts, ts, compilation_id))
        conn.commit()
