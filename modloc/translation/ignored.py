"""
Ignored Source Texts

Source texts such as "placeholder" or "[unseen]" that are never translated
nor shipped in compilations. Enabled texts are cached lowercased and trimmed
so checks do not hit the database.
"""

import sqlite3
import threading
from typing import Optional, List, Dict, Any, Set

from modloc.core import database as db
from modloc.core.schema import DEFAULT_IGNORED_SOURCE_TEXTS
from modloc.errors import AlreadyExistsError, InvalidDataError, NotFoundError
from modloc.logger import get_logger

logger = get_logger(__name__)


def _row(row) -> Dict[str, Any]:
    item = dict(row)
    item["is_enabled"] = bool(item["is_enabled"])
    return item


def _build_sql_condition(texts: Set[str], alias: str = "tu") -> str:
    if not texts:
        return ""
    escaped = ", ".join("'" + t.replace("'", "''") + "'" for t in sorted(texts))
    return f"LOWER(TRIM({alias}.source_text)) IN ({escaped})"


class IgnoredSourceTextService:
    """CRUD for ignored source texts plus the cached skip filter."""

    def __init__(self):
        self._cached_texts: Optional[Set[str]] = None
        self._lock = threading.Lock()

    # ============================================================
    # Cache
    # ============================================================

    @property
    def cache_loaded(self) -> bool:
        return self._cached_texts is not None

    def ensure_cache_loaded(self):
        if self._cached_texts is None:
            self.refresh_cache()

    def refresh_cache(self):
        try:
            texts = {item["source_text"].strip().lower() for item in self.get_enabled()}
        except sqlite3.Error as e:
            logger.warning(f"Failed to load ignored source texts cache: {e}")
            texts = set()
        with self._lock:
            self._cached_texts = texts
        logger.debug(f"Refreshed ignored source texts cache ({len(texts)} texts)")

    def should_skip(self, text: str) -> bool:
        """True when ``text`` matches an enabled ignored text. Always False until the cache is loaded."""
        if self._cached_texts is None:
            logger.warning("Skip filter cache not loaded, returning False")
            return False
        return (text or "").strip().lower() in self._cached_texts

    def get_sql_condition(self, alias: str = "tu") -> str:
        """SQL prefilter for ignored units (ASCII case folding only); falls back to the defaults before the cache loads."""
        texts = self._cached_texts
        if texts is None:
            texts = {t.lower() for t in DEFAULT_IGNORED_SOURCE_TEXTS}
        return _build_sql_condition(texts, alias)

    # ============================================================
    # CRUD
    # ============================================================

    def get_all(self) -> List[Dict[str, Any]]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM ignored_source_texts ORDER BY source_text COLLATE NOCASE ASC")
            return [_row(row) for row in cursor.fetchall()]

    def get_enabled(self) -> List[Dict[str, Any]]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM ignored_source_texts
                WHERE is_enabled = 1
                ORDER BY source_text COLLATE NOCASE ASC
            """)
            return [_row(row) for row in cursor.fetchall()]

    def get_by_id(self, text_id: str) -> Dict[str, Any]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM ignored_source_texts WHERE id = ?", (text_id,))
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"Ignored source text not found: {text_id}")
        return _row(row)

    def _exists(self, text: str, exclude_id: str = None) -> bool:
        query = "SELECT 1 FROM ignored_source_texts WHERE LOWER(source_text) = LOWER(?)"
        params: List[Any] = [text]
        if exclude_id:
            query += " AND id != ?"
            params.append(exclude_id)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchone() is not None

    def _validate_text(self, source_text: str, exclude_id: str = None) -> str:
        text = (source_text or "").strip()
        if not text:
            raise InvalidDataError("Source text cannot be empty", details={"field": "source_text"})
        if self._exists(text, exclude_id):
            raise AlreadyExistsError("Source text already exists (case-insensitive match)",
                                     details={"source_text": text})
        return text

    def add(self, source_text: str) -> Dict[str, Any]:
        text = self._validate_text(source_text)
        text_id = db.new_id()
        ts = db.now_ts()
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO ignored_source_texts (id, source_text, is_enabled, created_at, updated_at)
                VALUES (?, ?, 1, ?, ?)
            """, (text_id, text, ts, ts))
            conn.commit()
        logger.debug(f"Added ignored source text: {text!r}")
        self.refresh_cache()
        return self.get_by_id(text_id)

    def update(self, text_id: str, source_text: str) -> Dict[str, Any]:
        text = self._validate_text(source_text, exclude_id=text_id)
        self.get_by_id(text_id)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE ignored_source_texts SET source_text = ?, updated_at = ? WHERE id = ?
            """, (text, db.now_ts(), text_id))
            conn.commit()
        self.refresh_cache()
        return self.get_by_id(text_id)

    def delete(self, text_id: str):
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM ignored_source_texts WHERE id = ?", (text_id,))
            conn.commit()
            deleted = cursor.rowcount
        if not deleted:
            raise NotFoundError(f"Ignored source text not found: {text_id}")
        self.refresh_cache()

    def toggle_enabled(self, text_id: str) -> Dict[str, Any]:
        self.get_by_id(text_id)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE ignored_source_texts
                SET is_enabled = 1 - is_enabled, updated_at = ?
                WHERE id = ?
            """, (db.now_ts(), text_id))
            conn.commit()
        self.refresh_cache()
        return self.get_by_id(text_id)

    def reset_to_defaults(self) -> List[Dict[str, Any]]:
        """Replace every ignored text with the built-in defaults."""
        ts = db.now_ts()
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM ignored_source_texts")
            cursor.executemany("""
                INSERT INTO ignored_source_texts (id, source_text, is_enabled, created_at, updated_at)
                VALUES (?, ?, 1, ?, ?)
            """, [(db.new_id(), text, ts, ts) for text in DEFAULT_IGNORED_SOURCE_TEXTS])
            conn.commit()
        logger.info("Reset ignored source texts to defaults")
        self.refresh_cache()
        return self.get_all()

    def get_enabled_count(self) -> int:
        return len(self.get_enabled())

    def get_total_count(self) -> int:
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM ignored_source_texts")
            return cursor.fetchone()[0]


_service: Optional[IgnoredSourceTextService] = None
_service_lock = threading.Lock()


def get_ignored_text_service() -> IgnoredSourceTextService:
    """Process-wide service instance so the cache is shared."""
    global _service
    with _service_lock:
        if _service is None:
            _service = IgnoredSourceTextService()
        return _service


def reset_ignored_text_service():
    """Drop the shared instance (used after a factory reset and in tests)."""
    global _service
    with _service_lock:
        _service = None
