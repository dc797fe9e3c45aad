"""
LLM Custom Rules

Free-text instructions appended to translation prompts. Global rules have
no project and are ordered by sort_order; each project may carry one extra
rule of its own.
"""

import sqlite3
from typing import Optional, List, Dict, Any

from modloc.core import database as db
from modloc.errors import InvalidDataError, NotFoundError
from modloc.logger import get_logger

logger = get_logger(__name__)


def _row(row) -> Dict[str, Any]:
    item = dict(row)
    item["is_enabled"] = bool(item["is_enabled"])
    return item


def _clean_text(rule_text: str) -> str:
    text = (rule_text or "").strip()
    if not text:
        raise InvalidDataError("Rule text cannot be empty", details={"field": "rule_text"})
    return text


class LlmCustomRulesService:

    # ============================================================
    # Global rules
    # ============================================================

    def get_all_rules(self) -> List[Dict[str, Any]]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM llm_custom_rules
                WHERE project_id IS NULL
                ORDER BY sort_order ASC, created_at ASC
            """)
            return [_row(row) for row in cursor.fetchall()]

    def get_enabled_rules(self) -> List[Dict[str, Any]]:
        return [rule for rule in self.get_all_rules() if rule["is_enabled"]]

    def get_rule_by_id(self, rule_id: str) -> Dict[str, Any]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM llm_custom_rules WHERE id = ?", (rule_id,))
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"Rule not found: {rule_id}")
        return _row(row)

    def _insert(self, rule_text: str, sort_order: int, project_id: str = None) -> str:
        rule_id = db.new_id()
        ts = db.now_ts()
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO llm_custom_rules (id, rule_text, is_enabled, sort_order, project_id,
                                              created_at, updated_at)
                VALUES (?, ?, 1, ?, ?, ?, ?)
            """, (rule_id, rule_text, sort_order, project_id, ts, ts))
            conn.commit()
        return rule_id

    def add_rule(self, rule_text: str) -> Dict[str, Any]:
        """Add an enabled global rule after the existing ones."""
        text = _clean_text(rule_text)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COALESCE(MAX(sort_order) + 1, 0) FROM llm_custom_rules WHERE project_id IS NULL")
            sort_order = cursor.fetchone()[0]
        rule_id = self._insert(text, sort_order)
        logger.debug(f"Added custom rule {rule_id}: {text[:50]}")
        return self.get_rule_by_id(rule_id)

    def update_rule(self, rule_id: str, rule_text: str) -> Dict[str, Any]:
        text = _clean_text(rule_text)
        self.get_rule_by_id(rule_id)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("UPDATE llm_custom_rules SET rule_text = ?, updated_at = ? WHERE id = ?",
                           (text, db.now_ts(), rule_id))
            conn.commit()
        return self.get_rule_by_id(rule_id)

    def delete_rule(self, rule_id: str):
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM llm_custom_rules WHERE id = ?", (rule_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(f"Rule not found: {rule_id}")
        logger.debug(f"Deleted custom rule {rule_id}")

    def toggle_enabled(self, rule_id: str) -> Dict[str, Any]:
        self.get_rule_by_id(rule_id)
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE llm_custom_rules SET is_enabled = 1 - is_enabled, updated_at = ?
                WHERE id = ?
            """, (db.now_ts(), rule_id))
            conn.commit()
        return self.get_rule_by_id(rule_id)

    def reorder_rules(self, rule_ids: List[str]) -> List[Dict[str, Any]]:
        """Set sort_order from the position of each id in ``rule_ids``."""
        ts = db.now_ts()
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                "UPDATE llm_custom_rules SET sort_order = ?, updated_at = ? WHERE id = ? AND project_id IS NULL",
                [(index, ts, rule_id) for index, rule_id in enumerate(rule_ids)],
            )
            conn.commit()
        return self.get_all_rules()

    def get_combined_rules_text(self) -> str:
        return "\n".join(rule["rule_text"] for rule in self.get_enabled_rules())

    def get_enabled_rules_count(self) -> int:
        return len(self.get_enabled_rules())

    def has_enabled_rules(self) -> bool:
        return self.get_enabled_rules_count() > 0

    # ============================================================
    # Project rules
    # ============================================================

    def get_rule_for_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        with db.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM llm_custom_rules WHERE project_id = ?
                ORDER BY created_at ASC LIMIT 1
            """, (project_id,))
            row = cursor.fetchone()
            return _row(row) if row else None

    def set_project_rule(self, project_id: str, rule_text: str) -> Dict[str, Any]:
        text = _clean_text(rule_text)
        existing = self.get_rule_for_project(project_id)
        if existing:
            logger.debug(f"Updating rule for project {project_id}")
            return self.update_rule(existing["id"], text)

        logger.debug(f"Creating rule for project {project_id}")
        rule_id = self._insert(text, 0, project_id)
        return self.get_rule_by_id(rule_id)

    def delete_project_rule(self, project_id: str) -> int:
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM llm_custom_rules WHERE project_id = ?", (project_id,))
            conn.commit()
            return cursor.rowcount

    def toggle_project_rule_enabled(self, project_id: str) -> Optional[Dict[str, Any]]:
        existing = self.get_rule_for_project(project_id)
        if existing is None:
            return None
        return self.toggle_enabled(existing["id"])

    def get_combined_rules_text_for_project(self, project_id: str) -> str:
        """Enabled global rules followed by the project's rule when enabled."""
        texts = [rule["rule_text"] for rule in self.get_enabled_rules()]
        project_rule = self.get_rule_for_project(project_id)
        if project_rule and project_rule["is_enabled"]:
            texts.append(project_rule["rule_text"])
        return "\n".join(texts)
