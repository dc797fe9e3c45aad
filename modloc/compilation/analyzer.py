"""
Conflict analysis across the projects of a compilation.

Two projects conflict on a key when both define it with different source
texts: the merged pack can only carry one of the two translations.
"""

from typing import Any, Callable, Dict, List, Optional

from modloc.core import database as db
from modloc.compilation.conflicts import (
    KEY_COLLISION_DIFFERENT_SOURCE,
    USE_FIRST,
    USE_SECOND,
    CompilationConflict,
    ConflictAnalysisResult,
    ConflictEntry,
    ConflictResolutions,
    ConflictSummary,
)
from modloc.logger import get_logger

logger = get_logger(__name__)

# on_progress(current, total, phase)
ProgressCallback = Callable[[int, int, str], None]

ANALYSIS_STEPS = 4


def _entry_from_row(row: Dict[str, Any]) -> ConflictEntry:
    return ConflictEntry(
        project_id=row["project_id"],
        project_name=db.get_project_display_name(row),
        unit_id=row["unit_id"],
        source_text=row["source_text"],
        translated_text=row.get("translated_text"),
        status=row.get("status"),
        is_manually_edited=row.get("is_manually_edited") == 1,
        updated_at=row.get("version_updated_at"),
        source_loc_file=row.get("source_loc_file"),
    )


def detect_conflicts(rows: List[Dict[str, Any]]) -> List[CompilationConflict]:
    """
    Pair up rows sharing a key.

    Rows must be ordered by key then project name. Pairs from the same
    project, or whose source texts are identical, are not conflicts.
    """
    by_key: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        by_key.setdefault(row["key"], []).append(row)

    conflicts: List[CompilationConflict] = []
    for key, units in by_key.items():
        for i in range(len(units)):
            for j in range(i + 1, len(units)):
                first, second = units[i], units[j]
                if first["project_id"] == second["project_id"]:
                    continue
                if first["source_text"] == second["source_text"]:
                    continue
                conflicts.append(CompilationConflict(
                    id=f"conflict_{len(conflicts)}",
                    key=key,
                    conflict_type=KEY_COLLISION_DIFFERENT_SOURCE,
                    first_entry=_entry_from_row(first),
                    second_entry=_entry_from_row(second),
                ))
    return conflicts


class ConflictAnalyzer:
    """Finds and resolves key conflicts between translation projects."""

    def analyze(self, project_ids: List[str], language_id: str,
                on_progress: Optional[ProgressCallback] = None) -> ConflictAnalysisResult:
        """
        Analyze key conflicts between projects for one target language.

        Args:
            project_ids: Projects in the compilation.
            language_id: Target language whose translations are compared.
            on_progress: Optional callback receiving (current, total, phase).

        Returns:
            ConflictAnalysisResult; empty when fewer than two projects are given.
        """
        def progress(current: int, phase: str):
            if on_progress:
                on_progress(current, ANALYSIS_STEPS, phase)

        project_ids = list(dict.fromkeys(project_ids or []))
        if len(project_ids) < 2:
            return ConflictAnalysisResult.empty(project_ids, language_id)

        progress(0, "Finding duplicate keys...")
        duplicate_keys = db.find_duplicate_keys_across_projects(project_ids)
        if not duplicate_keys:
            progress(ANALYSIS_STEPS, "No conflicts found")
            return ConflictAnalysisResult.empty(project_ids, language_id)

        progress(1, f"Loading translation data for {len(duplicate_keys)} keys...")
        rows = db.get_units_for_keys_across_projects(project_ids, duplicate_keys, language_id)

        progress(2, "Analyzing conflicts...")
        conflicts = detect_conflicts(rows)

        progress(3, "Building summary...")
        summary = ConflictSummary.from_conflicts(conflicts)

        progress(ANALYSIS_STEPS, "Analysis complete")
        logger.info(
            "Conflict analysis for %s projects (language=%s): %s shared keys, %s conflicts",
            len(project_ids), language_id, len(duplicate_keys), len(conflicts),
        )
        return ConflictAnalysisResult(
            conflicts=conflicts,
            summary=summary,
            analyzed_at=db.now_ts(),
            analyzed_project_ids=project_ids,
            language_id=language_id,
        )

    @staticmethod
    def apply_resolutions(analysis: ConflictAnalysisResult,
                          resolutions: ConflictResolutions) -> ConflictAnalysisResult:
        """Apply explicit resolutions only; unresolved duplicates stay unresolved."""
        updated = []
        for conflict in analysis.conflicts:
            resolution = None if conflict.is_resolved else resolutions.get_resolution(conflict.id)
            if resolution is not None:
                conflict = conflict.with_resolution(
                    resolution, resolutions.get_resolution_project_id(conflict.id))
            updated.append(conflict)
        return analysis.with_conflicts(updated)

    @staticmethod
    def get_winning_entry(conflict: CompilationConflict,
                          resolutions: Optional[ConflictResolutions] = None) -> Optional[ConflictEntry]:
        """The entry a conflict keeps; None when unresolved or skipped."""
        resolution = conflict.resolution
        if resolution is None and resolutions is not None:
            resolution = resolutions.resolution_for(conflict)
        if resolution == USE_FIRST:
            return conflict.first_entry
        if resolution == USE_SECOND:
            return conflict.second_entry
        # skip or unresolved
        return None
