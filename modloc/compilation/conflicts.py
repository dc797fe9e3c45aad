"""
Compilation Conflict Data Classes

Conflicts arise when several projects in a compilation define the same
localisation key. Each conflict pairs the two competing entries; a
resolution picks one of them or drops the key.
"""

import time
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, Optional

# Conflict types
KEY_COLLISION_DIFFERENT_SOURCE = "key_collision_different_source"
TRANSLATION_CONFLICT = "translation_conflict"
DUPLICATE = "duplicate"
CONFLICT_TYPES = (KEY_COLLISION_DIFFERENT_SOURCE, TRANSLATION_CONFLICT, DUPLICATE)

# Resolutions
USE_FIRST = "use_first"
USE_SECOND = "use_second"
SKIP = "skip"
RESOLUTIONS = (USE_FIRST, USE_SECOND, SKIP)


@dataclass(frozen=True)
class ConflictEntry:
    """One side of a conflict: a unit from one project."""
    project_id: str
    project_name: str
    unit_id: str
    source_text: str
    translated_text: Optional[str] = None
    status: Optional[str] = None
    is_manually_edited: bool = False
    updated_at: Optional[int] = None
    source_loc_file: Optional[str] = None

    @property
    def has_translation(self) -> bool:
        return bool(self.translated_text)


@dataclass(frozen=True)
class CompilationConflict:
    id: str
    key: str
    conflict_type: str
    first_entry: ConflictEntry
    second_entry: ConflictEntry
    resolution: Optional[str] = None  # use_first|use_second|skip
    resolved_with_project_id: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None

    @property
    def can_auto_resolve(self) -> bool:
        return self.conflict_type == DUPLICATE

    def with_resolution(self, resolution: str,
                        project_id: Optional[str] = None) -> "CompilationConflict":
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unknown conflict resolution: {resolution}")
        return replace(self, resolution=resolution, resolved_with_project_id=project_id)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["is_resolved"] = self.is_resolved
        payload["can_auto_resolve"] = self.can_auto_resolve
        return payload


@dataclass(frozen=True)
class ConflictSummary:
    total_count: int = 0
    key_collision_count: int = 0
    translation_conflict_count: int = 0
    duplicate_count: int = 0
    resolved_count: int = 0

    @property
    def manual_resolution_required(self) -> int:
        return self.key_collision_count + self.translation_conflict_count

    @property
    def unresolved_count(self) -> int:
        return self.total_count - self.resolved_count

    @property
    def all_resolved(self) -> bool:
        return self.resolved_count >= self.total_count

    @property
    def needs_user_attention(self) -> bool:
        return self.manual_resolution_required > self.resolved_count

    @classmethod
    def from_conflicts(cls, conflicts: List[CompilationConflict]) -> "ConflictSummary":
        return cls(
            total_count=len(conflicts),
            key_collision_count=sum(1 for c in conflicts if c.conflict_type == KEY_COLLISION_DIFFERENT_SOURCE),
            translation_conflict_count=sum(1 for c in conflicts if c.conflict_type == TRANSLATION_CONFLICT),
            duplicate_count=sum(1 for c in conflicts if c.conflict_type == DUPLICATE),
            resolved_count=sum(1 for c in conflicts if c.is_resolved),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload.update({
            "manual_resolution_required": self.manual_resolution_required,
            "unresolved_count": self.unresolved_count,
            "all_resolved": self.all_resolved,
            "needs_user_attention": self.needs_user_attention,
        })
        return payload


@dataclass
class ConflictResolutions:
    """User choices for a set of conflicts, with an optional fallback for the rest."""
    resolutions: Dict[str, str] = field(default_factory=dict)
    resolution_project_ids: Dict[str, str] = field(default_factory=dict)
    default_resolution: Optional[str] = None
    default_project_id: Optional[str] = None

    def get_resolution(self, conflict_id: str) -> Optional[str]:
        return self.resolutions.get(conflict_id, self.default_resolution)

    def get_resolution_project_id(self, conflict_id: str) -> Optional[str]:
        return self.resolution_project_ids.get(conflict_id, self.default_project_id)

    def resolution_for(self, conflict: "CompilationConflict") -> Optional[str]:
        return self.get_resolution(conflict.id)

    def is_resolved(self, conflict_id: str) -> bool:
        return conflict_id in self.resolutions or self.default_resolution is not None

    def set_resolution(self, conflict_id: str, resolution: str, project_id: str = None):
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unknown conflict resolution: {resolution}")
        self.resolutions[conflict_id] = resolution
        if project_id is not None:
            self.resolution_project_ids[conflict_id] = project_id

    def set_default_resolution(self, resolution: str, project_id: str = None):
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unknown conflict resolution: {resolution}")
        self.default_resolution = resolution
        self.default_project_id = project_id

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConflictResolutions":
        """Build from a JSON payload, rejecting unknown resolution values."""
        data = data or {}
        resolutions = cls(
            resolution_project_ids=dict(data.get("resolution_project_ids") or {}),
        )
        for conflict_id, resolution in (data.get("resolutions") or {}).items():
            resolutions.set_resolution(conflict_id, resolution)
        if data.get("default_resolution"):
            resolutions.set_default_resolution(data["default_resolution"], data.get("default_project_id"))
        return resolutions

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConflictAnalysisResult:
    conflicts: List[CompilationConflict]
    summary: ConflictSummary
    analyzed_at: int
    analyzed_project_ids: List[str]
    language_id: str

    @classmethod
    def empty(cls, project_ids: List[str], language_id: str) -> "ConflictAnalysisResult":
        return cls(
            conflicts=[],
            summary=ConflictSummary(),
            analyzed_at=int(time.time()),
            analyzed_project_ids=list(project_ids),
            language_id=language_id,
        )

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def unresolved_conflicts(self) -> List[CompilationConflict]:
        return [c for c in self.conflicts if not c.is_resolved and not c.can_auto_resolve]

    @property
    def has_unresolved_conflicts(self) -> bool:
        return bool(self.unresolved_conflicts)

    @property
    def unresolved_count(self) -> int:
        return len(self.unresolved_conflicts)

    @property
    def manual_resolution_required(self) -> List[CompilationConflict]:
        return [c for c in self.conflicts if not c.can_auto_resolve]

    def get_by_type(self, conflict_type: str) -> List[CompilationConflict]:
        return [c for c in self.conflicts if c.conflict_type == conflict_type]

    def conflicting_project_ids(self) -> List[str]:
        """Projects involved in at least one conflict, in first-seen order."""
        seen: Dict[str, None] = {}
        for conflict in self.conflicts:
            seen.setdefault(conflict.first_entry.project_id)
            seen.setdefault(conflict.second_entry.project_id)
        return list(seen)

    def with_conflicts(self, conflicts: List[CompilationConflict]) -> "ConflictAnalysisResult":
        return replace(self, conflicts=conflicts, summary=ConflictSummary.from_conflicts(conflicts))

    def with_resolved_conflicts(self, resolutions: ConflictResolutions) -> "ConflictAnalysisResult":
        """Apply user resolutions, auto-resolving duplicates with the first entry."""
        updated = []
        for conflict in self.conflicts:
            if conflict.is_resolved:
                updated.append(conflict)
                continue
            resolution = resolutions.get_resolution(conflict.id)
            if resolution is not None:
                updated.append(conflict.with_resolution(
                    resolution, resolutions.get_resolution_project_id(conflict.id)))
            elif conflict.can_auto_resolve:
                updated.append(conflict.with_resolution(USE_FIRST, conflict.first_entry.project_id))
            else:
                updated.append(conflict)
        return self.with_conflicts(updated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflicts": [c.to_dict() for c in self.conflicts],
            "summary": self.summary.to_dict(),
            "analyzed_at": self.analyzed_at,
            "analyzed_project_ids": list(self.analyzed_project_ids),
            "language_id": self.language_id,
            "has_conflicts": self.has_conflicts,
            "unresolved_count": self.unresolved_count,
            "conflicting_project_ids": self.conflicting_project_ids(),
        }
