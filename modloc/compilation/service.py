"""
Compilation Service

A compilation merges the translations of several projects for one
language into a single pack. This module handles compilation CRUD,
validation, conflict-aware generation of the merged localisation file,
and the Steam Workshop BBCode listing.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from modloc import config
from modloc.core import database as db
from modloc.compilation import repository as repo
from modloc.compilation.analyzer import ConflictAnalyzer
from modloc.compilation.conflicts import ConflictAnalysisResult, ConflictResolutions
from modloc.compilation.loc_tsv import write_loc_tsv
from modloc.errors import InvalidDataError, NotFoundError, ServiceError
from modloc.logger import get_logger
from modloc.translation.ignored import get_ignored_text_service

logger = get_logger(__name__)

STEAM_WORKSHOP_URL = "https://steamcommunity.com/sharedfiles/filedetails/?id={steam_id}"

# on_progress(current, total, message)
ProgressCallback = Callable[[int, int, str], None]
CancelCheck = Callable[[], bool]


class CompilationCancelled(ServiceError):
    default_code = "cancelled"


def build_full_pack_name(prefix: str, pack_name: str) -> str:
    return f"{prefix or ''}{pack_name or ''}.pack".lower()


def default_prefix(language_code: Optional[str]) -> str:
    template = config.load_config().get("compilation", {}).get(
        "default_prefix", config.DEFAULT_COMPILATION_PREFIX)
    return template.replace("{lang}", (language_code or "").lower())


@dataclass
class CompilationWithDetails:
    compilation: Dict[str, Any]
    game_installation: Optional[Dict[str, Any]]
    language: Optional[Dict[str, Any]]
    projects: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def full_pack_name(self) -> str:
        return build_full_pack_name(self.compilation["prefix"], self.compilation["pack_name"])

    @property
    def project_ids(self) -> List[str]:
        return [p["id"] for p in self.projects]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compilation": self.compilation,
            "game_installation": self.game_installation,
            "language": self.language,
            "projects": [
                {**p, "display_name": db.get_project_display_name(p)} for p in self.projects
            ],
            "full_pack_name": self.full_pack_name,
        }


def validate_compilation(name: str, prefix: str, pack_name: str, language_id: Optional[str],
                         project_ids: List[str]) -> List[str]:
    """Return the reasons a compilation cannot be saved (empty when it can)."""
    errors = []
    if not (name or "").strip():
        errors.append("Name is required")
    if not (prefix or "").strip():
        errors.append("Prefix is required")
    if not (pack_name or "").strip():
        errors.append("Pack name is required")
    if not language_id:
        errors.append("Language is required")
    if not project_ids:
        errors.append("At least one project is required")
    return errors


class CompilationService:
    """Manage compilations and generate their merged localisation output."""

    def __init__(self, analyzer: ConflictAnalyzer = None):
        self.analyzer = analyzer or ConflictAnalyzer()

    # ============================================================
    # CRUD
    # ============================================================

    def _check_references(self, game_installation_id: str, language_id: Optional[str],
                          project_ids: List[str]) -> Optional[Dict[str, Any]]:
        if not game_installation_id:
            raise InvalidDataError("Game installation is required",
                                   details={"field": "game_installation_id"})
        if not db.get_game_installation_by_id(game_installation_id):
            raise NotFoundError(f"Game installation not found: {game_installation_id}")
        language = None
        if language_id:
            language = db.get_language_by_id(language_id)
            if not language:
                raise NotFoundError(f"Language not found: {language_id}")
        for project_id in project_ids:
            project = db.get_project_by_id(project_id)
            if not project:
                raise NotFoundError(f"Project not found: {project_id}")
            if project["game_installation_id"] != game_installation_id:
                raise InvalidDataError(
                    f"Project {project_id} belongs to another game",
                    details={"project_id": project_id},
                )
        return language

    def create_compilation(self, name: str, pack_name: str, game_installation_id: str,
                           language_id: str, project_ids: List[str],
                           prefix: str = None) -> CompilationWithDetails:
        project_ids = list(dict.fromkeys(project_ids or []))
        language = self._check_references(game_installation_id, language_id, project_ids)
        if prefix is None:
            prefix = default_prefix(language["code"] if language else None)

        errors = validate_compilation(name, prefix, pack_name, language_id, project_ids)
        if errors:
            raise InvalidDataError("; ".join(errors), details={"errors": errors})

        compilation_id = repo.insert_compilation(
            name=name.strip(),
            prefix=prefix.strip(),
            pack_name=pack_name.strip(),
            game_installation_id=game_installation_id,
            language_id=language_id,
        )
        repo.set_compilation_projects(compilation_id, project_ids)
        logger.info(f"Created compilation '{name}' ({compilation_id}) with {len(project_ids)} projects")
        return self.get_compilation_with_details(compilation_id)

    def update_compilation(self, compilation_id: str, name: str = None, prefix: str = None,
                           pack_name: str = None, language_id: str = None,
                           project_ids: List[str] = None) -> CompilationWithDetails:
        current = self.get_compilation_with_details(compilation_id)
        compilation = current.compilation

        new_project_ids = list(dict.fromkeys(project_ids)) if project_ids is not None else current.project_ids
        new_language_id = language_id if language_id is not None else compilation["language_id"]
        self._check_references(compilation["game_installation_id"], new_language_id,
                               new_project_ids if project_ids is not None else [])

        fields = {
            "name": name.strip() if name is not None else compilation["name"],
            "prefix": prefix.strip() if prefix is not None else compilation["prefix"],
            "pack_name": pack_name.strip() if pack_name is not None else compilation["pack_name"],
            "language_id": new_language_id,
        }
        errors = validate_compilation(fields["name"], fields["prefix"], fields["pack_name"],
                                      fields["language_id"], new_project_ids)
        if errors:
            raise InvalidDataError("; ".join(errors), details={"errors": errors})

        repo.update_compilation(compilation_id, **fields)
        if project_ids is not None:
            repo.set_compilation_projects(compilation_id, new_project_ids)
        logger.info(f"Updated compilation {compilation_id}")
        return self.get_compilation_with_details(compilation_id)

    def delete_compilation(self, compilation_id: str):
        if repo.delete_compilation(compilation_id) == 0:
            raise NotFoundError(f"Compilation not found: {compilation_id}")
        logger.info(f"Deleted compilation {compilation_id}")

    def get_all_compilations(self, game_installation_id: str = None) -> List[Dict[str, Any]]:
        compilations = repo.get_all_compilations(game_installation_id)
        for compilation in compilations:
            compilation["full_pack_name"] = build_full_pack_name(
                compilation["prefix"], compilation["pack_name"])
        return compilations

    def get_compilation_with_details(self, compilation_id: str) -> CompilationWithDetails:
        compilation = repo.get_compilation_by_id(compilation_id)
        if not compilation:
            raise NotFoundError(f"Compilation not found: {compilation_id}")
        language_id = compilation.get("language_id")
        return CompilationWithDetails(
            compilation=compilation,
            game_installation=db.get_game_installation_by_id(compilation["game_installation_id"]),
            language=db.get_language_by_id(language_id) if language_id else None,
            projects=repo.get_compilation_projects(compilation_id),
        )

    # ============================================================
    # Conflicts
    # ============================================================

    def analyze_conflicts(self, compilation_id: str,
                          on_progress: Optional[ProgressCallback] = None) -> ConflictAnalysisResult:
        details = self.get_compilation_with_details(compilation_id)
        language_id = details.compilation.get("language_id")
        if not language_id:
            raise InvalidDataError("Compilation has no target language")
        return self.analyzer.analyze(details.project_ids, language_id, on_progress)

    # ============================================================
    # Generation
    # ============================================================

    def _key_owners(self, analysis: ConflictAnalysisResult,
                    resolutions: ConflictResolutions, project_order: List[str]):
        """
        Pick one owning project per resolved conflict key and collect skipped keys.

        A key shared by several projects has one conflict per pair. Every
        winning project of those pairs is a candidate and the earliest one in
        compilation order owns the key. A key is skipped only when none of its
        resolved pairs kept an entry.
        """
        resolved = analysis.with_resolved_conflicts(resolutions)
        position = {project_id: index for index, project_id in enumerate(project_order)}
        candidates: Dict[str, set] = {}
        skip_votes = set()
        for conflict in resolved.conflicts:
            if not conflict.is_resolved:
                continue
            winner = self.analyzer.get_winning_entry(conflict)
            if winner is None:
                skip_votes.add(conflict.key)
            else:
                candidates.setdefault(conflict.key, set()).add(winner.project_id)

        owners = {
            key: min(project_ids, key=lambda project_id: position.get(project_id, len(position)))
            for key, project_ids in candidates.items()
        }
        skipped = skip_votes - set(owners)
        return owners, skipped, resolved

    def generate(self, compilation_id: str, output_dir: Path = None,
                 resolutions: ConflictResolutions = None,
                 on_progress: Optional[ProgressCallback] = None,
                 cancel_check: Optional[CancelCheck] = None) -> Dict[str, Any]:
        """
        Merge the compilation's translations into one localisation TSV file.

        Projects are processed in compilation order. For conflicting keys the
        resolved winner is used, skipped keys are dropped, and unresolved
        keys keep the first project's translation. Ignored source texts are
        never written.

        Args:
            compilation_id: Compilation to generate.
            output_dir: Target directory; defaults to the configured output directory.
            resolutions: Conflict resolutions chosen by the user.
            on_progress: Optional callback receiving (current, total, message).
            cancel_check: Optional callable returning True to abort.

        Returns:
            Dict with output_path, entry_count, project_count, conflict_count,
            unresolved_conflicts and skipped_keys.

        Raises:
            CompilationCancelled: cancel_check returned True.
        """
        details = self.get_compilation_with_details(compilation_id)
        compilation = details.compilation
        errors = validate_compilation(compilation["name"], compilation["prefix"],
                                      compilation["pack_name"], compilation["language_id"],
                                      details.project_ids)
        if errors:
            raise InvalidDataError("; ".join(errors), details={"errors": errors})

        def cancelled() -> bool:
            return bool(cancel_check and cancel_check())

        projects = details.projects
        total_steps = len(projects) + 2

        def progress(current: int, message: str):
            if on_progress:
                on_progress(current, total_steps, message)

        progress(0, "Analyzing conflicts...")
        analysis = self.analyzer.analyze(details.project_ids, compilation["language_id"])
        owners, skipped_keys, resolved = self._key_owners(
            analysis, resolutions or ConflictResolutions(), details.project_ids)

        ignored = get_ignored_text_service()
        ignored.ensure_cache_loaded()
        skip_condition = ignored.get_sql_condition("tu")

        merged: Dict[str, str] = {}
        for index, project in enumerate(projects, start=1):
            if cancelled():
                logger.info(f"Compilation {compilation_id} cancelled")
                raise CompilationCancelled("Compilation cancelled")

            name = db.get_project_display_name(project)
            progress(index, f"Processing: {name} ({index}/{len(projects)})")
            units = db.get_translated_units(project["id"], compilation["language_id"], skip_condition)
            for unit in units:
                key = unit["key"]
                if key in skipped_keys or key in merged:
                    continue
                # SQLite LOWER and TRIM are ASCII-only
                if ignored.should_skip(unit["source_text"]):
                    continue
                owner = owners.get(key)
                if owner is not None and owner != project["id"]:
                    continue
                merged[key] = unit["translated_text"]
            logger.debug(f"Collected {len(units)} translated units from '{name}'")

        if cancelled():
            raise CompilationCancelled("Compilation cancelled")

        progress(total_steps - 1, "Writing localisation file...")
        target_dir = Path(output_dir or config.load_config()["compilation"]["output_dir"])
        file_name = details.full_pack_name[:-len(".pack")] + ".loc.tsv"
        output_path = write_loc_tsv(
            target_dir / file_name,
            sorted(merged.items()),
            comments=[
                f"{compilation['name']} ({details.language['code'] if details.language else ''})",
                f"Projects: {', '.join(db.get_project_display_name(p) for p in projects)}",
            ],
        )
        repo.update_after_generation(compilation_id, str(output_path))
        progress(total_steps, "Compilation complete")

        logger.info(f"Compilation '{compilation['name']}' generated {len(merged)} entries "
                    f"from {len(projects)} projects -> {output_path}")
        return {
            "output_path": str(output_path),
            "full_pack_name": details.full_pack_name,
            "entry_count": len(merged),
            "project_count": len(projects),
            "conflict_count": len(analysis.conflicts),
            "unresolved_conflicts": resolved.unresolved_count,
            "skipped_keys": sorted(skipped_keys),
        }

    # ============================================================
    # BBCode
    # ============================================================

    def generate_bbcode(self, compilation_id: str) -> str:
        """One Steam Workshop link per project that has a Steam id."""
        details = self.get_compilation_with_details(compilation_id)
        lines = []
        for project in details.projects:
            steam_id = project.get("mod_steam_id")
            if steam_id:
                url = STEAM_WORKSHOP_URL.format(steam_id=steam_id)
                lines.append(f"[url={url}]{db.get_project_display_name(project)}[/url]")
        return "\n".join(lines)
