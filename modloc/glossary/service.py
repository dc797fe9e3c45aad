"""
Glossary Service

Business rules for glossaries and their entries: validation, duplicate
detection, term matching, consistency checks, statistics and file
import/export.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from modloc.core import database as db
from modloc.errors import AlreadyExistsError, FileFormatError, InvalidDataError, NotFoundError
from modloc.glossary import formats
from modloc.glossary import repository as repo
from modloc.glossary.matcher import GlossaryMatcher, GlossaryMatch
from modloc.logger import get_logger

logger = get_logger(__name__)

EXPORT_FORMATS = ("csv", "tbx", "excel")


@dataclass
class ImportResult:
    """Outcome of a glossary file import."""
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.skipped + len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["total"] = self.total
        return payload


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


class GlossaryService:
    """Create, edit, query and exchange glossaries."""

    # ============================================================
    # Glossaries
    # ============================================================

    def create_glossary(self, name: str, target_language_id: str = None,
                        description: str = None, is_global: bool = False,
                        game_installation_id: str = None) -> Dict[str, Any]:
        """
        Create a glossary.

        Raises:
            InvalidDataError: Empty name, or a game-specific glossary without a game.
            NotFoundError: Unknown game installation or target language.
            AlreadyExistsError: Another glossary already uses the name.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidDataError("Glossary name cannot be empty", details={"field": "name"})

        if is_global:
            game_installation_id = None
        elif not game_installation_id:
            raise InvalidDataError("Game-specific glossaries require a game installation",
                                   details={"field": "game_installation_id"})
        elif not db.get_game_installation_by_id(game_installation_id):
            raise NotFoundError(f"Game installation not found: {game_installation_id}")

        if target_language_id and not db.get_language_by_id(target_language_id):
            raise NotFoundError(f"Language not found: {target_language_id}")

        if repo.get_glossary_by_name(name):
            raise AlreadyExistsError(f"A glossary named '{name}' already exists",
                                     details={"name": name})

        glossary_id = repo.insert_glossary(
            name=name,
            description=_clean_notes(description),
            is_global=is_global,
            game_installation_id=game_installation_id,
            target_language_id=target_language_id,
        )
        logger.info(f"Created glossary '{name}' ({glossary_id}, global={is_global})")
        return repo.get_glossary_by_id(glossary_id)

    def get_glossary_by_id(self, glossary_id: str) -> Dict[str, Any]:
        glossary = repo.get_glossary_by_id(glossary_id)
        if not glossary:
            raise NotFoundError(f"Glossary not found: {glossary_id}")
        return glossary

    def get_all_glossaries(self, game_installation_id: str = None,
                           include_universal: bool = True) -> List[Dict[str, Any]]:
        return repo.get_all_glossaries(game_installation_id, include_universal)

    def update_glossary(self, glossary_id: str, name: str = None,
                        description: str = None) -> Dict[str, Any]:
        self.get_glossary_by_id(glossary_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise InvalidDataError("Glossary name cannot be empty", details={"field": "name"})
            existing = repo.get_glossary_by_name(name)
            if existing and existing["id"] != glossary_id:
                raise AlreadyExistsError(f"A glossary named '{name}' already exists",
                                         details={"name": name})

        repo.update_glossary(glossary_id, name=name,
                             description=description.strip() if description is not None else None)
        logger.info(f"Updated glossary {glossary_id}")
        return repo.get_glossary_by_id(glossary_id)

    def delete_glossary(self, glossary_id: str) -> None:
        glossary = self.get_glossary_by_id(glossary_id)
        repo.delete_glossary(glossary_id)
        logger.info(f"Deleted glossary '{glossary['name']}' ({glossary_id}) "
                    f"with {glossary['entry_count']} entries")

    # ============================================================
    # Entries
    # ============================================================

    def add_entry(self, glossary_id: str, target_language_code: str, source_term: str,
                  target_term: str, case_sensitive: bool = False,
                  notes: str = None) -> Dict[str, Any]:
        """
        Add an entry to a glossary.

        Raises:
            NotFoundError: The glossary does not exist.
            InvalidDataError: A term or the language code is empty.
            AlreadyExistsError: The glossary already has this source term for the language.
        """
        self.get_glossary_by_id(glossary_id)

        source_term = (source_term or "").strip()
        target_term = (target_term or "").strip()
        target_language_code = (target_language_code or "").strip()
        if not source_term or not target_term:
            raise InvalidDataError("Source and target terms cannot be empty")
        if not target_language_code:
            raise InvalidDataError("Target language code is required",
                                   details={"field": "target_language_code"})

        if repo.find_entry(glossary_id, target_language_code, source_term):
            raise AlreadyExistsError(
                f"Entry '{source_term}' already exists for language {target_language_code}",
                details={"source_term": source_term, "target_language_code": target_language_code},
            )

        entry_id = repo.insert_entry(
            glossary_id=glossary_id,
            target_language_code=target_language_code,
            source_term=source_term,
            target_term=target_term,
            case_sensitive=case_sensitive,
            notes=_clean_notes(notes),
        )
        logger.debug(f"Added glossary entry '{source_term}' -> '{target_term}' to {glossary_id}")
        return repo.get_entry_by_id(entry_id)

    def get_entry_by_id(self, entry_id: str) -> Dict[str, Any]:
        entry = repo.get_entry_by_id(entry_id)
        if not entry:
            raise NotFoundError(f"Glossary entry not found: {entry_id}")
        return entry

    def get_entries_by_glossary(self, glossary_id: str,
                                target_language_code: str = None) -> List[Dict[str, Any]]:
        self.get_glossary_by_id(glossary_id)
        return repo.get_entries_by_glossary(glossary_id, target_language_code)

    def update_entry(self, entry_id: str, source_term: str = None, target_term: str = None,
                     target_language_code: str = None, case_sensitive: bool = None,
                     notes: str = None) -> Dict[str, Any]:
        entry = self.get_entry_by_id(entry_id)

        fields: Dict[str, Any] = {}
        if source_term is not None:
            fields["source_term"] = source_term.strip()
        if target_term is not None:
            fields["target_term"] = target_term.strip()
        if target_language_code is not None:
            fields["target_language_code"] = target_language_code.strip()
        if case_sensitive is not None:
            fields["case_sensitive"] = case_sensitive
        if notes is not None:
            fields["notes"] = _clean_notes(notes)

        if any(fields.get(k) == "" for k in ("source_term", "target_term", "target_language_code")):
            raise InvalidDataError("Source term, target term and language cannot be empty")

        new_source = fields.get("source_term", entry["source_term"])
        new_lang = fields.get("target_language_code", entry["target_language_code"])
        if repo.find_entry(entry["glossary_id"], new_lang, new_source, exclude_id=entry_id):
            raise AlreadyExistsError(
                f"Entry '{new_source}' already exists for language {new_lang}",
                details={"source_term": new_source, "target_language_code": new_lang},
            )

        repo.update_entry(entry_id, **fields)
        return repo.get_entry_by_id(entry_id)

    def delete_entry(self, entry_id: str) -> None:
        if repo.delete_entry(entry_id) == 0:
            raise NotFoundError(f"Glossary entry not found: {entry_id}")

    def delete_entries(self, entry_ids: List[str]) -> int:
        deleted = repo.delete_entries(entry_ids)
        logger.info(f"Deleted {deleted} glossary entries")
        return deleted

    def search_entries(self, query: str, glossary_ids: List[str] = None,
                       target_language_code: str = None) -> List[Dict[str, Any]]:
        query = (query or "").strip()
        if not query:
            return []
        return repo.search_entries(query, glossary_ids, target_language_code)

    def increment_usage_count(self, entry_ids: List[str]) -> int:
        return repo.increment_usage_count(entry_ids)

    # ============================================================
    # Matching
    # ============================================================

    def _applicable_entries(self, target_language_code: str, glossary_ids: List[str] = None,
                            game_installation_id: str = None) -> List[Dict[str, Any]]:
        if glossary_ids:
            glossaries = repo.get_glossaries_by_ids(glossary_ids)
        else:
            glossaries = repo.get_all_glossaries(game_installation_id, include_universal=True)

        entries: List[Dict[str, Any]] = []
        for glossary in glossaries:
            entries.extend(repo.get_entries_by_glossary(glossary["id"], target_language_code))
        return entries

    def find_matches(self, source_text: str, target_language_code: str,
                     glossary_ids: List[str] = None,
                     game_installation_id: str = None) -> List[GlossaryMatch]:
        entries = self._applicable_entries(target_language_code, glossary_ids, game_installation_id)
        return GlossaryMatcher.find_matches(source_text, entries, whole_word_only=True)

    def find_matching_terms(self, source_text: str, target_language_code: str,
                            glossary_ids: List[str] = None,
                            game_installation_id: str = None) -> List[Dict[str, Any]]:
        """Return the distinct glossary entries whose source term occurs in ``source_text``."""
        matches = self.find_matches(source_text, target_language_code, glossary_ids,
                                    game_installation_id)
        unique: Dict[str, Dict[str, Any]] = {}
        for match in matches:
            unique.setdefault(match.entry["id"], match.entry)
        return list(unique.values())

    def apply_substitutions(self, source_text: str, target_text: str,
                            target_language_code: str, glossary_ids: List[str] = None,
                            game_installation_id: str = None) -> str:
        matches = self.find_matches(source_text, target_language_code, glossary_ids,
                                    game_installation_id)
        return GlossaryMatcher.apply_substitutions(target_text, matches)

    def check_consistency(self, source_text: str, target_text: str,
                          target_language_code: str, glossary_ids: List[str] = None,
                          game_installation_id: str = None) -> List[str]:
        """List glossary terms from the source whose target term is missing in the translation."""
        target_lower = (target_text or "").lower()
        problems = []
        for entry in self.find_matching_terms(source_text, target_language_code, glossary_ids,
                                              game_installation_id):
            if entry["target_term"].lower() not in target_lower:
                problems.append(
                    f'Term "{entry["source_term"]}" should be translated as '
                    f'"{entry["target_term"]}" but not found in target'
                )
        return problems

    # ============================================================
    # Validation & statistics
    # ============================================================

    @staticmethod
    def _group_by_term(entries: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        groups: Dict[str, List[Dict[str, Any]]] = {}
        for entry in entries:
            key = f"{entry['target_language_code']}:{entry['source_term'].lower()}"
            groups.setdefault(key, []).append(entry)
        return groups

    def validate_glossary(self, glossary_id: str) -> List[str]:
        """Return human-readable problems: empty terms, duplicates and conflicting translations."""
        entries = self.get_entries_by_glossary(glossary_id)
        errors = []

        for entry in entries:
            if not entry["source_term"].strip():
                errors.append(f"Entry {entry['id']}: Empty source term")
            if not entry["target_term"].strip():
                errors.append(f"Entry {entry['id']}: Empty target term")

        groups = self._group_by_term(entries)
        for duplicates in groups.values():
            if len(duplicates) > 1:
                errors.append("Duplicate term: " + ", ".join(e["source_term"] for e in duplicates))

        for key, group in groups.items():
            translations = sorted({e["target_term"] for e in group})
            if len(translations) > 1:
                errors.append(f"Conflicting translations for {key}: {', '.join(translations)}")

        return errors

    def get_glossary_stats(self, glossary_id: str) -> Dict[str, Any]:
        entries = self.get_entries_by_glossary(glossary_id)
        total = len(entries)

        by_language: Dict[str, int] = {}
        for entry in entries:
            code = entry["target_language_code"]
            by_language[code] = by_language.get(code, 0) + 1

        used = sum(1 for e in entries if e["usage_count"] > 0)
        missing = sum(1 for e in entries if not e["target_term"].strip())
        duplicate_ids = {
            e["id"]
            for group in self._group_by_term(entries).values() if len(group) > 1
            for e in group
        }
        duplicate_groups = sum(1 for g in self._group_by_term(entries).values() if len(g) > 1)
        problem_ids = duplicate_ids | {e["id"] for e in entries if not e["target_term"].strip()}

        return {
            "total_entries": total,
            "entries_by_language_pair": by_language,
            "used_in_translations": used,
            "unused_entries": total - used,
            "usage_rate": used / total if total else 0.0,
            "consistency_score": (total - len(problem_ids)) / total if total else 1.0,
            "duplicates_detected": duplicate_groups,
            "missing_translations": missing,
            "case_sensitive_terms": sum(1 for e in entries if e["case_sensitive"]),
        }

    # ============================================================
    # Import / Export
    # ============================================================

    def _import_rows(self, glossary_id: str, rows: List[Dict[str, Any]], errors: List[str],
                     target_language_code: str, skip_duplicates: bool, source: str) -> ImportResult:
        result = ImportResult(errors=list(errors))
        for row in rows:
            lang = row.get("target_language_code") or target_language_code
            try:
                self.add_entry(
                    glossary_id=glossary_id,
                    target_language_code=lang,
                    source_term=row["source_term"],
                    target_term=row["target_term"],
                    case_sensitive=row.get("case_sensitive", False),
                    notes=row.get("notes"),
                )
                result.imported += 1
            except AlreadyExistsError as e:
                if skip_duplicates:
                    result.skipped += 1
                else:
                    result.errors.append(f"{row['source_term']}: {e.message}")
            except InvalidDataError as e:
                result.errors.append(f"{row['source_term']}: {e.message}")

        if result.imported == 0 and result.errors:
            raise FileFormatError(
                f"No entries imported from {source}: {result.errors[0]}",
                details=result.to_dict(),
            )

        logger.info(f"Imported {result.imported} glossary entries from {source} "
                    f"(skipped={result.skipped}, errors={len(result.errors)})")
        return result

    def import_from_csv(self, glossary_id: str, file_path: Path, target_language_code: str,
                        skip_duplicates: bool = True) -> ImportResult:
        self.get_glossary_by_id(glossary_id)
        rows, errors = formats.read_csv(file_path)
        return self._import_rows(glossary_id, rows, errors, target_language_code,
                                 skip_duplicates, "CSV")

    def import_from_tbx(self, glossary_id: str, file_path: Path, target_language_code: str = None,
                        skip_duplicates: bool = True) -> ImportResult:
        self.get_glossary_by_id(glossary_id)
        rows, errors = formats.read_tbx(file_path)
        return self._import_rows(glossary_id, rows, errors, target_language_code,
                                 skip_duplicates, "TBX")

    def import_from_excel(self, glossary_id: str, file_path: Path, target_language_code: str,
                          sheet_name: str = None, skip_duplicates: bool = True) -> ImportResult:
        self.get_glossary_by_id(glossary_id)
        rows, errors = formats.read_excel(file_path, sheet_name)
        return self._import_rows(glossary_id, rows, errors, target_language_code,
                                 skip_duplicates, "Excel")

    def export_to_csv(self, glossary_id: str, file_path: Path,
                      target_language_code: str = None) -> int:
        entries = self.get_entries_by_glossary(glossary_id, target_language_code)
        count = formats.write_csv(file_path, entries)
        logger.info(f"Exported {count} glossary entries to CSV {file_path}")
        return count

    def export_to_tbx(self, glossary_id: str, file_path: Path, target_language_code: str = None,
                      source_language_code: str = "en") -> int:
        glossary = self.get_glossary_by_id(glossary_id)
        entries = repo.get_entries_by_glossary(glossary_id, target_language_code)
        count = formats.write_tbx(file_path, entries, glossary["name"], source_language_code)
        logger.info(f"Exported {count} glossary entries to TBX {file_path}")
        return count

    def export_to_excel(self, glossary_id: str, file_path: Path,
                        target_language_code: str = None) -> int:
        glossary = self.get_glossary_by_id(glossary_id)
        entries = repo.get_entries_by_glossary(glossary_id, target_language_code)
        count = formats.write_excel(file_path, entries, glossary["name"])
        logger.info(f"Exported {count} glossary entries to Excel {file_path}")
        return count

    def export(self, glossary_id: str, file_format: str, file_path: Path,
               target_language_code: str = None) -> int:
        """Export to ``csv``, ``tbx`` or ``excel``."""
        if file_format == "csv":
            return self.export_to_csv(glossary_id, file_path, target_language_code)
        if file_format == "tbx":
            return self.export_to_tbx(glossary_id, file_path, target_language_code)
        if file_format == "excel":
            return self.export_to_excel(glossary_id, file_path, target_language_code)
        raise InvalidDataError(f"Unsupported export format: {file_format}",
                               details={"supported": list(EXPORT_FORMATS)})

    def import_file(self, glossary_id: str, file_format: str, file_path: Path,
                    target_language_code: str = None, skip_duplicates: bool = True) -> ImportResult:
        if file_format == "tbx":
            return self.import_from_tbx(glossary_id, file_path, target_language_code, skip_duplicates)
        if file_format not in EXPORT_FORMATS:
            raise InvalidDataError(f"Unsupported import format: {file_format}",
                                   details={"supported": list(EXPORT_FORMATS)})
        if not target_language_code:
            raise InvalidDataError("Target language code is required for CSV and Excel imports",
                                   details={"field": "target_language_code"})
        if file_format == "csv":
            return self.import_from_csv(glossary_id, file_path, target_language_code, skip_duplicates)
        return self.import_from_excel(glossary_id, file_path, target_language_code,
                                      skip_duplicates=skip_duplicates)
