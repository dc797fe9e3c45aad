from __future__ import annotations

import sqlite3

import pytest

from modloc.core import database as db
from modloc.errors import AlreadyExistsError, FileFormatError, InvalidDataError, NotFoundError
from modloc.glossary import GlossaryService


@pytest.fixture
def service() -> GlossaryService:
    return GlossaryService()


@pytest.fixture
def glossary(service: GlossaryService) -> dict:
    return service.create_glossary("Warhammer terms", is_global=True)


def _glossary_count() -> int:
    with db.get_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM glossaries").fetchone()[0]


def test_create_glossary_with_empty_name_writes_nothing(service: GlossaryService) -> None:
    with pytest.raises(InvalidDataError):
        service.create_glossary("   ", is_global=True)
    assert _glossary_count() == 0


def test_create_glossary_trims_name_and_clears_game_for_global(service: GlossaryService, game) -> None:
    glossary = service.create_glossary("  Lore  ", is_global=True, game_installation_id=game["id"])
    assert glossary["name"] == "Lore"
    assert glossary["is_global"] is True
    assert glossary["game_installation_id"] is None
    assert glossary["entry_count"] == 0


def test_game_specific_glossary_requires_game(service: GlossaryService) -> None:
    with pytest.raises(InvalidDataError):
        service.create_glossary("Units", is_global=False)


def test_duplicate_glossary_name_rejected(service: GlossaryService, glossary) -> None:
    with pytest.raises(AlreadyExistsError):
        service.create_glossary("Warhammer terms", is_global=True)


def test_glossary_listing_by_game(service: GlossaryService, game, glossary) -> None:
    other_game = db.insert_game_installation("wh2", "Total War: WARHAMMER II")
    game_glossary = service.create_glossary("WH3 only", game_installation_id=game["id"])
    service.create_glossary("WH2 only", game_installation_id=other_game["id"])

    names = [g["name"] for g in service.get_all_glossaries(game["id"])]
    assert names == ["WH3 only", "Warhammer terms"]

    only_game = service.get_all_glossaries(game["id"], include_universal=False)
    assert [g["id"] for g in only_game] == [game_glossary["id"]]

    assert len(service.get_all_glossaries()) == 3
    assert {g["name"] for g in service.get_all_glossaries(include_universal=False)} == {"WH3 only", "WH2 only"}


def test_delete_glossary_removes_it_and_its_entries(service: GlossaryService, glossary) -> None:
    entry = service.add_entry(glossary["id"], "fr", "Sword", "Épée")

    service.delete_glossary(glossary["id"])

    assert service.get_all_glossaries() == []
    with pytest.raises(NotFoundError):
        service.get_entry_by_id(entry["id"])
    with pytest.raises(NotFoundError):
        service.delete_glossary(glossary["id"])


def test_update_glossary(service: GlossaryService, glossary) -> None:
    service.create_glossary("Other", is_global=True)
    updated = service.update_glossary(glossary["id"], name="Renamed", description="Lore terms")
    assert updated["name"] == "Renamed"
    assert updated["description"] == "Lore terms"

    with pytest.raises(AlreadyExistsError):
        service.update_glossary(glossary["id"], name="Other")
    with pytest.raises(NotFoundError):
        service.update_glossary("missing", name="x")


def test_add_entry_validation(service: GlossaryService, glossary) -> None:
    entry = service.add_entry(glossary["id"], "fr", "  Sword ", " Épée ", notes="   ")
    assert entry["source_term"] == "Sword"
    assert entry["target_term"] == "Épée"
    assert entry["notes"] is None

    with pytest.raises(AlreadyExistsError):
        service.add_entry(glossary["id"], "FR", "Sword", "Lame")
    with pytest.raises(AlreadyExistsError):
        service.add_entry(glossary["id"], "fr", "Sword", "Lame", case_sensitive=True)
    assert service.add_entry(glossary["id"], "fr", "sword", "lame")["source_term"] == "sword"
    with pytest.raises(InvalidDataError):
        service.add_entry(glossary["id"], "fr", "", "Lame")
    with pytest.raises(NotFoundError):
        service.add_entry("missing", "fr", "Axe", "Hache")


def test_entries_filtered_by_language_case_insensitively(service: GlossaryService, glossary) -> None:
    service.add_entry(glossary["id"], "fr", "Sword", "Épée")
    service.add_entry(glossary["id"], "fr", "Axe", "Hache")
    service.add_entry(glossary["id"], "de", "Sword", "Schwert")

    entries = service.get_entries_by_glossary(glossary["id"], "FR")
    assert [e["source_term"] for e in entries] == ["Axe", "Sword"]
    assert service.get_glossary_by_id(glossary["id"])["entry_count"] == 3


def test_update_and_delete_entries(service: GlossaryService, glossary) -> None:
    sword = service.add_entry(glossary["id"], "fr", "Sword", "Épée")
    axe = service.add_entry(glossary["id"], "fr", "Axe", "Hache")

    updated = service.update_entry(sword["id"], target_term="Lame", case_sensitive=True)
    assert updated["target_term"] == "Lame"
    assert updated["case_sensitive"]

    with pytest.raises(AlreadyExistsError):
        service.update_entry(axe["id"], source_term="Sword")

    assert service.delete_entries([sword["id"], axe["id"], "missing"]) == 2
    assert service.get_entries_by_glossary(glossary["id"]) == []


def test_search_entries(service: GlossaryService, glossary) -> None:
    service.add_entry(glossary["id"], "fr", "Great Sword", "Espadon")
    service.add_entry(glossary["id"], "fr", "Axe", "Hache")

    assert [e["source_term"] for e in service.search_entries("sword")] == ["Great Sword"]
    assert [e["source_term"] for e in service.search_entries("HACHE")] == ["Axe"]
    assert service.search_entries("  ") == []


def test_matching_and_consistency(service: GlossaryService, glossary) -> None:
    service.add_entry(glossary["id"], "fr", "Chaos", "Chaos")
    service.add_entry(glossary["id"], "fr", "Warpstone", "Malepierre")

    terms = service.find_matching_terms("Warpstone feeds the chaos of warpstone", "fr")
    assert {t["source_term"] for t in terms} == {"Chaos", "Warpstone"}

    problems = service.check_consistency("Mine the Warpstone", "Extrayez la pierre", "fr")
    assert problems == ['Term "Warpstone" should be translated as "Malepierre" but not found in target']
    assert service.check_consistency("Mine the Warpstone", "Extrayez la malepierre", "fr") == []

    substituted = service.apply_substitutions("Mine the Warpstone", "Extrayez la Warpstone", "fr")
    assert substituted == "Extrayez la Malepierre"


def test_stats_and_validation(service: GlossaryService, glossary) -> None:
    first = service.add_entry(glossary["id"], "fr", "Sword", "Épée")
    service.add_entry(glossary["id"], "fr", "sword", "Lame", case_sensitive=True)
    service.add_entry(glossary["id"], "de", "Axe", "Axt")
    service.increment_usage_count([first["id"]])

    stats = service.get_glossary_stats(glossary["id"])
    assert stats["total_entries"] == 3
    assert stats["entries_by_language_pair"] == {"fr": 2, "de": 1}
    assert stats["used_in_translations"] == 1
    assert stats["unused_entries"] == 2
    assert stats["duplicates_detected"] == 1
    assert stats["case_sensitive_terms"] == 1
    assert stats["consistency_score"] == pytest.approx(1 / 3)

    problems = service.validate_glossary(glossary["id"])
    assert any(p.startswith("Duplicate term") for p in problems)
    assert any(p.startswith("Conflicting translations for fr:sword") for p in problems)


def test_empty_glossary_stats(service: GlossaryService, glossary) -> None:
    stats = service.get_glossary_stats(glossary["id"])
    assert stats["total_entries"] == 0
    assert stats["usage_rate"] == 0.0
    assert stats["consistency_score"] == 1.0


def test_csv_round_trip_and_duplicates(service: GlossaryService, glossary, tmp_path) -> None:
    csv_file = tmp_path / "terms.csv"
    csv_file.write_text(
        "source_term,target_term,notes\n"
        "Sword,Épée,weapon\n"
        "Axe,Hache,\n"
        ",Vide,\n"
        "Sword,Lame,\n",
        encoding="utf-8",
    )

    result = service.import_from_csv(glossary["id"], csv_file, "fr")
    assert result.imported == 2
    assert result.skipped == 1
    assert len(result.errors) == 1

    out = tmp_path / "export.csv"
    assert service.export_to_csv(glossary["id"], out) == 2
    lines = out.read_text(encoding="utf-8-sig").splitlines()
    assert lines[0] == "source_term,target_term,notes"
    assert len(lines) == 3


def test_csv_import_with_only_errors_raises(service: GlossaryService, glossary, tmp_path) -> None:
    csv_file = tmp_path / "bad.csv"
    csv_file.write_text("source_term,target_term,notes\n,missing,\n", encoding="utf-8")
    with pytest.raises(FileFormatError):
        service.import_from_csv(glossary["id"], csv_file, "fr")


def test_tbx_export_then_import(service: GlossaryService, glossary, tmp_path) -> None:
    service.add_entry(glossary["id"], "fr", "Sword", "Épée", notes="weapon")
    service.add_entry(glossary["id"], "fr", "Chaos", "Chaos", case_sensitive=True)
    tbx_file = tmp_path / "terms.tbx"
    assert service.export_to_tbx(glossary["id"], tbx_file) == 2

    target = service.create_glossary("Imported", is_global=True)
    result = service.import_from_tbx(target["id"], tbx_file)
    assert result.imported == 2

    entries = {e["source_term"]: e for e in service.get_entries_by_glossary(target["id"])}
    assert entries["Sword"]["target_language_code"] == "fr"
    assert entries["Sword"]["notes"] == "weapon"
    assert entries["Chaos"]["case_sensitive"]


def test_excel_export_of_empty_glossary_writes_header_only(service: GlossaryService, glossary, tmp_path) -> None:
    from openpyxl import load_workbook

    xlsx = tmp_path / "empty.xlsx"
    assert service.export_to_excel(glossary["id"], xlsx) == 0
    wb = load_workbook(xlsx)
    ws = wb.active
    assert ws.title == "Warhammer terms"
    assert [c.value for c in ws[1]] == ["source_term", "target_term", "notes"]
    assert ws.max_row == 1


def test_excel_import(service: GlossaryService, glossary, tmp_path) -> None:
    from openpyxl import Workbook

    wb = Workbook()
    ws = wb.active
    ws.append(["source_term", "target_term", "notes"])
    ws.append(["Dragon", "Dragon", "monster"])
    ws.append(["Griffon", "Griffon", None])
    xlsx = tmp_path / "terms.xlsx"
    wb.save(xlsx)

    result = service.import_file(glossary["id"], "excel", xlsx, "fr")
    assert result.imported == 2
    assert result.errors == []


def test_import_csv_requires_language(service: GlossaryService, glossary, tmp_path) -> None:
    with pytest.raises(InvalidDataError):
        service.import_file(glossary["id"], "csv", tmp_path / "x.csv")


def test_entry_unique_constraint_in_schema(service: GlossaryService, glossary) -> None:
    entry = service.add_entry(glossary["id"], "fr", "Sword", "Épée")
    with pytest.raises(sqlite3.IntegrityError):
        with db.get_connection() as conn:
            conn.execute("""
                INSERT INTO glossary_entries (id, glossary_id, target_language_code, source_term,
                                              target_term, case_sensitive, usage_count,
                                              created_at, updated_at)
                VALUES ('dup', ?, 'fr', 'Sword', 'Lame', ?, 0, 0, 0)
            """, (glossary["id"], entry["case_sensitive"]))
