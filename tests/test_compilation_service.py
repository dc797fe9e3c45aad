from __future__ import annotations

import pytest

from modloc.compilation import CompilationCancelled, CompilationService, ConflictResolutions
from modloc.compilation.loc_tsv import read_loc_tsv
from modloc.compilation.service import build_full_pack_name, validate_compilation
from modloc.core import database as db
from modloc.errors import InvalidDataError, NotFoundError
from modloc.translation import get_ignored_text_service


@pytest.fixture
def service() -> CompilationService:
    return CompilationService()


@pytest.fixture
def two_projects(make_project):
    alpha = make_project("Alpha Mod", {
        "unit_name": ("Sword", "Épée"),
        "alpha_only": ("Axe", "Hache"),
        "filler": ("placeholder", "remplissage"),
        "untranslated": ("Bow", None),
    }, mod_steam_id="1001", metadata={"mod_title": "Alpha Title"})
    beta = make_project("Beta Mod", {
        "unit_name": ("Blade", "Lame"),
        "beta_only": ("Shield", "Bouclier\nlourd"),
    }, mod_steam_id="1002")
    return alpha, beta


@pytest.fixture
def compilation(service: CompilationService, game, french, two_projects):
    alpha, beta = two_projects
    return service.create_compilation("French pack", "units", game["id"], french["id"], [alpha, beta])


def test_validate_compilation_lists_every_problem() -> None:
    errors = validate_compilation("", " ", "", None, [])
    assert errors == [
        "Name is required",
        "Prefix is required",
        "Pack name is required",
        "Language is required",
        "At least one project is required",
    ]
    assert validate_compilation("n", "p", "k", "lang_fr", ["x"]) == []


def test_full_pack_name_is_lowercase() -> None:
    assert build_full_pack_name("!!_FR_", "My Pack") == "!!_fr_my pack.pack"


def test_create_compilation_uses_language_prefix(compilation, two_projects) -> None:
    assert compilation.compilation["prefix"] == "!!!!!!!!!!_fr_compilation_twmt_"
    assert compilation.full_pack_name == "!!!!!!!!!!_fr_compilation_twmt_units.pack"
    assert compilation.project_ids == list(two_projects)
    payload = compilation.to_dict()
    assert payload["projects"][0]["display_name"] == "Alpha Title"
    assert payload["language"]["code"] == "fr"


def test_create_compilation_rejects_bad_references(service: CompilationService, game, french,
                                                   make_project) -> None:
    project = make_project("Mod", {})
    with pytest.raises(InvalidDataError):
        service.create_compilation("c", "p", game["id"], french["id"], [])
    with pytest.raises(NotFoundError):
        service.create_compilation("c", "p", game["id"], french["id"], ["missing"])
    with pytest.raises(NotFoundError):
        service.create_compilation("c", "p", "no_game", french["id"], [project])

    other_game = db.insert_game_installation("wh2", "Total War: WARHAMMER II")
    other_project = db.create_project("Other", other_game["id"])
    with pytest.raises(InvalidDataError):
        service.create_compilation("c", "p", game["id"], french["id"], [project, other_project])


def test_update_and_delete_compilation(service: CompilationService, compilation, two_projects) -> None:
    compilation_id = compilation.compilation["id"]
    alpha, beta = two_projects

    updated = service.update_compilation(compilation_id, name="Renamed", project_ids=[beta, alpha, beta])
    assert updated.compilation["name"] == "Renamed"
    assert updated.project_ids == [beta, alpha]

    listed = service.get_all_compilations()
    assert listed[0]["full_pack_name"] == updated.full_pack_name
    assert listed[0]["project_count"] == 2

    with pytest.raises(InvalidDataError):
        service.update_compilation(compilation_id, project_ids=[])

    service.delete_compilation(compilation_id)
    with pytest.raises(NotFoundError):
        service.get_compilation_with_details(compilation_id)
    with pytest.raises(NotFoundError):
        service.delete_compilation(compilation_id)


def test_generate_merges_projects_in_order(service: CompilationService, compilation, tmp_path) -> None:
    progress = []
    result = service.generate(compilation.compilation["id"], output_dir=tmp_path,
                              on_progress=lambda current, total, message: progress.append((current, total)))

    assert result["output_path"] == str(tmp_path / "!!!!!!!!!!_fr_compilation_twmt_units.loc.tsv")
    assert result["conflict_count"] == 1
    assert result["unresolved_conflicts"] == 1
    assert result["project_count"] == 2

    entries = read_loc_tsv(result["output_path"])
    assert entries == {
        "alpha_only": "Hache",
        "beta_only": "Bouclier\nlourd",
        "unit_name": "Épée",
    }
    assert result["entry_count"] == 3
    assert progress[0] == (0, 4)
    assert progress[-1] == (4, 4)

    stored = service.get_compilation_with_details(compilation.compilation["id"]).compilation
    assert stored["last_output_path"] == result["output_path"]
    assert stored["last_generated_at"] is not None


def test_generate_honours_resolutions(service: CompilationService, compilation, tmp_path) -> None:
    conflict = service.analyze_conflicts(compilation.compilation["id"]).conflicts[0]

    use_second = ConflictResolutions()
    use_second.set_resolution(conflict.id, "use_second")
    result = service.generate(compilation.compilation["id"], output_dir=tmp_path, resolutions=use_second)
    assert read_loc_tsv(result["output_path"])["unit_name"] == "Lame"
    assert result["unresolved_conflicts"] == 0

    skip = ConflictResolutions(default_resolution="skip")
    result = service.generate(compilation.compilation["id"], output_dir=tmp_path, resolutions=skip)
    assert "unit_name" not in read_loc_tsv(result["output_path"])
    assert result["skipped_keys"] == ["unit_name"]


def test_generate_respects_ignored_texts(service: CompilationService, compilation, tmp_path) -> None:
    ignored = get_ignored_text_service()
    placeholder = next(t for t in ignored.get_all() if t["source_text"] == "placeholder")
    ignored.toggle_enabled(placeholder["id"])

    result = service.generate(compilation.compilation["id"], output_dir=tmp_path)
    assert read_loc_tsv(result["output_path"])["filler"] == "remplissage"


def test_generate_can_be_cancelled(service: CompilationService, compilation, tmp_path) -> None:
    with pytest.raises(CompilationCancelled) as excinfo:
        service.generate(compilation.compilation["id"], output_dir=tmp_path / "out", cancel_check=lambda: True)
    assert excinfo.value.code == "cancelled"
    assert not (tmp_path / "out").exists()


def test_bbcode_lists_projects_with_steam_ids(service: CompilationService, compilation, make_project,
                                              two_projects) -> None:
    no_steam = make_project("Local Mod", {})
    service.update_compilation(compilation.compilation["id"], project_ids=[*two_projects, no_steam])

    bbcode = service.generate_bbcode(compilation.compilation["id"])

    assert bbcode.splitlines() == [
        "[url=https://steamcommunity.com/sharedfiles/filedetails/?id=1001]Alpha Title[/url]",
        "[url=https://steamcommunity.com/sharedfiles/filedetails/?id=1002]Beta Mod[/url]",
    ]


@pytest.fixture
def three_way(service: CompilationService, game, french, make_project):
    a = make_project("A Mod", {"k": ("one", "UN"), "a_only": ("x", "ixe")})
    b = make_project("B Mod", {"k": ("two", "DEUX")})
    c = make_project("C Mod", {"k": ("three", "TROIS")})
    compilation = service.create_compilation("Three way", "pack", game["id"], french["id"], [a, b, c])
    return compilation.compilation["id"], (a, b, c)


def test_key_shared_by_three_projects_has_one_owner(service: CompilationService, three_way,
                                                     tmp_path) -> None:
    compilation_id, _ = three_way

    use_first = ConflictResolutions(default_resolution="use_first")
    result = service.generate(compilation_id, output_dir=tmp_path, resolutions=use_first)
    assert read_loc_tsv(result["output_path"])["k"] == "UN"
    assert result["conflict_count"] == 3
    assert result["skipped_keys"] == []

    use_second = ConflictResolutions(default_resolution="use_second")
    result = service.generate(compilation_id, output_dir=tmp_path, resolutions=use_second)
    assert read_loc_tsv(result["output_path"])["k"] == "DEUX"


def test_skipped_pair_does_not_drop_a_kept_key(service: CompilationService, three_way, tmp_path) -> None:
    compilation_id, (a, b, _) = three_way
    conflicts = service.analyze_conflicts(compilation_id).conflicts
    a_b = next(x for x in conflicts
               if (x.first_entry.project_id, x.second_entry.project_id) == (a, b))

    resolutions = ConflictResolutions(default_resolution="use_second")
    resolutions.set_resolution(a_b.id, "skip")
    result = service.generate(compilation_id, output_dir=tmp_path, resolutions=resolutions)

    # a-c and b-c both keep C
    assert read_loc_tsv(result["output_path"])["k"] == "TROIS"
    assert result["skipped_keys"] == []

    everything_skipped = ConflictResolutions(default_resolution="skip")
    result = service.generate(compilation_id, output_dir=tmp_path, resolutions=everything_skipped)
    assert "k" not in read_loc_tsv(result["output_path"])
    assert result["skipped_keys"] == ["k"]


def test_generate_skips_non_ascii_ignored_texts(service: CompilationService, game, french, make_project,
                                                tmp_path) -> None:
    get_ignored_text_service().add("[non localisé]")
    project = make_project("Mod", {
        "label": ("[NON LOCALISÉ]", "rien"),
        "padded": ("\tplaceholder\n", "remplissage"),
        "kept": ("Sword", "Épée"),
    })
    compilation = service.create_compilation("Ignored", "pack", game["id"], french["id"], [project])

    result = service.generate(compilation.compilation["id"], output_dir=tmp_path)

    assert read_loc_tsv(result["output_path"]) == {"kept": "Épée"}
