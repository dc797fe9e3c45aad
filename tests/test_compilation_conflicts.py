from __future__ import annotations

import pytest

from modloc.compilation import (
    ConflictAnalyzer,
    ConflictResolutions,
)
from modloc.compilation.conflicts import (
    DUPLICATE,
    KEY_COLLISION_DIFFERENT_SOURCE,
    SKIP,
    USE_FIRST,
    USE_SECOND,
    CompilationConflict,
    ConflictAnalysisResult,
    ConflictEntry,
    ConflictSummary,
)

from modloc.core.database import KEY_BATCH_SIZE


@pytest.fixture
def analyzer() -> ConflictAnalyzer:
    return ConflictAnalyzer()


def _entry(project_id: str, text: str) -> ConflictEntry:
    return ConflictEntry(project_id=project_id, project_name=project_id, unit_id=f"u_{project_id}",
                         source_text=text)


def _conflict(conflict_id: str, conflict_type: str = KEY_COLLISION_DIFFERENT_SOURCE) -> CompilationConflict:
    return CompilationConflict(
        id=conflict_id,
        key=f"key_{conflict_id}",
        conflict_type=conflict_type,
        first_entry=_entry("p1", "one"),
        second_entry=_entry("p2", "two"),
    )


def test_analysis_needs_two_projects(analyzer: ConflictAnalyzer, make_project, french) -> None:
    project_id = make_project("Solo", {"k": ("Sword", "Épée")})
    result = analyzer.analyze([project_id, project_id], french["id"])
    assert result.conflicts == []
    assert result.summary.total_count == 0
    assert result.analyzed_project_ids == [project_id]


def test_key_collisions_with_different_sources(analyzer: ConflictAnalyzer, make_project, french) -> None:
    beta = make_project("Beta Mod", {
        "unit_name": ("Blade", "Lame"),
        "same_text": ("Hello", "Bonjour"),
        "PLACEHOLDER": ("x", "x"),
    })
    alpha = make_project("Alpha Mod", {
        "unit_name": ("Sword", "Épée"),
        "same_text": ("Hello", "Salut"),
        "PLACEHOLDER": ("y", "y"),
        "alpha_only": ("Axe", "Hache"),
    }, metadata={"mod_title": "Alpha Title"})

    progress = []
    result = analyzer.analyze([beta, alpha], french["id"], on_progress=lambda c, t, p: progress.append((c, t)))

    assert [c.key for c in result.conflicts] == ["unit_name"]
    conflict = result.conflicts[0]
    assert conflict.conflict_type == KEY_COLLISION_DIFFERENT_SOURCE
    # rows are paired in project name order
    assert conflict.first_entry.project_id == alpha
    assert conflict.first_entry.project_name == "Alpha Title"
    assert conflict.first_entry.translated_text == "Épée"
    assert conflict.second_entry.source_text == "Blade"
    assert conflict.second_entry.has_translation
    assert result.summary.key_collision_count == 1
    assert result.has_unresolved_conflicts
    assert result.conflicting_project_ids() == [alpha, beta]
    assert progress[-1] == (4, 4)


def test_obsolete_units_are_ignored(analyzer: ConflictAnalyzer, make_project, french) -> None:
    from modloc.core import database as db

    first = make_project("First", {"k": ("Sword", "Épée")})
    second = make_project("Second", {})
    db.upsert_translation_unit(second, "k", "Blade", is_obsolete=True)

    assert analyzer.analyze([first, second], french["id"]).conflicts == []


def test_with_resolved_conflicts_auto_resolves_duplicates() -> None:
    analysis = ConflictAnalysisResult.empty(["p1", "p2"], "lang_fr").with_conflicts([
        _conflict("c0"),
        _conflict("c1", DUPLICATE),
        _conflict("c2"),
    ])
    resolutions = ConflictResolutions()
    resolutions.set_resolution("c2", SKIP)

    resolved = analysis.with_resolved_conflicts(resolutions)

    by_id = {c.id: c for c in resolved.conflicts}
    assert by_id["c0"].resolution is None
    assert by_id["c1"].resolution == USE_FIRST
    assert by_id["c1"].resolved_with_project_id == "p1"
    assert by_id["c2"].resolution == SKIP
    assert resolved.summary.resolved_count == 2
    assert resolved.unresolved_count == 1
    assert [c.id for c in resolved.get_by_type(DUPLICATE)] == ["c1"]
    assert not _entry("p1", "one").has_translation


def test_apply_resolutions_leaves_duplicates_alone(analyzer: ConflictAnalyzer) -> None:
    analysis = ConflictAnalysisResult.empty(["p1", "p2"], "lang_fr").with_conflicts([
        _conflict("c0"), _conflict("c1", DUPLICATE),
    ])
    resolutions = ConflictResolutions(resolutions={"c0": USE_SECOND})

    applied = analyzer.apply_resolutions(analysis, resolutions)

    assert applied.conflicts[0].resolution == USE_SECOND
    assert applied.conflicts[1].resolution is None


def test_get_winning_entry(analyzer: ConflictAnalyzer) -> None:
    conflict = _conflict("c0")
    assert analyzer.get_winning_entry(conflict) is None
    assert analyzer.get_winning_entry(conflict.with_resolution(USE_FIRST)).project_id == "p1"
    assert analyzer.get_winning_entry(conflict.with_resolution(USE_SECOND)).project_id == "p2"
    assert analyzer.get_winning_entry(conflict.with_resolution(SKIP)) is None

    fallback = ConflictResolutions(default_resolution=USE_SECOND)
    assert analyzer.get_winning_entry(conflict, fallback).project_id == "p2"


def test_resolutions_from_dict() -> None:
    resolutions = ConflictResolutions.from_dict({
        "resolutions": {"c0": "use_second"},
        "default_resolution": "skip",
    })
    assert resolutions.get_resolution("c0") == USE_SECOND
    assert resolutions.get_resolution("other") == SKIP
    assert resolutions.is_resolved("other")

    with pytest.raises(ValueError):
        ConflictResolutions.from_dict({"resolutions": {"c0": "keep_both"}})
    with pytest.raises(ValueError):
        _conflict("c0").with_resolution("merge")


def test_summary_attention_flags() -> None:
    summary = ConflictSummary.from_conflicts([
        _conflict("c0"),
        _conflict("c1", DUPLICATE),
    ])
    assert summary.manual_resolution_required == 1
    assert summary.needs_user_attention
    assert not summary.all_resolved
    assert summary.to_dict()["unresolved_count"] == 2


def test_key_shared_by_three_projects_yields_every_pair(analyzer: ConflictAnalyzer, make_project,
                                                        french) -> None:
    a = make_project("A Mod", {"k": ("one", "UN")})
    b = make_project("B Mod", {"k": ("two", "DEUX")})
    c = make_project("C Mod", {"k": ("three", "TROIS")})

    result = analyzer.analyze([c, a, b], french["id"])

    pairs = [(x.first_entry.project_id, x.second_entry.project_id) for x in result.conflicts]
    assert pairs == [(a, b), (a, c), (b, c)]
    assert [x.id for x in result.conflicts] == ["conflict_0", "conflict_1", "conflict_2"]


def test_shared_keys_beyond_one_batch(analyzer: ConflictAnalyzer, make_project, french) -> None:
    count = KEY_BATCH_SIZE + 50
    first = make_project("First", {f"key_{i:04d}": (f"source {i}", None) for i in range(count)})
    second = make_project("Second", {f"key_{i:04d}": (f"other {i}", None) for i in range(count)})

    result = analyzer.analyze([first, second], french["id"])

    assert len(result.conflicts) == count
    assert result.conflicts[-1].key == f"key_{count - 1:04d}"
    assert len({c.key for c in result.conflicts}) == count
