from __future__ import annotations

from typing import Dict, Optional, Tuple

import keyring
import keyring.errors
import pytest

import modloc.logger as modloc_logger
from modloc import config
from modloc.core import database as db
from modloc.llm.service import set_llm_provider_service
from modloc.translation import reset_ignored_text_service


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Point the database at a fresh file for every test."""
    db_file = tmp_path / "modloc.db"
    monkeypatch.setattr(db, "DB_FILE", db_file)
    monkeypatch.setattr(modloc_logger, "_log_mode_cache", "off")
    config.initialize_app()
    reset_ignored_text_service()
    set_llm_provider_service(None)
    yield db_file
    reset_ignored_text_service()
    set_llm_provider_service(None)


@pytest.fixture(autouse=True)
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> Dict[Tuple[str, str], str]:
    """In-memory replacement for the OS keyring."""
    store: Dict[Tuple[str, str], str] = {}

    def set_password(service: str, username: str, password: str) -> None:
        store[(service, username)] = password

    def get_password(service: str, username: str) -> Optional[str]:
        return store.get((service, username))

    def delete_password(service: str, username: str) -> None:
        if (service, username) not in store:
            raise keyring.errors.PasswordDeleteError("not found")
        del store[(service, username)]

    monkeypatch.setattr(keyring, "set_password", set_password)
    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "delete_password", delete_password)
    return store


@pytest.fixture
def game() -> dict:
    return db.insert_game_installation("wh3", "Total War: WARHAMMER III", steam_app_id="1142710")


@pytest.fixture
def french() -> dict:
    return db.get_language_by_code("fr")


@pytest.fixture
def make_project(game, french):
    """Create a project with units and French translations.

    ``units`` maps key -> (source_text, translated_text or None).
    """
    def _make(name: str, units: Dict[str, Tuple[str, Optional[str]]], mod_steam_id: str = None,
              metadata: dict = None, language: dict = None) -> str:
        language = language or french
        project_id = db.create_project(name, game["id"], mod_steam_id=mod_steam_id, metadata=metadata)
        project_language_id = db.add_project_language(project_id, language["id"])
        for key, (source_text, translated_text) in units.items():
            unit_id = db.upsert_translation_unit(project_id, key, source_text, source_loc_file="text/db/mod.loc")
            if translated_text is not None:
                db.upsert_translation_version(unit_id, project_language_id, translated_text)
        return project_id

    return _make
