"""
Core module - Database access

This module provides:
- database: connection helpers and CRUD for shared entities
  (app config, languages, game installations, projects and their units)
- schema: Database initialization and migrations
"""

from modloc.core.database import (
    DB_FILE,
    get_connection,
    now_ts,
    new_id,
    # App config operations
    get_app_config,
    set_app_config,
    # Language operations
    get_active_languages,
    get_all_languages,
    get_language_by_id,
    get_language_by_code,
    insert_language,
    # Game installation operations
    get_all_game_installations,
    get_game_installation_by_id,
    get_game_installation_by_game_code,
    insert_game_installation,
    # Project operations
    create_project,
    get_project_by_id,
    get_all_projects,
    add_project_language,
    upsert_translation_unit,
    upsert_translation_version,
    get_translated_units,
)

from modloc.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
    ensure_all_schemas,
    migrate_database,
)
