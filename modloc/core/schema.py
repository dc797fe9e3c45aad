"""
SQLite schema for modloc: table DDL, seed data and version upgrades.

Queries live in core/database.py and the per-feature repository modules.
"""

import sqlite3

# Module reference so a patched db.DB_FILE is honoured
import modloc.core.database as db

DB_VERSION = 4  # Increment when schema changes (project-scoped custom rules in v4)

DEFAULT_LANGUAGES = [
    ("lang_de", "de", "German", "Deutsch"),
    ("lang_en", "en", "English", "English"),
    ("lang_zh", "zh", "Chinese", "中文"),
    ("lang_es", "es", "Spanish", "Español"),
    ("lang_fr", "fr", "French", "Français"),
    ("lang_ru", "ru", "Russian", "Русский"),
]

DEFAULT_IGNORED_SOURCE_TEXTS = [
    "placeholder",
    "[placeholder]",
    "[unseen]",
    "[do not localise]",
]

TABLES = {
    "app_config": """
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """,
    "languages": """
        CREATE TABLE IF NOT EXISTS languages (
            id TEXT PRIMARY KEY,
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            native_name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            CHECK (is_active IN (0, 1))
        )
    """,
    "game_installations": """
        CREATE TABLE IF NOT EXISTS game_installations (
            id TEXT PRIMARY KEY,
            game_code TEXT NOT NULL UNIQUE,
            game_name TEXT NOT NULL,
            installation_path TEXT,
            steam_workshop_path TEXT,
            steam_app_id TEXT,
            is_auto_detected INTEGER NOT NULL DEFAULT 0,
            is_valid INTEGER NOT NULL DEFAULT 1,
            last_validated_at INTEGER,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
    "projects": """
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            mod_steam_id TEXT,
            game_installation_id TEXT NOT NULL,
            metadata TEXT,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (game_installation_id) REFERENCES game_installations(id) ON DELETE RESTRICT
        )
    """,
    "project_languages": """
        CREATE TABLE IF NOT EXISTS project_languages (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL,
            language_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            progress_percent REAL NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
            FOREIGN KEY (language_id) REFERENCES languages(id) ON DELETE RESTRICT,
            UNIQUE(project_id, language_id)
        )
    """,
    "translation_units": """
        CREATE TABLE IF NOT EXISTS translation_units (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL,
            key TEXT NOT NULL,
            source_text TEXT NOT NULL,
            source_loc_file TEXT,
            is_obsolete INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
            UNIQUE(project_id, key)
        )
    """,
    "translation_versions": """
        CREATE TABLE IF NOT EXISTS translation_versions (
            id TEXT PRIMARY KEY,
            unit_id TEXT NOT NULL,
            project_language_id TEXT NOT NULL,
            translated_text TEXT,
            is_manually_edited INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (unit_id) REFERENCES translation_units(id) ON DELETE CASCADE,
            FOREIGN KEY (project_language_id) REFERENCES project_languages(id) ON DELETE CASCADE,
            UNIQUE(unit_id, project_language_id)
        )
    """,
    "glossaries": """
        CREATE TABLE IF NOT EXISTS glossaries (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            description TEXT,
            is_global INTEGER NOT NULL DEFAULT 0,
            game_installation_id TEXT,
            target_language_id TEXT,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (game_installation_id) REFERENCES game_installations(id) ON DELETE CASCADE,
            CHECK ((is_global = 1 AND game_installation_id IS NULL)
                   OR (is_global = 0 AND game_installation_id IS NOT NULL))
        )
    """,
    "glossary_entries": """
        CREATE TABLE IF NOT EXISTS glossary_entries (
            id TEXT PRIMARY KEY,
            glossary_id TEXT NOT NULL,
            target_language_code TEXT NOT NULL,
            source_term TEXT NOT NULL,
            target_term TEXT NOT NULL,
            notes TEXT,
            case_sensitive INTEGER NOT NULL DEFAULT 0,
            usage_count INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (glossary_id) REFERENCES glossaries(id) ON DELETE CASCADE,
            UNIQUE(glossary_id, target_language_code, source_term, case_sensitive)
        )
    """,
    "compilations": """
        CREATE TABLE IF NOT EXISTS compilations (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            prefix TEXT NOT NULL,
            pack_name TEXT NOT NULL,
            game_installation_id TEXT NOT NULL,
            language_id TEXT,
            last_output_path TEXT,
            last_generated_at INTEGER,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (game_installation_id) REFERENCES game_installations(id) ON DELETE CASCADE
        )
    """,
    "compilation_projects": """
        CREATE TABLE IF NOT EXISTS compilation_projects (
            id TEXT PRIMARY KEY,
            compilation_id TEXT NOT NULL,
            project_id TEXT NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            added_at INTEGER NOT NULL,
            FOREIGN KEY (compilation_id) REFERENCES compilations(id) ON DELETE CASCADE,
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
            UNIQUE(compilation_id, project_id)
        )
    """,
    "llm_provider_models": """
        CREATE TABLE IF NOT EXISTS llm_provider_models (
            id TEXT PRIMARY KEY,
            provider_code TEXT NOT NULL,
            model_id TEXT NOT NULL,
            display_name TEXT,
            is_enabled INTEGER NOT NULL DEFAULT 0,
            is_default INTEGER NOT NULL DEFAULT 0,
            is_archived INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            last_fetched_at INTEGER NOT NULL,
            UNIQUE(provider_code, model_id)
        )
    """,
    "llm_custom_rules": """
        CREATE TABLE IF NOT EXISTS llm_custom_rules (
            id TEXT PRIMARY KEY,
            rule_text TEXT NOT NULL,
            is_enabled INTEGER NOT NULL DEFAULT 1,
            sort_order INTEGER NOT NULL DEFAULT 0,
            project_id TEXT,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
    "ignored_source_texts": """
        CREATE TABLE IF NOT EXISTS ignored_source_texts (
            id TEXT PRIMARY KEY,
            source_text TEXT NOT NULL,
            is_enabled INTEGER NOT NULL DEFAULT 1,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_units_project ON translation_units(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_units_key ON translation_units(key)",
    "CREATE INDEX IF NOT EXISTS idx_versions_unit ON translation_versions(unit_id)",
    "CREATE INDEX IF NOT EXISTS idx_glossaries_game ON glossaries(game_installation_id)",
    "CREATE INDEX IF NOT EXISTS idx_glossary_entries_glossary ON glossary_entries(glossary_id, target_language_code)",
    "CREATE INDEX IF NOT EXISTS idx_compilation_projects_compilation ON compilation_projects(compilation_id, sort_order)",
    "CREATE INDEX IF NOT EXISTS idx_llm_models_provider ON llm_provider_models(provider_code)",
    "CREATE INDEX IF NOT EXISTS idx_llm_rules_project ON llm_custom_rules(project_id)",
]


def get_connection():
    """Connection to whatever db.DB_FILE currently points at."""
    return db.get_connection()


def get_db_version() -> int:
    """Schema version recorded in db_version, 0 for a fresh file."""
    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT version FROM db_version LIMIT 1")
            row = cursor.fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(version: int):
    """Record ``version`` as the current schema version."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        cursor.execute("DELETE FROM db_version")
        cursor.execute("INSERT INTO db_version (version) VALUES (?)", (version,))
        conn.commit()


def initialize_database():
    """Create missing tables, upgrade older files and seed reference data."""
    from modloc.logger import get_logger
    logger = get_logger(__name__)

    if db.DB_FILE.exists():
        current_version = get_db_version()
        if current_version < DB_VERSION:
            migrate_database(current_version, DB_VERSION)
        else:
            try:
                ensure_all_schemas()
            except Exception as e:
                logger.warning(f"Failed to verify database schema: {e}")
        return

    db.DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    create_tables()
    ensure_database_indexes()
    seed_reference_data()
    set_db_version(DB_VERSION)
    logger.info(f"Database created at {db.DB_FILE} (version {DB_VERSION})")


def create_tables():
    with get_connection() as conn:
        cursor = conn.cursor()
        for statement in TABLES.values():
            cursor.execute(statement)
        conn.commit()


def seed_reference_data():
    """Insert default languages and ignored source texts (idempotent)."""
    ts = db.now_ts()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.executemany("""
            INSERT OR IGNORE INTO languages (id, code, name, native_name, is_active)
            VALUES (?, ?, ?, ?, 1)
        """, DEFAULT_LANGUAGES)

        cursor.execute("SELECT COUNT(*) FROM ignored_source_texts")
        if cursor.fetchone()[0] == 0:
            cursor.executemany("""
                INSERT INTO ignored_source_texts (id, source_text, is_enabled, created_at, updated_at)
                VALUES (?, ?, 1, ?, ?)
            """, [(db.new_id(), text, ts, ts) for text in DEFAULT_IGNORED_SOURCE_TEXTS])
        conn.commit()


# ============================================================
# Column upgrades
# ============================================================

def _ensure_columns(table: str, columns: dict):
    """
    Add any of ``columns`` (name -> column definition) missing from ``table``.
    """
    from modloc.logger import get_logger
    logger = get_logger(__name__)

    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"PRAGMA table_info({table})")
            existing_cols = {row[1] for row in cursor.fetchall()}

            for name, definition in columns.items():
                if name not in existing_cols:
                    logger.info(f"Adding {name} column to {table} table")
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {name} {definition}")

            conn.commit()
    except Exception as e:
        logger.error(f"Failed to ensure {table} schema: {e}")
        raise


def ensure_glossary_entries_schema():
    _ensure_columns("glossary_entries", {
        "notes": "TEXT",
        "usage_count": "INTEGER NOT NULL DEFAULT 0",
    })


def ensure_compilations_schema():
    _ensure_columns("compilations", {
        "language_id": "TEXT",
        "last_output_path": "TEXT",
        "last_generated_at": "INTEGER",
    })


def ensure_llm_custom_rules_schema():
    _ensure_columns("llm_custom_rules", {
        "project_id": "TEXT",
    })


def ensure_database_indexes():
    """
    Ensure all performance indexes exist.
    Safe to call multiple times; uses IF NOT EXISTS.
    """
    from modloc.logger import get_logger
    logger = get_logger(__name__)

    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            for statement in INDEXES:
                cursor.execute(statement)
            conn.commit()
            logger.debug("Database indexes created/verified successfully")
    except Exception as e:
        logger.error(f"Failed to ensure database indexes: {e}")
        raise


def ensure_all_schemas():
    """
    Ensure all tables exist with all required columns and indexes.
    """
    create_tables()
    ensure_glossary_entries_schema()
    ensure_compilations_schema()
    ensure_llm_custom_rules_schema()
    ensure_database_indexes()
    seed_reference_data()


# ============================================================
# Database Migration
# ============================================================

def migrate_database(from_version: int, to_version: int):
    """
    Upgrade an existing file from ``from_version`` to ``to_version``.

    Every migration so far only adds tables, columns or indexes, so bringing
    the schema up to date is enough for any older version.
    """
    from modloc.logger import get_logger
    logger = get_logger(__name__)

    logger.info(f"Migrating database from version {from_version} to {to_version}")
    ensure_all_schemas()
    set_db_version(to_version)
    logger.info(f"Database migration completed: now at version {to_version}")
