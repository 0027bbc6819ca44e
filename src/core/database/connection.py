"""
Database connection and migration utilities.

This module provides:
- init_db: Open/create the case database with migrations
- migrate: Execute pending SQL migrations
- utc_now: Timestamps recorded with applied migrations
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Set

from core.logging import get_logger

LOGGER = get_logger("core.database.connection")

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# =============================================================================
# Database Initialization
# =============================================================================

def init_db(db_path: Path, migrations_dir: Optional[Path] = None) -> sqlite3.Connection:
    """
    Open (or create) the SQLite case database and run migrations.

    Args:
        db_path: Path to the database file
        migrations_dir: Override for the migrations directory

    Returns:
        SQLite connection with migrations applied
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    LOGGER.debug("Opening case database at %s", db_path)
    # Ingest tasks for different data sources share one store from several threads;
    # the store serialises access with its own lock.
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA busy_timeout = 10000;")  # Wait up to 10s for locks
    conn.row_factory = sqlite3.Row
    migrate(conn, migrations_dir)
    return conn


# =============================================================================
# Migration System
# =============================================================================

def migrate(conn: sqlite3.Connection, migrations_dir: Optional[Path] = None) -> None:
    """Execute pending SQL migrations."""
    if migrations_dir is None:
        migrations_dir = MIGRATIONS_DIR
    _ensure_schema_table(conn)
    applied_versions = _fetch_applied_versions(conn)

    for migration_path in sorted(migrations_dir.glob("*.sql")):
        version = _extract_version(migration_path.name)
        if version in applied_versions:
            continue
        LOGGER.info("Applying migration %s", migration_path.name)
        try:
            with conn:
                sql = migration_path.read_text(encoding="utf-8")
                conn.executescript(sql)
                conn.execute(
                    "INSERT INTO schema_version(version, applied_at_utc) VALUES (?, ?)",
                    (version, utc_now()),
                )
        except sqlite3.DatabaseError as exc:
            LOGGER.exception("Migration %s failed", migration_path.name)
            raise RuntimeError(f"Failed to apply migration {migration_path}") from exc


def _ensure_schema_table(conn: sqlite3.Connection) -> None:
    """Create schema_version table if it doesn't exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at_utc TEXT NOT NULL
        );
        """
    )


def _fetch_applied_versions(conn: sqlite3.Connection) -> Set[int]:
    """Get set of already-applied migration versions."""
    rows = conn.execute("SELECT version FROM schema_version;").fetchall()
    return {int(row[0]) for row in rows}


def _extract_version(filename: str) -> int:
    """Extract version number from migration filename (e.g., '0001_foo.sql' -> 1)."""
    prefix = filename.split("_", 1)[0]
    return int(prefix)


def utc_now() -> str:
    """Return current UTC timestamp in ISO 8601 format."""
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()
