"""Tests for database connection and migration utilities."""

import sqlite3

import pytest

from core.database.connection import init_db, migrate


def test_init_db_creates_parent_and_applies_migrations(tmp_path):
    conn = init_db(tmp_path / "nested" / "case.db")
    try:
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()

    assert {"schema_version", "data_sources", "files", "artifacts"} <= tables


def test_migrate_skips_applied_versions(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "0001_extra.sql").write_text("CREATE TABLE extra (id INTEGER PRIMARY KEY);")
    conn = init_db(tmp_path / "case.db", migrations)
    try:
        migrate(conn, migrations)
        versions = [row[0] for row in conn.execute("SELECT version FROM schema_version")]
    finally:
        conn.close()

    assert versions == [1]


def test_structured_values_are_not_bound_implicitly(tmp_path):
    conn = init_db(tmp_path / "case.db")
    try:
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT ?", ({"url": "https://a.test"},))
    finally:
        conn.close()
