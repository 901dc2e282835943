import os
import sqlite3
import tempfile

import pytest

from migration.migration_v1_to_v2 import migrate


def create_v1_db(path: str):
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            "CREATE TABLE users (id VARCHAR PRIMARY KEY, email VARCHAR, first_name VARCHAR, "
            "created_at DATETIME, updated_at DATETIME)"
        )
        conn.execute("CREATE TABLE sessions (sid VARCHAR PRIMARY KEY, sess JSON NOT NULL, expire DATETIME NOT NULL)")
        # Seed data
        conn.execute("INSERT INTO users (id, email, first_name) VALUES ('u1', 'alice@example.com', 'Alice'), ('u2', 'bob@example.com', 'Bob')")
        conn.commit()
    finally:
        conn.close()


def test_migration_adds_role_and_status_and_backfills():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "test.db")
        create_v1_db(db_path)

        # Run migration twice; the second run must be a no-op
        migrate(db_path)
        migrate(db_path)

        conn = sqlite3.connect(db_path)
        try:
            cols = [r[1] for r in conn.execute("PRAGMA table_info(users)").fetchall()]
            assert "role" in cols
            assert "is_active" in cols

            rows = conn.execute("SELECT id, role, is_active FROM users ORDER BY id").fetchall()
            assert rows == [("u1", "client", 1), ("u2", "client", 1)]

            indexes = [r[1] for r in conn.execute("PRAGMA index_list(sessions)").fetchall()]
            assert "ix_sessions_expire" in indexes
        finally:
            conn.close()


def test_migration_rejects_missing_database():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(FileNotFoundError):
            migrate(os.path.join(tmp, "missing.db"))
