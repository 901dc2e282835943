"""
Migration V1 -> V2
- Adds 'role' and 'is_active' columns to users if missing
- Backfills role as 'client' and is_active as 1 when NULL
- Adds an index on sessions.expire so expired sessions can be purged cheaply

Usage:
  python -m migration.migration_v1_to_v2 --db path/to/portal.db
"""
import argparse
import os
import sqlite3
from contextlib import closing


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())


def migrate(db_path: str):
    if db_path == ":memory:":
        raise ValueError("Use a file-backed DB for migration script")

    if not os.path.exists(db_path):
        raise FileNotFoundError(db_path)

    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA foreign_keys=ON")

        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        if "users" not in tables:
            raise RuntimeError("users table missing; cannot migrate")

        if not has_column(conn, "users", "role"):
            conn.execute("ALTER TABLE users ADD COLUMN role VARCHAR NOT NULL DEFAULT 'client'")
        if not has_column(conn, "users", "is_active"):
            conn.execute("ALTER TABLE users ADD COLUMN is_active BOOLEAN NOT NULL DEFAULT 1")

        conn.execute("UPDATE users SET role = 'client' WHERE role IS NULL OR role NOT IN ('client', 'admin')")
        conn.execute("UPDATE users SET is_active = 1 WHERE is_active IS NULL")

        if "sessions" in tables:
            conn.execute("CREATE INDEX IF NOT EXISTS ix_sessions_expire ON sessions (expire)")
        conn.commit()


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", required=True, help="Path to SQLite database file")
    args = parser.parse_args()
    migrate(args.db)

if __name__ == "__main__":
    main()
