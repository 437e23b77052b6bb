"""
Database schema for pocketci.

This module defines the SQLite schema and handles migrations.
Unlike a cache, this database is the source of truth for build state and
last-seen branch heads, so it is never dropped on upgrade: migrations are
applied in order on top of the existing data.
"""

import logging
import sqlite3
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Current schema version - increment when schema changes
# v1: Initial schema
CURRENT_VERSION = 1

SCHEMA_V1 = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS _schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

-- Organization repositories and their local mirrors
CREATE TABLE IF NOT EXISTS repositories (
    name TEXT PRIMARY KEY,
    organization TEXT,
    remote_url TEXT NOT NULL,
    mirror_path TEXT NOT NULL,
    discovered_at REAL NOT NULL,
    last_synced_at REAL,
    last_error TEXT
);

-- Last-seen head per branch; retired when the branch disappears upstream
CREATE TABLE IF NOT EXISTS branches (
    repository TEXT NOT NULL,
    name TEXT NOT NULL,
    head_commit TEXT NOT NULL,
    observed_at REAL NOT NULL,
    retired BOOLEAN DEFAULT 0,
    retired_at REAL,
    PRIMARY KEY (repository, name),
    FOREIGN KEY (repository) REFERENCES repositories(name) ON DELETE CASCADE
);

-- Commits observed as branch heads (immutable)
CREATE TABLE IF NOT EXISTS commits (
    id TEXT NOT NULL,
    repository TEXT NOT NULL,
    branch TEXT NOT NULL,
    observed_at REAL NOT NULL,
    PRIMARY KEY (id, repository, branch)
);

-- One snapshot per commit id
CREATE TABLE IF NOT EXISTS snapshots (
    commit_id TEXT PRIMARY KEY,
    repository TEXT NOT NULL,
    buildable BOOLEAN NOT NULL,
    digest TEXT,
    location TEXT,
    size INTEGER DEFAULT 0,
    commit_timestamp INTEGER DEFAULT 0,
    created_at REAL NOT NULL
);

-- Build state history; exactly one active record per target
CREATE TABLE IF NOT EXISTS build_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository TEXT NOT NULL,
    codename TEXT NOT NULL,
    pocket TEXT NOT NULL,
    commit_id TEXT NOT NULL,
    status TEXT NOT NULL,  -- pending, in_progress, succeeded, failed, cancelled
    attempts INTEGER DEFAULT 0,
    transient_failures INTEGER DEFAULT 0,
    last_attempt_at REAL,
    next_attempt_at REAL,
    claimed_at REAL,
    failure_reason TEXT,
    observed_at REAL NOT NULL,
    active BOOLEAN DEFAULT 1,
    superseded_at REAL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

-- Sync errors (failed listing/clone/fetch/snapshot per repository)
CREATE TABLE IF NOT EXISTS sync_errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository TEXT NOT NULL,
    stage TEXT NOT NULL,       -- 'listing', 'mirror', 'snapshot'
    error_type TEXT NOT NULL,
    error_message TEXT,
    occurred_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_build_records_active_target
    ON build_records(repository, codename, pocket) WHERE active = 1;
CREATE INDEX IF NOT EXISTS idx_build_records_target
    ON build_records(repository, codename, pocket);
CREATE INDEX IF NOT EXISTS idx_build_records_status ON build_records(status, active);
CREATE INDEX IF NOT EXISTS idx_branches_repository ON branches(repository);
CREATE INDEX IF NOT EXISTS idx_sync_errors_repository ON sync_errors(repository);
"""


def get_migrations() -> List[Tuple[int, str, str]]:
    """
    Get list of migrations.

    Returns:
        List of (version, description, sql) tuples
    """
    return [
        (1, "Initial schema", SCHEMA_V1),
    ]


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version from database."""
    try:
        cursor = conn.execute(
            "SELECT MAX(version) FROM _schema_info"
        )
        result = cursor.fetchone()
        return result[0] if result[0] is not None else 0
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return 0


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure database has current schema, applying pending migrations."""
    current = get_schema_version(conn)
    if current >= CURRENT_VERSION:
        return

    for version, description, sql in get_migrations():
        if version <= current:
            continue
        logger.info(f"Applying state schema v{version}: {description}")
        conn.executescript(sql)
        conn.execute(
            "INSERT OR REPLACE INTO _schema_info (version, description) VALUES (?, ?)",
            (version, description)
        )

    conn.commit()
