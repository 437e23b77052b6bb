"""
Database connection management for pocketci.

The state database is SQLite in WAL mode. Registry, snapshot and build
workers run in separate threads and each opens its own short-lived
connection; writers that must read-then-write use ``BEGIN IMMEDIATE`` so
the check and the update happen under the write lock.
"""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Generator

from .schema import ensure_schema

# Seconds a writer waits for another connection's write lock
BUSY_TIMEOUT = 30.0


def get_db_path(config: Optional[dict] = None) -> Path:
    """
    Locate the state database.

    POCKETCI_DB wins, then ``database.path``, then ``<paths.root>/state.db``.
    """
    if 'POCKETCI_DB' in os.environ:
        return Path(os.environ['POCKETCI_DB'])

    if config and config.get('database', {}).get('path'):
        return Path(config['database']['path']).expanduser()

    root = '~/.pocketci'
    if config and config.get('paths', {}).get('root'):
        root = config['paths']['root']
    return Path(root).expanduser() / 'state.db'


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open the state database, creating it and migrating the schema as needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    ensure_schema(conn)
    return conn


class Database:
    """
    One connection to the state database, committed on clean exit and
    rolled back on error.

    Usage:
        with Database(db_path=path) as db:
            db.begin_immediate()
            db.execute("UPDATE build_records SET ... WHERE id = ? AND status = 'pending'", (record_id,))
            claimed = db.rowcount == 1
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._cursor: Optional[sqlite3.Cursor] = None

    def __enter__(self) -> 'Database':
        self._conn = get_connection(self.db_path)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._cursor:
            self._cursor.close()
        if self._conn:
            try:
                if exc_type is None:
                    self._conn.commit()
                elif self._conn.in_transaction:
                    self._conn.rollback()
            finally:
                self._conn.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Use 'with Database(db_path) as db:'")
        return self._conn

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        self._cursor = self.conn.execute(sql, params)
        return self._cursor

    def fetchone(self) -> Optional[sqlite3.Row]:
        if self._cursor is None:
            return None
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        if self._cursor is None:
            return []
        return self._cursor.fetchall()

    def begin_immediate(self) -> None:
        """Start a transaction that takes the write lock up front."""
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    @property
    def lastrowid(self) -> Optional[int]:
        if self._cursor is None:
            return None
        return self._cursor.lastrowid

    @property
    def rowcount(self) -> int:
        """Rows changed by the last statement; guarded updates check this."""
        if self._cursor is None:
            return 0
        return self._cursor.rowcount


@contextmanager
def transaction(db: Database, immediate: bool = False) -> Generator[None, None, None]:
    """
    Group several statements into one transaction.

    Usage:
        with Database(db_path) as db:
            with transaction(db, immediate=True):
                supersede(db, old_id, now)
                insert_pending(db, target, commit_id, observed_at, now)
    """
    if immediate:
        db.begin_immediate()
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_database_info(db_path: Path) -> dict:
    """
    Get information about the state database.

    Returns:
        Dictionary with database stats
    """
    if not db_path.exists():
        return {
            'exists': False,
            'path': str(db_path),
        }

    with Database(db_path=db_path) as db:
        counts = {}
        for table in ('repositories', 'branches', 'snapshots', 'build_records', 'sync_errors'):
            db.execute(f"SELECT COUNT(*) FROM {table}")
            row = db.fetchone()
            counts[table] = row[0] if row else 0

        db.execute("SELECT MAX(version) FROM _schema_info")
        row = db.fetchone()
        schema_version = row[0] if row else 0

    return {
        'exists': True,
        'path': str(db_path),
        'size_bytes': db_path.stat().st_size,
        'schema_version': schema_version,
        **counts,
    }
