"""
Database module for pocketci.

Provides SQLite-based persistence for everything that must survive a
restart: repositories and last-seen branch heads, snapshots, and the build
record history.

Key components:
- connection: Database connection management
- schema: Table definitions and schema versioning
- registry: Repository, branch and commit operations
- snapshots: Snapshot records
- builds: Build record reads and guarded transitions
- errors: Per-repository sync errors
"""

from .connection import (
    get_connection,
    get_db_path,
    Database,
    get_database_info,
    transaction,
)
from .schema import CURRENT_VERSION, ensure_schema
from .registry import (
    upsert_repository,
    mark_repository_synced,
    get_repositories,
    load_branch_heads,
    save_branch_head,
    retire_missing_branches,
    get_branches,
)
from .snapshots import record_snapshot, get_snapshot, delete_snapshot
from .errors import record_sync_error, get_sync_errors, clear_sync_errors

__all__ = [
    # Connection
    'get_connection',
    'get_db_path',
    'Database',
    'get_database_info',
    'transaction',
    # Schema
    'ensure_schema',
    'CURRENT_VERSION',
    # Registry
    'upsert_repository',
    'mark_repository_synced',
    'get_repositories',
    'load_branch_heads',
    'save_branch_head',
    'retire_missing_branches',
    'get_branches',
    # Snapshots
    'record_snapshot',
    'get_snapshot',
    'delete_snapshot',
    # Sync errors
    'record_sync_error',
    'get_sync_errors',
    'clear_sync_errors',
]
