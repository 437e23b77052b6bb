"""
Sync error tracking for pocketci.

Records errors that occur while listing, mirroring or snapshotting a
repository, so `pocketci status --errors` can show why a repository keeps
being retried.
"""

from typing import Optional, List, Dict, Any
from .connection import Database


def record_sync_error(
    db: Database,
    repository: str,
    stage: str,
    error_type: str,
    error_message: Optional[str] = None,
) -> int:
    """
    Record a sync error for a repository and stage.

    Clears any previous errors for this repository and stage before recording.

    Args:
        db: Database connection
        repository: Repository that failed
        stage: Pipeline stage ('listing', 'mirror', 'snapshot')
        error_type: Exception class name
        error_message: Detailed error message

    Returns:
        ID of the inserted error record
    """
    db.execute(
        "DELETE FROM sync_errors WHERE repository = ? AND stage = ?",
        (repository, stage)
    )

    db.execute(
        """INSERT INTO sync_errors (repository, stage, error_type, error_message)
           VALUES (?, ?, ?, ?)""",
        (repository, stage, error_type, error_message)
    )

    return db.lastrowid or 0


def get_sync_errors(
    db: Database,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Get all sync errors, newest first.

    Args:
        db: Database connection
        limit: Maximum number of errors to return

    Returns:
        List of error records as dictionaries
    """
    sql = "SELECT * FROM sync_errors ORDER BY occurred_at DESC, id DESC"
    params: tuple = ()
    if limit:
        sql += " LIMIT ?"
        params = (limit,)

    db.execute(sql, params)
    return [dict(row) for row in db.fetchall()]


def clear_sync_errors(db: Database, repository: str, stage: Optional[str] = None) -> int:
    """
    Clear sync errors for a repository after it synced cleanly.

    Returns:
        Number of errors cleared
    """
    if stage:
        db.execute("DELETE FROM sync_errors WHERE repository = ? AND stage = ?", (repository, stage))
    else:
        db.execute("DELETE FROM sync_errors WHERE repository = ?", (repository,))
    return db.rowcount
