"""
Snapshot database operations for pocketci.
"""

from typing import Optional

from ..domain.snapshot import Snapshot
from .connection import Database


def record_snapshot(db: Database, snapshot: Snapshot, now: float) -> bool:
    """
    Record a snapshot. The first record for a commit id wins.

    Returns:
        True if this call inserted the record
    """
    db.execute("""
        INSERT OR IGNORE INTO snapshots
        (commit_id, repository, buildable, digest, location, size, commit_timestamp, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        snapshot.commit_id,
        snapshot.repository,
        1 if snapshot.buildable else 0,
        snapshot.digest,
        snapshot.location,
        snapshot.size,
        snapshot.commit_timestamp,
        now,
    ))
    return db.rowcount == 1


def get_snapshot(db: Database, commit_id: str) -> Optional[Snapshot]:
    """Look up the snapshot of a commit."""
    db.execute("SELECT * FROM snapshots WHERE commit_id = ?", (commit_id,))
    row = db.fetchone()
    if row is None:
        return None
    return Snapshot(
        commit_id=row['commit_id'],
        repository=row['repository'],
        buildable=bool(row['buildable']),
        digest=row['digest'],
        location=row['location'],
        size=row['size'] or 0,
        commit_timestamp=row['commit_timestamp'] or 0,
    )


def delete_snapshot(db: Database, commit_id: str) -> None:
    """Forget a snapshot whose archive went missing from storage."""
    db.execute("DELETE FROM snapshots WHERE commit_id = ?", (commit_id,))
