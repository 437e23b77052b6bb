"""
Build record database operations for pocketci.

Low-level reads and conditional writes on the ``build_records`` table.
The state machine itself lives in services/build_tracker.py; every write
here is a single statement guarded by the expected current status, so two
workers racing on the same record cannot both succeed.
"""

import sqlite3
from typing import List, Optional

from ..domain.build import BuildRecord, BuildStatus
from ..domain.target import BuildTarget
from .connection import Database


def record_from_row(row: sqlite3.Row) -> BuildRecord:
    """Convert a build_records row to a domain object."""
    return BuildRecord(
        id=row['id'],
        target=BuildTarget(row['repository'], row['codename'], row['pocket']),
        commit_id=row['commit_id'],
        status=BuildStatus(row['status']),
        attempts=row['attempts'] or 0,
        transient_failures=row['transient_failures'] or 0,
        last_attempt_at=row['last_attempt_at'],
        next_attempt_at=row['next_attempt_at'],
        claimed_at=row['claimed_at'],
        failure_reason=row['failure_reason'],
        observed_at=row['observed_at'],
        active=bool(row['active']),
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )


def get_active_record(db: Database, target: BuildTarget) -> Optional[BuildRecord]:
    """The single active record of a target, if any."""
    db.execute("""
        SELECT * FROM build_records
        WHERE repository = ? AND codename = ? AND pocket = ? AND active = 1
    """, (target.repository, target.codename, target.pocket))
    row = db.fetchone()
    return record_from_row(row) if row else None


def insert_pending(db: Database, target: BuildTarget, commit_id: str, observed_at: float, now: float) -> int:
    """Start a fresh pending record for a target."""
    db.execute("""
        INSERT INTO build_records
        (repository, codename, pocket, commit_id, status, observed_at, active, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
    """, (
        target.repository, target.codename, target.pocket, commit_id,
        BuildStatus.PENDING.value, observed_at, now, now,
    ))
    return db.lastrowid or 0


def supersede(db: Database, record_id: int, now: float) -> None:
    """Deactivate a record; unbuilt work on it is cancelled."""
    db.execute("""
        UPDATE build_records
        SET active = 0,
            superseded_at = ?,
            updated_at = ?,
            status = CASE WHEN status IN ('pending', 'in_progress') THEN 'cancelled' ELSE status END
        WHERE id = ? AND active = 1
    """, (now, now, record_id))


def claim(db: Database, record_id: int, now: float) -> bool:
    """Move a pending record to in_progress. False if someone else got it."""
    db.execute("""
        UPDATE build_records
        SET status = 'in_progress', claimed_at = ?, last_attempt_at = ?, updated_at = ?
        WHERE id = ? AND status = 'pending' AND active = 1
    """, (now, now, now, record_id))
    return db.rowcount == 1


def mark_succeeded(db: Database, record_id: int, now: float) -> bool:
    db.execute("""
        UPDATE build_records
        SET status = 'succeeded', attempts = attempts + 1, failure_reason = NULL,
            next_attempt_at = NULL, claimed_at = NULL, updated_at = ?
        WHERE id = ? AND status = 'in_progress' AND active = 1
    """, (now, record_id))
    return db.rowcount == 1


def mark_failed(db: Database, record_id: int, reason: str, next_attempt_at: Optional[float], now: float) -> bool:
    db.execute("""
        UPDATE build_records
        SET status = 'failed', attempts = attempts + 1, failure_reason = ?,
            next_attempt_at = ?, claimed_at = NULL, updated_at = ?
        WHERE id = ? AND status = 'in_progress' AND active = 1
    """, (reason, next_attempt_at, now, record_id))
    return db.rowcount == 1


def release_unavailable(db: Database, record_id: int, reason: str, now: float) -> bool:
    """Return a claimed record to pending without spending an attempt."""
    db.execute("""
        UPDATE build_records
        SET status = 'pending', transient_failures = transient_failures + 1,
            failure_reason = ?, claimed_at = NULL, updated_at = ?
        WHERE id = ? AND status = 'in_progress' AND active = 1
    """, (reason, now, record_id))
    return db.rowcount == 1


def promote_cooled_down(db: Database, now: float, max_attempts: int) -> int:
    """Failed records whose cool-down elapsed become pending again."""
    db.execute("""
        UPDATE build_records
        SET status = 'pending', updated_at = ?
        WHERE active = 1 AND status = 'failed'
          AND attempts < ?
          AND (next_attempt_at IS NULL OR next_attempt_at <= ?)
    """, (now, max_attempts, now))
    return db.rowcount


def get_pending(db: Database) -> List[BuildRecord]:
    """Active pending records, oldest observation first."""
    db.execute("""
        SELECT * FROM build_records
        WHERE active = 1 AND status = 'pending'
        ORDER BY observed_at, id
    """)
    return [record_from_row(row) for row in db.fetchall()]


def revert_stale_claims(db: Database, cutoff: float, now: float) -> int:
    """In-progress records claimed before ``cutoff`` go back to pending."""
    db.execute("""
        UPDATE build_records
        SET status = 'pending', claimed_at = NULL, updated_at = ?
        WHERE active = 1 AND status = 'in_progress'
          AND (claimed_at IS NULL OR claimed_at <= ?)
    """, (now, cutoff))
    return db.rowcount


def reset_failed(db: Database, now: float, target: Optional[BuildTarget] = None) -> int:
    """Manual override: failed records become pending with a fresh budget."""
    sql = """
        UPDATE build_records
        SET status = 'pending', attempts = 0, next_attempt_at = NULL, updated_at = ?
        WHERE active = 1 AND status = 'failed'
    """
    params: list = [now]
    if target is not None:
        sql += " AND repository = ? AND codename = ? AND pocket = ?"
        params.extend([target.repository, target.codename, target.pocket])
    db.execute(sql, tuple(params))
    return db.rowcount


def get_active_records(db: Database, status: Optional[BuildStatus] = None) -> List[BuildRecord]:
    """Current record of every target."""
    sql = "SELECT * FROM build_records WHERE active = 1"
    params: tuple = ()
    if status is not None:
        sql += " AND status = ?"
        params = (status.value,)
    sql += " ORDER BY repository, codename, pocket"
    db.execute(sql, params)
    return [record_from_row(row) for row in db.fetchall()]


def get_history(db: Database, target: BuildTarget) -> List[BuildRecord]:
    """Every record of a target, newest first."""
    db.execute("""
        SELECT * FROM build_records
        WHERE repository = ? AND codename = ? AND pocket = ?
        ORDER BY id DESC
    """, (target.repository, target.codename, target.pocket))
    return [record_from_row(row) for row in db.fetchall()]

