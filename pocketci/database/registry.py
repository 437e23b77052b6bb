"""
Registry database operations for pocketci.

Persists repositories, last-seen branch heads and observed commits so a sync
pass only emits heads that advanced since the previous run.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..domain.repository import Observation, Repository
from .connection import Database

BranchKey = Tuple[str, str]


def upsert_repository(db: Database, repo: Repository, now: float) -> None:
    """Insert a newly discovered repository or refresh its remote/mirror."""
    db.execute("""
        INSERT INTO repositories (name, organization, remote_url, mirror_path, discovered_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(name) DO UPDATE SET
            organization = excluded.organization,
            remote_url = excluded.remote_url,
            mirror_path = excluded.mirror_path
    """, (repo.name, repo.organization, repo.remote_url, repo.mirror_path, now))


def mark_repository_synced(db: Database, name: str, now: float, error: Optional[str] = None) -> None:
    """Record the outcome of the latest sync attempt for a repository."""
    if error is None:
        db.execute(
            "UPDATE repositories SET last_synced_at = ?, last_error = NULL WHERE name = ?",
            (now, name)
        )
    else:
        db.execute(
            "UPDATE repositories SET last_error = ? WHERE name = ?",
            (error, name)
        )


def get_repositories(db: Database) -> List[Dict[str, Any]]:
    """All known repositories."""
    db.execute("SELECT * FROM repositories ORDER BY name")
    return [dict(row) for row in db.fetchall()]


def load_branch_heads(db: Database) -> Dict[BranchKey, str]:
    """
    Last-seen head of every live branch.

    Returns:
        Mapping of (repository, branch) to commit id
    """
    db.execute("SELECT repository, name, head_commit FROM branches WHERE retired = 0")
    return {(row['repository'], row['name']): row['head_commit'] for row in db.fetchall()}


def save_branch_head(db: Database, observation: Observation) -> None:
    """Persist an observation as the branch's last-seen head."""
    db.execute("""
        INSERT INTO branches (repository, name, head_commit, observed_at, retired, retired_at)
        VALUES (?, ?, ?, ?, 0, NULL)
        ON CONFLICT(repository, name) DO UPDATE SET
            head_commit = excluded.head_commit,
            observed_at = excluded.observed_at,
            retired = 0,
            retired_at = NULL
        WHERE excluded.observed_at >= branches.observed_at
    """, (
        observation.repository.name,
        observation.branch.name,
        observation.commit.id,
        observation.observed_at,
    ))
    db.execute("""
        INSERT OR IGNORE INTO commits (id, repository, branch, observed_at)
        VALUES (?, ?, ?, ?)
    """, (
        observation.commit.id,
        observation.repository.name,
        observation.branch.name,
        observation.observed_at,
    ))


def retire_missing_branches(db: Database, repository: str, present: Iterable[str], now: float) -> List[str]:
    """
    Mark branches that no longer exist upstream as retired.

    Returns:
        Names of the branches retired by this call
    """
    present = set(present)
    db.execute(
        "SELECT name FROM branches WHERE repository = ? AND retired = 0",
        (repository,)
    )
    missing = sorted(row['name'] for row in db.fetchall() if row['name'] not in present)
    for name in missing:
        db.execute(
            "UPDATE branches SET retired = 1, retired_at = ? WHERE repository = ? AND name = ?",
            (now, repository, name)
        )
    return missing


def get_branches(db: Database, repository: Optional[str] = None, include_retired: bool = True) -> List[Dict[str, Any]]:
    """Branches with their last-seen heads."""
    sql = "SELECT * FROM branches"
    clauses = []
    params: list = []
    if repository:
        clauses.append("repository = ?")
        params.append(repository)
    if not include_retired:
        clauses.append("retired = 0")
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY repository, name"
    db.execute(sql, tuple(params))
    return [dict(row) for row in db.fetchall()]
