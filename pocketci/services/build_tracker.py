"""
Build state tracker service for pocketci.

Owns the lifecycle of build records. Each target has at most one active
record; its state machine is:

    (none) --record_desired--> pending --claim--> in_progress
    in_progress --succeeded--> succeeded
    in_progress --failed-----> failed --cool-down elapsed--> pending
    in_progress --unavailable--> pending (attempt not spent)
    failed --override--> pending (fresh attempt budget)

A newer commit for a target supersedes the active record: unbuilt work on
it is cancelled and a fresh pending record starts.

Every mutation runs in its own ``BEGIN IMMEDIATE`` transaction on a fresh
connection, additionally serialized by an in-process lock.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional

from ..database import Database
from ..database import builds
from ..domain.build import BuildOutcome, BuildRecord, BuildStatus, OutcomeKind, PendingBuild
from ..domain.target import BuildTarget
from ..errors import TrackerError

logger = logging.getLogger(__name__)


class BuildTracker:
    """
    Persistent build state keyed by build target.

    Example:
        tracker = BuildTracker(config, db_path)
        tracker.record_desired(target, commit_id, observed_at)
        for work in tracker.pending_work():
            if tracker.claim(work):
                ...
                tracker.record_outcome(work.target, work.commit_id, outcome)
    """

    def __init__(self, config: Dict[str, Any], db_path: Path, clock: Callable[[], float] = time.time):
        build = config.get('build', {})
        self.db_path = db_path
        self.clock = clock
        self.cooldown = build.get('cooldown_seconds', 3600)
        self.max_cooldown = build.get('max_cooldown_seconds', 86400)
        self.max_attempts = build.get('max_attempts', 3)
        self.stale_claim_seconds = build.get('stale_claim_seconds', 7200)
        self._lock = threading.Lock()

    @contextmanager
    def _write(self) -> Generator[Database, None, None]:
        with self._lock:
            try:
                with Database(db_path=self.db_path) as db:
                    db.begin_immediate()
                    yield db
            except sqlite3.Error as e:
                raise TrackerError(f"build state update failed: {e}") from e

    @contextmanager
    def _read(self) -> Generator[Database, None, None]:
        try:
            with Database(db_path=self.db_path) as db:
                yield db
        except sqlite3.Error as e:
            raise TrackerError(f"build state read failed: {e}") from e

    def cooldown_for(self, attempts: int) -> float:
        """Seconds to wait after the ``attempts``-th failure."""
        return min(self.cooldown * 2 ** max(attempts - 1, 0), self.max_cooldown)

    def record_desired(self, target: BuildTarget, commit_id: str, observed_at: float) -> bool:
        """
        Record that ``target`` should be built from ``commit_id``.

        Returns:
            True if a new pending record was started
        """
        with self._write() as db:
            now = self.clock()
            active = builds.get_active_record(db, target)
            if active is not None:
                if active.commit_id == commit_id:
                    return False
                if observed_at < active.observed_at:
                    logger.info(f"Ignoring {commit_id[:12]} for {target}: older than "
                                f"active {active.commit_id[:12]}")
                    return False
                builds.supersede(db, active.id, now)
                logger.info(f"{target}: {commit_id[:12]} supersedes {active.commit_id[:12]} "
                            f"({active.status.value})")
            builds.insert_pending(db, target, commit_id, observed_at, now)
        return True

    def pending_work(self) -> Iterator[PendingBuild]:
        """
        Yield the active pending records.

        Failed records whose cool-down has elapsed are promoted to pending
        first. The list is a snapshot taken at call time.
        """
        with self._write() as db:
            promoted = builds.promote_cooled_down(db, self.clock(), self.max_attempts)
            records = builds.get_pending(db)
        if promoted:
            logger.info(f"{promoted} failed build(s) are due for another attempt")
        for record in records:
            yield PendingBuild(record_id=record.id, target=record.target, commit_id=record.commit_id)

    def claim(self, work: PendingBuild) -> bool:
        """Atomically move a pending record to in_progress."""
        with self._write() as db:
            claimed = builds.claim(db, work.record_id, self.clock())
        if not claimed:
            logger.debug(f"{work.target}: record {work.record_id} is no longer pending")
        return claimed

    def record_outcome(self, target: BuildTarget, commit_id: str, outcome: BuildOutcome) -> Optional[BuildStatus]:
        """
        Apply a build outcome to the target's in-progress record.

        Outcomes for a commit that is no longer active, or a record that is
        not in progress, are discarded.

        Returns:
            The record's new status, or None if the outcome was discarded
        """
        with self._write() as db:
            now = self.clock()
            record = builds.get_active_record(db, target)
            if record is None or record.commit_id != commit_id or record.status is not BuildStatus.IN_PROGRESS:
                logger.info(f"Discarding {outcome.kind.value} outcome for {target} at {commit_id[:12]}: "
                            f"no longer the active build")
                return None

            if outcome.kind is OutcomeKind.SUCCEEDED:
                builds.mark_succeeded(db, record.id, now)
                status = BuildStatus.SUCCEEDED
            elif outcome.kind is OutcomeKind.UNAVAILABLE:
                builds.release_unavailable(db, record.id, outcome.reason or "unavailable", now)
                status = BuildStatus.PENDING
            else:
                attempts = record.attempts + 1
                next_attempt_at = None
                if attempts < self.max_attempts:
                    next_attempt_at = now + self.cooldown_for(attempts)
                builds.mark_failed(db, record.id, outcome.reason or "failed", next_attempt_at, now)
                status = BuildStatus.FAILED
                if next_attempt_at is None:
                    logger.warning(f"{target} failed {attempts} time(s), needs attention: {outcome.reason}")

        return status

    def reconcile(self) -> int:
        """
        Return stale in_progress claims to pending.

        Run at startup: a claim older than ``build.stale_claim_seconds``
        belongs to a run that died before recording its outcome.
        """
        with self._write() as db:
            now = self.clock()
            reverted = builds.revert_stale_claims(db, now - self.stale_claim_seconds, now)
        if reverted:
            logger.warning(f"Returned {reverted} interrupted build(s) to pending")
        return reverted

    def override(self, target: Optional[BuildTarget] = None) -> int:
        """Make failed records pending again with a fresh attempt budget."""
        with self._write() as db:
            count = builds.reset_failed(db, self.clock(), target)
        if count:
            logger.info(f"Reset {count} failed build(s) for retry")
        return count

    def status(self, attention_only: bool = False) -> List[BuildRecord]:
        """Active record of every target."""
        with self._read() as db:
            if attention_only:
                records = builds.get_active_records(db, BuildStatus.FAILED)
                return [r for r in records if r.needs_attention(self.max_attempts)]
            return builds.get_active_records(db)

    def history(self, target: BuildTarget) -> List[BuildRecord]:
        """Every record of a target, newest first."""
        with self._read() as db:
            return builds.get_history(db, target)
