"""
Snapshot generation service for pocketci.

Materializes a commit as an immutable source archive exactly once:
- Commits without a packaging directory are recorded as non-buildable
- Buildable commits are archived with ``git archive`` and normalized so the
  bytes depend only on the commit (sorted members, commit time as mtime,
  root ownership, fixed modes)
- Archives are published through SnapshotStore; the database record is
  written only after the archive is safely stored
"""

import copy
import logging
import tarfile
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Optional

from ..database import Database, delete_snapshot, get_snapshot, record_snapshot
from ..domain.operation import PassSummary
from ..domain.repository import Commit, Repository
from ..domain.snapshot import Snapshot
from ..errors import GitError, SnapshotError
from ..infra.git_client import GitClient
from ..infra.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def normalize_archive(raw: BinaryIO, out: BinaryIO, mtime: int) -> None:
    """
    Rewrite a tar stream into its canonical form.

    Members are written in name order with ``mtime``, uid/gid 0, empty
    owner names and modes reduced to 0644/0755 (symlinks 0777), in GNU
    format without pax headers.
    """
    with tarfile.open(fileobj=raw, mode='r:') as src, \
            tarfile.open(fileobj=out, mode='w:', format=tarfile.GNU_FORMAT) as dst:
        for member in sorted(src.getmembers(), key=lambda m: m.name):
            info = copy.copy(member)
            info.mtime = mtime
            info.uid = info.gid = 0
            info.uname = info.gname = ''
            info.pax_headers = {}
            if member.issym():
                info.mode = 0o777
            elif member.isdir() or member.mode & 0o111:
                info.mode = 0o755
            else:
                info.mode = 0o644

            if member.isfile():
                dst.addfile(info, src.extractfile(member))
            else:
                dst.addfile(info)


class SnapshotGenerator:
    """
    Idempotent snapshot creation keyed by commit id.

    Example:
        generator = SnapshotGenerator(config, db_path, SnapshotStore(root))
        snapshot = generator.ensure_snapshot(repository, commit)
        if snapshot.buildable:
            print(snapshot.location, snapshot.digest)
    """

    def __init__(
        self,
        config: Dict[str, Any],
        db_path: Path,
        store: SnapshotStore,
        git: Optional[GitClient] = None,
        mirror_lock: Optional[Callable[[str], threading.Lock]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = db_path
        self.store = store
        self.git = git or GitClient(timeout=config.get('git', {}).get('timeout_seconds', 600))
        self.packaging_dir = config.get('snapshot', {}).get('packaging_dir', 'debian')
        self.clock = clock

        if mirror_lock is None:
            locks: Dict[str, threading.Lock] = {}
            guard = threading.Lock()

            def mirror_lock(name: str) -> threading.Lock:
                with guard:
                    return locks.setdefault(name, threading.Lock())

        self.mirror_lock = mirror_lock

    def get_snapshot(self, commit_id: str) -> Optional[Snapshot]:
        """The recorded snapshot of a commit, if any."""
        with Database(db_path=self.db_path) as db:
            return get_snapshot(db, commit_id)

    def ensure_snapshot(
        self,
        repository: Repository,
        commit: Commit,
        summary: Optional[PassSummary] = None,
    ) -> Snapshot:
        """
        Return the snapshot of a commit, creating it if needed.

        Raises:
            SnapshotError: if the commit cannot be archived or stored; nothing
                is recorded and the next pass tries again
        """
        existing = self.get_snapshot(commit.id)
        if existing is not None:
            if not existing.buildable or self.store.exists(commit.id):
                if summary is not None:
                    summary.add('snapshots_reused')
                return existing
            logger.warning(f"Archive of {commit.short_id} is missing from storage, regenerating")
            with Database(db_path=self.db_path) as db:
                delete_snapshot(db, commit.id)

        try:
            with self.mirror_lock(repository.name):
                snapshot = self._create(repository, commit)
        except (GitError, OSError, tarfile.TarError) as e:
            raise SnapshotError(commit.id, str(e)) from e

        with Database(db_path=self.db_path) as db:
            inserted = record_snapshot(db, snapshot, self.clock())
            if not inserted:
                snapshot = get_snapshot(db, commit.id) or snapshot

        if summary is not None:
            if not snapshot.buildable:
                summary.add('non_buildable')
            elif inserted:
                summary.add('snapshots_created')
            else:
                summary.add('snapshots_reused')
        return snapshot

    def _create(self, repository: Repository, commit: Commit) -> Snapshot:
        mirror = repository.mirror_path
        if not self.git.has_commit(mirror, commit.id):
            raise GitError(['cat-file', '-e', commit.id], 1, f"commit {commit.id} is not in the mirror")
        timestamp = self.git.commit_timestamp(mirror, commit.id)

        if self.git.path_type(mirror, commit.id, self.packaging_dir) != 'tree':
            logger.info(f"{repository.name} {commit.short_id}: no {self.packaging_dir}/ directory, not buildable")
            return Snapshot(
                commit_id=commit.id,
                repository=repository.name,
                buildable=False,
                commit_timestamp=timestamp,
            )

        def write(out: BinaryIO) -> None:
            with tempfile.TemporaryFile() as raw:
                self.git.archive(mirror, commit.id, raw)
                raw.seek(0)
                normalize_archive(raw, out, timestamp)

        blob = self.store.publish(commit.id, write)
        logger.info(f"{repository.name} {commit.short_id}: snapshot {blob.digest[:12]} ({blob.size} bytes)")
        return Snapshot(
            commit_id=commit.id,
            repository=repository.name,
            buildable=True,
            digest=blob.digest,
            location=str(blob.path),
            size=blob.size,
            commit_timestamp=timestamp,
        )
