"""
Snapshot storage infrastructure for pocketci.

Content-addressed, publish-once archive storage:
- Archives live at ``<root>/<id[:2]>/<id>.tar``
- Publishing stages into a temp file in the same directory, fsyncs it,
  then renames it into place, so readers never see a partial archive
- Publishing an id that already exists leaves the stored archive untouched
"""

import hashlib
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable
import logging

from ..errors import SnapshotError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredBlob:
    """A published archive."""
    path: Path
    digest: str   # sha256 hex
    size: int


def file_digest(path: Path) -> str:
    """sha256 of a file's contents."""
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            h.update(chunk)
    return h.hexdigest()


class SnapshotStore:
    """
    Append-only archive store keyed by commit id.

    Example:
        store = SnapshotStore(Path("~/.pocketci/snapshots"))
        blob = store.publish(commit_id, lambda f: f.write(data))
        print(blob.path, blob.digest)
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self._lock = threading.Lock()

    def path_for(self, commit_id: str) -> Path:
        """Storage location of a commit's archive."""
        return self.root / commit_id[:2] / f"{commit_id}.tar"

    def exists(self, commit_id: str) -> bool:
        return self.path_for(commit_id).is_file()

    def describe(self, commit_id: str) -> StoredBlob:
        """Digest and size of an already published archive."""
        path = self.path_for(commit_id)
        return StoredBlob(path=path, digest=file_digest(path), size=path.stat().st_size)

    def publish(self, commit_id: str, writer: Callable[[BinaryIO], None]) -> StoredBlob:
        """
        Publish the archive of a commit.

        Args:
            commit_id: Commit the archive belongs to
            writer: Called with a binary file object to write the archive into

        Returns:
            The stored archive (the existing one if already published)

        Raises:
            SnapshotError: if staging or renaming fails; no partial file is left
        """
        target = self.path_for(commit_id)
        if target.is_file():
            logger.debug(f"Snapshot {commit_id} already stored")
            return self.describe(commit_id)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=target.parent,
                prefix=f".{commit_id}.",
                suffix=".tmp"
            )
        except OSError as e:
            raise SnapshotError(commit_id, f"cannot stage archive: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                writer(f)
                f.flush()
                os.fsync(f.fileno())

            digest = file_digest(Path(temp_path))
            size = os.path.getsize(temp_path)

            with self._lock:
                if target.is_file():
                    # Lost a race with another publisher of the same id
                    os.unlink(temp_path)
                    return self.describe(commit_id)
                os.replace(temp_path, target)

        except Exception as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            if isinstance(e, SnapshotError):
                raise
            raise SnapshotError(commit_id, f"cannot store archive: {e}") from e

        logger.debug(f"Stored snapshot {commit_id} ({size} bytes)")
        return StoredBlob(path=target, digest=digest, size=size)
