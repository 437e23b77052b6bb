"""
Snapshot domain object for pocketci.

A snapshot is the immutable, content-addressed source archive of one commit.
Commits without a packaging directory are recorded as non-buildable
snapshots that carry no archive.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Snapshot:
    """Source archive of a commit, keyed by commit id."""
    commit_id: str
    repository: str
    buildable: bool
    digest: Optional[str] = None       # sha256 of the archive
    location: Optional[str] = None     # path of the published archive
    size: int = 0
    commit_timestamp: int = 0          # committer time, used as archive mtime

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'commit_id': self.commit_id,
            'repository': self.repository,
            'buildable': self.buildable,
            'digest': self.digest,
            'location': self.location,
            'size': self.size,
            'commit_timestamp': self.commit_timestamp,
        }
        return {k: v for k, v in result.items() if v is not None}
