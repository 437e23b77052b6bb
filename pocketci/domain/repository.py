"""
Repository, branch and commit domain objects for pocketci.

These are produced by the registry during a sync pass. They are immutable;
a branch whose head advances is observed again as a new Branch value.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Repository:
    """An organization repository and its local bare mirror."""
    name: str
    remote_url: str
    mirror_path: str
    organization: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'organization': self.organization,
            'remote_url': self.remote_url,
            'mirror_path': self.mirror_path,
        }


@dataclass(frozen=True)
class Branch:
    """A branch of a repository and the head commit it pointed at when listed."""
    repository: str
    name: str
    head: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repository': self.repository,
            'name': self.name,
            'head': self.head,
        }


@dataclass(frozen=True)
class Commit:
    """A commit observed as the head of a branch."""
    id: str
    repository: str
    branch: str

    @property
    def short_id(self) -> str:
        return self.id[:12]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repository': self.repository,
            'branch': self.branch,
        }


@dataclass(frozen=True)
class Observation:
    """
    One advanced (or new) branch head emitted by a sync pass.

    ``observed_at`` is a unix timestamp. It orders supersession: the latest
    observed commit for a target always wins, unless a codename-specific
    branch among ``siblings`` (every branch the repository had when listed)
    claims the same target.
    """
    repository: Repository
    branch: Branch
    commit: Commit
    observed_at: float
    siblings: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def key(self) -> tuple:
        return (self.repository.name, self.branch.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repository': self.repository.name,
            'branch': self.branch.name,
            'commit': self.commit.id,
            'observed_at': datetime.fromtimestamp(self.observed_at, timezone.utc).isoformat(),
        }
