"""
Domain layer for pocketci.

Contains pure domain objects with no I/O or side effects:
- Repository, Branch, Commit, Observation: what a sync pass discovers
- Snapshot: content-addressed source archive of a commit
- Codename, Pocket, PocketRule, BuildTarget: release configuration
- BuildRecord, BuildStatus, BuildOutcome: build state
- PassSummary: statistics of one pipeline pass
"""

from .repository import Repository, Branch, Commit, Observation
from .snapshot import Snapshot
from .target import Codename, Pocket, PocketRule, BuildTarget, BoundTarget
from .build import BuildRecord, BuildStatus, BuildOutcome, OutcomeKind, PendingBuild
from .operation import PassSummary

__all__ = [
    'Repository',
    'Branch',
    'Commit',
    'Observation',
    'Snapshot',
    'Codename',
    'Pocket',
    'PocketRule',
    'BuildTarget',
    'BoundTarget',
    'BuildRecord',
    'BuildStatus',
    'BuildOutcome',
    'OutcomeKind',
    'PendingBuild',
    'PassSummary',
]
