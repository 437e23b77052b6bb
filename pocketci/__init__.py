"""
pocketci - Debian source package CI for a GitHub organization.

pocketci discovers an organization's repositories and branches, turns every
new branch head into an immutable source snapshot, maps branches to
(codename, pocket) build targets and triggers the builds that have not
happened yet. It runs as a periodic batch job; all state lives in SQLite.

Quick Start:
    from pocketci import Pipeline, load_config

    summary = Pipeline(load_config()).run()
    print(summary.to_dict())

Or from the command line:
    pocketci config init
    pocketci sync
    pocketci status --pretty
"""

__version__ = "0.3.0"

from .config import load_config, validate_config
from .errors import (
    PocketCIError,
    ConfigError,
    DirectoryListingError,
    GitError,
    RegistryError,
    SnapshotError,
    TrackerError,
)
from .domain import (
    Repository,
    Branch,
    Commit,
    Observation,
    Snapshot,
    Codename,
    Pocket,
    PocketRule,
    BuildTarget,
    BoundTarget,
    BuildRecord,
    BuildStatus,
    BuildOutcome,
    PendingBuild,
    PassSummary,
)
from .services import (
    RepositoryRegistry,
    SnapshotGenerator,
    PocketAssigner,
    BuildTracker,
    BuildOrchestrator,
    Pipeline,
)

__all__ = [
    '__version__',
    'load_config',
    'validate_config',
    'PocketCIError',
    'ConfigError',
    'DirectoryListingError',
    'GitError',
    'RegistryError',
    'SnapshotError',
    'TrackerError',
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
    'PendingBuild',
    'PassSummary',
    'RepositoryRegistry',
    'SnapshotGenerator',
    'PocketAssigner',
    'BuildTracker',
    'BuildOrchestrator',
    'Pipeline',
]
