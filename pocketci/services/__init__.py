"""
Service layer for pocketci.

Contains business logic that orchestrates domain objects and infrastructure:
- RepositoryRegistry: Repository discovery and mirror synchronization
- SnapshotGenerator: Deterministic source archives per commit
- PocketAssigner: Branch to (codename, pocket) mapping
- BuildTracker: Build record state machine
- BuildOrchestrator: Bounded build dispatch
- Pipeline: One complete pass over all stages

Services are the primary API for commands to use.
They handle coordination between infrastructure and domain layers.
"""

from .registry_service import RepositoryRegistry
from .snapshot_service import SnapshotGenerator, normalize_archive
from .pocket_service import PocketAssigner
from .build_tracker import BuildTracker
from .orchestrator import BuildOrchestrator
from .pipeline import Pipeline

__all__ = [
    'RepositoryRegistry',
    'SnapshotGenerator',
    'normalize_archive',
    'PocketAssigner',
    'BuildTracker',
    'BuildOrchestrator',
    'Pipeline',
]
