"""
Pipeline service for pocketci.

Runs one pass: registry sync, snapshot generation, pocket assignment,
build state recording and build dispatch. Only heads that are new or
advanced since the previous pass flow through the stages.

A head is acknowledged (persisted as last-seen) only after its snapshot
and bindings were recorded, so anything that fails mid-way is picked up
again by the next pass.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..config import get_paths, validate_config
from ..database import get_db_path
from ..domain.operation import PassSummary
from ..domain.repository import Observation
from ..errors import SnapshotError
from ..infra.build_trigger import BuildTrigger, create_trigger
from ..infra.git_client import GitClient
from ..infra.github_client import GitHubClient
from ..infra.snapshot_store import SnapshotStore
from .build_tracker import BuildTracker
from .orchestrator import BuildOrchestrator
from .pocket_service import PocketAssigner
from .registry_service import RepositoryRegistry
from .snapshot_service import SnapshotGenerator

logger = logging.getLogger(__name__)


class Pipeline:
    """
    One sync/build pass over every configured repository.

    Collaborators default to the real implementations built from config;
    tests pass fakes for the lister and trigger.

    Example:
        summary = Pipeline(load_config()).run()
        print(summary.to_dict())
    """

    def __init__(
        self,
        config: Dict[str, Any],
        db_path: Optional[Path] = None,
        lister=None,
        git: Optional[GitClient] = None,
        trigger: Optional[BuildTrigger] = None,
        clock: Callable[[], float] = time.time,
        shutdown: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        validate_config(config)
        self.config = config
        self.db_path = db_path or get_db_path(config)
        self.shutdown = shutdown or threading.Event()
        self.workers = config.get('snapshot', {}).get('workers', 4)

        git = git or GitClient(timeout=config.get('git', {}).get('timeout_seconds', 600))
        self.registry = RepositoryRegistry(
            config,
            lister if lister is not None else GitHubClient.from_config(config),
            self.db_path,
            git=git,
            clock=clock,
            shutdown=self.shutdown,
        )
        self.generator = SnapshotGenerator(
            config,
            self.db_path,
            SnapshotStore(get_paths(config)['snapshots']),
            git=git,
            mirror_lock=self.registry.mirror_lock,
            clock=clock,
        )
        self.assigner = PocketAssigner.from_config(config)
        self.tracker = BuildTracker(config, self.db_path, clock=clock)
        self._trigger = trigger
        self._sleep = sleep

    @property
    def trigger(self) -> BuildTrigger:
        if self._trigger is None:
            self._trigger = create_trigger(self.config)
        return self._trigger

    def process(self, observation: Observation, summary: PassSummary) -> bool:
        """
        Snapshot, assign and record one observed head.

        Returns:
            True if the head was fully processed and acknowledged
        """
        repo, branch, commit = observation.repository, observation.branch, observation.commit
        try:
            snapshot = self.generator.ensure_snapshot(repo, commit, summary)
        except SnapshotError as e:
            logger.error(f"{repo.name}/{branch.name}: {e}")
            summary.add_error(str(e))
            return False

        if snapshot.buildable:
            bindings = self.assigner.assign(repo, branch, commit, observation.observed_at, observation.siblings)
            for bound in sorted(bindings, key=lambda b: b.target):
                if self.tracker.record_desired(bound.target, bound.commit_id, observation.observed_at):
                    summary.add('bindings_recorded')
                    logger.info(f"{bound.target} wants {commit.short_id} from {branch.name}")

        self.registry.acknowledge(observation)
        return True

    def run(self, retry_failed: bool = False, build: bool = True) -> PassSummary:
        """
        Execute one pass.

        Args:
            retry_failed: Reset every failed build before dispatching
            build: Dispatch pending builds after syncing

        Raises:
            ConfigError, TrackerError, RegistryError: the pass cannot continue
        """
        summary = PassSummary()
        started = time.time()

        summary.reconciled = self.tracker.reconcile()
        if retry_failed:
            self.tracker.override()

        window = threading.BoundedSemaphore(max(1, self.workers * 2))
        futures: List[Future] = []

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            for observation in self.registry.sync(summary=summary):
                if self.shutdown.is_set():
                    break
                window.acquire()
                future = executor.submit(self.process, observation, summary)
                future.add_done_callback(lambda _f: window.release())
                futures.append(future)

        for future in futures:
            future.result()

        if build and not self.shutdown.is_set():
            BuildOrchestrator(
                self.config,
                self.tracker,
                self.trigger,
                self.generator.get_snapshot,
                shutdown=self.shutdown,
                sleep=self._sleep,
            ).run(self.tracker.pending_work(), summary)

        summary.interrupted = summary.interrupted or self.shutdown.is_set()
        logger.info(
            f"Pass finished in {time.time() - started:.1f}s: "
            f"{summary.repositories_synced} repositories synced, {summary.repositories_failed} failed, "
            f"{summary.heads_observed} new heads, {summary.bindings_recorded} bindings, "
            f"{summary.builds_dispatched} builds dispatched"
        )
        return summary
