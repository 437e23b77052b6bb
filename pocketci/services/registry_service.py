"""
Repository registry service for pocketci.

Keeps one bare mirror per organization repository up to date and emits
an Observation for every branch head that is new or advanced since the
last acknowledged pass.

Repositories are synchronized in a thread pool; a repository that cannot
be listed, cloned or fetched is recorded in ``sync_errors`` and skipped
until the next pass without holding up the others.
"""

import logging
import shutil
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..config import get_paths
from ..database import (
    Database,
    clear_sync_errors,
    load_branch_heads,
    mark_repository_synced,
    record_sync_error,
    retire_missing_branches,
    save_branch_head,
    upsert_repository,
)
from ..domain.operation import PassSummary
from ..domain.repository import Branch, Commit, Observation, Repository
from ..errors import DirectoryListingError, GitError, RegistryError
from ..infra.git_client import GitClient

logger = logging.getLogger(__name__)

BranchKey = Tuple[str, str]


class RepositoryRegistry:
    """
    Discovers repositories and branches and maintains local mirrors.

    Example:
        registry = RepositoryRegistry(config, GitHubClient.from_config(config), db_path)
        for observation in registry.sync():
            ...
            registry.acknowledge(observation)
    """

    def __init__(
        self,
        config: Dict[str, Any],
        lister,
        db_path: Path,
        git: Optional[GitClient] = None,
        clock: Callable[[], float] = time.time,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Args:
            config: Validated configuration
            lister: Directory listing client (``list_repositories``, ``list_branches``)
            db_path: State database
            git: Git client (created from ``git.timeout_seconds`` if None)
            clock: Source of observation timestamps
            shutdown: Once set, no further repositories are started
        """
        self.config = config
        self.lister = lister
        self.db_path = db_path
        self.git = git or GitClient(timeout=config.get('git', {}).get('timeout_seconds', 600))
        self.clock = clock
        self.shutdown = shutdown or threading.Event()
        self.mirrors_root = get_paths(config)['mirrors']
        self.workers = config.get('sync', {}).get('workers', 4)
        self.skip_slash_branches = config.get('sync', {}).get('skip_slash_branches', True)
        self.verify_mirrors = config.get('git', {}).get('verify_mirrors', True)

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def mirror_lock(self, name: str) -> threading.Lock:
        """Lock serializing git operations on one repository's mirror."""
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def mirror_path(self, name: str) -> Path:
        return self.mirrors_root / f"{name}.git"

    def discover(self) -> List[Repository]:
        """
        List the repositories of every configured organization.

        An organization that cannot be listed is skipped for this pass.
        Archived repositories are left out unless ``github.include_archived``.
        """
        github = self.config.get('github', {})
        allow = set(github.get('repositories') or [])
        include_archived = github.get('include_archived', False)
        repositories: Dict[str, Repository] = {}

        for org in github.get('organizations', []):
            org_name = org['name']
            exclude_prefix = org.get('exclude_prefix')
            try:
                listed = self.lister.list_repositories(org_name)
            except DirectoryListingError as e:
                logger.error(f"Skipping organization {org_name}: {e}")
                self._record_error(org_name, 'listing', e)
                continue

            for remote in listed:
                if remote.archived and not include_archived:
                    logger.debug(f"Skipping {remote.name}: archived")
                    continue
                if exclude_prefix and remote.name.startswith(exclude_prefix):
                    logger.debug(f"Skipping {remote.name}: matches exclude prefix {exclude_prefix!r}")
                    continue
                if allow and remote.name not in allow:
                    continue
                if remote.name in repositories:
                    logger.warning(f"Repository {remote.name} listed by more than one organization, "
                                   f"keeping {repositories[remote.name].organization}")
                    continue
                repositories[remote.name] = Repository(
                    name=remote.name,
                    remote_url=remote.clone_url,
                    mirror_path=str(self.mirror_path(remote.name)),
                    organization=org_name,
                )

        now = self.clock()
        with Database(db_path=self.db_path) as db:
            for repo in repositories.values():
                upsert_repository(db, repo, now)

        return sorted(repositories.values(), key=lambda r: r.name)

    def sync(
        self,
        known_heads: Optional[Dict[BranchKey, str]] = None,
        summary: Optional[PassSummary] = None,
    ) -> Iterator[Observation]:
        """
        Synchronize every repository and yield new or advanced branch heads.

        Args:
            known_heads: Last-seen heads; loaded from the database if None
            summary: Pass counters to update

        Yields:
            Observation for each head not in ``known_heads``
        """
        try:
            self.mirrors_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RegistryError(f"cannot create mirror directory {self.mirrors_root}: {e}") from e

        if known_heads is None:
            with Database(db_path=self.db_path) as db:
                known_heads = load_branch_heads(db)

        summary = summary if summary is not None else PassSummary()
        repositories = iter(self.discover())
        window = max(1, self.workers * 2)

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            in_flight: Set[Future] = set()

            def fill() -> None:
                while len(in_flight) < window and not self.shutdown.is_set():
                    repo = next(repositories, None)
                    if repo is None:
                        return
                    in_flight.add(executor.submit(self.sync_repository, repo, known_heads, summary))

            fill()
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    in_flight.discard(future)
                    yield from future.result()
                fill()

    def sync_repository(
        self,
        repo: Repository,
        known_heads: Dict[BranchKey, str],
        summary: Optional[PassSummary] = None,
    ) -> List[Observation]:
        """
        Bring one mirror up to date and collect its changed branch heads.

        Failures are recorded and yield no observations.
        """
        try:
            with self.mirror_lock(repo.name):
                branches = self._list_branches(repo)
                self._update_mirror(repo)
                observations = self._observe(repo, branches, known_heads)
        except (DirectoryListingError, GitError, OSError) as e:
            stage = 'listing' if isinstance(e, DirectoryListingError) else 'mirror'
            logger.error(f"Failed to sync {repo.name}: {e}")
            self._record_error(repo.name, stage, e)
            if summary is not None:
                summary.add('repositories_failed')
                summary.add_error(f"{repo.name}: {e}")
            return []

        with Database(db_path=self.db_path) as db:
            mark_repository_synced(db, repo.name, self.clock())
            clear_sync_errors(db, repo.name)
            retired = retire_missing_branches(db, repo.name, [b.name for b in branches], self.clock())
        for name in retired:
            logger.info(f"Branch {repo.name}/{name} no longer exists upstream, retired")

        if summary is not None:
            summary.add('repositories_synced')
            summary.add('heads_observed', len(observations))
        return observations

    def acknowledge(self, observation: Observation) -> None:
        """Persist an observation as the last-seen head of its branch."""
        with Database(db_path=self.db_path) as db:
            save_branch_head(db, observation)

    def _list_branches(self, repo: Repository) -> List[Branch]:
        owner = repo.organization or repo.name
        branches = []
        for remote in self.lister.list_branches(owner, repo.name):
            if self.skip_slash_branches and '/' in remote.name:
                continue
            branches.append(Branch(repository=repo.name, name=remote.name, head=remote.commit))
        return branches

    def _update_mirror(self, repo: Repository) -> None:
        """Clone the mirror if missing or corrupt, otherwise fetch."""
        path = Path(repo.mirror_path)
        if path.exists() and not self.git.verify(str(path), connectivity=self.verify_mirrors):
            logger.warning(f"Mirror of {repo.name} failed its integrity check, re-cloning")
            shutil.rmtree(path)

        if not path.exists():
            try:
                self.git.clone_mirror(repo.remote_url, str(path))
            except GitError:
                shutil.rmtree(path, ignore_errors=True)
                raise
            return

        self.git.fetch(str(path))

    def _observe(
        self,
        repo: Repository,
        branches: List[Branch],
        known_heads: Dict[BranchKey, str],
    ) -> List[Observation]:
        siblings = tuple(sorted(b.name for b in branches))
        listed = set(siblings)
        # A vanished branch may have shadowed a sibling; offer every head again
        vanished = sorted(name for (owner, name) in known_heads if owner == repo.name and name not in listed)
        if vanished:
            logger.info(f"{repo.name}: {', '.join(vanished)} gone, re-observing remaining branches")

        observations = []
        for branch in branches:
            if not vanished and known_heads.get((repo.name, branch.name)) == branch.head:
                continue
            if not branch.head or not self.git.has_commit(repo.mirror_path, branch.head):
                logger.warning(f"{repo.name}/{branch.name}: head {branch.head[:12]} not in mirror yet")
                continue
            observations.append(Observation(
                repository=repo,
                branch=branch,
                commit=Commit(id=branch.head, repository=repo.name, branch=branch.name),
                observed_at=self.clock(),
                siblings=siblings,
            ))
        return observations

    def _record_error(self, name: str, stage: str, error: Exception) -> None:
        with Database(db_path=self.db_path) as db:
            record_sync_error(db, name, stage, type(error).__name__, str(error))
            mark_repository_synced(db, name, self.clock(), error=str(error))
