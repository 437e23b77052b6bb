"""
Shared fixtures for pocketci tests.

Repositories are real git repositories in temporary directories; the
GitHub directory listing is replaced by FakeLister, which lists those
local repositories and reads their branches with git.
"""

import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from pocketci.config import get_default_config, merge_configs, validate_config
from pocketci.domain.build import BuildOutcome
from pocketci.errors import DirectoryListingError
from pocketci.infra.build_trigger import BuildTrigger
from pocketci.infra.github_client import RemoteBranch, RemoteRepository

requires_git = pytest.mark.skipif(shutil.which('git') is None, reason="git is not installed")


def git(cwd, *args) -> str:
    result = subprocess.run(
        ['git', '-c', 'user.name=Test', '-c', 'user.email=test@example.com',
         '-c', 'commit.gpgsign=false'] + list(args),
        cwd=str(cwd), capture_output=True, text=True, check=True,
    )
    return result.stdout.strip()


def init_repo(path: Path) -> Path:
    """Create an empty working repository whose first branch is master."""
    path.mkdir(parents=True)
    git(path, 'init', '-q')
    git(path, 'symbolic-ref', 'HEAD', 'refs/heads/master')
    return path


def commit_files(repo: Path, files: Dict[str, str], message: str = "update") -> str:
    """Write files, commit them and return the new commit id."""
    for name, content in files.items():
        target = repo / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    git(repo, 'add', '-A')
    git(repo, 'commit', '-q', '-m', message)
    return git(repo, 'rev-parse', 'HEAD')


def packaged_repo(path: Path, name: str = "hello") -> Path:
    """A repository with a debian/ directory on master."""
    repo = init_repo(path)
    commit_files(repo, {
        'README': f'{name}\n',
        'src/main.c': 'int main(void) { return 0; }\n',
        'debian/control': f'Source: {name}\n',
        'debian/rules': '#!/usr/bin/make -f\n%:\n\tdh $@\n',
    }, "initial packaging")
    return repo


class FakeLister:
    """Directory listing backed by local repositories."""

    def __init__(self, orgs: Dict[str, Dict[str, Path]], broken: Optional[Dict[str, List[RemoteBranch]]] = None):
        self.orgs = orgs
        self.broken = broken or {}
        self.failing_orgs = set()
        self.archived = set()
        self.calls: List[str] = []

    def list_repositories(self, org: str) -> List[RemoteRepository]:
        self.calls.append(f"repos:{org}")
        if org in self.failing_orgs:
            raise DirectoryListingError(f"orgs/{org}/repos", "HTTP 500")
        return [
            RemoteRepository(name=name, clone_url=str(path), archived=name in self.archived)
            for name, path in sorted(self.orgs.get(org, {}).items())
        ]

    def list_branches(self, owner: str, repo: str) -> List[RemoteBranch]:
        self.calls.append(f"branches:{owner}/{repo}")
        if repo in self.broken:
            return list(self.broken[repo])
        path = self.orgs[owner][repo]
        heads = git(path, 'for-each-ref', '--format=%(refname:short) %(objectname)', 'refs/heads')
        return [RemoteBranch(*line.rsplit(' ', 1)) for line in heads.splitlines() if line]


class RecordingTrigger(BuildTrigger):
    """Build trigger stub that records calls and returns queued outcomes."""

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def trigger(self, target, snapshot):
        with self._lock:
            self.calls.append((target, snapshot.commit_id))
            outcome = self.outcomes.pop(0) if self.outcomes else BuildOutcome.succeeded()
        if self.delay:
            time.sleep(self.delay)
        return outcome


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            # Strictly increasing so observations are ordered
            self.now += 0.001
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


def make_config(root: Path, **sections) -> dict:
    """A validated configuration rooted at ``root``."""
    config = merge_configs(get_default_config(), {
        'github': {'organizations': [{'name': 'acme', 'exclude_prefix': 'archived-'}]},
        'codenames': [
            {'name': 'jammy', 'release': '22.04', 'pockets': ['main', 'proposed']},
            {'name': 'noble', 'release': '24.04', 'pockets': ['main']},
        ],
        'pockets': [
            {'name': 'main', 'rules': [
                {'type': 'exact', 'pattern': 'master'},
                {'type': 'exact', 'pattern': 'master_{codename}'},
            ]},
            {'name': 'proposed', 'rules': [{'type': 'glob', 'pattern': 'proposed*'}]},
        ],
        'sync': {'workers': 2},
        'snapshot': {'workers': 2},
        'build': {'cooldown_seconds': 60, 'max_cooldown_seconds': 600, 'unavailable_delay_seconds': 0},
        'trigger': {'type': 'command', 'command': ['true']},
        'paths': {'root': str(root)},
    })
    for section, values in sections.items():
        config = merge_configs(config, {section: values})
    return validate_config(config)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path / 'state')


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / 'state' / 'state.db'
