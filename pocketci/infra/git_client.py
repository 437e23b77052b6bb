"""
Git client infrastructure for pocketci.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from business logic

Mirrors are bare repositories created with ``git clone --mirror``.
"""

import os
import subprocess
from typing import BinaryIO, List, Optional
from pathlib import Path
import logging

from ..errors import GitError

logger = logging.getLogger(__name__)


class GitClient:
    """
    Abstraction over git commands.

    Every failing command raises GitError carrying the exit status and
    stderr, so callers can record why a repository was skipped.

    Example:
        client = GitClient(timeout=600)
        client.clone_mirror("https://github.com/org/repo.git", "/srv/mirrors/repo.git")
        if client.has_commit("/srv/mirrors/repo.git", sha):
            client.archive("/srv/mirrors/repo.git", sha, out)
    """

    def __init__(self, timeout: int = 600):
        """
        Initialize GitClient.

        Args:
            timeout: Command timeout in seconds (default: 600)
        """
        self.timeout = timeout
        self._env = dict(os.environ, GIT_TERMINAL_PROMPT='0', LC_ALL='C')

    def _run(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        check: bool = True,
        stdout: Optional[BinaryIO] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a git command.

        Args:
            args: Arguments after ``git``
            cwd: Working directory
            check: Raise GitError on non-zero exit
            stdout: Stream binary stdout into this file instead of capturing it

        Returns:
            The completed process (stdout decoded as text when captured)
        """
        cmd = ['git'] + args
        try:
            if stdout is not None:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    stdout=stdout,
                    stderr=subprocess.PIPE,
                    env=self._env,
                    timeout=self.timeout,
                )
                result.stderr = result.stderr.decode('utf-8', 'replace') if result.stderr else ''
            else:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    capture_output=True,
                    text=True,
                    env=self._env,
                    timeout=self.timeout,
                )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Git command timed out: {' '.join(cmd)}")
            raise GitError(cmd, -1, f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise GitError(cmd, -1, str(e)) from e

        if check and result.returncode != 0:
            raise GitError(cmd, result.returncode, result.stderr or '')
        return result

    def clone_mirror(self, url: str, path: str) -> None:
        """Create a bare mirror of ``url`` at ``path``."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning mirror of {url}")
        self._run(['clone', '--mirror', '--quiet', url, str(path)])

    def fetch(self, path: str) -> None:
        """Incrementally update a mirror, pruning deleted branches."""
        self._run(['fetch', '--prune', '--quiet', 'origin'], cwd=str(path))

    def verify(self, path: str, connectivity: bool = True) -> bool:
        """
        Check mirror integrity.

        Args:
            path: Mirror directory
            connectivity: Also run ``git fsck --connectivity-only``

        Returns:
            True if the mirror is usable
        """
        if not Path(path).is_dir():
            return False
        result = self._run(['rev-parse', '--git-dir'], cwd=str(path), check=False)
        if result.returncode != 0:
            return False
        if connectivity:
            result = self._run(['fsck', '--connectivity-only', '--no-progress'], cwd=str(path), check=False)
            if result.returncode != 0:
                logger.debug(f"fsck failed for {path}: {result.stderr.strip()}")
                return False
        return True

    def has_commit(self, path: str, sha: str) -> bool:
        """Check that a commit object exists in the repository."""
        result = self._run(['cat-file', '-e', f'{sha}^{{commit}}'], cwd=str(path), check=False)
        return result.returncode == 0

    def path_type(self, path: str, sha: str, relpath: str) -> Optional[str]:
        """
        Type of the entry at ``relpath`` in the tree of commit ``sha``.

        Returns:
            'tree', 'blob' or 'commit'; None if the commit has no such path

        Raises:
            GitError: if the tree cannot be read
        """
        relpath = relpath.strip('/')
        result = self._run(['ls-tree', sha, '--', relpath], cwd=str(path))
        for line in result.stdout.splitlines():
            meta, _, name = line.partition('\t')
            if name == relpath:
                return meta.split()[1]
        return None

    def commit_timestamp(self, path: str, sha: str) -> int:
        """Committer time of a commit as a unix timestamp."""
        result = self._run(['log', '-1', '--format=%ct', sha], cwd=str(path))
        return int(result.stdout.strip())

    def archive(self, path: str, sha: str, out: BinaryIO) -> None:
        """Write ``git archive --format=tar`` of a commit into ``out``."""
        self._run(['archive', '--format=tar', sha], cwd=str(path), stdout=out)
