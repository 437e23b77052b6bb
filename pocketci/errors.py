"""
Exception hierarchy for pocketci.

Stage-local errors (DirectoryListingError, GitError, SnapshotError) are
contained by the pipeline and retried on the next pass. ConfigError,
TrackerError and RegistryError abort the run.
"""

from typing import List, Optional


class PocketCIError(Exception):
    """Base class for all pocketci errors."""


class ConfigError(PocketCIError):
    """Configuration is missing required settings or is invalid."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = problems or []
        if self.problems:
            message = message + ": " + "; ".join(self.problems)
        super().__init__(message)


class DirectoryListingError(PocketCIError):
    """The repository directory (GitHub API) could not be listed."""

    def __init__(self, endpoint: str, message: str):
        super().__init__(f"failed to list {endpoint}: {message}")
        self.endpoint = endpoint


class GitError(PocketCIError):
    """A git command exited unsuccessfully."""

    def __init__(self, args: List[str], returncode: int, stderr: str = ""):
        command = " ".join(args)
        detail = stderr.strip().splitlines()[-1] if stderr and stderr.strip() else ""
        message = f"{command} exited with status {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr


class RegistryError(PocketCIError):
    """Repository synchronization cannot proceed for any repository."""


class SnapshotError(PocketCIError):
    """A snapshot could not be generated or stored."""

    def __init__(self, commit_id: str, message: str):
        super().__init__(f"snapshot for {commit_id}: {message}")
        self.commit_id = commit_id


class TrackerError(PocketCIError):
    """The build state store failed."""
