"""
GitHub API client infrastructure for pocketci.

The directory-listing collaborator of the repository registry:
- Lists organization repositories and repository branches
- Follows pagination (100 entries per page)
- Handles rate limiting and connection errors with exponential backoff
"""

import os
import time
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List, Dict, Any

import requests

from ..errors import DirectoryListingError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (403, 429, 500, 502, 503, 504)


@dataclass
class RateLimitStatus:
    """GitHub API rate limit status."""
    remaining: int
    limit: int
    reset_time: int  # Unix timestamp
    used: int

    @property
    def minutes_until_reset(self) -> int:
        """Minutes until rate limit resets."""
        now = int(time.time())
        return max(0, (self.reset_time - now) // 60)

    @property
    def is_low(self) -> bool:
        """Check if rate limit is getting low (< 100 remaining)."""
        return self.remaining < 100


@dataclass
class RemoteRepository:
    """A repository as listed by the GitHub API."""
    name: str
    clone_url: str
    archived: bool = False

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'RemoteRepository':
        return cls(
            name=data.get('name', ''),
            clone_url=data.get('clone_url') or data.get('html_url', ''),
            archived=bool(data.get('archived', False)),
        )


@dataclass
class RemoteBranch:
    """A branch and its head commit as listed by the GitHub API."""
    name: str
    commit: str

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'RemoteBranch':
        commit = data.get('commit') or {}
        return cls(name=data.get('name', ''), commit=commit.get('sha', ''))


def resolve_token(token: Optional[str] = None, token_file: Optional[str] = None) -> Optional[str]:
    """
    Find a GitHub token.

    Checks in order: explicit token, POCKETCI_GITHUB_TOKEN, GITHUB_TOKEN,
    then the contents of ``token_file`` if it exists.
    """
    token = token or os.environ.get('POCKETCI_GITHUB_TOKEN') or os.environ.get('GITHUB_TOKEN')
    if token:
        return token
    if token_file:
        path = Path(token_file).expanduser()
        if path.is_file():
            return path.read_text().strip() or None
    return None


class GitHubClient:
    """
    GitHub API client with pagination and rate limiting.

    Example:
        client = GitHubClient(token="...")
        for repo in client.list_repositories("my-org"):
            print(repo.name)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        per_page: int = 100,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
    ):
        """
        Initialize GitHubClient.

        Args:
            token: GitHub token (anonymous access if None)
            api_url: API base URL
            per_page: Page size for listing endpoints
            max_retries: Maximum retry attempts for rate-limited or failed requests
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay between retries
            timeout: Per-request timeout in seconds
        """
        self.token = token
        self.api_url = api_url.rstrip('/')
        self.per_page = per_page
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'GitHubClient':
        github = config.get('github', {})
        rate_limit = github.get('rate_limit', {})
        return cls(
            token=resolve_token(github.get('token'), github.get('token_file')),
            api_url=github.get('api_url') or "https://api.github.com",
            per_page=github.get('per_page', 100),
            max_retries=rate_limit.get('max_retries', 3),
            base_delay=rate_limit.get('base_delay_seconds', 1.0),
            max_delay=rate_limit.get('max_delay_seconds', 60),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'pocketci',
        }
        if self.token:
            headers['Authorization'] = f'token {self.token}'
        return headers

    def _update_rate_limit_from_headers(self, headers) -> None:
        """Update rate limit status from response headers."""
        try:
            remaining = int(headers.get('X-RateLimit-Remaining', -1))
            limit = int(headers.get('X-RateLimit-Limit', -1))
            reset_time = int(headers.get('X-RateLimit-Reset', 0))
            used = int(headers.get('X-RateLimit-Used', 0))
        except (ValueError, TypeError, AttributeError):
            return

        if remaining >= 0 and limit >= 0:
            status = RateLimitStatus(
                remaining=remaining,
                limit=limit,
                reset_time=reset_time,
                used=used
            )
            if status.is_low:
                logger.warning(
                    f"GitHub API rate limit low: {remaining}/{limit} remaining, "
                    f"resets in {status.minutes_until_reset} minutes"
                )

    def _backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """
        GET one API page, retrying rate limits, server errors and
        connection failures.

        Raises:
            DirectoryListingError: after the last retry, or on a
                non-retryable status
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_error = "no attempts made"

        for attempt in range(self.max_retries):
            try:
                response = requests.get(url, headers=self._headers(), params=params, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = str(e)
                logger.warning(f"GitHub API request failed: {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(self._backoff(attempt))
                continue

            self._update_rate_limit_from_headers(response.headers)

            if response.status_code == 200:
                try:
                    return response.json()
                except ValueError as e:
                    raise DirectoryListingError(endpoint, f"invalid JSON response: {e}") from e

            if response.status_code == 404:
                raise DirectoryListingError(endpoint, "not found")

            if response.status_code in RETRYABLE_STATUS:
                last_error = f"HTTP {response.status_code}"
                if attempt >= self.max_retries - 1:
                    break

                delay = self._backoff(attempt)
                reset_time = response.headers.get('X-RateLimit-Reset')
                if response.status_code in (403, 429) and reset_time:
                    try:
                        wait_time = int(reset_time) - int(time.time())
                    except (TypeError, ValueError):
                        wait_time = 0
                    if 0 < wait_time < self.max_delay:
                        delay = wait_time

                logger.info(f"GitHub API returned {response.status_code} for {endpoint}, "
                            f"waiting {delay}s (attempt {attempt + 1})")
                time.sleep(delay)
                continue

            raise DirectoryListingError(endpoint, f"HTTP {response.status_code}")

        raise DirectoryListingError(endpoint, f"giving up after {self.max_retries} attempts: {last_error}")

    def _get_all(self, endpoint: str) -> List[Dict[str, Any]]:
        """Fetch every page of a listing endpoint."""
        items: List[Dict[str, Any]] = []
        page = 0
        while True:
            page += 1
            data = self._get(endpoint, {'page': page, 'per_page': self.per_page})
            if not isinstance(data, list):
                raise DirectoryListingError(endpoint, "expected a JSON list")
            items.extend(data)
            if len(data) < self.per_page:
                return items

    def list_repositories(self, org: str) -> List[RemoteRepository]:
        """
        List all repositories of an organization.

        Raises:
            DirectoryListingError: if the organization cannot be listed
        """
        return [RemoteRepository.from_api_response(item) for item in self._get_all(f"orgs/{org}/repos")]

    def list_branches(self, owner: str, repo: str) -> List[RemoteBranch]:
        """
        List all branches of a repository with their head commits.

        Raises:
            DirectoryListingError: if the branches cannot be listed
        """
        return [
            RemoteBranch.from_api_response(item)
            for item in self._get_all(f"repos/{owner}/{repo}/branches")
        ]
