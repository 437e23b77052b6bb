"""
Build trigger infrastructure for pocketci.

The build trigger is the external collaborator that actually builds a
source package. pocketci only tells it what to build and maps its answer
to a BuildOutcome:

- succeeded: the build finished
- failed: the build ran and failed (including timeouts)
- unavailable: the build service could not be reached; not a build failure
"""

import subprocess
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..domain.build import BuildOutcome
from ..domain.snapshot import Snapshot
from ..domain.target import BuildTarget
from ..errors import ConfigError

logger = logging.getLogger(__name__)

# sysexits.h EX_TEMPFAIL: the build host asks us to come back later
EX_TEMPFAIL = 75
UNAVAILABLE_HTTP_STATUS = (502, 503, 504)


def enabled_archs(archs: Dict[str, bool]) -> List[str]:
    return sorted(name for name, enabled in (archs or {}).items() if enabled)


def build_variables(target: BuildTarget, snapshot: Snapshot, archs: List[str]) -> Dict[str, str]:
    """Values substituted into trigger commands and sent in trigger requests."""
    return {
        'repository': target.repository,
        'codename': target.codename,
        'pocket': target.pocket,
        'commit': snapshot.commit_id,
        'archive': snapshot.location or '',
        'digest': snapshot.digest or '',
        'archs': ','.join(archs),
    }


class BuildTrigger(ABC):
    """Interface of a build trigger."""

    @abstractmethod
    def trigger(self, target: BuildTarget, snapshot: Snapshot) -> BuildOutcome:
        """Build ``snapshot`` for ``target`` and report the outcome."""


class CommandBuildTrigger(BuildTrigger):
    """
    Runs a local command per build.

    Each argument may contain ``{repository}``, ``{codename}``, ``{pocket}``,
    ``{commit}``, ``{archive}``, ``{digest}`` and ``{archs}``.

    Example:
        trigger = CommandBuildTrigger(["build-package", "{archive}", "--codename", "{codename}"])
    """

    def __init__(self, command: List[str], timeout: int = 3600, archs: Optional[Dict[str, bool]] = None):
        if not command:
            raise ConfigError("trigger.command is empty")
        self.command = list(command)
        self.timeout = timeout
        self.archs = enabled_archs(archs or {'amd64': True})

    def render(self, target: BuildTarget, snapshot: Snapshot) -> List[str]:
        variables = build_variables(target, snapshot, self.archs)
        argv = []
        for arg in self.command:
            for key, value in variables.items():
                arg = arg.replace('{' + key + '}', value)
            argv.append(arg)
        return argv

    def trigger(self, target: BuildTarget, snapshot: Snapshot) -> BuildOutcome:
        argv = self.render(target, snapshot)
        logger.info(f"Building {target} at {snapshot.commit_id[:12]}: {' '.join(argv)}")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return BuildOutcome.unavailable(f"build command not found: {argv[0]}")
        except subprocess.TimeoutExpired:
            return BuildOutcome.failed(f"timed out after {self.timeout}s")

        if result.returncode == 0:
            return BuildOutcome.succeeded()
        if result.returncode == EX_TEMPFAIL:
            return BuildOutcome.unavailable(_tail(result.stderr) or "build host unavailable")

        reason = f"exit status {result.returncode}"
        detail = _tail(result.stderr)
        if detail:
            reason += f": {detail}"
        return BuildOutcome.failed(reason)


class HttpBuildTrigger(BuildTrigger):
    """
    Posts a build request to an HTTP build service.

    The service answers with JSON ``{"status": "succeeded"|"failed", "reason": ...}``.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 3600,
        archs: Optional[Dict[str, bool]] = None,
        connect_timeout: int = 30,
    ):
        if not url:
            raise ConfigError("trigger.url is empty")
        self.url = url
        self.headers = {'User-Agent': 'pocketci', **(headers or {})}
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.archs = enabled_archs(archs or {'amd64': True})

    def trigger(self, target: BuildTarget, snapshot: Snapshot) -> BuildOutcome:
        payload = build_variables(target, snapshot, self.archs)
        payload['archs'] = self.archs
        logger.info(f"Requesting build of {target} at {snapshot.commit_id[:12]} from {self.url}")

        try:
            response = requests.post(self.url, json=payload, headers=self.headers,
                                     timeout=(self.connect_timeout, self.timeout))
        # ConnectTimeout is also a ConnectionError: the build never started
        except requests.ConnectionError as e:
            return BuildOutcome.unavailable(str(e))
        except requests.Timeout:
            return BuildOutcome.failed(f"timed out after {self.timeout}s")
        except requests.RequestException as e:
            return BuildOutcome.unavailable(str(e))

        if response.status_code in UNAVAILABLE_HTTP_STATUS:
            return BuildOutcome.unavailable(f"HTTP {response.status_code}")
        if response.status_code >= 400:
            return BuildOutcome.failed(f"HTTP {response.status_code}: {_tail(response.text)}")

        try:
            body: Any = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        status = body.get('status', 'succeeded')
        reason = body.get('reason')
        if status == 'succeeded':
            return BuildOutcome.succeeded()
        if status == 'unavailable':
            return BuildOutcome.unavailable(reason or "build service unavailable")
        return BuildOutcome.failed(reason or f"build service reported {status}")


def _tail(text: Optional[str], lines: int = 5) -> str:
    if not text:
        return ''
    return ' | '.join(line.strip() for line in text.strip().splitlines()[-lines:] if line.strip())


def create_trigger(config: Dict[str, Any]) -> BuildTrigger:
    """Build the trigger described by the ``trigger`` config section."""
    trigger = config.get('trigger', {})
    build = config.get('build', {})
    timeout = build.get('timeout_seconds', 3600)
    archs = build.get('archs')

    if trigger.get('type', 'command') == 'http':
        return HttpBuildTrigger(trigger.get('url', ''), trigger.get('headers'), timeout, archs,
                                trigger.get('connect_timeout_seconds', 30))
    return CommandBuildTrigger(trigger.get('command') or [], timeout, archs)
