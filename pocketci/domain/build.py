"""
Build state domain objects for pocketci.

BuildRecord is the unit the build tracker manages: the status of one commit
bound to one build target. Records are never rewritten for a new commit;
a new commit supersedes the active record and starts a fresh one.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .target import BuildTarget


class BuildStatus(Enum):
    """Status of a build record."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"  # superseded before it was built


class OutcomeKind(Enum):
    """What the build trigger reported."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"  # trigger unreachable, not a build failure


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one build trigger invocation."""
    kind: OutcomeKind
    reason: Optional[str] = None

    @classmethod
    def succeeded(cls) -> 'BuildOutcome':
        return cls(OutcomeKind.SUCCEEDED)

    @classmethod
    def failed(cls, reason: str) -> 'BuildOutcome':
        return cls(OutcomeKind.FAILED, reason)

    @classmethod
    def unavailable(cls, reason: str) -> 'BuildOutcome':
        return cls(OutcomeKind.UNAVAILABLE, reason)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


@dataclass(frozen=True)
class BuildRecord:
    """Tracked status of a commit bound to a build target."""
    id: int
    target: BuildTarget
    commit_id: str
    status: BuildStatus
    attempts: int = 0
    transient_failures: int = 0
    last_attempt_at: Optional[float] = None
    next_attempt_at: Optional[float] = None
    claimed_at: Optional[float] = None
    failure_reason: Optional[str] = None
    observed_at: float = 0.0
    active: bool = True
    created_at: Optional[float] = None
    updated_at: Optional[float] = None

    def needs_attention(self, max_attempts: int) -> bool:
        """A failed record that exhausted its automatic retries."""
        return self.status is BuildStatus.FAILED and self.attempts >= max_attempts

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'target': str(self.target),
            'repository': self.target.repository,
            'codename': self.target.codename,
            'pocket': self.target.pocket,
            'commit': self.commit_id,
            'status': self.status.value,
            'attempts': self.attempts,
            'transient_failures': self.transient_failures,
            'last_attempt_at': _iso(self.last_attempt_at),
            'next_attempt_at': _iso(self.next_attempt_at),
            'failure_reason': self.failure_reason,
            'observed_at': _iso(self.observed_at),
            'active': self.active,
        }
        return {k: v for k, v in result.items() if v is not None}


@dataclass(frozen=True)
class PendingBuild:
    """A unit of build work: the active pending record for a target."""
    record_id: int
    target: BuildTarget
    commit_id: str
