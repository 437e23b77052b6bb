"""
Pass summary domain object for pocketci.

Collects the statistics of one pipeline pass so the CLI can report them
and decide the exit code.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class PassSummary:
    """
    Counters for a single sync/build pass.

    Workers in several thread pools update the same summary, so increments
    go through ``add`` which holds a lock.
    """
    repositories_synced: int = 0
    repositories_failed: int = 0
    heads_observed: int = 0
    snapshots_created: int = 0
    snapshots_reused: int = 0
    non_buildable: int = 0
    bindings_recorded: int = 0
    builds_dispatched: int = 0
    builds_succeeded: int = 0
    builds_failed: int = 0
    builds_unavailable: int = 0
    reconciled: int = 0
    interrupted: bool = False
    errors: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def add_error(self, message: str) -> None:
        with self._lock:
            self.errors.append(message)

    @property
    def clean(self) -> bool:
        """True when nothing failed during the pass."""
        return not self.errors and self.repositories_failed == 0 and self.builds_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        with self._lock:
            return {
                'repositories_synced': self.repositories_synced,
                'repositories_failed': self.repositories_failed,
                'heads_observed': self.heads_observed,
                'snapshots_created': self.snapshots_created,
                'snapshots_reused': self.snapshots_reused,
                'non_buildable': self.non_buildable,
                'bindings_recorded': self.bindings_recorded,
                'builds_dispatched': self.builds_dispatched,
                'builds_succeeded': self.builds_succeeded,
                'builds_failed': self.builds_failed,
                'builds_unavailable': self.builds_unavailable,
                'reconciled': self.reconciled,
                'interrupted': self.interrupted,
                'errors': list(self.errors),
            }
