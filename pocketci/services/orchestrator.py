"""
Build orchestrator service for pocketci.

Drains pending build work through a bounded pool of build slots:
- A pending record is claimed through the tracker before it is dispatched,
  so the same record is never built twice concurrently
- Dispatch blocks while every slot is busy
- An unavailable build service is retried in the slot with a short
  exponential delay, then the record is released back to pending
- Once the shutdown event is set no new builds start; running builds
  finish and record their outcomes
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Optional

from ..domain.build import BuildOutcome, OutcomeKind, PendingBuild
from ..domain.operation import PassSummary
from ..domain.snapshot import Snapshot
from ..infra.build_trigger import BuildTrigger
from .build_tracker import BuildTracker

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """
    Dispatches pending builds to the build trigger.

    Example:
        orchestrator = BuildOrchestrator(config, tracker, trigger, generator.get_snapshot)
        summary = orchestrator.run(tracker.pending_work())
    """

    def __init__(
        self,
        config: Dict[str, Any],
        tracker: BuildTracker,
        trigger: BuildTrigger,
        snapshot_lookup: Callable[[str], Optional[Snapshot]],
        shutdown: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        build = config.get('build', {})
        self.tracker = tracker
        self.trigger = trigger
        self.snapshot_lookup = snapshot_lookup
        self.shutdown = shutdown or threading.Event()
        self.sleep = sleep
        self.slots = build.get('slots', 1)
        self.unavailable_retries = build.get('unavailable_retries', 3)
        self.unavailable_delay = build.get('unavailable_delay_seconds', 5)

    def run(self, pending: Iterable[PendingBuild], summary: Optional[PassSummary] = None) -> PassSummary:
        """
        Build every pending item that can be claimed.

        Returns:
            The summary, with build counters updated
        """
        summary = summary if summary is not None else PassSummary()
        slots = threading.BoundedSemaphore(self.slots)

        def release(_future) -> None:
            slots.release()

        futures = []
        with ThreadPoolExecutor(max_workers=self.slots) as executor:
            for work in pending:
                if self.shutdown.is_set():
                    logger.info("Shutdown requested, not starting further builds")
                    summary.interrupted = True
                    break

                slots.acquire()
                if self.shutdown.is_set():
                    slots.release()
                    summary.interrupted = True
                    break

                if not self.tracker.claim(work):
                    slots.release()
                    continue

                summary.add('builds_dispatched')
                future = executor.submit(self._build, work, summary)
                future.add_done_callback(release)
                futures.append(future)

        # Surface state store failures raised inside a slot
        for future in futures:
            future.result()

        return summary

    def _build(self, work: PendingBuild, summary: PassSummary) -> None:
        """Run one claimed build in a slot and record its outcome."""
        outcome = self._attempt(work)

        status = self.tracker.record_outcome(work.target, work.commit_id, outcome)
        if outcome.kind is OutcomeKind.SUCCEEDED:
            summary.add('builds_succeeded')
            logger.info(f"Built {work.target} at {work.commit_id[:12]}")
        elif outcome.kind is OutcomeKind.UNAVAILABLE:
            summary.add('builds_unavailable')
            logger.warning(f"Build service unavailable for {work.target}: {outcome.reason}")
        else:
            summary.add('builds_failed')
            summary.add_error(f"{work.target}: {outcome.reason}")
            logger.error(f"Build of {work.target} at {work.commit_id[:12]} failed: {outcome.reason}")

        if status is None:
            logger.info(f"{work.target}: outcome discarded, a newer commit took over")

    def _attempt(self, work: PendingBuild) -> BuildOutcome:
        snapshot = self.snapshot_lookup(work.commit_id)
        if snapshot is None or not snapshot.buildable:
            return BuildOutcome.failed(f"no buildable snapshot for {work.commit_id}")

        attempt = 0
        while True:
            try:
                outcome = self.trigger.trigger(work.target, snapshot)
            except Exception as e:
                logger.exception(f"Build trigger raised for {work.target}")
                return BuildOutcome.failed(f"{type(e).__name__}: {e}")

            if outcome.kind is not OutcomeKind.UNAVAILABLE:
                return outcome
            if attempt >= self.unavailable_retries or self.shutdown.is_set():
                return outcome

            delay = self.unavailable_delay * (2 ** attempt)
            logger.info(f"Build service unavailable for {work.target}, retrying in {delay}s")
            self.sleep(delay)
            attempt += 1
