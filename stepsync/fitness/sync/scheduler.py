"""Batch sync scheduler for linked accounts.

Runs queued sync jobs concurrently (bounded by ``max_concurrent``), each
through a per-account single-flight guard so the same account is never
synced twice at once.  Retry policy stays with the caller: results flagged
``should_retry`` can simply be enqueued again on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from stepsync.fitness.base import Stream, SyncResult
from stepsync.fitness.sync.orchestrator import SyncOrchestrator
from stepsync.fitness.sync.single_flight import SingleFlight

logger = logging.getLogger("stepsync.fitness.sync.scheduler")


@dataclass
class SyncJob:
    """A scheduled sync for one account.

    Attributes:
        account_id: Internal account UUID.
        stream:     Destination stream.
        priority:   Lower = higher priority. 1–10.
        created_at: When the job was created.
    """

    account_id: UUID
    stream: Stream
    priority: int = 5
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SyncScheduler:
    """Queue and execute sync jobs.

    Usage::

        scheduler = SyncScheduler(orchestrator, max_concurrent=5)
        scheduler.enqueue(SyncJob(account_id, stream))
        results = await scheduler.run_all()
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        single_flight: SingleFlight | None = None,
        max_concurrent: int = 5,
    ) -> None:
        """Initialize the scheduler.

        Args:
            orchestrator:   Runs individual sync attempts.
            single_flight:  Shared per-account guard.  Pass the same instance
                            used by other trigger paths (e.g. the HTTP route)
                            so they deduplicate against each other.
            max_concurrent: Maximum number of simultaneous sync attempts.
        """
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self._orchestrator = orchestrator
        self._single_flight = single_flight or SingleFlight()
        self._max_concurrent = max_concurrent
        self._queue: list[SyncJob] = []
        self._results: list[SyncResult] = []

    @property
    def single_flight(self) -> SingleFlight:
        return self._single_flight

    def enqueue(self, job: SyncJob) -> None:
        """Add a job; the queue is kept sorted by priority."""
        self._queue.append(job)
        self._queue.sort(key=lambda j: j.priority)
        logger.debug("Enqueued sync job: %s (priority=%d)", job.account_id, job.priority)

    async def trigger(self, account_id: UUID, stream: Stream) -> SyncResult:
        """Sync one account now, joining an attempt already in flight."""
        return await self._single_flight.run(
            account_id, lambda: self._orchestrator.sync(account_id, stream)
        )

    async def run_all(self) -> list[SyncResult]:
        """Execute all queued jobs with bounded parallelism.

        Returns:
            One SyncResult per job that finished.  Duplicate jobs for the same
            account that overlap in time receive the same result.  Jobs that
            raised or were cancelled are logged and left out.
        """
        if not self._queue:
            logger.debug("SyncScheduler: no jobs in queue")
            return []

        jobs = list(self._queue)
        self._queue.clear()
        logger.info("SyncScheduler: running %d jobs", len(jobs))

        semaphore = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(
            *(self._run_job(job, semaphore) for job in jobs), return_exceptions=True
        )

        self._results = []
        for job, r in zip(jobs, results):
            if isinstance(r, SyncResult):
                self._results.append(r)
            elif isinstance(r, Exception):
                logger.error("Sync job for %s failed with exception: %s", job.account_id, r)
            else:
                logger.error("Sync job for %s was aborted: %r", job.account_id, r)

        dropped = len(jobs) - len(self._results)
        if dropped:
            logger.warning("SyncScheduler: %d of %d jobs produced no result", dropped, len(jobs))

        logger.info(
            "SyncScheduler: %d jobs complete, %d errors",
            len(self._results),
            sum(1 for r in self._results if not r.succeeded),
        )
        return self._results

    def retry_jobs(self, results: list[SyncResult], streams: dict[UUID, Stream]) -> int:
        """Re-enqueue retryable failures for the next run.

        Args:
            results: Results from a previous ``run_all``.
            streams: Destination stream per account id.

        Returns:
            Number of jobs enqueued.
        """
        count = 0
        for r in results:
            if r.should_retry and r.account_id in streams:
                self.enqueue(SyncJob(account_id=r.account_id, stream=streams[r.account_id]))
                count += 1
        return count

    async def _run_job(self, job: SyncJob, semaphore: asyncio.Semaphore) -> SyncResult:
        async with semaphore:
            return await self.trigger(job.account_id, job.stream)
