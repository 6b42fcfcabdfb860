"""
Periodic reconciliation sweep for jobs the event flow left behind.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from postreader.config import MAX_JOB_ATTEMPTS, RECONCILE_INTERVAL, STALE_AFTER
from postreader.errors import PostReaderError
from postreader.models.job import JobStatus
from postreader.services.event_bus import JOB_CREATED, EventBus, get_event_bus
from postreader.services.job_store import JobStore, get_job_store
from postreader.services.worker import SynthesisWorker, get_synthesis_worker

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    resumed: int = 0
    abandoned: int = 0
    republished: int = 0


class Reconciler:
    """
    Recovers jobs stuck after a crash or a lost event.

    PROCESSING jobs untouched for `stale_after` seconds are handed back to
    the worker (or failed once they used up `max_attempts`). PENDING jobs
    that old get their job.created event published again.
    """

    def __init__(
        self,
        store: JobStore,
        bus: EventBus,
        worker: SynthesisWorker,
        interval: float = RECONCILE_INTERVAL,
        stale_after: float = STALE_AFTER,
        max_attempts: int = MAX_JOB_ATTEMPTS,
    ):
        self.store = store
        self.bus = bus
        self.worker = worker
        self.interval = interval
        self.stale_after = stale_after
        self.max_attempts = max_attempts
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the periodic sweep."""
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        """Stop the periodic sweep."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sweep_loop(self):
        while self._running:
            try:
                report = await self.sweep()
                if report.resumed or report.abandoned or report.republished:
                    logger.info(
                        'Sweep: resumed=%d abandoned=%d republished=%d',
                        report.resumed, report.abandoned, report.republished,
                    )
            except Exception:
                # Log but don't crash the loop
                logger.exception('Error in reconciliation sweep')
            await asyncio.sleep(self.interval)

    async def sweep(self) -> SweepReport:
        """Run one reconciliation pass."""
        report = SweepReport()
        cutoff = datetime.utcnow() - timedelta(seconds=self.stale_after)

        for job in await self.store.find_stale(JobStatus.processing, cutoff):
            if job.attempts >= self.max_attempts:
                if await self.store.fail(job.id, f'Abandoned after {job.attempts} attempts'):
                    logger.error('Job %s abandoned after %d attempts', job.id, job.attempts)
                    report.abandoned += 1
                continue
            if await self.worker.resume(job) is not None:
                report.resumed += 1

        for job in await self.store.find_stale(JobStatus.pending, cutoff):
            if self.bus.is_outstanding(job.id):
                # Already queued or in flight; the backlog will reach it
                continue
            try:
                await self.bus.publish(JOB_CREATED, job.id)
            except PostReaderError as e:
                logger.warning('Could not republish job %s: %s', job.id, e)
                continue
            logger.warning('Republished job.created for stale pending job %s', job.id)
            report.republished += 1

        return report


# Singleton instance
_reconciler: Optional[Reconciler] = None


def get_reconciler() -> Reconciler:
    """Get the reconciler singleton instance."""
    global _reconciler
    if _reconciler is None:
        _reconciler = Reconciler(
            store=get_job_store(),
            bus=get_event_bus(),
            worker=get_synthesis_worker(),
        )
    return _reconciler


def reset_reconciler():
    """Reset the reconciler singleton (for testing)."""
    global _reconciler
    _reconciler = None
