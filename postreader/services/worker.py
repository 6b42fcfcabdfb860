"""
Synthesis worker: turns "job created" events into audio artifacts.
"""
import asyncio
import logging
import time
from typing import Optional

from postreader.config import CONVERSION_TIMEOUT
from postreader.errors import ConversionFailure
from postreader.models.job import Job, JobStatus
from postreader.services.artifact_store import ArtifactStore, get_artifact_store
from postreader.services.event_bus import Event
from postreader.services.job_store import JobStore, get_job_store
from postreader.services.synthesizer import Synthesizer, get_synthesizer

logger = logging.getLogger(__name__)


class SynthesisWorker:
    """
    Processes jobs through PENDING -> PROCESSING -> COMPLETE/FAILED.

    The PENDING -> PROCESSING claim is a conditional update, so duplicate
    deliveries of the same event are no-ops. Conversion errors are recorded
    on the job; store errors propagate so the bus redelivers. A crash after
    the claim leaves the job PROCESSING for the reconciliation sweep.
    """

    def __init__(
        self,
        store: JobStore,
        synthesizer: Synthesizer,
        artifacts: ArtifactStore,
        timeout: float = CONVERSION_TIMEOUT,
    ):
        self.store = store
        self.synthesizer = synthesizer
        self.artifacts = artifacts
        self.timeout = timeout

    async def handle_event(self, event: Event):
        """Event bus handler for job.created events."""
        await self.process(event.job_id)

    async def process(self, job_id: str) -> Optional[JobStatus]:
        """
        Process a freshly created job.

        Returns the final status, or None when the delivery was a duplicate.
        """
        job = await self.store.claim(job_id)
        if job is None:
            logger.info('Job %s not claimable (missing or already claimed); skipping', job_id)
            return None
        return await self._run(job)

    async def resume(self, job: Job) -> Optional[JobStatus]:
        """
        Reprocess a job left in PROCESSING by a crashed worker.

        `job` is the record as observed by the caller; if another sweep got
        to it first, this is a no-op.
        """
        claimed = await self.store.reclaim(job.id, job.updated_at)
        if claimed is None:
            logger.info('Job %s already reclaimed elsewhere; skipping', job.id)
            return None
        logger.warning('Resuming stale job %s (attempt %d)', job.id, claimed.attempts)
        return await self._run(claimed)

    async def _run(self, job: Job) -> JobStatus:
        start_time = time.time()
        try:
            audio = await self._convert(job)
        except ConversionFailure as e:
            await self.store.fail(job.id, str(e))
            logger.error('Job %s failed: %s', job.id, e)
            return JobStatus.failed

        artifact_ref = await self.artifacts.put(job.id, audio)
        await self.store.complete(job.id, artifact_ref)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info('Job %s complete in %d ms (%d bytes)', job.id, duration_ms, len(audio))
        return JobStatus.complete

    async def _convert(self, job: Job) -> bytes:
        try:
            audio = await asyncio.wait_for(
                self.synthesizer.synthesize(job.text, job.voice),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConversionFailure(f'Conversion timed out after {self.timeout:g}s') from e
        except Exception as e:
            raise ConversionFailure(f'Conversion failed: {e}') from e

        if not audio:
            raise ConversionFailure('Conversion produced no audio')
        return audio


# Singleton instance
_worker: Optional[SynthesisWorker] = None


def get_synthesis_worker() -> SynthesisWorker:
    """Get the synthesis worker singleton instance."""
    global _worker
    if _worker is None:
        _worker = SynthesisWorker(
            store=get_job_store(),
            synthesizer=get_synthesizer(),
            artifacts=get_artifact_store(),
        )
    return _worker


def reset_synthesis_worker():
    """Reset the synthesis worker singleton (for testing)."""
    global _worker
    _worker = None
