"""
Submission of new posts for conversion.
"""
import logging
from typing import Optional

from postreader.config import MAX_TEXT_LENGTH
from postreader.errors import ValidationError
from postreader.services.event_bus import JOB_CREATED, EventBus, get_event_bus
from postreader.services.job_store import JobStore, get_job_store
from postreader.services.synthesizer import Synthesizer, get_synthesizer

logger = logging.getLogger(__name__)


class SubmissionService:
    """Validates a post, records it as a PENDING job and announces it."""

    def __init__(
        self,
        store: JobStore,
        bus: EventBus,
        synthesizer: Synthesizer,
        max_text_length: int = MAX_TEXT_LENGTH,
    ):
        self.store = store
        self.bus = bus
        self.synthesizer = synthesizer
        self.max_text_length = max_text_length

    def validate(self, voice: Optional[str], text: Optional[str]):
        if not text or not text.strip():
            raise ValidationError('text must not be empty')
        if len(text) > self.max_text_length:
            raise ValidationError(f'text exceeds {self.max_text_length} characters')
        if not voice or not self.synthesizer.has_voice(voice):
            raise ValidationError(f'Unknown voice: {voice}')

    async def submit(self, voice: Optional[str], text: Optional[str]) -> str:
        """
        Create a job and publish job.created for it.

        The record is written before the event, so a failed write never
        leaves an event pointing at a missing job. If the publish fails
        the job stays PENDING until the reconciliation sweep republishes.
        """
        self.validate(voice, text)
        job = await self.store.create(text=text, voice=voice)
        logger.info('Created job %s (voice=%s, %d chars)', job.id, voice, len(text))
        await self.bus.publish(JOB_CREATED, job.id)
        return job.id


# Singleton instance
_submission_service: Optional[SubmissionService] = None


def get_submission_service() -> SubmissionService:
    """Get the submission service singleton instance."""
    global _submission_service
    if _submission_service is None:
        _submission_service = SubmissionService(
            store=get_job_store(),
            bus=get_event_bus(),
            synthesizer=get_synthesizer(),
        )
    return _submission_service


def reset_submission_service():
    """Reset the submission service singleton (for testing)."""
    global _submission_service
    _submission_service = None
