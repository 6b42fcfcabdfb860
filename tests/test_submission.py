"""
Submission service tests: validation and write-then-publish ordering.
"""
from unittest.mock import AsyncMock

import pytest

from postreader.errors import BusUnavailable, StoreUnavailable, ValidationError
from postreader.models.job import JobStatus
from postreader.services.event_bus import JOB_CREATED
from postreader.services.submission import SubmissionService
from postreader.services.synthesizer import ChatterboxSynthesizer


class TestValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('text', ['', '   ', None])
    async def test_empty_text_rejected(self, submission, text):
        with pytest.raises(ValidationError):
            await submission.submit(voice='en-US-1', text=text)

    @pytest.mark.asyncio
    async def test_unknown_voice_rejected(self, submission, job_store, bus):
        with pytest.raises(ValidationError):
            await submission.submit(voice='xx-XX-9', text='hello')

        assert await job_store.list() == []
        assert bus.pending_count == 0

    @pytest.mark.asyncio
    async def test_text_length_limit(self, job_store, bus, synthesizer):
        service = SubmissionService(job_store, bus, synthesizer, max_text_length=5)

        with pytest.raises(ValidationError):
            await service.submit(voice='en-US-1', text='too long')


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_creates_pending_job_and_publishes(self, submission, job_store, bus):
        received = []

        async def handler(event):
            received.append(event.job_id)

        bus.subscribe(JOB_CREATED, handler)

        job_id = await submission.submit(voice='en-US-1', text='hello')

        job = await job_store.get(job_id)
        assert job.status == JobStatus.pending.value
        assert job.text == 'hello'
        assert job.voice == 'en-US-1'

        await bus.start()
        assert await bus.drain(timeout=2.0)
        assert received == [job_id]

    @pytest.mark.asyncio
    async def test_store_failure_publishes_nothing(self, submission, bus):
        submission.store.create = AsyncMock(side_effect=StoreUnavailable('db down'))

        with pytest.raises(StoreUnavailable):
            await submission.submit(voice='en-US-1', text='hello')

        assert bus.pending_count == 0

    @pytest.mark.asyncio
    async def test_bus_failure_leaves_job_pending(self, submission, job_store, bus):
        await bus.start()
        await bus.stop()

        with pytest.raises(BusUnavailable):
            await submission.submit(voice='en-US-1', text='hello')

        jobs = await job_store.list()
        assert len(jobs) == 1
        assert jobs[0].status == JobStatus.pending.value

    @pytest.mark.asyncio
    async def test_voice_added_after_startup_is_accepted(self, job_store, bus, tmp_path):
        voices = tmp_path / 'voices'
        synth = ChatterboxSynthesizer(voices_dir=voices)
        voices.mkdir()
        (voices / 'en-US-1.wav').write_bytes(b'RIFF' + b'\x00' * 40)
        service = SubmissionService(job_store, bus, synth)

        job_id = await service.submit(voice='en-US-1', text='hello')

        job = await job_store.get(job_id)
        assert job.status == JobStatus.pending.value
        assert job.voice == 'en-US-1'
