"""
Pytest fixtures for testing.
"""
import asyncio
from typing import AsyncGenerator, Dict, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from postreader.database import configure_sqlite
from postreader.models import Base
from postreader.services.artifact_store import ArtifactStore, get_artifact_store, reset_artifact_store
from postreader.services.event_bus import EventBus, get_event_bus, reset_event_bus
from postreader.services.job_store import JobStore, get_job_store, reset_job_store
from postreader.services.reconciler import reset_reconciler
from postreader.services.submission import (
    SubmissionService,
    get_submission_service,
    reset_submission_service,
)
from postreader.services.synthesizer import Synthesizer, Voice, get_synthesizer, reset_synthesizer
from postreader.services.worker import SynthesisWorker, reset_synthesis_worker


FAKE_AUDIO = b'RIFF' + b'\x00' * 40


class FakeSynthesizer(Synthesizer):
    """In-memory synthesizer that records calls and can be told to fail."""

    def __init__(
        self,
        voices: Sequence[str] = ('en-US-1', 'en-GB-2'),
        audio: bytes = FAKE_AUDIO,
        delay: float = 0.0,
        failures: Optional[Dict[str, Exception]] = None,
    ):
        self.voices = list(voices)
        self.audio = audio
        self.delay = delay
        self.failures = failures or {}
        self.calls = []

    def get_voices(self):
        return [Voice(id=v, display_name=v) for v in self.voices]

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if text in self.failures:
            raise self.failures[text]
        return self.audio


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the service singletons after each test."""
    yield
    reset_reconciler()
    reset_submission_service()
    reset_synthesis_worker()
    reset_event_bus()
    reset_artifact_store()
    reset_job_store()
    reset_synthesizer()


@pytest.fixture
def test_db_url(tmp_path):
    """Per-test database URL."""
    return f'sqlite+aiosqlite:///{tmp_path / "test.db"}'


@pytest_asyncio.fixture
async def test_engine(test_db_url):
    """Create a test database engine."""
    engine = create_async_engine(test_db_url, echo=False)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def job_store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def artifact_store(tmp_path):
    return ArtifactStore(base_dir=tmp_path / 'audio', base_url='/artifacts')


@pytest_asyncio.fixture
async def bus():
    event_bus = EventBus(consumers=2, max_attempts=3, redelivery_delay=0.01)
    yield event_bus
    await event_bus.stop(timeout=1.0)


@pytest.fixture
def worker(job_store, synthesizer, artifact_store):
    return SynthesisWorker(
        store=job_store,
        synthesizer=synthesizer,
        artifacts=artifact_store,
        timeout=1.0,
    )


@pytest.fixture
def submission(job_store, bus, synthesizer):
    return SubmissionService(store=job_store, bus=bus, synthesizer=synthesizer)


@pytest_asyncio.fixture
async def client(job_store, bus, synthesizer, artifact_store, submission):
    """Create a test client with the workflow wired to test doubles."""
    from server import app

    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_synthesizer] = lambda: synthesizer
    app.dependency_overrides[get_artifact_store] = lambda: artifact_store
    app.dependency_overrides[get_submission_service] = lambda: submission

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as client:
        yield client

    app.dependency_overrides.clear()
