"""
Job model for text-to-speech publishing requests.
"""
import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class JobStatus(str, enum.Enum):
    """Status states for synthesis jobs."""
    pending = 'PENDING'
    processing = 'PROCESSING'
    complete = 'COMPLETE'
    failed = 'FAILED'


class Job(Base):
    """
    Represents one text-to-audio conversion request (a post).

    Attributes:
        id: Unique job identifier (UUID)
        text: The text to synthesize
        voice: Voice identifier for the conversion engine
        status: Current job status
        artifact_ref: Reference to the stored audio, set only when complete
        error_message: Error details if failed
        attempts: How many times the job has been claimed for processing
        created_at: Job creation timestamp
        updated_at: Last status change
    """
    __tablename__ = 'jobs'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    text = Column(Text, nullable=False)
    voice = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.pending.value, index=True)
    artifact_ref = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f'<Job {self.id} status={self.status}>'
