"""
Pydantic schemas for API request/response validation.
"""
from postreader.schemas.job import JobCreate, JobCreated, JobResponse
from postreader.schemas.voice import VoiceResponse, VoiceListResponse

__all__ = [
    'JobCreate',
    'JobCreated',
    'JobResponse',
    'VoiceResponse',
    'VoiceListResponse',
]
