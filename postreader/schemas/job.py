"""
Pydantic schemas for Job API operations.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class JobCreate(BaseModel):
    """Schema for submitting a new post."""
    text: str = Field(..., description='The text to synthesize')
    voice: str = Field(..., description='Voice identifier')


class JobCreated(BaseModel):
    """Schema for the submission response."""
    id: str


class JobResponse(BaseModel):
    """Schema for job response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    text: str
    voice: str
    artifact_ref: Optional[str]
    error_message: Optional[str]
    attempts: int
    created_at: datetime
    updated_at: datetime
