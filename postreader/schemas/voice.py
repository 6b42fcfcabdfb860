"""
Pydantic schemas for Voice API operations.
"""
from typing import List
from pydantic import BaseModel


class VoiceResponse(BaseModel):
    """Schema for voice response."""
    id: str
    display_name: str


class VoiceListResponse(BaseModel):
    """Schema for voice list response."""
    voices: List[VoiceResponse]
