"""
Health check endpoint.
"""
from typing import List
from pydantic import BaseModel
from fastapi import APIRouter, Depends

from postreader.config import APP_VERSION
from postreader.services.event_bus import EventBus, get_event_bus
from postreader.services.synthesizer import Synthesizer, get_synthesizer


router = APIRouter(tags=['health'])


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    synthesizer_ready: bool
    available_voices: List[str]
    pending_events: int
    dead_letters: int
    version: str


@router.get('/health', response_model=HealthResponse)
async def health_check(
    synth: Synthesizer = Depends(get_synthesizer),
    bus: EventBus = Depends(get_event_bus),
) -> HealthResponse:
    """
    Check server health status.

    Fast response - no database queries.
    """
    return HealthResponse(
        status='ok',
        synthesizer_ready=synth.is_ready,
        available_voices=synth.get_voice_ids(),
        pending_events=bus.pending_count,
        dead_letters=len(bus.dead_letters),
        version=APP_VERSION,
    )
