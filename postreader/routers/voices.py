"""
Voice endpoints.
"""
from fastapi import APIRouter, Depends

from postreader.services.synthesizer import Synthesizer, get_synthesizer
from postreader.schemas.voice import VoiceResponse, VoiceListResponse


router = APIRouter(prefix='/voices', tags=['voices'])


@router.get('', response_model=VoiceListResponse)
async def list_voices(synth: Synthesizer = Depends(get_synthesizer)) -> VoiceListResponse:
    """
    List all voices accepted by the submission endpoint.

    Rescans the voice library on each request to pick up new voice prompts.
    """
    synth.scan_voices()
    return VoiceListResponse(
        voices=[
            VoiceResponse(id=v.id, display_name=v.display_name)
            for v in synth.get_voices()
        ]
    )
