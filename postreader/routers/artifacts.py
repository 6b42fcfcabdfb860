"""
Audio artifact download endpoint.
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from postreader.services.artifact_store import ArtifactStore, get_artifact_store


router = APIRouter(prefix='/artifacts', tags=['artifacts'])


@router.get('/{name}')
async def get_artifact(
    name: str,
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """
    Stream a stored audio artifact.

    Raises:
        404: Artifact not found
    """
    path = artifacts.path_for(name)
    if path is None:
        raise HTTPException(status_code=404, detail=f'Artifact not found: {name}')

    return FileResponse(path=str(path), media_type='audio/wav', filename=name)
