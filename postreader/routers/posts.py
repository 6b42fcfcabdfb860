"""
Post endpoints: submission and query.
"""
from typing import List, Union

from fastapi import APIRouter, Depends, HTTPException, Query

from postreader.errors import BusUnavailable, NotFound, StoreUnavailable, ValidationError
from postreader.schemas.job import JobCreate, JobCreated, JobResponse
from postreader.services.job_store import JobStore, get_job_store
from postreader.services.submission import SubmissionService, get_submission_service


router = APIRouter(tags=['posts'])

ALL_POSTS = '*'


@router.post('/', response_model=JobCreated, status_code=201)
async def create_post(
    post: JobCreate,
    submission: SubmissionService = Depends(get_submission_service),
) -> JobCreated:
    """
    Submit a new post for conversion.

    Returns immediately with the job id; conversion happens asynchronously.
    """
    try:
        job_id = await submission.submit(voice=post.voice, text=post.text)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (StoreUnavailable, BusUnavailable) as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JobCreated(id=job_id)


@router.get('/', response_model=Union[JobResponse, List[JobResponse]])
async def get_post(
    post_id: str = Query(..., alias='postId', min_length=1),
    store: JobStore = Depends(get_job_store),
):
    """
    Get the current record for a post.

    `postId=*` returns every post, newest first.
    """
    try:
        if post_id == ALL_POSTS:
            jobs = await store.list()
            return [JobResponse.model_validate(job) for job in jobs]
        job = await store.get(post_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JobResponse.model_validate(job)
