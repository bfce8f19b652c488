from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from prcritic.api.dependencies import get_job_runner
from prcritic.worker.jobs import JobRunner

router = APIRouter()


@router.get("/{job_id}")
async def get_job(job_id: str, runner: JobRunner = Depends(get_job_runner)) -> dict[str, Any]:
    """Status, result and error of a webhook-triggered job."""
    job = runner.get(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return job.to_dict()
