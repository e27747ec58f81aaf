"""Async job routes: POST /v1/jobs, GET /v1/jobs/{id}, POST /v1/jobs/{id}/cancel."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from api import job_store
from api.runner import start_job
from api.schemas import JobCreateRequest, JobCreateResponse, JobResponse

logger = logging.getLogger("agentic_wiki.api")

router = APIRouter()


@router.post("/jobs", response_model=JobCreateResponse, status_code=201)
def post_jobs(body: JobCreateRequest) -> JSONResponse:
    """
    Create an async wiki generation job for body.local_dir.
    Returns job_id; poll GET /v1/jobs/{id} for status.
    """
    job_id = job_store.create_job(body.model_dump())
    logger.info("Job %s queued for %s", job_id, body.local_dir)
    start_job(job_id)
    return JSONResponse(
        content={"job_id": job_id, "status": "queued"},
        status_code=201,
        headers={"Location": f"/v1/jobs/{job_id}"},
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str) -> JobResponse:
    """Get job status. 404 if unknown or expired."""
    rec = job_store.get_job(job_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Job not found or expired.")
    return JobResponse(**rec)


@router.post("/jobs/{job_id}/cancel", status_code=202)
def cancel_job(job_id: str) -> dict[str, str]:
    """Ask a queued or running job to stop. 404 if unknown, 409 if already finished."""
    rec = job_store.get_job(job_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Job not found or expired.")
    if not job_store.cancel_job(job_id):
        raise HTTPException(status_code=409, detail=f"Job already {rec['status']}.")
    return {"job_id": job_id, "status": "cancelling"}
