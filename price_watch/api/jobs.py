from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from price_watch.db.database import get_db
from price_watch.db.job_store import get_job_store
from price_watch.errors import DeliveryError
from price_watch.models.base import utcnow
from price_watch.models.watch_job import JobStatus, WatchJob
from price_watch.notifications.email import EmailSender
from price_watch.providers.registry import get_default_registry
from price_watch.scheduler.jobs import next_run_at, run_watch_job

router = APIRouter(prefix="/api", tags=["jobs"])

MAX_TOKENS = 3


class CreateJobRequest(BaseModel):
    providers: List[str]
    tokens: List[str]
    interval_minutes: int
    email: str
    template: str


class UpdateStatusRequest(BaseModel):
    status: str


class JobResponse(BaseModel):
    id: int
    providers: List[str]
    tokens: List[str]
    interval_minutes: int
    email: str
    template: str
    status: str
    created_at: datetime
    last_run: Optional[datetime] = None
    next_run: datetime


def to_response(job: WatchJob) -> JobResponse:
    return JobResponse(
        id=job.id,
        providers=job.providers,
        tokens=job.tokens,
        interval_minutes=job.interval_minutes,
        email=job.email,
        template=job.template,
        status=job.status.value,
        created_at=job.created_at,
        last_run=job.last_run,
        next_run=next_run_at(job),
    )


def validate_job_request(body: CreateJobRequest) -> None:
    known = get_default_registry().names()
    unknown = [name for name in body.providers if name not in known]
    if not body.providers:
        raise HTTPException(status_code=400, detail="At least one provider is required")
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown providers: {', '.join(unknown)}. Available: {', '.join(known)}",
        )
    if len(set(body.providers)) != len(body.providers):
        raise HTTPException(status_code=400, detail="Duplicate providers")
    if not 1 <= len(body.tokens) <= MAX_TOKENS:
        raise HTTPException(status_code=400, detail=f"Between 1 and {MAX_TOKENS} tokens required")
    if body.interval_minutes < 1:
        raise HTTPException(status_code=400, detail="interval_minutes must be positive")
    if not body.email.strip() or "@" not in body.email:
        raise HTTPException(status_code=400, detail="A valid email is required")
    if not body.template.strip():
        raise HTTPException(status_code=400, detail="template must not be empty")


@router.post("/jobs", status_code=201, response_model=JobResponse)
async def create_job(body: CreateJobRequest, db: AsyncSession = Depends(get_db)):
    validate_job_request(body)

    # 建立任務不會立即寄信，第一次通知由排程器在 created_at + interval 發出
    job = WatchJob(
        providers=body.providers,
        tokens=body.tokens,
        interval_minutes=body.interval_minutes,
        email=body.email.strip(),
        template=body.template,
        status=JobStatus.active,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return to_response(job)


@router.get("/jobs")
async def list_jobs(
    all_jobs: bool = Query(False, alias="all"),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(WatchJob).order_by(WatchJob.id)
    if not all_jobs:
        stmt = stmt.where(WatchJob.status == JobStatus.active)
    result = await db.execute(stmt)
    return {"items": [to_response(job) for job in result.scalars().all()]}


@router.patch("/jobs/{job_id}", response_model=JobResponse)
async def update_job_status(
    job_id: int, body: UpdateStatusRequest, db: AsyncSession = Depends(get_db)
):
    try:
        status = JobStatus(body.status)
    except ValueError:
        allowed = ", ".join(s.value for s in JobStatus)
        raise HTTPException(status_code=400, detail=f"status must be one of: {allowed}")

    job = await db.get(WatchJob, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    job.status = status
    await db.commit()
    await db.refresh(job)
    return to_response(job)


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(job_id: int, db: AsyncSession = Depends(get_db)):
    job = await db.get(WatchJob, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    await db.delete(job)
    await db.commit()


@router.post("/jobs/{job_id}/run")
def trigger_job_run(job_id: int):
    """Run one job immediately, with the same semantics as a scheduler tick."""
    store = get_job_store()
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if not job.is_active:
        raise HTTPException(
            status_code=409, detail=f"Job is {job.status.value}, only active jobs can run"
        )

    try:
        run_watch_job(job, utcnow(), get_default_registry(), EmailSender(), store)
    except DeliveryError as e:
        return {"delivered": False, "detail": str(e)}
    return {"delivered": True}
