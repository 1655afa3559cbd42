from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from price_watch.errors import StoreListError, StoreWriteError
from price_watch.models.watch_job import JobStatus, WatchJob


class JobStore:
    """Persistence boundary for watch jobs.

    Scheduling code only ever sees detached ``WatchJob`` snapshots with
    ``providers`` and ``tokens`` already decoded into lists.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def list_active(self) -> List[WatchJob]:
        """Return snapshots of every job whose status is active."""
        try:
            with self.session_factory() as session:
                jobs = (
                    session.query(WatchJob)
                    .filter(WatchJob.status == JobStatus.active)
                    .all()
                )
                session.expunge_all()
                return jobs
        except SQLAlchemyError as e:
            raise StoreListError(f"Could not list active jobs: {e}") from e

    def set_last_run(self, job_id: int, when: datetime) -> None:
        try:
            with self.session_factory() as session:
                job = session.get(WatchJob, job_id)
                if job is None:
                    raise StoreWriteError(f"Job {job_id} no longer exists")
                job.last_run = when
                session.commit()
        except SQLAlchemyError as e:
            raise StoreWriteError(f"Could not update last_run of job {job_id}: {e}") from e

    # 以下為管理介面 (API / CLI) 使用

    def create(
        self,
        providers: List[str],
        tokens: List[str],
        interval_minutes: int,
        email: str,
        template: str,
    ) -> WatchJob:
        with self.session_factory() as session:
            job = WatchJob(
                providers=list(providers),
                tokens=list(tokens),
                interval_minutes=interval_minutes,
                email=email,
                template=template,
                status=JobStatus.active,
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            session.expunge(job)
        logger.info(f"Created watch job {job.id} for {email}")
        return job

    def get(self, job_id: int) -> Optional[WatchJob]:
        with self.session_factory() as session:
            job = session.get(WatchJob, job_id)
            if job is not None:
                session.expunge(job)
            return job

    def list_all(self) -> List[WatchJob]:
        with self.session_factory() as session:
            jobs = session.query(WatchJob).order_by(WatchJob.id).all()
            session.expunge_all()
            return jobs

    def update_status(self, job_id: int, status: JobStatus) -> Optional[WatchJob]:
        with self.session_factory() as session:
            job = session.get(WatchJob, job_id)
            if job is None:
                return None
            job.status = status
            session.commit()
            session.refresh(job)
            session.expunge(job)
        logger.info(f"Watch job {job_id} is now {status.value}")
        return job

    def delete(self, job_id: int) -> bool:
        with self.session_factory() as session:
            job = session.get(WatchJob, job_id)
            if job is None:
                return False
            session.delete(job)
            session.commit()
        logger.info(f"Deleted watch job {job_id}")
        return True


def get_job_store() -> JobStore:
    """取得使用預設同步資料庫連線的 JobStore"""
    from price_watch.db.database import get_sync_sessionmaker

    return JobStore(get_sync_sessionmaker())
