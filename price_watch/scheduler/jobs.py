from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from price_watch.config import get_settings
from price_watch.db.job_store import JobStore, get_job_store
from price_watch.errors import DeliveryError, StoreListError, StoreWriteError
from price_watch.models.base import utcnow
from price_watch.models.watch_job import WatchJob
from price_watch.notifications.email import EmailSender
from price_watch.notifications.formatter import compose_report
from price_watch.providers.registry import ProviderRegistry, get_default_registry
from price_watch.watcher.fanout import gather_prices


@dataclass
class TickSummary:
    checked: int = 0
    due: int = 0
    sent: int = 0
    failed: int = 0


def next_run_at(job: WatchJob) -> datetime:
    return (job.last_run or job.created_at) + timedelta(minutes=job.interval_minutes)


def is_due(job: WatchJob, now: datetime) -> bool:
    """到期判斷：now >= (last_run 或 created_at) + interval"""
    return now >= next_run_at(job)


def run_watch_job(
    job: WatchJob,
    now: datetime,
    registry: ProviderRegistry,
    sender: EmailSender,
    store: JobStore,
    timeout: Optional[float] = None,
) -> bool:
    """Fetch prices, send the report and record ``now`` as the job's last run.

    Raises DeliveryError when the report could not be sent; last_run is then
    left untouched so the job stays due. A failed last_run write after a
    successful send is only logged.
    """
    settings = get_settings()
    if timeout is None:
        timeout = settings.provider_timeout_seconds

    # 無法寄送時不查詢價格，任務維持到期狀態
    if not settings.notification_enabled:
        raise DeliveryError(f"Notifications are disabled, job {job.id} not delivered")
    if not sender.is_configured():
        raise DeliveryError(f"Email sender is not configured, job {job.id} not delivered")

    outcomes = gather_prices(registry, job.providers, job.tokens, timeout=timeout)
    body = compose_report(job.template, outcomes)

    if not sender.send(job.email, settings.notification_subject, body):
        raise DeliveryError(f"Failed to send report for job {job.id} to {job.email}")

    failed = sum(1 for outcome in outcomes if not outcome.ok)
    logger.info(
        f"Report for job {job.id} sent to {job.email} "
        f"({len(outcomes) - failed}/{len(outcomes)} providers available)"
    )

    try:
        store.set_last_run(job.id, now)
    except StoreWriteError as e:
        # 通知已寄出，下一輪可能重複寄送
        logger.error(f"Report for job {job.id} was sent but last_run not saved: {e}")
    return True


def process_due_jobs(
    store: JobStore,
    registry: ProviderRegistry,
    sender: EmailSender,
    now: Optional[datetime] = None,
    timeout: Optional[float] = None,
) -> TickSummary:
    """One scheduler tick over the current store snapshot."""
    now = now or utcnow()
    summary = TickSummary()

    try:
        jobs = store.list_active()
    except StoreListError as e:
        logger.error(f"Skipping tick, could not list jobs: {e}")
        return summary

    for job in jobs:
        if not job.is_active:
            continue
        summary.checked += 1
        if not is_due(job, now):
            continue

        summary.due += 1
        try:
            run_watch_job(job, now, registry, sender, store, timeout=timeout)
            summary.sent += 1
        except DeliveryError as e:
            summary.failed += 1
            logger.error(f"{e}; will retry next tick")
        except Exception as e:
            summary.failed += 1
            logger.error(f"Error running watch job {job.id}: {e}")

    return summary


def run_price_watch_tick():
    """每分鐘：檢查到期的價格追蹤任務並寄送通知"""
    logger.info(f"Starting price watch tick at {datetime.now()}")

    try:
        summary = process_due_jobs(get_job_store(), get_default_registry(), EmailSender())
    except Exception as e:
        logger.error(f"Price watch tick failed: {e}")
        return

    logger.info(
        f"Price watch tick completed: {summary.due} due, "
        f"{summary.sent} sent, {summary.failed} failed"
    )
