from __future__ import annotations

import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from loguru import logger

from price_watch.config import get_settings
from price_watch.scheduler.jobs import run_price_watch_tick

TICK_JOB_ID = "price_watch_tick"


def create_scheduler(tick_seconds: Optional[int] = None) -> BackgroundScheduler:
    if tick_seconds is None:
        tick_seconds = get_settings().scheduler_tick_seconds

    scheduler = BackgroundScheduler()

    # 同一時間只允許一個 tick 執行，錯過的喚醒合併成一次
    scheduler.add_job(
        run_price_watch_tick,
        "interval",
        seconds=tick_seconds,
        id=TICK_JOB_ID,
        name="Price Watch Tick",
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Scheduler configured with a {tick_seconds}s tick")
    return scheduler


class PriceWatchScheduler:
    """Process-wide owner of the background scheduler; start() is idempotent."""

    def __init__(self, tick_seconds: Optional[int] = None):
        self.tick_seconds = tick_seconds
        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def get_jobs(self):
        return self._scheduler.get_jobs() if self._scheduler else []

    def start(self) -> bool:
        """Start the tick loop; returns False when it was already running."""
        with self._lock:
            if self._scheduler is not None:
                logger.debug("Scheduler already started")
                return False
            self._scheduler = create_scheduler(self.tick_seconds)
            self._scheduler.start()
        logger.info("Scheduler started")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop the loop, by default letting an in-flight tick finish."""
        with self._lock:
            if self._scheduler is None:
                return
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
        logger.info("Scheduler stopped")


price_watch_scheduler = PriceWatchScheduler()


def start_scheduler() -> PriceWatchScheduler:
    price_watch_scheduler.start()
    return price_watch_scheduler
