from price_watch.models.watch_job import JobStatus, WatchJob

__all__ = [
    "JobStatus",
    "WatchJob",
]
