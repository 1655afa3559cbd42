from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from price_watch.db.database import Base
from price_watch.models.base import TimestampMixin


class JobStatus(enum.Enum):
    active = "active"
    paused = "paused"
    stopped = "stopped"


class WatchJob(Base, TimestampMixin):
    """A persisted price watch: which tokens, which providers, how often, to whom."""

    __tablename__ = "watch_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    # declaration order of providers drives report section order
    providers: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    tokens: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    template: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus), nullable=False, default=JobStatus.active
    )
    # only written by the scheduler, after a successful send
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def is_active(self) -> bool:
        return self.status == JobStatus.active

    def __repr__(self) -> str:
        return f"<WatchJob {self.id} {self.status.value} every {self.interval_minutes}m>"
