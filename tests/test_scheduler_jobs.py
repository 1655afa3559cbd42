from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from price_watch.db.database import Base
from price_watch.db.job_store import JobStore
from price_watch.errors import DeliveryError, ProviderError, StoreListError, StoreWriteError
from price_watch.models.watch_job import JobStatus, WatchJob
from price_watch.providers.base import PriceQuote
from price_watch.providers.registry import ProviderRegistry
from price_watch.scheduler.jobs import (
    is_due,
    next_run_at,
    process_due_jobs,
    run_price_watch_tick,
    run_watch_job,
)

T = datetime(2024, 3, 1, 12, 0, 0)


class PriceProviderStub:
    def __init__(self, name, prices):
        self.name = name
        self.prices = prices
        self.calls = 0

    def fetch_prices(self, tokens):
        self.calls += 1
        return {token: PriceQuote(price=self.prices[token]) for token in tokens}


class DownProvider:
    def __init__(self, name):
        self.name = name
        self.calls = 0

    def fetch_prices(self, tokens):
        self.calls += 1
        raise ProviderError(self.name, "HTTP 503")


@pytest.fixture
def store():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield JobStore(session_factory)
    Base.metadata.drop_all(engine)


@pytest.fixture
def sender():
    mock_sender = MagicMock()
    mock_sender.send.return_value = True
    return mock_sender


def add_job(store, **overrides):
    data = {
        "providers": ["A", "B"],
        "tokens": ["X"],
        "interval_minutes": 10,
        "email": "alice@example.com",
        "template": "Price update",
        "status": JobStatus.active,
        "created_at": T,
    }
    data.update(overrides)
    with store.session_factory() as session:
        job = WatchJob(**data)
        session.add(job)
        session.commit()
        return job.id


def make_job(**overrides):
    data = {
        "id": 1,
        "providers": ["A"],
        "tokens": ["X"],
        "interval_minutes": 10,
        "email": "alice@example.com",
        "template": "t",
        "status": JobStatus.active,
        "created_at": T,
        "last_run": None,
    }
    data.update(overrides)
    return WatchJob(**data)


class TestIsDue:
    def test_not_due_one_millisecond_before(self):
        job = make_job()
        assert is_due(job, T + timedelta(minutes=10) - timedelta(milliseconds=1)) is False

    def test_due_exactly_at_boundary(self):
        job = make_job()
        assert is_due(job, T + timedelta(minutes=10)) is True

    def test_uses_last_run_when_present(self):
        last_run = T + timedelta(minutes=25)
        job = make_job(last_run=last_run)

        assert next_run_at(job) == last_run + timedelta(minutes=10)
        assert is_due(job, T + timedelta(minutes=30)) is False
        assert is_due(job, T + timedelta(minutes=35)) is True


class TestRunWatchJob:
    def test_sends_report_and_records_tick_time(self, store, sender):
        job_id = add_job(store, providers=["A"])
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.23})])
        job = store.get(job_id)
        now = T + timedelta(minutes=13)

        assert run_watch_job(job, now, registry, sender, store, timeout=5) is True

        recipient, subject, body = sender.send.call_args.args
        assert recipient == "alice@example.com"
        assert subject
        assert "Token X: 1.23" in body
        assert store.get(job_id).last_run == now

    def test_send_failure_raises_and_keeps_last_run(self, store, sender):
        job_id = add_job(store, providers=["A"])
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.23})])
        sender.send.return_value = False

        with pytest.raises(DeliveryError):
            run_watch_job(store.get(job_id), T + timedelta(minutes=10), registry, sender, store, timeout=5)

        assert store.get(job_id).last_run is None

    def test_store_write_failure_still_counts_as_delivered(self, sender):
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.23})])
        broken_store = MagicMock()
        broken_store.set_last_run.side_effect = StoreWriteError("disk full")

        delivered = run_watch_job(
            make_job(), T + timedelta(minutes=10), registry, sender, broken_store, timeout=5
        )

        assert delivered is True
        sender.send.assert_called_once()

    @patch("price_watch.scheduler.jobs.get_settings")
    def test_notifications_disabled_is_not_delivered(self, mock_settings, sender):
        mock_settings.return_value = MagicMock(
            notification_enabled=False, provider_timeout_seconds=5
        )
        provider = PriceProviderStub("A", {"X": 1.23})
        registry = ProviderRegistry([provider])
        mock_store = MagicMock()

        with pytest.raises(DeliveryError):
            run_watch_job(make_job(), T + timedelta(minutes=10), registry, sender, mock_store)

        assert provider.calls == 0
        sender.send.assert_not_called()
        mock_store.set_last_run.assert_not_called()

    def test_unconfigured_sender_skips_providers(self, sender):
        sender.is_configured.return_value = False
        provider = PriceProviderStub("A", {"X": 1.23})
        registry = ProviderRegistry([provider])
        mock_store = MagicMock()

        with pytest.raises(DeliveryError):
            run_watch_job(
                make_job(), T + timedelta(minutes=10), registry, sender, mock_store, timeout=5
            )

        assert provider.calls == 0
        sender.send.assert_not_called()
        mock_store.set_last_run.assert_not_called()

    @patch("price_watch.scheduler.jobs.get_settings")
    def test_disabled_notifications_do_not_poll_providers_each_tick(
        self, mock_settings, store, sender
    ):
        mock_settings.return_value = MagicMock(
            notification_enabled=False, provider_timeout_seconds=5
        )
        job_id = add_job(store, providers=["A"], interval_minutes=60)
        provider = PriceProviderStub("A", {"X": 1.0})
        registry = ProviderRegistry([provider])

        for minute in range(60, 65):
            summary = process_due_jobs(
                store, registry, sender, now=T + timedelta(minutes=minute), timeout=5
            )
            assert summary.failed == 1

        assert provider.calls == 0
        sender.send.assert_not_called()
        assert store.get(job_id).last_run is None


class TestProcessDueJobs:
    def test_partial_provider_failure_scenario(self, store, sender):
        job_id = add_job(store)
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.23}), DownProvider("B")])
        now = T + timedelta(minutes=10)

        summary = process_due_jobs(store, registry, sender, now=now, timeout=5)

        assert summary.sent == 1
        body = sender.send.call_args.args[2]
        assert body.index("--- A ---") < body.index("Token X: 1.23") < body.index("--- B ---")
        assert body.rstrip().endswith("unavailable (HTTP 503)")
        assert "B: HTTP 503" not in body
        assert store.get(job_id).last_run == now

    def test_all_providers_down_still_sends(self, store, sender):
        job_id = add_job(store)
        registry = ProviderRegistry([DownProvider("A"), DownProvider("B")])
        now = T + timedelta(minutes=10)

        summary = process_due_jobs(store, registry, sender, now=now, timeout=5)

        assert summary.sent == 1
        assert sender.send.call_args.args[2].count("unavailable") == 2
        assert store.get(job_id).last_run == now

    def test_send_failure_retried_on_next_tick(self, store, sender):
        job_id = add_job(store)
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.23}), DownProvider("B")])
        sender.send.return_value = False

        first = process_due_jobs(store, registry, sender, now=T + timedelta(minutes=10), timeout=5)

        assert first.failed == 1
        assert store.get(job_id).last_run is None

        sender.send.return_value = True
        retry_at = T + timedelta(minutes=11)
        second = process_due_jobs(store, registry, sender, now=retry_at, timeout=5)

        assert second.sent == 1
        assert sender.send.call_count == 2
        assert store.get(job_id).last_run == retry_at

    def test_job_not_due_is_skipped(self, store, sender):
        add_job(store)
        provider = PriceProviderStub("A", {"X": 1.0})
        registry = ProviderRegistry([provider])

        summary = process_due_jobs(
            store, registry, sender, now=T + timedelta(minutes=9), timeout=5
        )

        assert summary.checked == 1
        assert summary.due == 0
        assert provider.calls == 0
        sender.send.assert_not_called()

    def test_inactive_jobs_never_fan_out(self, store, sender):
        add_job(store, providers=["A"], status=JobStatus.paused)
        add_job(store, providers=["A"], status=JobStatus.stopped)
        provider = PriceProviderStub("A", {"X": 1.0})
        registry = ProviderRegistry([provider])

        summary = process_due_jobs(
            store, registry, sender, now=T + timedelta(days=1), timeout=5
        )

        assert summary.checked == 0
        assert provider.calls == 0
        sender.send.assert_not_called()

    def test_next_due_after_success_is_tick_time_plus_interval(self, store, sender):
        job_id = add_job(store, providers=["A"])
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.0})])
        late_tick = T + timedelta(minutes=12, seconds=30)

        process_due_jobs(store, registry, sender, now=late_tick, timeout=5)
        job = store.get(job_id)

        assert next_run_at(job) == late_tick + timedelta(minutes=10)
        again = process_due_jobs(
            store, registry, sender, now=late_tick + timedelta(minutes=5), timeout=5
        )
        assert again.due == 0

    def test_failing_job_does_not_block_others(self, store, sender):
        first_id = add_job(store, providers=["A"], email="first@example.com")
        second_id = add_job(store, providers=["A"], email="second@example.com")
        registry = ProviderRegistry([PriceProviderStub("A", {"X": 1.0})])
        sender.send.side_effect = [RuntimeError("socket closed"), True]
        now = T + timedelta(minutes=10)

        summary = process_due_jobs(store, registry, sender, now=now, timeout=5)

        assert summary.due == 2
        assert summary.failed == 1
        assert summary.sent == 1
        last_runs = {store.get(first_id).last_run, store.get(second_id).last_run}
        assert last_runs == {None, now}

    def test_store_list_error_aborts_only_this_tick(self, sender):
        broken_store = MagicMock()
        broken_store.list_active.side_effect = StoreListError("db locked")

        summary = process_due_jobs(broken_store, ProviderRegistry(), sender, now=T)

        assert summary.checked == 0
        sender.send.assert_not_called()


class TestRunPriceWatchTick:
    @patch("price_watch.scheduler.jobs.EmailSender")
    @patch("price_watch.scheduler.jobs.get_default_registry")
    @patch("price_watch.scheduler.jobs.get_job_store")
    def test_tick_uses_default_collaborators(
        self, mock_get_store, mock_get_registry, mock_sender_cls
    ):
        mock_store = MagicMock()
        mock_store.list_active.return_value = []
        mock_get_store.return_value = mock_store

        run_price_watch_tick()

        mock_store.list_active.assert_called_once()
        mock_sender_cls.assert_called_once()

    @patch("price_watch.scheduler.jobs.get_job_store")
    def test_tick_survives_unexpected_errors(self, mock_get_store):
        mock_get_store.side_effect = RuntimeError("no database")

        # must not raise, the scheduler loop keeps running
        run_price_watch_tick()
