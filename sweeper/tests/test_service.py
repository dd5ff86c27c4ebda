from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from shared.errors import StoreError
from sweeper.service import SweepService
from sweeper.scheduler import SweepScheduler
from sweeper.tests.fakes import FakeNotifier, MASTER


@pytest.fixture
def sweep_service(sweep_engine, store, chain, notifier):
    return SweepService(sweep_engine, store, chain, notifier, MASTER, admin_ids=[1001, 1002])


def test_status_after_cycle(sweep_service, add_address):
    add_address(native="20", token="10")
    sweep_service.run_sweep()

    status = sweep_service.status()

    assert status["sweep"]["cycle_count"] == 1
    assert status["sweep"]["total_swept"] == Decimal("29")
    assert status["running"] is False
    assert status["system"]["total_addresses"] == 1
    assert status["system"]["total_transactions"] == 2
    assert status["master_wallet"]["total_received"] == Decimal("10")
    assert status["network"]["status"] == "connected"


def test_status_survives_store_failure(sweep_service, store):
    store.get_system_stats = MagicMock(side_effect=StoreError("db down"))
    status = sweep_service.status()
    assert status["system"] is None
    assert status["sweep"]["cycle_count"] == 0


def test_daily_report_goes_to_every_admin(sweep_service, notifier):
    delivered = sweep_service.send_daily_report()

    assert delivered == 2
    assert [n[0] for n in notifier.sent] == [1001, 1002]
    assert all(n[2] == "daily_report" for n in notifier.sent)
    assert "Daily Report" in notifier.sent[0][1]


def test_daily_report_without_admins(sweep_engine, store, chain):
    notifier = FakeNotifier()
    service = SweepService(sweep_engine, store, chain, notifier, MASTER)
    assert service.send_daily_report() == 0
    assert notifier.sent == []


def test_daily_report_delivery_failure(sweep_engine, store, chain):
    service = SweepService(sweep_engine, store, chain, FakeNotifier(fail=True), MASTER, admin_ids=[1])
    assert service.send_daily_report() == 0


# ===== Scheduler =====

@pytest.fixture
def mock_service():
    return MagicMock()


def test_scheduler_registers_jobs(mock_service):
    scheduler = SweepScheduler(mock_service, interval_minutes=5, daily_report_at="02:00", poll_seconds=0.01)
    scheduler.start_scheduler()
    try:
        assert scheduler.running
        assert len(scheduler.scheduler.jobs) == 2
        # Second start is a no-op
        scheduler.start_scheduler()
        assert len(scheduler.scheduler.jobs) == 2
    finally:
        scheduler.stop_scheduler(timeout=1)

    assert not scheduler.running
    assert scheduler.scheduler.jobs == []
    mock_service.engine.shutdown.assert_called_once()


def test_stop_without_start_is_noop(mock_service):
    SweepScheduler(mock_service).stop_scheduler()
    mock_service.engine.shutdown.assert_not_called()


def test_sweep_job_swallows_errors(mock_service):
    mock_service.run_sweep.side_effect = StoreError("db down")
    SweepScheduler(mock_service).run_sweep_job()
    mock_service.run_sweep.assert_called_once()


def test_sweep_job_handles_dropped_trigger(mock_service):
    mock_service.run_sweep.return_value = None
    SweepScheduler(mock_service).run_sweep_job()
    mock_service.run_sweep.assert_called_once()


def test_daily_report_job(mock_service):
    SweepScheduler(mock_service).daily_report_job()
    mock_service.send_daily_report.assert_called_once()
