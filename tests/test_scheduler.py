import pytest

from worldstats.config import Settings
from worldstats.scheduler import SyncScheduler
from worldstats.services import SyncService


@pytest.fixture
def scheduler(seeded_db, cache_facade, broadcaster):
    settings = Settings(CRON_SYNC_SCHEDULE="*/5 * * * *", WS_HEARTBEAT_INTERVAL=30)
    sync = SyncService([], seeded_db, cache_facade, broadcaster)
    s = SyncScheduler(sync, broadcaster, settings)
    yield s
    s.shutdown()


def test_start_registers_jobs(scheduler):
    aps = scheduler.start()
    assert scheduler.running
    ids = {job.id for job in aps.get_jobs()}
    assert ids == {"sync_all_providers", "realtime_heartbeat"}


def test_start_is_idempotent(scheduler):
    first = scheduler.start()
    assert scheduler.start() is first
    assert len(first.get_jobs()) == 2


def test_shutdown(scheduler):
    scheduler.start()
    scheduler.shutdown()
    assert not scheduler.running
    scheduler.shutdown()


def test_run_sync_uses_service(scheduler):
    scheduler.run_sync()
    assert scheduler.sync.last_report is not None
    assert scheduler.sync.last_report.success
