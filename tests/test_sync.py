import copy
import threading
import time

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import RecordingTransport
from worldstats.db import Country, Crime, CrimeCategory, SyncLog
from worldstats.providers import default_providers
from worldstats.providers.base import CountryDataUpdate, ProviderResult
from worldstats.services.country import find_country
from worldstats.services.sync import SyncService, SyncState


class FakeProvider:
    def __init__(self, name, updates=(), raises=None, gate=None, release=None):
        self.name = name
        self.updates = list(updates)
        self.raises = raises
        self.gate = gate
        self.release = release
        self.calls = 0

    def sync(self, codes=None):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.release is not None:
            self.release.set()
        if self.raises is not None:
            raise self.raises
        return ProviderResult(provider=self.name, success=True, data=copy.deepcopy(self.updates))


def _country(db, code):
    with db.session_scope() as session:
        return find_country(session, code)


def test_full_catalog_sync_merges_every_provider(seeded_db, cache_facade, settings):
    service = SyncService(default_providers(seeded_db, settings), seeded_db, cache_facade)
    report = service.sync_all()

    assert report.success
    assert [r.provider for r in report.results] == ["worldbank", "un", "oecd", "cia", "gfp", "henley", "who", "numbeo"]
    assert all(r.success and r.count == 10 for r in report.results)
    assert sorted(report.updated) == sorted(["US", "DE", "GB", "FR", "JP", "CN", "IN", "BR", "RU", "AU"])

    us = _country(seeded_db, "US")
    assert us.military.global_rank == 1
    assert us.politics.is_nato is True
    assert us.economy.currency_code == "USD"
    assert us.politics.passport_visa_free == 186
    assert [c.category for c in us.crime.categories][0] == "Property Crime"
    # fields no provider supplies keep their seeded values
    assert us.demographics.average_iq == 98

    with seeded_db.session_scope() as session:
        assert session.scalar(select(func.count()).select_from(SyncLog)) == 16
    assert service.state is SyncState.IDLE


def test_concurrent_call_returns_unsuccessful_empty_report(seeded_db, cache_facade):
    provider = FakeProvider("gfp", [CountryDataUpdate("USA", military={"global_rank": 99})])
    service = SyncService([provider], seeded_db, cache_facade)
    assert service._acquire()
    try:
        report = service.sync_all()
    finally:
        service._release()

    assert report.success is False
    assert report.results == []
    assert provider.calls == 0
    assert _country(seeded_db, "US").military.global_rank == 1


def test_last_arriving_values_win_and_others_retained(seeded_db, cache_facade):
    before = _country(seeded_db, "US").economy
    providers = [
        FakeProvider("worldbank", [CountryDataUpdate("USA", economy={"gdp": 1.0, "inflation": 9.9})]),
        FakeProvider("oecd", [CountryDataUpdate("USA", economy={"inflation": 1.1})]),
    ]
    SyncService(providers, seeded_db, cache_facade).sync_all()

    after = _country(seeded_db, "US").economy
    assert after.gdp == 1.0
    assert after.inflation == pytest.approx(1.1)
    assert after.unemployment_rate == before.unemployment_rate
    assert after.gdp_growth_history == before.gdp_growth_history


def test_fold_follows_declared_order_not_completion_order(seeded_db, cache_facade):
    second_done = threading.Event()
    first = FakeProvider(
        "worldbank", [CountryDataUpdate("USA", military={"tanks": 111})], gate=second_done,
    )
    second = FakeProvider(
        "un", [CountryDataUpdate("USA", military={"tanks": 222})], release=second_done,
    )
    report = SyncService([first, second], seeded_db, cache_facade).sync_all()

    assert [r.provider for r in report.results] == ["worldbank", "un"]
    assert _country(seeded_db, "US").military.tanks == 222


def test_crime_categories_are_replaced(seeded_db, cache_facade):
    first = FakeProvider("numbeo", [CountryDataUpdate("USA", crime={"categories": [
        {"category": "A", "percentage": 40}, {"category": "B", "percentage": 60},
    ]})])
    SyncService([first], seeded_db, cache_facade).sync_all()
    assert [(c.category, c.percentage) for c in _country(seeded_db, "US").crime.categories] == [("A", 40), ("B", 60)]

    second = FakeProvider("numbeo", [CountryDataUpdate("USA", crime={"categories": [{"category": "C", "percentage": 100}]})])
    SyncService([second], seeded_db, cache_facade).sync_all()

    with seeded_db.session_scope() as session:
        rows = session.execute(
            select(CrimeCategory.category, CrimeCategory.percentage)
            .join(Crime)
            .join(Country)
            .where(Country.code == "US")
        ).all()
    assert [tuple(r) for r in rows] == [("C", 100)]


def test_provider_exception_recorded_as_failed_outcome(seeded_db, cache_facade):
    providers = [
        FakeProvider("un", raises=RuntimeError("catalog exploded")),
        FakeProvider("gfp", [CountryDataUpdate("DEU", military={"global_rank": 3})]),
    ]
    report = SyncService(providers, seeded_db, cache_facade).sync_all()

    assert report.success
    failed, ok = report.results
    assert (failed.provider, failed.success, failed.error) == ("un", False, "catalog exploded")
    assert (ok.provider, ok.success, ok.count) == ("gfp", True, 1)
    assert _country(seeded_db, "DE").military.global_rank == 3


def test_unknown_country_is_skipped(seeded_db, cache_facade):
    provider = FakeProvider("gfp", [
        CountryDataUpdate("ZZZ", military={"global_rank": 1}),
        CountryDataUpdate("FRA", military={"global_rank": 7}),
    ])
    report = SyncService([provider], seeded_db, cache_facade).sync_all()
    assert report.success
    assert report.updated == ["FR"]


def test_storage_failure_reports_unsuccessful_and_releases_guard(monkeypatch, seeded_db, cache_facade):
    def broken(session, code, update):
        raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

    monkeypatch.setattr("worldstats.services.sync.apply_update", broken)
    provider = FakeProvider("gfp", [CountryDataUpdate("USA", military={"global_rank": 2})])
    service = SyncService([provider], seeded_db, cache_facade)

    report = service.sync_all()
    assert report.success is False
    assert report.results[0].success
    assert service.state is SyncState.IDLE
    assert service.last_report is report


def test_sync_invalidates_cache(seeded_db, cache_facade):
    cache_facade.set("country:US", {"stale": True})
    cache_facade.set("comparison:US:DE", {"stale": True})
    SyncService([FakeProvider("gfp", [CountryDataUpdate("USA", military={"tanks": 1})])], seeded_db, cache_facade).sync_all()
    assert cache_facade.get("country:US") is None
    assert cache_facade.get("comparison:US:DE") is None


def test_sync_notifies_all_and_subscribed_clients(seeded_db, cache_facade, broadcaster):
    watcher, bystander = RecordingTransport(), RecordingTransport()
    broadcaster.subscribe(broadcaster.register(watcher).id, ["usa"])
    broadcaster.subscribe(broadcaster.register(bystander).id, ["FR"])

    providers = [
        FakeProvider("gfp", [CountryDataUpdate("USA", military={"tanks": 4000})]),
        FakeProvider("who", raises=RuntimeError("down")),
    ]
    SyncService(providers, seeded_db, cache_facade, broadcaster).sync_all()

    assert watcher.types() == ["data-updated", "country-updated"]
    assert bystander.types() == ["data-updated"]
    data_updated = watcher.sent[0]
    assert data_updated["message"] == "Country data has been refreshed"
    assert data_updated["providers"] == ["gfp"]
    assert data_updated["counts"] == {"gfp": 1}
    assert "timestamp" in data_updated
    assert watcher.sent[1]["countries"] == ["US"]


def test_start_background_holds_guard_until_done(seeded_db, cache_facade):
    gate = threading.Event()
    provider = FakeProvider("gfp", [CountryDataUpdate("USA", military={"tanks": 1})], gate=gate)
    service = SyncService([provider], seeded_db, cache_facade)

    assert service.start_background()
    assert service.is_running()
    assert service.start_background() is False

    gate.set()
    deadline = time.time() + 5
    while service.is_running() and time.time() < deadline:
        time.sleep(0.01)
    assert not service.is_running()
    assert service.last_report.success
    assert provider.calls == 1
