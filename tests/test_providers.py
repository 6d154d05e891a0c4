import datetime as dt

import pytest
import requests
from sqlalchemy import select

from worldstats.config import Settings
from worldstats.db import ExternalDataCache, SyncLog
from worldstats.providers import PROVIDER_ORDER, CatalogProvider, SyncLogWriter, WorldBankProvider, default_providers
from worldstats.providers.sources import (
    cia_provider,
    gfp_provider,
    henley_provider,
    numbeo_provider,
    un_provider,
    who_provider,
)
from worldstats.providers.worldbank import INDICATORS, fetch_json, history_values, latest_values


def test_default_providers_in_declaration_order(settings):
    names = [p.name for p in default_providers(None, settings)]
    assert names == list(PROVIDER_ORDER)
    assert names == ["worldbank", "un", "oecd", "cia", "gfp", "henley", "who", "numbeo"]


def test_un_provider_derives_ratio_and_population():
    result = un_provider().sync(["usa"])
    assert result.success
    assert len(result.data) == 1
    demo = result.data[0].demographics
    assert result.data[0].country_code == "USA"
    assert demo["total_population"] == 334914895
    assert demo["male_female_ratio"] == "49% / 51%"
    assert demo["child_population_percent"] == 18


def test_gfp_provider_mirrors_nato_into_politics():
    update = gfp_provider().sync(["GBR"]).data[0]
    assert update.military["global_rank"] == 5
    assert update.military["nuclear_weapons"] is True
    assert update.politics == {"is_nato": True}


def test_cia_provider_parses_dates_and_currency():
    update = cia_provider().sync(["USA"]).data[0]
    assert update.politics["independence_date"] == dt.date(1776, 7, 4)
    assert update.economy == {"currency": "US Dollar", "currency_code": "USD"}
    assert update.demographics["life_expectancy_male"] == pytest.approx(74.8)


def test_henley_and_who_providers():
    henley = henley_provider().sync(["DEU"]).data[0]
    assert henley.politics == {"passport_ranking": 2, "passport_visa_free": 192}
    who = who_provider().sync(["DEU"]).data[0]
    assert who.health["smoking_rate"] == pytest.approx(23.8)
    assert None not in who.health.values()


def test_numbeo_provider_attaches_crime_categories():
    update = numbeo_provider().sync(["USA"]).data[0]
    assert update.crime["crime_index"] == pytest.approx(49.2)
    assert update.crime["drug_trafficking_risk"] == "High"
    cats = update.crime["categories"]
    assert [c["category"] for c in cats][:2] == ["Property Crime", "Violent Crime"]
    assert cats[0]["percentage"] == 38.0


def test_unknown_codes_yield_empty_success():
    result = un_provider().sync(["ZZZ"])
    assert result.success
    assert result.data == []


def test_all_codes_when_unfiltered():
    result = un_provider().sync()
    assert len(result.data) == 10


def test_catalog_failure_is_reported_and_logged(database):
    log = SyncLogWriter(database)
    result = CatalogProvider("broken", "missing.csv", lambda row: None, log=log).sync()
    assert result.success is False
    assert result.error
    with database.session_scope() as session:
        rows = session.scalars(select(SyncLog).where(SyncLog.provider == "broken")).all()
        assert sorted(r.status for r in rows) == ["failed", "started"]
        failed = next(r for r in rows if r.status == "failed")
        assert failed.error_message == result.error
        assert failed.records_count == 0


def test_sync_log_records_success(database):
    un_provider(SyncLogWriter(database)).sync(["USA", "DEU"])
    with database.session_scope() as session:
        done = session.scalars(select(SyncLog).where(SyncLog.status == "success")).one()
        assert done.provider == "un"
        assert done.records_count == 2
        assert done.duration_ms is not None
        assert done.completed_at is not None


def test_worldbank_catalog_mode_includes_history(settings):
    update = WorldBankProvider(settings=settings).sync(["USA"]).data[0]
    assert update.demographics["total_population"] == 334914895
    assert update.economy["gdp_per_capita"] == 76399
    history = update.economy["gdp_growth_history"]
    assert history[0] == {"year": 2015, "value": 56863.0}
    assert [h["year"] for h in history] == sorted(h["year"] for h in history)
    assert update.education["literacy_rate"] == 99


def test_latest_values_picks_most_recent_non_null():
    payload = [
        {"page": 1},
        [
            {"countryiso3code": "USA", "date": "2022", "value": 1.0},
            {"countryiso3code": "USA", "date": "2023", "value": None},
            {"countryiso3code": "USA", "date": "2021", "value": 0.5},
            {"countryiso3code": "DEU", "date": "2023", "value": "2.5"},
        ],
    ]
    assert latest_values(payload) == {"USA": 1.0, "DEU": 2.5}
    assert latest_values([{"message": "invalid"}]) == {}
    assert latest_values([{"page": 1}, None]) == {}


def test_history_values_sorted_ascending():
    payload = [{}, [
        {"countryiso3code": "USA", "date": "2023", "value": 3},
        {"countryiso3code": "USA", "date": "2021", "value": 1},
    ]]
    assert history_values(payload) == {"USA": [{"year": 2021, "value": 1.0}, {"year": 2023, "value": 3.0}]}


class FakeResp:
    def __init__(self, obj):
        self._obj = obj

    def raise_for_status(self):
        return None

    def json(self):
        return self._obj


def test_worldbank_api_mode_uses_external_cache(monkeypatch, database):
    calls = []

    def fake_get(url, timeout, headers):  # noqa: ARG001
        calls.append(url)
        assert url.startswith("https://wb.example/v2/country/USA;DEU/indicator/")
        if "SP.POP.TOTL" in url:
            return FakeResp([{"page": 1}, [
                {"countryiso3code": "USA", "date": "2023", "value": 335000000},
                {"countryiso3code": "USA", "date": "2022", "value": 333000000},
                {"countryiso3code": "DEU", "date": "2023", "value": None},
            ]])
        if "NY.GDP.PCAP.CD" in url and "date=2018:2024" not in url:
            return FakeResp([{"page": 1}, [{"countryiso3code": "USA", "date": "2020", "value": 64000}]])
        return FakeResp([{"page": 1}, None])

    monkeypatch.setattr("requests.get", fake_get)
    s = Settings(worldbank_api_url="https://wb.example/v2/")
    provider = WorldBankProvider(settings=s, database=database)

    result = provider.sync(["USA", "DEU"])
    assert result.success
    assert [u.country_code for u in result.data] == ["USA"]
    assert result.data[0].demographics == {"total_population": 335000000.0}
    assert result.data[0].economy["gdp_growth_history"] == [{"year": 2020, "value": 64000.0}]
    assert len(calls) == len(INDICATORS) + 1

    # second run is served from the ExternalDataCache table
    provider.sync(["USA", "DEU"])
    assert len(calls) == len(INDICATORS) + 1
    with database.session_scope() as session:
        assert len(session.scalars(select(ExternalDataCache)).all()) == len(INDICATORS) + 1


def test_fetch_json_retries_transient_errors(monkeypatch):
    attempts = {"n": 0}

    def flaky_get(url, timeout, headers):  # noqa: ARG001
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise requests.ConnectionError("reset")
        return FakeResp({"ok": True})

    monkeypatch.setattr("requests.get", flaky_get)
    monkeypatch.setattr(fetch_json.retry, "sleep", lambda _seconds: None)
    assert fetch_json("https://wb.example/x") == {"ok": True}
    assert attempts["n"] == 3


def test_worldbank_api_failure_returns_unsuccessful_result(monkeypatch):
    def down(url, timeout, headers):  # noqa: ARG001
        raise requests.ConnectionError("down")

    monkeypatch.setattr("requests.get", down)
    monkeypatch.setattr(fetch_json.retry, "sleep", lambda _seconds: None)
    result = WorldBankProvider(settings=Settings(worldbank_api_url="https://wb.example/v2")).sync(["USA"])
    assert result.success is False
    assert result.error.startswith("External API error (worldbank):")
    assert "down" in result.error
