import pytest
import requests
from sqlalchemy import select

from worldstats.config import Settings
from worldstats.db import AISummary
from worldstats.services import CountryService, SummaryService
from worldstats.services.summary import build_prompt, fallback_summary


class FakeResponse:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.body


def _service(db, cache, settings):
    return SummaryService(db, cache, CountryService(db, cache, settings), settings)


@pytest.fixture
def keyed_settings():
    return Settings(OPENAI_API_KEY="sk-test", OPENAI_BASE_URL="https://llm.local/v1", OPENAI_MODEL="test-model")


def test_fallback_without_api_key(seeded_db, cache_facade, settings, monkeypatch):
    def _no_call(*a, **k):
        raise AssertionError("no HTTP call expected")

    monkeypatch.setattr("worldstats.services.summary.requests.post", _no_call)
    result = _service(seeded_db, cache_facade, settings).generate("us")

    assert result["model"] == "fallback"
    assert result["cached"] is False
    text = result["summary"]
    assert text.startswith("United States has a population of approximately 334.9 million people.")
    assert "GDP per capita stands at $76,399." in text
    assert "It ranks 1st globally in military power." in text
    assert "NATO" in text
    assert "moderately safe with a safety index of 50.8" in text
    assert "Its passport ranks 8th in the world for travel freedom." in text


def test_fallback_with_no_figures():
    data = {
        "country": "Zedland",
        "categories": {k: {} for k in ("demographics", "economy", "military", "political", "crime", "health")},
    }
    assert fallback_summary(data)["summary"] == "Zedland is a sovereign nation. Detailed statistics are being updated."


def test_prompt_lists_sections(seeded_db, cache_facade, settings):
    data = CountryService(seeded_db, cache_facade, settings).get_one("US")
    prompt = build_prompt(data)
    assert prompt.startswith("Summarize the following country data for United States:")
    for section in ("DEMOGRAPHICS:", "ECONOMY:", "MILITARY:", "POLITICAL:", "CRIME:", "HEALTH:"):
        assert section in prompt
    assert "- Population: 334,914,895" in prompt


def test_generated_summary_is_stored_and_cached(seeded_db, cache_facade, keyed_settings, monkeypatch):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return FakeResponse({
            "choices": [{"message": {"content": "A large federal republic."}}],
            "usage": {"total_tokens": 42},
        })

    monkeypatch.setattr("worldstats.services.summary.requests.post", fake_post)
    service = _service(seeded_db, cache_facade, keyed_settings)

    first = service.generate("US")
    assert first["summary"] == "A large federal republic."
    assert first["model"] == "test-model"
    assert first["cached"] is False

    url, headers, body = calls[0]
    assert url == "https://llm.local/v1/chat/completions"
    assert headers["Authorization"] == "Bearer sk-test"
    assert body["model"] == "test-model"
    assert body["max_tokens"] == 500
    assert body["messages"][0]["role"] == "system"

    with seeded_db.session_scope() as session:
        row = session.scalars(select(AISummary)).one()
        assert row.tokens_used == 42
        assert row.summary == "A large federal republic."

    again = service.generate("us")
    assert again["cached"] is True
    assert again["summary"] == "A large federal republic."
    assert len(calls) == 1


def test_stored_summary_survives_cache_flush(seeded_db, cache_facade, keyed_settings, monkeypatch):
    monkeypatch.setattr(
        "worldstats.services.summary.requests.post",
        lambda *a, **k: FakeResponse({"choices": [{"message": {"content": "Stored text."}}]}),
    )
    service = _service(seeded_db, cache_facade, keyed_settings)
    service.generate("DE")
    cache_facade.invalidate_all()

    def _no_call(*a, **k):
        raise AssertionError("stored summary should be reused")

    monkeypatch.setattr("worldstats.services.summary.requests.post", _no_call)
    result = service.generate("DE")
    assert result["summary"] == "Stored text."
    assert result["cached"] is True


def test_http_failure_falls_back(seeded_db, cache_facade, keyed_settings, monkeypatch):
    monkeypatch.setattr(
        "worldstats.services.summary.requests.post",
        lambda *a, **k: FakeResponse({}, status=500),
    )
    result = _service(seeded_db, cache_facade, keyed_settings).generate("US")
    assert result["model"] == "fallback"

    with seeded_db.session_scope() as session:
        assert session.scalars(select(AISummary)).first() is None


@pytest.mark.parametrize(
    "body",
    [
        {"choices": [{"message": None}]},
        {"choices": None},
        [{"choices": []}],
        {"choices": []},
    ],
)
def test_malformed_completion_falls_back(seeded_db, cache_facade, keyed_settings, monkeypatch, body):
    monkeypatch.setattr(
        "worldstats.services.summary.requests.post",
        lambda *a, **k: FakeResponse(body),
    )
    result = _service(seeded_db, cache_facade, keyed_settings).generate("US")
    assert result["model"] == "fallback"
    assert result["summary"].startswith("United States has a population")
