import pytest

from worldstats.errors import NotFoundError
from worldstats.services import ComparisonService, CountryService
from worldstats.services.comparison import HIGHER, LOWER, create_boolean_metric, create_metric


@pytest.fixture
def service(seeded_db, cache_facade, settings):
    return ComparisonService(CountryService(seeded_db, cache_facade, settings), cache_facade, settings)


def test_metric_lower_is_better():
    m = create_metric("Unemployment Rate", 10, 20, "%", LOWER)
    assert m["winner"] == "country1"
    assert m["difference"] == -10
    assert m["percentDifference"] == pytest.approx(-50)


def test_metric_higher_is_better():
    assert create_metric("GDP", 10, 20, "USD", HIGHER)["winner"] == "country2"


def test_metric_tie_and_no_polarity():
    assert create_metric("GDP", 5, 5, "USD", HIGHER)["winner"] is None
    assert create_metric("Median Age", 30, 40, "years")["winner"] is None


def test_metric_missing_side():
    m = create_metric("GDP", None, 20, "USD", HIGHER)
    assert m["winner"] is None
    assert m["difference"] is None
    assert m["percentDifference"] is None
    assert m["country1Value"] is None


def test_metric_zero_denominator():
    m = create_metric("Inflation", 3, 0, "%", LOWER)
    assert m["difference"] == 3
    assert m["percentDifference"] is None
    assert m["winner"] == "country2"


def test_boolean_metric_shape():
    assert create_boolean_metric("EU Member", False, True) == {
        "metric": "EU Member",
        "country1Value": False,
        "country2Value": True,
    }


def test_compare_us_germany(service):
    result = service.compare("us", "de")
    assert result["country1"]["code"] == "US"
    assert result["country2"] == {
        "name": "Germany",
        "code": "DE",
        "flagUrl": result["country2"]["flagUrl"],
    }
    assert set(result["categories"]) == {"demographics", "economy", "military", "political", "crime", "health"}

    rank = next(m for m in result["categories"]["military"] if m["metric"] == "Global Rank")
    assert rank["winner"] == "country1"
    eu = next(m for m in result["categories"]["political"] if m["metric"] == "EU Member")
    assert eu["country1Value"] is False and eu["country2Value"] is True

    summary = result["summary"]
    assert summary["highlights"] == [
        "United States has significantly higher GDP per capita",
        "United States has a higher military ranking",
        "Germany is considered safer based on crime statistics",
    ]
    scores = summary["scores"]
    assert scores["country1"] + scores["country2"] > 0
    if scores["country1"] > scores["country2"]:
        assert summary["winner"] == "United States"
    elif scores["country2"] > scores["country1"]:
        assert summary["winner"] == "Germany"
    else:
        assert summary["winner"] is None
    assert result["timestamp"]


def test_compare_is_cached_by_ordered_pair(service, cache_facade):
    first = service.compare("US", "DE")
    assert cache_facade.get("comparison:US:DE") == first
    assert cache_facade.get("comparison:DE:US") is None
    assert service.compare("us", "de") == first


def test_compare_unknown_country(service):
    with pytest.raises(NotFoundError):
        service.compare("US", "ZZ")
