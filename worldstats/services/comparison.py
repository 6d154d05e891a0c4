from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ..cache import CacheFacade
from ..config import Settings, get_settings
from ..utils import iso_now, normalize_code
from .country import CountryService

HIGHER = "higher"
LOWER = "lower"

# (label, view key, unit, polarity) per category; polarity None means no winner
METRICS: Dict[str, List[Tuple[str, str, str, Optional[str]]]] = {
    "demographics": [
        ("Population", "totalPopulation", "people", HIGHER),
        ("Life Expectancy", "lifeExpectancy", "years", HIGHER),
        ("Median Age", "medianAge", "years", None),
        ("Birth Rate", "birthRate", "per 1000", None),
        ("Urban Population", "urbanPopulationPercent", "%", None),
        ("Average IQ", "averageIQ", "points", HIGHER),
    ],
    "economy": [
        ("GDP", "gdp", "USD", HIGHER),
        ("GDP Per Capita", "gdpPerCapita", "USD", HIGHER),
        ("GDP Growth", "gdpGrowthRate", "%", HIGHER),
        ("Unemployment Rate", "unemploymentRate", "%", LOWER),
        ("Inflation", "inflation", "%", LOWER),
        ("Average Income", "averageIncome", "USD/year", HIGHER),
        ("Public Debt", "publicDebt", "% of GDP", LOWER),
    ],
    "military": [
        ("Global Rank", "globalRank", "", LOWER),
        ("Active Soldiers", "activeSoldiers", "personnel", HIGHER),
        ("Defense Spending", "defenseSpending", "USD", HIGHER),
        ("Tanks", "tanks", "units", HIGHER),
        ("Aircraft", "totalAircraft", "units", HIGHER),
        ("Naval Vessels", "navalVessels", "ships", HIGHER),
    ],
    "political": [
        ("Passport Ranking", "passportRanking", "", LOWER),
        ("Visa-Free Access", "passportVisaFree", "countries", HIGHER),
        ("Democracy Index", "democracyIndex", "", HIGHER),
        ("Corruption Index", "corruptionIndex", "", HIGHER),
        ("HDI", "humanDevelopmentIndex", "", HIGHER),
    ],
    "crime": [
        ("Crime Index", "crimeIndex", "", LOWER),
        ("Safety Index", "safetyIndex", "", HIGHER),
        ("Total Crime Rate", "totalCrimeRate", "per 100k", LOWER),
        ("Homicide Rate", "homicideRate", "per 100k", LOWER),
    ],
    "health": [
        ("Smoking Rate", "smokingRate", "%", LOWER),
        ("Alcohol Dependency", "alcoholDependencyRate", "%", LOWER),
        ("Drug Use", "drugUseRate", "%", LOWER),
        ("Obesity Rate", "obesityRate", "%", LOWER),
        ("Healthcare Spending", "healthcareSpendingPercent", "% of GDP", None),
        ("Hospital Beds", "hospitalBedsPer1000", "per 1000", HIGHER),
        ("Physicians", "physiciansPer1000", "per 1000", HIGHER),
    ],
}

BOOLEAN_METRICS: Dict[str, List[Tuple[str, str]]] = {
    "military": [("Nuclear Weapons", "nuclearWeapons"), ("NATO Member", "isNatoMember")],
    "political": [("EU Member", "isEU"), ("G7 Member", "isG7"), ("G20 Member", "isG20")],
}

GDP_PER_CAPITA_GAP = 5000
SAFETY_GAP = 10


def create_metric(
    metric: str,
    val1: Optional[float],
    val2: Optional[float],
    unit: str,
    better: Optional[str] = None,
) -> Dict[str, Any]:
    winner = None
    difference = None
    percent_difference = None
    if val1 is not None and val2 is not None:
        difference = val1 - val2
        if val2 != 0:
            percent_difference = (val1 - val2) / abs(val2) * 100
        if better == HIGHER:
            winner = "country1" if val1 > val2 else "country2" if val2 > val1 else None
        elif better == LOWER:
            winner = "country1" if val1 < val2 else "country2" if val2 < val1 else None
    return {
        "metric": metric,
        "country1Value": val1,
        "country2Value": val2,
        "difference": difference,
        "percentDifference": percent_difference,
        "winner": winner,
        "unit": unit,
    }


def create_boolean_metric(metric: str, val1: bool, val2: bool) -> Dict[str, Any]:
    return {"metric": metric, "country1Value": val1, "country2Value": val2}


def compare_categories(c1: Dict[str, Any], c2: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    out: Dict[str, List[Dict[str, Any]]] = {}
    for category, metrics in METRICS.items():
        a, b = c1["categories"][category], c2["categories"][category]
        rows = [create_metric(label, a.get(key), b.get(key), unit, better) for label, key, unit, better in metrics]
        rows.extend(
            create_boolean_metric(label, bool(a.get(key)), bool(b.get(key)))
            for label, key in BOOLEAN_METRICS.get(category, [])
        )
        out[category] = rows
    return out


def summarize(categories: Dict[str, List[Dict[str, Any]]], c1: Dict[str, Any], c2: Dict[str, Any]) -> Dict[str, Any]:
    score1 = score2 = 0
    for rows in categories.values():
        for row in rows:
            if row.get("winner") == "country1":
                score1 += 1
            elif row.get("winner") == "country2":
                score2 += 1

    highlights = []
    gdp_diff = (c1["categories"]["economy"]["gdpPerCapita"] or 0) - (c2["categories"]["economy"]["gdpPerCapita"] or 0)
    if abs(gdp_diff) > GDP_PER_CAPITA_GAP:
        richer = c1["country"] if gdp_diff > 0 else c2["country"]
        highlights.append(f"{richer} has significantly higher GDP per capita")

    rank1 = c1["categories"]["military"]["globalRank"]
    rank2 = c2["categories"]["military"]["globalRank"]
    if rank1 and rank2:
        stronger = c1["country"] if rank1 < rank2 else c2["country"]
        highlights.append(f"{stronger} has a higher military ranking")

    safety_diff = (c1["categories"]["crime"]["safetyIndex"] or 0) - (c2["categories"]["crime"]["safetyIndex"] or 0)
    if abs(safety_diff) > SAFETY_GAP:
        safer = c1["country"] if safety_diff > 0 else c2["country"]
        highlights.append(f"{safer} is considered safer based on crime statistics")

    winner = c1["country"] if score1 > score2 else c2["country"] if score2 > score1 else None
    return {"winner": winner, "scores": {"country1": score1, "country2": score2}, "highlights": highlights}


class ComparisonService:
    def __init__(self, countries: CountryService, cache: CacheFacade, settings: Optional[Settings] = None) -> None:
        self.countries = countries
        self.cache = cache
        self.settings = settings or get_settings()

    def compare(self, code1: str, code2: str) -> Dict[str, Any]:
        c1, c2 = normalize_code(code1), normalize_code(code2)
        return self.cache.get_or_set(
            f"comparison:{c1}:{c2}", lambda: self._build(c1, c2), self.settings.cache_ttl_comparison,
        )

    def _build(self, c1: str, c2: str) -> Dict[str, Any]:
        data1 = self.countries.get_one(c1)
        data2 = self.countries.get_one(c2)
        categories = compare_categories(data1, data2)
        return {
            "country1": {"name": data1["country"], "code": data1["code"], "flagUrl": data1["flagUrl"]},
            "country2": {"name": data2["country"], "code": data2["code"], "flagUrl": data2["flagUrl"]},
            "categories": categories,
            "summary": summarize(categories, data1, data2),
            "timestamp": iso_now(),
        }
