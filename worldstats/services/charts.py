from __future__ import annotations

from typing import Any, Dict, Optional

from ..cache import CacheFacade
from ..config import Settings, get_settings
from ..db import Country, Database
from ..errors import NotFoundError
from ..utils import normalize_code
from .country import find_country

CHART_COLORS = {
    "neonBlue": "#00f0ff",
    "neonPink": "#ff00ff",
    "neonGreen": "#00ff88",
    "neonYellow": "#ffff00",
    "neonOrange": "#ff8800",
    "neonPurple": "#8800ff",
    "neonRed": "#ff0055",
    "neonCyan": "#00ffff",
}

# Radar axes are scaled against these reference maxima and capped at 100
MILITARY_MAX = {
    "tanks": 15000,
    "aircraft": 5000,
    "naval": 800,
    "soldiers": 3_000_000,
    "spending": 900_000_000_000,
}


def _val(record: Any, attr: str, default: Any = None) -> Any:
    value = getattr(record, attr, None) if record is not None else None
    return default if value is None else value


def _scaled(value: Optional[float], maximum: float) -> float:
    return min((value or 0) / maximum * 100, 100)


def gdp_line_chart(country: Country) -> Dict[str, Any]:
    history = _val(country.economy, "gdp_growth_history", []) or []
    return {
        "title": f"GDP Per Capita Trend - {country.name}",
        "labels": [h["year"] for h in history],
        "datasets": [{
            "label": "GDP Per Capita (USD)",
            "data": [h["value"] for h in history],
            "borderColor": CHART_COLORS["neonBlue"],
            "backgroundColor": f"{CHART_COLORS['neonBlue']}33",
        }],
    }


def crime_donut_chart(country: Country) -> Dict[str, Any]:
    categories = country.crime.categories if country.crime is not None else []
    return {
        "title": f"Crime Distribution - {country.name}",
        "labels": [c.category for c in categories],
        "data": [c.percentage for c in categories],
        "colors": [
            CHART_COLORS["neonRed"],
            CHART_COLORS["neonOrange"],
            CHART_COLORS["neonYellow"],
            CHART_COLORS["neonPurple"],
            CHART_COLORS["neonCyan"],
        ],
        "totalCrimeRate": _val(country.crime, "total_crime_rate"),
    }


def health_bar_chart(country: Country) -> Dict[str, Any]:
    health = country.health_stats
    return {
        "title": f"Health Indicators - {country.name}",
        "labels": ["Smoking Rate", "Alcohol Dependency", "Drug Use", "Obesity Rate"],
        "datasets": [{
            "label": "Percentage of Population",
            "data": [
                _val(health, "smoking_rate", 0),
                _val(health, "alcohol_dependency_rate", 0),
                _val(health, "drug_use_rate", 0),
                _val(health, "obesity_rate", 0),
            ],
            "backgroundColor": CHART_COLORS["neonPink"],
        }],
    }


def population_donut_chart(country: Country) -> Dict[str, Any]:
    demo = country.demographics
    male = int(_val(demo, "male_population", 0))
    female = int(_val(demo, "female_population", 0))
    total = male + female
    total_population = _val(demo, "total_population")
    return {
        "title": f"Population Distribution - {country.name}",
        "labels": ["Male", "Female"],
        "data": [male / total * 100, female / total * 100] if total > 0 else [50, 50],
        "colors": [CHART_COLORS["neonBlue"], CHART_COLORS["neonPink"]],
        "totalPopulation": int(total_population) if total_population else None,
    }


def military_radar_chart(country: Country) -> Dict[str, Any]:
    mil = country.military
    return {
        "title": f"Military Capabilities - {country.name}",
        "labels": ["Tanks", "Aircraft", "Naval Vessels", "Personnel", "Defense Budget"],
        "datasets": [{
            "label": country.name,
            "data": [
                _scaled(_val(mil, "tanks"), MILITARY_MAX["tanks"]),
                _scaled(_val(mil, "total_aircraft"), MILITARY_MAX["aircraft"]),
                _scaled(_val(mil, "naval_vessels"), MILITARY_MAX["naval"]),
                _scaled(_val(mil, "total_military_personnel"), MILITARY_MAX["soldiers"]),
                _scaled(_val(mil, "defense_spending"), MILITARY_MAX["spending"]),
            ],
            "borderColor": CHART_COLORS["neonGreen"],
            "backgroundColor": f"{CHART_COLORS['neonGreen']}44",
        }],
    }


def economic_indicators_chart(country: Country) -> Dict[str, Any]:
    eco = country.economy
    return {
        "title": f"Economic Indicators - {country.name}",
        "indicators": [
            {"name": "GDP", "value": _val(eco, "gdp"), "unit": "USD", "color": CHART_COLORS["neonGreen"]},
            {"name": "GDP Per Capita", "value": _val(eco, "gdp_per_capita"), "unit": "USD", "color": CHART_COLORS["neonBlue"]},
            {"name": "GDP Growth", "value": _val(eco, "gdp_growth_rate"), "unit": "%", "color": CHART_COLORS["neonCyan"]},
            {"name": "Inflation", "value": _val(eco, "inflation"), "unit": "%", "color": CHART_COLORS["neonOrange"]},
            {"name": "Unemployment", "value": _val(eco, "unemployment_rate"), "unit": "%", "color": CHART_COLORS["neonRed"]},
            {"name": "Public Debt", "value": _val(eco, "public_debt"), "unit": "% of GDP", "color": CHART_COLORS["neonPurple"]},
        ],
    }


class ChartService:
    """Chart-ready datasets per country, cached under ``country:{CODE}:charts``."""

    def __init__(self, database: Database, cache: CacheFacade, settings: Optional[Settings] = None) -> None:
        self.database = database
        self.cache = cache
        self.settings = settings or get_settings()

    def get_charts(self, code: str) -> Dict[str, Any]:
        normalized = normalize_code(code)

        def _build() -> Dict[str, Any]:
            with self.database.session_scope() as session:
                country = find_country(session, normalized)
                if country is None:
                    raise NotFoundError(f"Country with code {code}")
                return {
                    "gdpLineChart": gdp_line_chart(country),
                    "crimeDonutChart": crime_donut_chart(country),
                    "healthBarChart": health_bar_chart(country),
                    "populationDonutChart": population_donut_chart(country),
                    "militaryRadarChart": military_radar_chart(country),
                    "economicIndicatorsChart": economic_indicators_chart(country),
                }

        return self.cache.get_or_set(f"country:{normalized}:charts", _build, self.settings.cache_ttl_charts)
