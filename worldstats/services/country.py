from __future__ import annotations

import difflib
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from ..cache import CacheFacade
from ..config import Settings, get_settings
from ..db import Country, Crime, Database
from ..errors import NotFoundError
from ..utils import normalize_code

logger = logging.getLogger(__name__)

SEARCH_KEYS = ("name", "officialName", "code", "code3", "capital")
SEARCH_MIN_SCORE = 0.6
SEARCH_LIMIT = 10

# (view key, column, default) per category
DEMOGRAPHICS_VIEW = (
    ("totalPopulation", "total_population", None),
    ("malePopulation", "male_population", None),
    ("femalePopulation", "female_population", None),
    ("maleFemaleRatio", "male_female_ratio", None),
    ("medianAge", "median_age", None),
    ("lifeExpectancy", "life_expectancy", None),
    ("lifeExpectancyMale", "life_expectancy_male", None),
    ("lifeExpectancyFemale", "life_expectancy_female", None),
    ("birthRate", "birth_rate", None),
    ("deathRate", "death_rate", None),
    ("fertilityRate", "fertility_rate", None),
    ("infantMortalityRate", "infant_mortality_rate", None),
    ("urbanPopulationPercent", "urban_population_percent", None),
    ("childPopulationPercent", "child_population_percent", None),
    ("workingAgePercent", "working_age_percent", None),
    ("elderlyPercent", "elderly_percent", None),
    ("averageIQ", "average_iq", None),
    ("populationGrowthRate", "population_growth_rate", None),
)
ECONOMY_VIEW = (
    ("gdp", "gdp", None),
    ("gdpPerCapita", "gdp_per_capita", None),
    ("gdpGrowthRate", "gdp_growth_rate", None),
    ("gdpPpp", "gdp_ppp", None),
    ("inflation", "inflation", None),
    ("unemploymentRate", "unemployment_rate", None),
    ("povertyRate", "poverty_rate", None),
    ("giniIndex", "gini_index", None),
    ("publicDebt", "public_debt", None),
    ("tradeBalance", "trade_balance", None),
    ("exports", "exports", None),
    ("imports", "imports", None),
    ("minimumWage", "minimum_wage", None),
    ("averageIncome", "average_income", None),
    ("currency", "currency", None),
    ("currencyCode", "currency_code", None),
)
# health figures surfaced alongside the economy block
ECONOMY_HEALTH_VIEW = (
    ("smokingRate", "smoking_rate", None),
    ("alcoholDependencyRate", "alcohol_dependency_rate", None),
    ("drugUseRate", "drug_use_rate", None),
)
MILITARY_VIEW = (
    ("globalRank", "global_rank", None),
    ("activeSoldiers", "active_soldiers", None),
    ("reservePersonnel", "reserve_personnel", None),
    ("totalMilitaryPersonnel", "total_military_personnel", None),
    ("defenseSpending", "defense_spending", None),
    ("defenseSpendingPercent", "defense_spending_percent", None),
    ("tanks", "tanks", None),
    ("totalAircraft", "total_aircraft", None),
    ("navalVessels", "naval_vessels", None),
    ("nuclearWeapons", "nuclear_weapons", False),
    ("isNatoMember", "is_nato_member", False),
)
POLITICAL_VIEW = (
    ("governmentType", "government_type", None),
    ("chiefOfState", "chief_of_state", None),
    ("headOfGovernment", "head_of_government", None),
    ("isEU", "is_eu", False),
    ("isUN", "is_un", True),
    ("isNato", "is_nato", False),
    ("isG7", "is_g7", False),
    ("isG20", "is_g20", False),
    ("isBrics", "is_brics", False),
    ("passportRanking", "passport_ranking", None),
    ("passportVisaFree", "passport_visa_free", None),
    ("democracyIndex", "democracy_index", None),
    ("corruptionIndex", "corruption_index", None),
    ("humanDevelopmentIndex", "human_development_index", None),
)
CRIME_VIEW = (
    ("crimeIndex", "crime_index", None),
    ("safetyIndex", "safety_index", None),
    ("totalCrimeRate", "total_crime_rate", None),
    ("homicideRate", "homicide_rate", None),
)
HEALTH_VIEW = (
    ("smokingRate", "smoking_rate", None),
    ("alcoholConsumption", "alcohol_consumption", None),
    ("alcoholDependencyRate", "alcohol_dependency_rate", None),
    ("drugUseRate", "drug_use_rate", None),
    ("obesityRate", "obesity_rate", None),
    ("healthcareSpendingPercent", "healthcare_spending_percent", None),
    ("hospitalBedsPer1000", "hospital_beds_per_1000", None),
    ("physiciansPer1000", "physicians_per_1000", None),
    ("suicideRate", "suicide_rate", None),
    ("diabetesPrevalence", "diabetes_prevalence", None),
)
EDUCATION_VIEW = (
    ("literacyRate", "literacy_rate", None),
    ("literacyRateMale", "literacy_rate_male", None),
    ("literacyRateFemale", "literacy_rate_female", None),
    ("educationSpendingPercent", "education_spending_percent", None),
    ("primaryEnrollmentRate", "primary_enrollment_rate", None),
    ("secondaryEnrollmentRate", "secondary_enrollment_rate", None),
    ("tertiaryEnrollmentRate", "tertiary_enrollment_rate", None),
    ("averageSchoolingYears", "average_schooling_years", None),
)


def project(record: Any, fields: Sequence[Tuple[str, str, Any]]) -> Dict[str, Any]:
    """Map a (possibly missing) record onto view keys, null-coalescing each field."""
    out = {}
    for key, column, default in fields:
        value = getattr(record, column, None) if record is not None else None
        out[key] = default if value is None else value
    return out


def find_country(session: Session, code: str, full: bool = True) -> Optional[Country]:
    """Look a country up by alpha-2 or alpha-3 code, optionally eager-loading children."""
    code = normalize_code(code)
    stmt = select(Country).where(or_(Country.code == code, Country.code3 == code))
    if full:
        stmt = stmt.options(
            selectinload(Country.demographics),
            selectinload(Country.economy),
            selectinload(Country.military),
            selectinload(Country.politics),
            selectinload(Country.crime).selectinload(Crime.categories),
            selectinload(Country.health_stats),
            selectinload(Country.education),
        )
    return session.scalars(stmt).first()


def country_view(country: Country) -> Dict[str, Any]:
    crime = country.crime
    economy = project(country.economy, ECONOMY_VIEW)
    economy.update(project(country.health_stats, ECONOMY_HEALTH_VIEW))
    crime_view = project(crime, CRIME_VIEW)
    crime_view["crimeCategories"] = (
        [{"category": c.category, "percentage": c.percentage} for c in crime.categories] if crime is not None else []
    )
    return {
        "country": country.name,
        "code": country.code,
        "code3": country.code3,
        "officialName": country.official_name,
        "region": country.region,
        "subregion": country.subregion,
        "capital": country.capital,
        "flagUrl": country.flag_url,
        "latitude": country.latitude,
        "longitude": country.longitude,
        "categories": {
            "demographics": project(country.demographics, DEMOGRAPHICS_VIEW),
            "economy": economy,
            "military": project(country.military, MILITARY_VIEW),
            "political": project(country.politics, POLITICAL_VIEW),
            "crime": crime_view,
            "health": project(country.health_stats, HEALTH_VIEW),
            "education": project(country.education, EDUCATION_VIEW),
        },
    }


def _similarity(query: str, value: str) -> float:
    if value == query:
        return 1.0
    if value.startswith(query):
        return 0.9
    if query in value:
        return 0.8
    return max(
        difflib.SequenceMatcher(None, query, value).ratio(),
        difflib.SequenceMatcher(None, query, value[: len(query)]).ratio(),
    )


class CountryService:
    """Read side for countries with cache-aside over the CacheFacade."""

    def __init__(self, database: Database, cache: CacheFacade, settings: Optional[Settings] = None) -> None:
        self.database = database
        self.cache = cache
        self.settings = settings or get_settings()

    def get_all(self) -> List[Dict[str, Any]]:
        return self.cache.get_or_set("countries:all", self._load_all, self.settings.cache_ttl_country)

    def _load_all(self) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            rows = session.scalars(select(Country).order_by(Country.name)).all()
            return [
                {
                    "id": c.id,
                    "code": c.code,
                    "code3": c.code3,
                    "name": c.name,
                    "officialName": c.official_name,
                    "region": c.region,
                    "capital": c.capital,
                    "flagUrl": c.flag_url,
                    "population": int(c.population) if c.population else None,
                }
                for c in rows
            ]

    def search(self, query: str) -> List[Dict[str, Any]]:
        q = (query or "").strip().lower()
        if not q:
            return []
        scored = []
        for item in self.get_all():
            score = max(
                (_similarity(q, str(item[k]).lower()) for k in SEARCH_KEYS if item.get(k)),
                default=0.0,
            )
            if score >= SEARCH_MIN_SCORE:
                scored.append((score, item))
        scored.sort(key=lambda s: (-s[0], s[1]["name"]))
        return [item for _, item in scored[:SEARCH_LIMIT]]

    def get_one(self, code: str) -> Dict[str, Any]:
        normalized = normalize_code(code)

        def _load() -> Dict[str, Any]:
            with self.database.session_scope() as session:
                country = find_country(session, normalized)
                if country is None:
                    raise NotFoundError(f"Country with code {code}")
                return country_view(country)

        return self.cache.get_or_set(f"country:{normalized}", _load, self.settings.cache_ttl_country)

    def get_by_id(self, country_id: str) -> Dict[str, Any]:
        with self.database.session_scope() as session:
            country = session.get(Country, country_id)
            if country is None:
                raise NotFoundError("Country")
            code = country.code
        return self.get_one(code)

    def invalidate_cache(self, code: Optional[str] = None) -> None:
        self.cache.invalidate_country_cache(code)
