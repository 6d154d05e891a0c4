"""Static catalog providers: one row mapper per upstream source."""
from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import CountryDataUpdate
from .catalog import CatalogProvider, load_catalog, present, records
from .synclog import SyncLogWriter


def _un_update(row: Dict[str, Any]) -> CountryDataUpdate:
    population = row["population"]
    ratio = None
    if population and row.get("male_population") is not None and row.get("female_population") is not None:
        male = row["male_population"] / population * 100
        female = row["female_population"] / population * 100
        ratio = f"{male:.0f}% / {female:.0f}%"
    return CountryDataUpdate(
        country_code=row["country_code"],
        demographics=present({
            "total_population": population,
            "male_population": row.get("male_population"),
            "female_population": row.get("female_population"),
            "male_female_ratio": ratio,
            "median_age": row.get("median_age"),
            "child_population_percent": row.get("child_percent"),
            "working_age_percent": row.get("working_age_percent"),
            "elderly_percent": row.get("elderly_percent"),
        }),
    )


OECD_FIELDS = ("average_income", "minimum_wage", "poverty_rate", "trade_balance", "exports", "imports", "public_debt")


def _oecd_update(row: Dict[str, Any]) -> CountryDataUpdate:
    return CountryDataUpdate(
        country_code=row["country_code"],
        economy=present({k: row.get(k) for k in OECD_FIELDS}),
    )


CIA_POLITICS_FIELDS = (
    "government_type", "chief_of_state", "head_of_government", "political_system",
    "legislative_branch", "judicial_branch", "constitution", "suffrage", "national_holiday",
)


def _parse_date(value: Optional[str]) -> Optional[dt.date]:
    if not value:
        return None
    return dt.date.fromisoformat(str(value))


def _cia_update(row: Dict[str, Any]) -> CountryDataUpdate:
    politics = {k: row.get(k) for k in CIA_POLITICS_FIELDS}
    politics["independence_date"] = _parse_date(row.get("independence_date"))
    return CountryDataUpdate(
        country_code=row["country_code"],
        politics=present(politics),
        demographics=present({
            "life_expectancy_male": row.get("life_expectancy_male"),
            "life_expectancy_female": row.get("life_expectancy_female"),
        }),
        economy=present({
            "currency": row.get("currency"),
            "currency_code": row.get("currency_code"),
        }),
    )


GFP_FIELDS = (
    "global_rank", "total_military_personnel", "active_soldiers", "reserve_personnel",
    "paramilitary_forces", "defense_spending", "defense_spending_percent", "tanks",
    "armored_vehicles", "self_propelled_artillery", "towed_artillery", "rocket_projectors",
    "total_aircraft", "fighters", "helicopters", "attack_helicopters", "naval_vessels",
    "aircraft_carriers", "submarines", "destroyers", "frigates", "nuclear_weapons", "is_nato_member",
)


def _gfp_update(row: Dict[str, Any]) -> CountryDataUpdate:
    military = present({k: row.get(k) for k in GFP_FIELDS})
    politics = {}
    if "is_nato_member" in military:
        politics["is_nato"] = bool(military["is_nato_member"])
    return CountryDataUpdate(country_code=row["country_code"], military=military, politics=politics)


def _henley_update(row: Dict[str, Any]) -> CountryDataUpdate:
    return CountryDataUpdate(
        country_code=row["country_code"],
        politics=present({
            "passport_ranking": row.get("passport_ranking"),
            "passport_visa_free": row.get("visa_free_destinations"),
        }),
    )


WHO_FIELDS = (
    "smoking_rate", "alcohol_consumption", "alcohol_dependency_rate", "drug_use_rate",
    "cannabis_use_rate", "opioid_use_rate", "cocaine_use_rate", "obesity_rate",
    "hospital_beds_per_1000", "physicians_per_1000", "nurses_per_1000", "hiv_prevalence",
    "tuberculosis_incidence", "malaria_incidence", "diabetes_prevalence",
    "mental_health_disorders", "suicide_rate",
)


def _who_update(row: Dict[str, Any]) -> CountryDataUpdate:
    return CountryDataUpdate(
        country_code=row["country_code"],
        health=present({k: row.get(k) for k in WHO_FIELDS}),
    )


NUMBEO_FIELDS = (
    "crime_index", "safety_index", "total_crime_rate", "homicide_rate", "assault_rate",
    "robbery_rate", "burglary_rate", "vehicle_theft_rate", "kidnapping_rate",
    "human_trafficking_risk", "drug_trafficking_risk", "terrorism_risk",
)


def crime_categories(catalog_dir: Optional[Path] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Crime category breakdown grouped by country, in catalog order."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for row in records(load_catalog("numbeo_categories.csv", catalog_dir)):
        grouped.setdefault(row["country_code"], []).append(
            {"category": row["category"], "percentage": float(row["percentage"])}
        )
    return grouped


def _numbeo_mapper(catalog_dir: Optional[Path] = None):
    breakdown: Dict[str, List[Dict[str, Any]]] = {}

    def _update(row: Dict[str, Any]) -> CountryDataUpdate:
        if not breakdown:
            breakdown.update(crime_categories(catalog_dir))
        crime = present({k: row.get(k) for k in NUMBEO_FIELDS})
        cats = breakdown.get(row["country_code"])
        if cats:
            crime["categories"] = [dict(c) for c in cats]
        return CountryDataUpdate(country_code=row["country_code"], crime=crime)

    return _update


def un_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("un", "un.csv", _un_update, log=log)


def oecd_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("oecd", "oecd.csv", _oecd_update, log=log)


def cia_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("cia", "cia.csv", _cia_update, log=log)


def gfp_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("gfp", "gfp.csv", _gfp_update, log=log)


def henley_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("henley", "henley.csv", _henley_update, log=log)


def who_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("who", "who.csv", _who_update, log=log)


def numbeo_provider(log: Optional[SyncLogWriter] = None) -> CatalogProvider:
    return CatalogProvider("numbeo", "numbeo.csv", _numbeo_mapper(), log=log)
