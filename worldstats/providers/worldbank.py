from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Settings, get_settings
from ..db import Database, ExternalDataCache
from ..errors import ExternalApiError
from ..utils import parse_numeric, utcnow
from .base import CountryDataUpdate, ProviderResult
from .catalog import load_catalog, records
from .synclog import SyncLogWriter, run_logged_sync

logger = logging.getLogger(__name__)

# column -> (category, World Bank indicator id)
INDICATORS: Dict[str, tuple] = {
    "total_population": ("demographics", "SP.POP.TOTL"),
    "population_growth_rate": ("demographics", "SP.POP.GROW"),
    "life_expectancy": ("demographics", "SP.DYN.LE00.IN"),
    "birth_rate": ("demographics", "SP.DYN.CBRT.IN"),
    "death_rate": ("demographics", "SP.DYN.CDRT.IN"),
    "fertility_rate": ("demographics", "SP.DYN.TFRT.IN"),
    "infant_mortality_rate": ("demographics", "SP.DYN.IMRT.IN"),
    "urban_population_percent": ("demographics", "SP.URB.TOTL.IN.ZS"),
    "gdp": ("economy", "NY.GDP.MKTP.CD"),
    "gdp_per_capita": ("economy", "NY.GDP.PCAP.CD"),
    "gdp_growth_rate": ("economy", "NY.GDP.MKTP.KD.ZG"),
    "inflation": ("economy", "FP.CPI.TOTL.ZG"),
    "unemployment_rate": ("economy", "SL.UEM.TOTL.ZS"),
    "gini_index": ("economy", "SI.POV.GINI"),
    "literacy_rate": ("education", "SE.ADT.LITR.ZS"),
    "education_spending_percent": ("education", "SE.XPD.TOTL.GD.ZS"),
    "healthcare_spending_percent": ("health", "SH.XPD.CHEX.GD.ZS"),
}
GDP_HISTORY_INDICATOR = "NY.GDP.PCAP.CD"

DEFAULT_CODES = ("USA", "DEU", "GBR", "FRA", "JPN", "CHN", "IND", "BRA", "RUS", "AUS")


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(requests.RequestException),
    reraise=True,
)
def fetch_json(url: str, timeout: int = 30) -> Any:
    resp = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
    resp.raise_for_status()
    return resp.json()


def latest_values(payload: Any) -> Dict[str, float]:
    """Most recent non-null value per alpha-3 code from an indicator payload."""
    points = payload[1] if isinstance(payload, list) and len(payload) > 1 and payload[1] else []
    best: Dict[str, tuple] = {}
    for point in points:
        code = point.get("countryiso3code") or (point.get("country") or {}).get("id")
        value = parse_numeric(point.get("value"))
        if not code or value is None:
            continue
        year = str(point.get("date", ""))
        if code not in best or year > best[code][0]:
            best[code] = (year, value)
    return {code: value for code, (_, value) in best.items()}


def history_values(payload: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Ascending `{year, value}` series per alpha-3 code."""
    points = payload[1] if isinstance(payload, list) and len(payload) > 1 and payload[1] else []
    series: Dict[str, List[Dict[str, Any]]] = {}
    for point in points:
        code = point.get("countryiso3code") or (point.get("country") or {}).get("id")
        value = parse_numeric(point.get("value"))
        if not code or value is None:
            continue
        series.setdefault(code, []).append({"year": int(point["date"]), "value": value})
    for items in series.values():
        items.sort(key=lambda h: h["year"])
    return series


class WorldBankProvider:
    """World Development Indicators, live from the API or from the bundled catalog.

    Live mode is enabled by `WORLD_BANK_API_URL`; raw payloads are kept in the
    ExternalDataCache table so repeated syncs within the expiry window do not
    hit the network.
    """

    name = "worldbank"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        log: Optional[SyncLogWriter] = None,
        catalog_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.database = database
        self.log = log or SyncLogWriter(database)
        self.catalog_dir = catalog_dir

    def sync(self, codes: Optional[Sequence[str]] = None) -> ProviderResult:
        return run_logged_sync(self.name, self.log, lambda: self._updates(codes))

    def _updates(self, codes: Optional[Sequence[str]]) -> List[CountryDataUpdate]:
        base = (self.settings.worldbank_api_url or "").rstrip("/")
        if not base:
            return self._catalog_updates(codes)
        return self._api_updates(base, [c.upper() for c in (codes or DEFAULT_CODES)])

    # ---- Bundled catalog ----
    def _catalog_updates(self, codes: Optional[Sequence[str]]) -> List[CountryDataUpdate]:
        df = load_catalog("worldbank.csv", self.catalog_dir)
        hist = load_catalog("worldbank_gdp_history.csv", self.catalog_dir)
        if codes is not None:
            wanted = [c.upper() for c in codes]
            df = df[df["country_code"].isin(wanted)]
            hist = hist[hist["country_code"].isin(wanted)]
        logger.info("worldbank sync starting for %d countries (catalog)", len(df))

        history: Dict[str, List[Dict[str, Any]]] = {}
        for code, group in hist.sort_values("year").groupby("country_code"):
            history[code] = [{"year": int(y), "value": float(v)} for y, v in zip(group["year"], group["value"])]

        return [self._build(row["country_code"], row, history.get(row["country_code"])) for row in records(df)]

    # ---- Live API ----
    def _api_updates(self, base: str, codes: List[str]) -> List[CountryDataUpdate]:
        logger.info("worldbank sync starting for %d countries (api)", len(codes))
        joined = ";".join(codes)
        values: Dict[str, Dict[str, float]] = {}
        for column, (_, indicator) in INDICATORS.items():
            endpoint = f"/country/{joined}/indicator/{indicator}?format=json&date=2018:2024&per_page=1000"
            values[column] = latest_values(self._fetch(base, endpoint))

        this_year = utcnow().year
        endpoint = (
            f"/country/{joined}/indicator/{GDP_HISTORY_INDICATOR}"
            f"?format=json&date={this_year - 10}:{this_year}&per_page=1000"
        )
        history = history_values(self._fetch(base, endpoint))

        updates = []
        for code in codes:
            row = {column: values[column].get(code) for column in INDICATORS}
            if all(v is None for v in row.values()) and code not in history:
                continue
            updates.append(self._build(code, row, history.get(code)))
        return updates

    def _fetch(self, base: str, endpoint: str) -> Any:
        cached = self._cached(endpoint)
        if cached is not None:
            return cached
        try:
            data = fetch_json(f"{base}{endpoint}")
        except requests.RequestException as e:
            raise ExternalApiError(self.name, str(e)) from e
        self._store(endpoint, data)
        return data

    def _cached(self, endpoint: str) -> Any:
        if self.database is None:
            return None
        try:
            with self.database.session_scope() as session:
                row = session.scalars(
                    select(ExternalDataCache).where(
                        ExternalDataCache.provider == self.name,
                        ExternalDataCache.endpoint == endpoint,
                        ExternalDataCache.expires_at > utcnow(),
                    )
                ).first()
                return row.data if row is not None else None
        except SQLAlchemyError:
            logger.exception("Failed to read cached payload for %s%s", self.name, endpoint)
            return None

    def _store(self, endpoint: str, data: Any) -> None:
        if self.database is None:
            return
        expires_at = utcnow() + dt.timedelta(hours=self.settings.external_cache_hours)
        try:
            with self.database.session_scope() as session:
                row = session.scalars(
                    select(ExternalDataCache).where(
                        ExternalDataCache.provider == self.name,
                        ExternalDataCache.endpoint == endpoint,
                    )
                ).first()
                if row is None:
                    session.add(ExternalDataCache(provider=self.name, endpoint=endpoint, data=data, expires_at=expires_at))
                else:
                    row.data = data
                    row.expires_at = expires_at
        except SQLAlchemyError:
            logger.exception("Failed to cache payload for %s%s", self.name, endpoint)

    @staticmethod
    def _build(code: str, row: Dict[str, Any], history: Optional[List[Dict[str, Any]]]) -> CountryDataUpdate:
        update = CountryDataUpdate(country_code=code)
        for column, (category, _) in INDICATORS.items():
            value = row.get(column)
            if value is not None and not pd.isna(value):
                update.category(category)[column] = value
        if history:
            update.economy["gdp_growth_history"] = history
        return update
