from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional

import requests
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from ..cache import CacheFacade
from ..config import Settings, get_settings
from ..db import AISummary, Country, Database
from ..utils import fmt_number, iso_now, normalize_code, ordinal_suffix, utcnow
from .country import CountryService

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a factual data analyst. Summarize country statistics in 5-7 clear, factual sentences. "
    "Use only the data provided. Do not hallucinate or invent data. "
    "Focus on key highlights: population, economy, military ranking, and notable characteristics. "
    "Write in an informative, neutral tone."
)
SUMMARY_LIFETIME = dt.timedelta(hours=24)
REQUEST_TIMEOUT = 30


def _na(value: Any) -> str:
    return "N/A" if value in (None, "", 0) else str(value)


def _na_num(value: Any) -> str:
    return "N/A" if not value else fmt_number(value)


def _yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def build_prompt(data: Dict[str, Any]) -> str:
    demo = data["categories"]["demographics"]
    eco = data["categories"]["economy"]
    mil = data["categories"]["military"]
    pol = data["categories"]["political"]
    crime = data["categories"]["crime"]
    health = data["categories"]["health"]
    name = data["country"]
    return "\n".join([
        f"Summarize the following country data for {name}:",
        "",
        "DEMOGRAPHICS:",
        f"- Population: {_na_num(demo.get('totalPopulation'))}",
        f"- Life Expectancy: {_na(demo.get('lifeExpectancy'))} years",
        f"- Median Age: {_na(demo.get('medianAge'))} years",
        f"- Male/Female Ratio: {_na(demo.get('maleFemaleRatio'))}",
        f"- Urban Population: {_na(demo.get('urbanPopulationPercent'))}%",
        "",
        "ECONOMY:",
        f"- GDP: ${_na_num(eco.get('gdp'))}",
        f"- GDP Per Capita: ${_na_num(eco.get('gdpPerCapita'))}",
        f"- GDP Growth: {_na(eco.get('gdpGrowthRate'))}%",
        f"- Unemployment: {_na(eco.get('unemploymentRate'))}%",
        f"- Inflation: {_na(eco.get('inflation'))}%",
        "",
        "MILITARY:",
        f"- Global Ranking: {_na(mil.get('globalRank'))}",
        f"- Active Soldiers: {_na_num(mil.get('activeSoldiers'))}",
        f"- NATO Member: {_yes_no(mil.get('isNatoMember'))}",
        f"- Nuclear Weapons: {_yes_no(mil.get('nuclearWeapons'))}",
        "",
        "POLITICAL:",
        f"- Government Type: {_na(pol.get('governmentType'))}",
        f"- EU Member: {_yes_no(pol.get('isEU'))}",
        f"- Passport Ranking: {_na(pol.get('passportRanking'))}",
        "",
        "CRIME:",
        f"- Crime Index: {_na(crime.get('crimeIndex'))}",
        f"- Safety Index: {_na(crime.get('safetyIndex'))}",
        "",
        "HEALTH:",
        f"- Smoking Rate: {_na(health.get('smokingRate'))}%",
        f"- Alcohol Dependency: {_na(health.get('alcoholDependencyRate'))}%",
        f"- Drug Use: {_na(health.get('drugUseRate'))}%",
        "",
        f"Please provide a concise, factual summary of {name} in 5-7 sentences.",
    ])


def fallback_summary(data: Dict[str, Any]) -> Dict[str, Any]:
    """Deterministic summary assembled from whatever figures are present."""
    name = data["country"]
    demo = data["categories"]["demographics"]
    eco = data["categories"]["economy"]
    mil = data["categories"]["military"]
    pol = data["categories"]["political"]
    crime = data["categories"]["crime"]
    parts = []

    if demo.get("totalPopulation"):
        parts.append(f"{name} has a population of approximately {demo['totalPopulation'] / 1_000_000:.1f} million people.")
    if eco.get("gdpPerCapita"):
        parts.append(f"The country's GDP per capita stands at ${fmt_number(eco['gdpPerCapita'])}.")
    if mil.get("globalRank"):
        rank = int(mil["globalRank"])
        parts.append(f"It ranks {rank}{ordinal_suffix(rank)} globally in military power.")
    if pol.get("governmentType"):
        parts.append(f"The government operates as a {pol['governmentType']}.")

    memberships = [
        label
        for label, flag in (
            ("EU", pol.get("isEU")),
            ("NATO", mil.get("isNatoMember")),
            ("G7", pol.get("isG7")),
            ("G20", pol.get("isG20")),
        )
        if flag
    ]
    if memberships:
        parts.append(f"{name} is a member of {', '.join(memberships)}.")

    safety = crime.get("safetyIndex")
    if safety:
        if safety > 60:
            level = "relatively safe"
        elif safety > 40:
            level = "moderately safe"
        else:
            level = "challenging in terms of safety"
        parts.append(f"The country is considered {level} with a safety index of {safety:.1f}.")

    if pol.get("passportRanking"):
        rank = int(pol["passportRanking"])
        parts.append(f"Its passport ranks {rank}{ordinal_suffix(rank)} in the world for travel freedom.")

    summary = " ".join(parts) if parts else f"{name} is a sovereign nation. Detailed statistics are being updated."
    return {"summary": summary, "generatedAt": iso_now(), "model": "fallback", "cached": False}


def _isoformat(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.isoformat()


class SummaryService:
    """Short prose summaries of a country, from an OpenAI-compatible chat API.

    Lookup order is cache, then an unexpired stored summary, then the API.
    Without an API key, or when the call fails, a deterministic summary built
    from the country's figures is returned instead and nothing is stored.
    """

    def __init__(
        self,
        database: Database,
        cache: CacheFacade,
        countries: CountryService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.database = database
        self.cache = cache
        self.countries = countries
        self.settings = settings or get_settings()

    def generate(self, code: str) -> Dict[str, Any]:
        normalized = normalize_code(code)
        key = f"ai:summary:{normalized}"

        cached = self.cache.get(key)
        if cached is not None:
            return {**cached, "cached": True}

        stored = self._stored(normalized)
        if stored is not None:
            self.cache.set(key, stored, self.settings.cache_ttl_ai_summary)
            return stored

        data = self.countries.get_one(normalized)
        if not self.settings.openai_api_key:
            return fallback_summary(data)

        try:
            summary, tokens = self._complete(build_prompt(data))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to generate AI summary for %s", normalized)
            return fallback_summary(data)

        model = self.settings.openai_model
        self._persist(normalized, summary, model, tokens)
        result = {"summary": summary, "generatedAt": iso_now(), "model": model, "cached": False}
        self.cache.set(key, result, self.settings.cache_ttl_ai_summary)
        return result

    def _complete(self, prompt: str) -> tuple:
        url = f"{self.settings.openai_base_url.rstrip('/')}/chat/completions"
        resp = requests.post(
            url,
            headers={
                "Authorization": f"Bearer {self.settings.openai_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.settings.openai_model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": 500,
                "temperature": 0.3,
            },
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        body = resp.json()
        content = body["choices"][0]["message"].get("content") or "Summary unavailable."
        tokens = (body.get("usage") or {}).get("total_tokens", 0)
        return content, tokens

    def _stored(self, code: str) -> Optional[Dict[str, Any]]:
        try:
            with self.database.session_scope() as session:
                row = session.scalars(
                    select(AISummary)
                    .join(Country)
                    .where(or_(Country.code == code, Country.code3 == code))
                    .where(AISummary.expires_at > utcnow())
                    .order_by(AISummary.created_at.desc())
                ).first()
                if row is None:
                    return None
                return {
                    "summary": row.summary,
                    "generatedAt": _isoformat(row.created_at),
                    "model": row.model or "unknown",
                    "cached": True,
                }
        except SQLAlchemyError:
            logger.exception("Failed to read stored summary for %s", code)
            return None

    def _persist(self, code: str, summary: str, model: str, tokens: int) -> None:
        try:
            with self.database.session_scope() as session:
                country = session.scalars(
                    select(Country).where(or_(Country.code == code, Country.code3 == code))
                ).first()
                if country is None:
                    return
                session.add(AISummary(
                    country_id=country.id,
                    summary=summary,
                    model=model,
                    tokens_used=tokens,
                    expires_at=utcnow() + SUMMARY_LIFETIME,
                ))
        except SQLAlchemyError:
            logger.exception("Failed to store summary for %s", code)
