"""Relational schema: a Country root with seven 1:1 category records.

Category tables share the `country_id` unique FK convention so the sync
orchestrator can upsert any of them generically via `CATEGORY_MODELS`.
"""
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    pass


class Country(Base):
    __tablename__ = "countries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(2), unique=True, index=True)
    code3: Mapped[Optional[str]] = mapped_column(String(3), index=True)
    name: Mapped[str] = mapped_column(String(128))
    official_name: Mapped[Optional[str]] = mapped_column(String(256))
    region: Mapped[Optional[str]] = mapped_column(String(64))
    subregion: Mapped[Optional[str]] = mapped_column(String(64))
    capital: Mapped[Optional[str]] = mapped_column(String(128))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    population: Mapped[Optional[int]] = mapped_column(BigInteger)
    area: Mapped[Optional[float]] = mapped_column(Float)
    flag_url: Mapped[Optional[str]] = mapped_column(String(256))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    demographics: Mapped[Optional["Demographics"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    economy: Mapped[Optional["Economy"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    military: Mapped[Optional["Military"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    politics: Mapped[Optional["Politics"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    crime: Mapped[Optional["Crime"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    health_stats: Mapped[Optional["HealthStats"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    education: Mapped[Optional["Education"]] = relationship(back_populates="country", cascade="all, delete-orphan", uselist=False)
    ai_summaries: Mapped[List["AISummary"]] = relationship(back_populates="country", cascade="all, delete-orphan")


class _CountryChild:
    """Columns shared by every 1:1 category table."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    country_id: Mapped[str] = mapped_column(ForeignKey("countries.id", ondelete="CASCADE"), unique=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)


class Demographics(_CountryChild, Base):
    __tablename__ = "demographics"

    total_population: Mapped[Optional[int]] = mapped_column(BigInteger)
    male_population: Mapped[Optional[int]] = mapped_column(BigInteger)
    female_population: Mapped[Optional[int]] = mapped_column(BigInteger)
    male_female_ratio: Mapped[Optional[str]] = mapped_column(String(32))
    population_growth_rate: Mapped[Optional[float]] = mapped_column(Float)
    median_age: Mapped[Optional[float]] = mapped_column(Float)
    life_expectancy: Mapped[Optional[float]] = mapped_column(Float)
    life_expectancy_male: Mapped[Optional[float]] = mapped_column(Float)
    life_expectancy_female: Mapped[Optional[float]] = mapped_column(Float)
    birth_rate: Mapped[Optional[float]] = mapped_column(Float)
    death_rate: Mapped[Optional[float]] = mapped_column(Float)
    fertility_rate: Mapped[Optional[float]] = mapped_column(Float)
    infant_mortality_rate: Mapped[Optional[float]] = mapped_column(Float)
    urban_population_percent: Mapped[Optional[float]] = mapped_column(Float)
    child_population_percent: Mapped[Optional[float]] = mapped_column(Float)
    working_age_percent: Mapped[Optional[float]] = mapped_column(Float)
    elderly_percent: Mapped[Optional[float]] = mapped_column(Float)
    average_iq: Mapped[Optional[float]] = mapped_column(Float)

    country: Mapped[Country] = relationship(back_populates="demographics")


class Economy(_CountryChild, Base):
    __tablename__ = "economy"

    gdp: Mapped[Optional[float]] = mapped_column(Float)
    gdp_per_capita: Mapped[Optional[float]] = mapped_column(Float)
    gdp_growth_rate: Mapped[Optional[float]] = mapped_column(Float)
    gdp_ppp: Mapped[Optional[float]] = mapped_column(Float)
    gdp_growth_history: Mapped[Optional[Any]] = mapped_column(JSON)
    inflation: Mapped[Optional[float]] = mapped_column(Float)
    unemployment_rate: Mapped[Optional[float]] = mapped_column(Float)
    poverty_rate: Mapped[Optional[float]] = mapped_column(Float)
    gini_index: Mapped[Optional[float]] = mapped_column(Float)
    public_debt: Mapped[Optional[float]] = mapped_column(Float)
    external_debt: Mapped[Optional[float]] = mapped_column(Float)
    trade_balance: Mapped[Optional[float]] = mapped_column(Float)
    exports: Mapped[Optional[float]] = mapped_column(Float)
    imports: Mapped[Optional[float]] = mapped_column(Float)
    foreign_reserves: Mapped[Optional[float]] = mapped_column(Float)
    minimum_wage: Mapped[Optional[float]] = mapped_column(Float)
    average_income: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[Optional[str]] = mapped_column(String(64))
    currency_code: Mapped[Optional[str]] = mapped_column(String(8))

    country: Mapped[Country] = relationship(back_populates="economy")


class Military(_CountryChild, Base):
    __tablename__ = "military"

    global_rank: Mapped[Optional[int]] = mapped_column(Integer)
    total_military_personnel: Mapped[Optional[int]] = mapped_column(Integer)
    active_soldiers: Mapped[Optional[int]] = mapped_column(Integer)
    reserve_personnel: Mapped[Optional[int]] = mapped_column(Integer)
    paramilitary_forces: Mapped[Optional[int]] = mapped_column(Integer)
    defense_spending: Mapped[Optional[float]] = mapped_column(Float)
    defense_spending_percent: Mapped[Optional[float]] = mapped_column(Float)
    tanks: Mapped[Optional[int]] = mapped_column(Integer)
    armored_vehicles: Mapped[Optional[int]] = mapped_column(Integer)
    self_propelled_artillery: Mapped[Optional[int]] = mapped_column(Integer)
    towed_artillery: Mapped[Optional[int]] = mapped_column(Integer)
    rocket_projectors: Mapped[Optional[int]] = mapped_column(Integer)
    total_aircraft: Mapped[Optional[int]] = mapped_column(Integer)
    fighters: Mapped[Optional[int]] = mapped_column(Integer)
    helicopters: Mapped[Optional[int]] = mapped_column(Integer)
    attack_helicopters: Mapped[Optional[int]] = mapped_column(Integer)
    naval_vessels: Mapped[Optional[int]] = mapped_column(Integer)
    aircraft_carriers: Mapped[Optional[int]] = mapped_column(Integer)
    submarines: Mapped[Optional[int]] = mapped_column(Integer)
    destroyers: Mapped[Optional[int]] = mapped_column(Integer)
    frigates: Mapped[Optional[int]] = mapped_column(Integer)
    nuclear_weapons: Mapped[bool] = mapped_column(Boolean, default=False)
    is_nato_member: Mapped[bool] = mapped_column(Boolean, default=False)

    country: Mapped[Country] = relationship(back_populates="military")


class Politics(_CountryChild, Base):
    __tablename__ = "politics"

    government_type: Mapped[Optional[str]] = mapped_column(String(128))
    chief_of_state: Mapped[Optional[str]] = mapped_column(String(256))
    head_of_government: Mapped[Optional[str]] = mapped_column(String(256))
    political_system: Mapped[Optional[str]] = mapped_column(Text)
    legislative_branch: Mapped[Optional[str]] = mapped_column(Text)
    judicial_branch: Mapped[Optional[str]] = mapped_column(Text)
    constitution: Mapped[Optional[str]] = mapped_column(Text)
    suffrage: Mapped[Optional[str]] = mapped_column(String(128))
    independence_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    national_holiday: Mapped[Optional[str]] = mapped_column(String(256))
    is_eu: Mapped[bool] = mapped_column(Boolean, default=False)
    is_un: Mapped[bool] = mapped_column(Boolean, default=True)
    is_nato: Mapped[bool] = mapped_column(Boolean, default=False)
    is_g7: Mapped[bool] = mapped_column(Boolean, default=False)
    is_g20: Mapped[bool] = mapped_column(Boolean, default=False)
    is_brics: Mapped[bool] = mapped_column(Boolean, default=False)
    passport_ranking: Mapped[Optional[int]] = mapped_column(Integer)
    passport_visa_free: Mapped[Optional[int]] = mapped_column(Integer)
    democracy_index: Mapped[Optional[float]] = mapped_column(Float)
    corruption_index: Mapped[Optional[float]] = mapped_column(Float)
    press_freedom_index: Mapped[Optional[float]] = mapped_column(Float)
    human_development_index: Mapped[Optional[float]] = mapped_column(Float)

    country: Mapped[Country] = relationship(back_populates="politics")


class Crime(_CountryChild, Base):
    __tablename__ = "crime"

    crime_index: Mapped[Optional[float]] = mapped_column(Float)
    safety_index: Mapped[Optional[float]] = mapped_column(Float)
    total_crime_rate: Mapped[Optional[float]] = mapped_column(Float)
    homicide_rate: Mapped[Optional[float]] = mapped_column(Float)
    assault_rate: Mapped[Optional[float]] = mapped_column(Float)
    robbery_rate: Mapped[Optional[float]] = mapped_column(Float)
    burglary_rate: Mapped[Optional[float]] = mapped_column(Float)
    vehicle_theft_rate: Mapped[Optional[float]] = mapped_column(Float)
    kidnapping_rate: Mapped[Optional[float]] = mapped_column(Float)
    human_trafficking_risk: Mapped[Optional[str]] = mapped_column(String(32))
    drug_trafficking_risk: Mapped[Optional[str]] = mapped_column(String(32))
    terrorism_risk: Mapped[Optional[str]] = mapped_column(String(32))

    country: Mapped[Country] = relationship(back_populates="crime")
    categories: Mapped[List["CrimeCategory"]] = relationship(
        back_populates="crime", cascade="all, delete-orphan", order_by="CrimeCategory.position"
    )


class CrimeCategory(Base):
    __tablename__ = "crime_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    crime_id: Mapped[str] = mapped_column(ForeignKey("crime.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str] = mapped_column(String(128))
    percentage: Mapped[float] = mapped_column(Float)
    count: Mapped[Optional[int]] = mapped_column(Integer)

    crime: Mapped[Crime] = relationship(back_populates="categories")


class HealthStats(_CountryChild, Base):
    __tablename__ = "health_stats"

    healthcare_spending_percent: Mapped[Optional[float]] = mapped_column(Float)
    healthcare_spending_per_capita: Mapped[Optional[float]] = mapped_column(Float)
    hospital_beds_per_1000: Mapped[Optional[float]] = mapped_column(Float)
    physicians_per_1000: Mapped[Optional[float]] = mapped_column(Float)
    nurses_per_1000: Mapped[Optional[float]] = mapped_column(Float)
    obesity_rate: Mapped[Optional[float]] = mapped_column(Float)
    smoking_rate: Mapped[Optional[float]] = mapped_column(Float)
    smoking_rate_male: Mapped[Optional[float]] = mapped_column(Float)
    smoking_rate_female: Mapped[Optional[float]] = mapped_column(Float)
    alcohol_consumption: Mapped[Optional[float]] = mapped_column(Float)
    alcohol_dependency_rate: Mapped[Optional[float]] = mapped_column(Float)
    drug_use_rate: Mapped[Optional[float]] = mapped_column(Float)
    cannabis_use_rate: Mapped[Optional[float]] = mapped_column(Float)
    opioid_use_rate: Mapped[Optional[float]] = mapped_column(Float)
    cocaine_use_rate: Mapped[Optional[float]] = mapped_column(Float)
    hiv_prevalence: Mapped[Optional[float]] = mapped_column(Float)
    tuberculosis_incidence: Mapped[Optional[float]] = mapped_column(Float)
    malaria_incidence: Mapped[Optional[float]] = mapped_column(Float)
    diabetes_prevalence: Mapped[Optional[float]] = mapped_column(Float)
    mental_health_disorders: Mapped[Optional[float]] = mapped_column(Float)
    suicide_rate: Mapped[Optional[float]] = mapped_column(Float)

    country: Mapped[Country] = relationship(back_populates="health_stats")


class Education(_CountryChild, Base):
    __tablename__ = "education"

    literacy_rate: Mapped[Optional[float]] = mapped_column(Float)
    literacy_rate_male: Mapped[Optional[float]] = mapped_column(Float)
    literacy_rate_female: Mapped[Optional[float]] = mapped_column(Float)
    education_spending_percent: Mapped[Optional[float]] = mapped_column(Float)
    primary_enrollment_rate: Mapped[Optional[float]] = mapped_column(Float)
    secondary_enrollment_rate: Mapped[Optional[float]] = mapped_column(Float)
    tertiary_enrollment_rate: Mapped[Optional[float]] = mapped_column(Float)
    average_schooling_years: Mapped[Optional[float]] = mapped_column(Float)
    student_teacher_ratio: Mapped[Optional[float]] = mapped_column(Float)
    universities_in_top500: Mapped[Optional[int]] = mapped_column(Integer)

    country: Mapped[Country] = relationship(back_populates="education")


class SyncLog(Base):
    """Append-only audit row per provider run."""

    __tablename__ = "sync_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(16))
    records_count: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    started_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True))
    metadata_: Mapped[Optional[Any]] = mapped_column("metadata", JSON)


class ExternalDataCache(Base):
    """Disk-backed cache of raw provider payloads."""

    __tablename__ = "external_data_cache"
    __table_args__ = (UniqueConstraint("provider", "endpoint", name="uq_external_cache_provider_endpoint"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider: Mapped[str] = mapped_column(String(32))
    endpoint: Mapped[str] = mapped_column(String(512))
    data: Mapped[Any] = mapped_column(JSON)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)


class AISummary(Base):
    __tablename__ = "ai_summaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    country_id: Mapped[str] = mapped_column(ForeignKey("countries.id", ondelete="CASCADE"), index=True)
    summary: Mapped[str] = mapped_column(Text)
    model: Mapped[Optional[str]] = mapped_column(String(64))
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))

    country: Mapped[Country] = relationship(back_populates="ai_summaries")


# category name (as used in CountryDataUpdate) -> (model, Country relationship attribute)
CATEGORY_MODELS = {
    "demographics": (Demographics, "demographics"),
    "economy": (Economy, "economy"),
    "military": (Military, "military"),
    "politics": (Politics, "politics"),
    "crime": (Crime, "crime"),
    "health": (HealthStats, "health_stats"),
    "education": (Education, "education"),
}
