from .models import (
    AISummary,
    Base,
    CATEGORY_MODELS,
    Country,
    Crime,
    CrimeCategory,
    Demographics,
    Economy,
    Education,
    ExternalDataCache,
    HealthStats,
    Military,
    Politics,
    SyncLog,
)
from .session import Database

__all__ = [
    "AISummary",
    "Base",
    "CATEGORY_MODELS",
    "Country",
    "Crime",
    "CrimeCategory",
    "Database",
    "Demographics",
    "Economy",
    "Education",
    "ExternalDataCache",
    "HealthStats",
    "Military",
    "Politics",
    "SyncLog",
]
