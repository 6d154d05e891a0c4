from typing import List, Optional

from ..config import Settings, get_settings
from ..db import Database
from .base import CATEGORIES, CountryDataUpdate, Provider, ProviderResult
from .catalog import CatalogProvider
from .sources import (
    cia_provider,
    gfp_provider,
    henley_provider,
    numbeo_provider,
    oecd_provider,
    un_provider,
    who_provider,
)
from .synclog import SyncLogWriter
from .worldbank import WorldBankProvider

# Declaration order; the orchestrator folds results in this order
PROVIDER_ORDER = ("worldbank", "un", "oecd", "cia", "gfp", "henley", "who", "numbeo")


def default_providers(database: Optional[Database] = None, settings: Optional[Settings] = None) -> List[Provider]:
    """All eight providers sharing one audit-log writer, in declaration order."""
    settings = settings or get_settings()
    log = SyncLogWriter(database)
    return [
        WorldBankProvider(settings=settings, database=database, log=log),
        un_provider(log),
        oecd_provider(log),
        cia_provider(log),
        gfp_provider(log),
        henley_provider(log),
        who_provider(log),
        numbeo_provider(log),
    ]


__all__ = [
    "CATEGORIES",
    "CatalogProvider",
    "CountryDataUpdate",
    "PROVIDER_ORDER",
    "Provider",
    "ProviderResult",
    "SyncLogWriter",
    "WorldBankProvider",
    "default_providers",
]
