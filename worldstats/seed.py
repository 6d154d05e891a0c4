import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from .db import Country, Database
from .providers.base import CATEGORIES, CountryDataUpdate
from .services.sync import apply_update

logger = logging.getLogger(__name__)

SEED_FILE = Path(__file__).resolve().parent / "data" / "seed_countries.json"

COUNTRY_FIELDS = (
    "code3",
    "name",
    "official_name",
    "region",
    "subregion",
    "capital",
    "population",
    "area",
    "flag_url",
    "latitude",
    "longitude",
)


def load_seed(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    with open(path or SEED_FILE, encoding="utf-8") as fh:
        return json.load(fh)


def seed_database(database: Database, path: Optional[Path] = None) -> int:
    """Upsert every seed country by alpha-2 code; returns the number written."""
    database.create_all()
    entries = load_seed(path)
    for entry in entries:
        code = entry["code"].upper()
        with database.session_scope() as session:
            country = session.scalars(select(Country).where(Country.code == code)).first()
            if country is None:
                country = Country(code=code)
                session.add(country)
            for field in COUNTRY_FIELDS:
                if field in entry:
                    setattr(country, field, entry[field])
            session.flush()

            update = CountryDataUpdate(
                country_code=code,
                **{c: dict(entry[c]) for c in CATEGORIES if entry.get(c)},
            )
            apply_update(session, code, update)
        logger.debug("Seeded %s (%s)", entry.get("name"), code)

    logger.info("Seeded %d countries", len(entries))
    return len(entries)
