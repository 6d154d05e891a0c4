from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .base import CountryDataUpdate, ProviderResult
from .synclog import SyncLogWriter, run_logged_sync

logger = logging.getLogger(__name__)

CATALOG_DIR = Path(__file__).resolve().parent / "catalogs"

RowMapper = Callable[[Dict[str, Any]], CountryDataUpdate]


def load_catalog(filename: str, catalog_dir: Optional[Path] = None) -> pd.DataFrame:
    """Read a catalog CSV keyed by ISO alpha-3 `country_code`."""
    path = (catalog_dir or CATALOG_DIR) / filename
    df = pd.read_csv(
        path,
        dtype={"country_code": str},
        true_values=["true", "True"],
        false_values=["false", "False"],
    )
    df["country_code"] = df["country_code"].str.strip().str.upper()
    return df


def records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN mapped to None."""
    return df.astype(object).replace({np.nan: None}).to_dict(orient="records")


def present(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop missing values so a partial update never blanks a column."""
    return {k: v for k, v in values.items() if v is not None}


class CatalogProvider:
    """Provider backed by a fixed catalog and a row mapper.

    The catalog is read once; `sync` filters it to the requested codes and
    reshapes each row into a CountryDataUpdate.
    """

    def __init__(
        self,
        name: str,
        filename: str,
        mapper: RowMapper,
        log: Optional[SyncLogWriter] = None,
        catalog_dir: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.filename = filename
        self.mapper = mapper
        self.log = log or SyncLogWriter(None)
        self.catalog_dir = catalog_dir
        self._frame: Optional[pd.DataFrame] = None

    def frame(self) -> pd.DataFrame:
        if self._frame is None:
            self._frame = load_catalog(self.filename, self.catalog_dir)
        return self._frame

    def _updates(self, codes: Optional[Sequence[str]]) -> List[CountryDataUpdate]:
        df = self.frame()
        if codes is not None:
            df = df[df["country_code"].isin([c.upper() for c in codes])]
        logger.info("%s sync starting for %d countries", self.name, len(df))
        return [self.mapper(row) for row in records(df)]

    def sync(self, codes: Optional[Sequence[str]] = None) -> ProviderResult:
        return run_logged_sync(self.name, self.log, lambda: self._updates(codes))
