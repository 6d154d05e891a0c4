"""Per-category merge of provider updates.

Rules, applied field by field within each category:

* an incoming value overwrites the accumulated one; absent fields are kept;
* a field listed in `FIELD_OWNERS` that its owner has already written can
  only be overwritten by that owner;
* ``crime.categories`` is a list and is replaced wholesale.

Callers fold provider results in a fixed provider order, which makes the
outcome deterministic.
"""
from __future__ import annotations

import copy
from typing import Dict, Iterable, Optional, Tuple

from ..providers.base import CATEGORIES, CountryDataUpdate

FIELD_OWNERS: Dict[Tuple[str, str], str] = {
    ("politics", "is_nato"): "gfp",
    ("economy", "currency"): "cia",
    ("economy", "currency_code"): "cia",
    ("demographics", "total_population"): "un",
}

Writers = Dict[Tuple[str, str], str]


def merge_update(
    acc: CountryDataUpdate,
    incoming: CountryDataUpdate,
    source: str,
    writers: Optional[Writers] = None,
) -> CountryDataUpdate:
    """Merge `incoming` from provider `source` into `acc` in place and return it.

    `writers` records which provider last wrote each (category, field) and is
    required for ownership to hold across several calls.
    """
    writers = {} if writers is None else writers
    for category in CATEGORIES:
        target = acc.category(category)
        for field, value in incoming.category(category).items():
            key = (category, field)
            owner = FIELD_OWNERS.get(key)
            if owner is not None and source != owner and writers.get(key) == owner:
                continue
            target[field] = copy.deepcopy(value) if isinstance(value, (list, dict)) else value
            writers[key] = source
    return acc


class UpdateAccumulator:
    """Folds provider results into one update per country code."""

    def __init__(self) -> None:
        self._updates: Dict[str, CountryDataUpdate] = {}
        self._writers: Dict[str, Writers] = {}

    def add(self, source: str, updates: Iterable[CountryDataUpdate]) -> None:
        for update in updates:
            code = update.country_code.upper()
            acc = self._updates.setdefault(code, CountryDataUpdate(country_code=code))
            merge_update(acc, update, source, self._writers.setdefault(code, {}))

    def writer(self, code: str, category: str, field: str) -> Optional[str]:
        return self._writers.get(code.upper(), {}).get((category, field))

    def get(self, code: str) -> Optional[CountryDataUpdate]:
        return self._updates.get(code.upper())

    def items(self):
        return self._updates.items()

    def __len__(self) -> int:
        return len(self._updates)
