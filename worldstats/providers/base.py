from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

CATEGORIES = ("demographics", "economy", "military", "politics", "crime", "health", "education")


@dataclass
class CountryDataUpdate:
    """Partial per-country update; each category is a dict of column -> value.

    Crime may carry a ``categories`` list of ``{category, percentage, count?}``.
    """

    country_code: str
    demographics: Dict[str, Any] = field(default_factory=dict)
    economy: Dict[str, Any] = field(default_factory=dict)
    military: Dict[str, Any] = field(default_factory=dict)
    politics: Dict[str, Any] = field(default_factory=dict)
    crime: Dict[str, Any] = field(default_factory=dict)
    health: Dict[str, Any] = field(default_factory=dict)
    education: Dict[str, Any] = field(default_factory=dict)

    def category(self, name: str) -> Dict[str, Any]:
        return getattr(self, name)

    def is_empty(self) -> bool:
        return not any(self.category(c) for c in CATEGORIES)


@dataclass
class ProviderResult:
    provider: str
    success: bool
    data: List[CountryDataUpdate] = field(default_factory=list)
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    error: Optional[str] = None


class Provider(Protocol):
    """A named source of per-country updates for one or more categories."""

    name: str

    def sync(self, codes: Optional[Sequence[str]] = None) -> ProviderResult: ...
