from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import CacheFacade
from ..db import CATEGORY_MODELS, Country, CrimeCategory, Database
from ..errors import DatabaseError
from ..providers.base import CATEGORIES, CountryDataUpdate, Provider, ProviderResult
from ..utils import ALPHA3_TO_ALPHA2
from .merge import UpdateAccumulator

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def broadcast(self, message: Dict[str, Any]) -> int: ...

    def broadcast_to_subscribed(self, codes: Sequence[str], message: Dict[str, Any]) -> int: ...


class SyncState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class ProviderOutcome:
    provider: str
    success: bool
    count: int = 0
    error: Optional[str] = None


@dataclass
class SyncReport:
    success: bool
    results: List[ProviderOutcome] = field(default_factory=list)
    duration_ms: int = 0
    updated: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _columns(model) -> set:
    return set(inspect(model).column_attrs.keys())


def apply_update(session: Session, code: str, update: CountryDataUpdate) -> Optional[Country]:
    """Upsert each non-empty category of `update` onto the matching country."""
    alpha2 = ALPHA3_TO_ALPHA2.get(code, code)
    country = session.scalars(
        select(Country).where(or_(Country.code == alpha2, Country.code3 == code))
    ).first()
    if country is None:
        logger.warning("Country not found for code: %s", code)
        return None

    for category in CATEGORIES:
        values = dict(update.category(category))
        if not values:
            continue
        model, attr = CATEGORY_MODELS[category]
        crime_categories = values.pop("categories", None) if category == "crime" else None
        allowed = _columns(model)
        fields = {k: v for k, v in values.items() if k in allowed}
        if len(fields) != len(values):
            logger.debug("Ignoring unknown %s fields for %s: %s", category, code, sorted(set(values) - set(fields)))

        record = getattr(country, attr)
        if record is None:
            record = model(**fields)
            setattr(country, attr, record)
        else:
            for k, v in fields.items():
                setattr(record, k, v)

        if crime_categories:
            # delete the previous breakdown before inserting the new one
            record.categories.clear()
            session.flush()
            record.categories.extend(
                CrimeCategory(
                    position=i,
                    category=c["category"],
                    percentage=c["percentage"],
                    count=c.get("count"),
                )
                for i, c in enumerate(crime_categories)
            )
    session.flush()
    logger.debug("Updated country: %s", code)
    return country


class SyncService:
    """Runs every provider, merges their output per country and persists it.

    At most one sync runs per instance; a second caller gets an unsuccessful
    empty report immediately.
    """

    def __init__(
        self,
        providers: List[Provider],
        database: Database,
        cache: CacheFacade,
        broadcaster: Optional[Notifier] = None,
    ) -> None:
        self.providers = list(providers)
        self.database = database
        self.cache = cache
        self.broadcaster = broadcaster
        self._state = SyncState.IDLE
        self._lock = threading.Lock()
        self.last_report: Optional[SyncReport] = None

    # ---- Guard ----
    @property
    def state(self) -> SyncState:
        return self._state

    def is_running(self) -> bool:
        return self._state is SyncState.RUNNING

    def _acquire(self) -> bool:
        with self._lock:
            if self._state is SyncState.RUNNING:
                return False
            self._state = SyncState.RUNNING
            return True

    def _release(self) -> None:
        with self._lock:
            self._state = SyncState.IDLE

    # ---- Orchestration ----
    def sync_all(self, codes: Optional[Sequence[str]] = None) -> SyncReport:
        if not self._acquire():
            logger.warning("Sync already in progress, skipping")
            return SyncReport(success=False)
        return self._sync_locked(codes)

    def start_background(self, codes: Optional[Sequence[str]] = None) -> bool:
        """Take the guard now and run the sync on a daemon thread.

        Returns False without starting anything when a sync is already running.
        """
        if not self._acquire():
            return False
        thread = threading.Thread(target=self._sync_locked, args=(codes,), name="sync-all", daemon=True)
        thread.start()
        return True

    def _sync_locked(self, codes: Optional[Sequence[str]]) -> SyncReport:
        started = time.perf_counter()
        results: List[ProviderOutcome] = []
        try:
            logger.info("Starting full data synchronization with %d providers", len(self.providers))
            settled = self._run_providers(codes)

            accumulator = UpdateAccumulator()
            for result in settled:
                if result.success:
                    results.append(ProviderOutcome(result.provider, True, len(result.data)))
                    accumulator.add(result.provider, result.data)
                else:
                    logger.warning("Provider %s failed: %s", result.provider, result.error)
                    results.append(ProviderOutcome(result.provider, False, 0, result.error))

            updated = self._apply_all(accumulator)
            self.cache.invalidate_all()
            self._notify(results, updated)

            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.info("Full sync completed in %dms (%d countries updated)", duration_ms, len(updated))
            report = SyncReport(True, results, duration_ms, updated)
        except Exception:  # noqa: BLE001
            logger.exception("Full sync failed")
            report = SyncReport(False, results, int((time.perf_counter() - started) * 1000))
        finally:
            self._release()
        self.last_report = report
        return report

    def _run_providers(self, codes: Optional[Sequence[str]]) -> List[ProviderResult]:
        """Run providers concurrently; results come back in provider order."""
        settled: List[Optional[ProviderResult]] = [None] * len(self.providers)
        if not self.providers:
            return []
        with ThreadPoolExecutor(max_workers=len(self.providers), thread_name_prefix="provider") as pool:
            futures = {pool.submit(p.sync, codes): i for i, p in enumerate(self.providers)}
            for future in as_completed(futures):
                i = futures[future]
                name = getattr(self.providers[i], "name", f"provider-{i}")
                try:
                    settled[i] = future.result()
                except Exception as e:  # noqa: BLE001
                    logger.exception("Provider %s raised", name)
                    settled[i] = ProviderResult(provider=name, success=False, error=str(e) or type(e).__name__)
        return settled  # type: ignore[return-value]

    def _apply_all(self, accumulator: UpdateAccumulator) -> List[str]:
        updated: List[str] = []
        for code, update in accumulator.items():
            if update.is_empty():
                continue
            try:
                with self.database.session_scope() as session:
                    country = apply_update(session, code, update)
                    if country is not None:
                        updated.append(country.code)
            except SQLAlchemyError as e:
                raise DatabaseError(f"failed to apply update for {code}: {e}") from e
        return updated

    def _notify(self, results: List[ProviderOutcome], updated: List[str]) -> None:
        if self.broadcaster is None:
            return
        ok = [r for r in results if r.success]
        self.broadcaster.broadcast({
            "type": "data-updated",
            "message": "Country data has been refreshed",
            "providers": [r.provider for r in ok],
            "counts": {r.provider: r.count for r in ok},
        })
        if updated:
            self.broadcaster.broadcast_to_subscribed(updated, {
                "type": "country-updated",
                "countries": updated,
            })
