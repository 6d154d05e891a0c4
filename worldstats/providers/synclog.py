from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db import Database, SyncLog
from ..utils import utcnow
from .base import ProviderResult

logger = logging.getLogger(__name__)


class SyncLogWriter:
    """Appends SyncLog rows; safe to share across provider threads."""

    def __init__(self, database: Optional[Database]) -> None:
        self.database = database
        self._lock = threading.Lock()

    def write(
        self,
        provider: str,
        status: str,
        records_count: Optional[int] = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        if self.database is None:
            return
        try:
            with self._lock, self.database.session_scope() as session:
                session.add(SyncLog(
                    provider=provider,
                    status=status,
                    records_count=records_count,
                    error_message=error_message,
                    duration_ms=duration_ms,
                    completed_at=None if status == "started" else utcnow(),
                    metadata_=metadata,
                ))
        except SQLAlchemyError:
            # the audit trail must not fail the sync it describes
            logger.exception("Failed to write sync log for %s", provider)


def run_logged_sync(
    name: str,
    log: SyncLogWriter,
    produce: Callable[[], list],
) -> ProviderResult:
    """Run a provider body with timing, audit rows and error capture."""
    started = time.perf_counter()
    log.write(name, "started")
    try:
        updates = produce()
    except Exception as e:  # noqa: BLE001
        duration_ms = int((time.perf_counter() - started) * 1000)
        message = str(e) or type(e).__name__
        log.write(name, "failed", 0, message, duration_ms)
        logger.exception("%s sync failed", name)
        return ProviderResult(provider=name, success=False, error=message)

    duration_ms = int((time.perf_counter() - started) * 1000)
    log.write(name, "success", len(updates), None, duration_ms)
    logger.info("%s sync completed: %d countries in %dms", name, len(updates), duration_ms)
    return ProviderResult(provider=name, success=True, data=updates)
