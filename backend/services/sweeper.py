"""Periodic removal of expired GeoCache and QueryCache entries."""
from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from domain.errors import CacheError
from repositories import GeoCache, QueryCache

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Runs both cache sweeps on a daemon thread every ``interval_seconds``."""

    def __init__(self, geo_cache: GeoCache, query_cache: QueryCache, interval_seconds: float = 3600.0):
        self.geo_cache = geo_cache
        self.query_cache = query_cache
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Dict[str, int]:
        cleaned = {
            "geo": self.geo_cache.sweep_expired(),
            "query": self.query_cache.sweep_expired(),
        }
        logger.info(
            "Cleaned up %d expired resources and %d expired result sets",
            cleaned["geo"],
            cleaned["query"],
        )
        return cleaned

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except CacheError:
                logger.exception("Cache sweep failed; will retry next interval")
