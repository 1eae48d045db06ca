import threading
from unittest.mock import MagicMock

from domain.errors import CacheError
from domain.models import Coordinate, Resource, ResourceType
from services.sweeper import CacheSweeper

DAY_MS = 24 * 3600 * 1000


def _resource(name):
    return Resource(
        type=ResourceType.SHELTER,
        name=name,
        color="#3b82f6",
        icon="🏠",
        coordinate=Coordinate(51.5, -0.12),
        address=f"{name} Road, London",
        confidence=0.5,
    )


def test_run_once_sweeps_both_caches(geo_cache, query_cache, clock):
    geo_cache.upsert([_resource("A"), _resource("B")])
    query_cache.put(51.5, -0.12, 14, ResourceType.SHELTER, [_resource("A")])

    clock.advance(2 * DAY_MS)
    assert CacheSweeper(geo_cache, query_cache).run_once() == {"geo": 0, "query": 1}

    clock.advance(6 * DAY_MS)
    assert CacheSweeper(geo_cache, query_cache).run_once() == {"geo": 2, "query": 0}


def test_background_thread_keeps_running_after_a_failure():
    geo_cache = MagicMock()
    query_cache = MagicMock()
    calls = threading.Event()
    attempts = []

    def sweep():
        attempts.append(1)
        if len(attempts) == 1:
            raise CacheError("database is locked")
        calls.set()
        return 0

    geo_cache.sweep_expired.side_effect = sweep
    query_cache.sweep_expired.return_value = 0
    sweeper = CacheSweeper(geo_cache, query_cache, interval_seconds=0.01)

    sweeper.start()
    try:
        assert calls.wait(2.0)
    finally:
        sweeper.stop()

    assert len(attempts) >= 2
    assert sweeper._thread is None


def test_start_is_idempotent():
    sweeper = CacheSweeper(MagicMock(), MagicMock(), interval_seconds=60)
    sweeper.start()
    try:
        thread = sweeper._thread
        sweeper.start()
        assert sweeper._thread is thread
        assert thread.daemon
    finally:
        sweeper.stop()
