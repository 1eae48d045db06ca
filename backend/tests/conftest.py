import sys
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FakeClock:
    """Millisecond clock that only moves when a test advances it."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from db import init_db

    engine = create_engine(
        f"sqlite:///{tmp_path / 'resources.sqlite'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def geo_cache(session_factory, clock):
    from repositories import GeoCache

    return GeoCache(session_factory=session_factory, clock=clock)


@pytest.fixture
def query_cache(session_factory, clock):
    from repositories import QueryCache

    return QueryCache(session_factory=session_factory, clock=clock)
