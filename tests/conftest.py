"""Shared test fixtures."""
import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prospector.database import Base


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created.

    StaticPool keeps one connection so worker threads see the same database.
    """
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import prospector.models  # noqa: F401
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that services calling session.close()
    in their finally blocks don't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('prospector.database.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture
def session_factory(db_session):
    """Factory handed to SqlLedger / research services; always the shared test session."""
    return lambda: db_session


class FakeRedis:
    """Minimal in-memory Redis fake: string keys with NX support, counters."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        if ex is not None:
            self.expiry[key] = ex
        return True

    def incr(self, key):
        val = int(self.store.get(key, 0)) + 1
        self.store[key] = str(val)
        return val

    def delete(self, *keys):
        removed = 0
        for k in keys:
            if self.store.pop(k, None) is not None:
                removed += 1
            self.expiry.pop(k, None)
        return removed


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_prospect(db_session):
    """Factory fixture — persists a Prospect with sensible defaults."""
    from prospector.models.prospect import Prospect

    def _make(**overrides):
        defaults = dict(
            business_name='Mile High Dental',
            industry='healthcare',
            city='Denver',
            state='CO',
            website='https://milehighdental.example',
        )
        defaults.update(overrides)
        prospect = Prospect(**defaults)
        db_session.add(prospect)
        db_session.commit()
        return prospect
    return _make
