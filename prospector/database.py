"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from prospector.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Hosted Postgres URLs often use postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


def init_db(bind=None):
    """Create all tables (local dev / tests; production uses Alembic)."""
    import prospector.models  # noqa: F401  registers mappers
    Base.metadata.create_all(bind or engine)
