"""
Database engine, session factory and declarative base for the CRM tables.

SQLite by default for local dev, Postgres in production (DATABASE_URL). The
web requests and the scheduler thread each open their own session through
get_session().
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadflow.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Managed Postgres URLs use postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

# SQLite needs different engine kwargs than Postgres
if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


def import_models():
    """Import every model module so Base.metadata knows about all tables."""
    import importlib
    for name in ('user', 'lead', 'lead_activity', 'client_account', 'crm_settings'):
        importlib.import_module(f'leadflow.models.{name}')
