"""Shared test fixtures."""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadflow.database import Base, import_models


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import_models()
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

    We disable close() so that route handlers calling session.close()
    in their finally blocks don't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('leadflow.database.get_session', return_value=db_session), \
            patch('leadflow.routes.crm.get_session', return_value=db_session), \
            patch('leadflow.automation.scheduler.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture
def mock_redis():
    """Mock Redis client backed by a dict."""
    store = {}

    class _FakeRedis:
        def get(self, key):
            return store.get(key)

        def set(self, key, value, ex=None):
            store[key] = value
            return True

    fake = _FakeRedis()
    with patch('leadflow.extensions.redis_client', fake):
        yield fake


@pytest.fixture
def app():
    """Flask test app."""
    from leadflow import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


# ── Domain factories ─────────────────────────────────────────────────────────

@pytest.fixture
def crm_settings(db_session):
    """Factory — the singleton settings row with overrides applied."""
    from leadflow.models.crm_settings import CrmSettings

    def _make(**overrides):
        settings = CrmSettings.get_settings(db_session)
        for key, value in overrides.items():
            setattr(settings, key, value)
        db_session.commit()
        return settings
    return _make


@pytest.fixture
def make_user(db_session):
    """Factory — persisted User; created_at increases with each call."""
    from leadflow.models.user import User
    counter = {'n': 0}
    base = datetime(2026, 1, 1, 9, 0)

    def _make(**overrides):
        counter['n'] += 1
        n = counter['n']
        defaults = dict(
            name=f'Admin {n}',
            email=f'admin{n}@example.com',
            role='ADMIN',
            is_active=True,
            created_at=base + timedelta(minutes=n),
        )
        defaults.update(overrides)
        user = User(**defaults)
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def make_lead(db_session):
    """Factory — persisted Lead written directly, without the rule engine."""
    from leadflow.models.lead import Lead

    def _make(**overrides):
        defaults = dict(company='Acme Corp', status='LEAD', priority='NORMALE')
        defaults.update(overrides)
        lead = Lead(**defaults)
        db_session.add(lead)
        db_session.commit()
        return lead
    return _make


class FakeDispatch:
    """Records notifications instead of sending them."""

    def __init__(self, result=None):
        self.calls = []
        self.result = result or {'sent': True}

    def __call__(self, kind, payload):
        self.calls.append((kind, payload))
        return dict(self.result)

    def kinds(self):
        return [kind for kind, _ in self.calls]


@pytest.fixture
def dispatch():
    return FakeDispatch()


@pytest.fixture
def failing_dispatch():
    return FakeDispatch({'sent': False, 'error': 'SendGrid returned HTTP 500'})
