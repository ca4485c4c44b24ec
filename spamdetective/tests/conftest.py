import os

# Keep the app's own engine off disk during tests
os.environ.setdefault("SPAMDETECTIVE_DATABASE_URL", "sqlite://")
os.environ.setdefault("SPAMDETECTIVE_ENVIRONMENT", "test")
# One in-memory connection is shared by every session
os.environ.setdefault("SPAMDETECTIVE_BATCH_WORKERS", "1")

import itertools
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spamdetective.database import Base
from spamdetective.models import domain, setting  # noqa: F401  (register tables)
from spamdetective.models.account import Account
from spamdetective.models.user import User
from spamdetective.services.account_repository import AccountRepository
from spamdetective.services.cache_service import AnalysisCache, TTLCache, cache_store
from spamdetective.utils.logging_config import metrics


@pytest.fixture(autouse=True)
def clean_global_state():
    """The process-wide cache and metrics must not leak between tests."""
    cache_store.clear()
    metrics.reset()
    yield
    cache_store.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repository(session_factory):
    return AccountRepository(session_factory)


@pytest.fixture
def analysis_cache():
    return AnalysisCache(TTLCache(max_size=100, default_ttl=3600))


@pytest.fixture
def make_user(session_factory):
    """
    Insert a user row and return its Account snapshot.

    Defaults describe a clean account that scores 0: a real-looking name,
    a unique domain per user, registered two days ago.
    """
    counter = itertools.count(1)

    def _make(**fields) -> Account:
        n = next(counter)
        values = {
            "user_login": "jonathan.smith",
            "user_email": f"jonathan.smith@mail{n}.example.org",
            "display_name": "Jonathan Smith",
            "first_name": "Jonathan",
            "last_name": "Smith",
            "user_registered": datetime.now() - timedelta(days=2, hours=2 * n),
            "roles": ["subscriber"],
            "post_count": 0,
            "comment_count": 0,
            "order_count": 0,
            "registration_ip": None,
        }
        values.update(fields)
        with session_factory() as session:
            row = User(**values)
            session.add(row)
            session.commit()
            session.refresh(row)
            return Account.from_row(row)

    return _make


@pytest.fixture
def client(session_factory):
    """FastAPI test client bound to the in-memory database."""
    from spamdetective.api.dependencies import get_session_factory
    from spamdetective.api.server import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
