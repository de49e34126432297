import os

# in-memory SQLite unless a real database is supplied
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from peereval.main import app
from peereval.db.base import Base
from peereval.db.session import get_db
from peereval.core.config import settings


def _make_engine():
    if settings.DATABASE_URL.startswith("sqlite"):
        # one shared connection so every session sees the same in-memory DB
        return create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(settings.DATABASE_URL, pool_pre_ping=True)


engine = _make_engine()
TestingSessionLocal = sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
)


@pytest.fixture()
def db_session():
    """
    Fresh schema per test. Application code commits for real, so isolation
    comes from dropping and recreating every table.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def override_get_db(db_session):
    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()

