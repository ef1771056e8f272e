import os

# The app module builds its engine at import time; keep it off PostgreSQL.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timetable_api.api.deps import get_db
from timetable_api.core.security import create_access_token
from timetable_api.db.base import Base
from timetable_api.main import app
from timetable_api.services.proposal_cache import clear_proposal_cache
import timetable_api.models  # noqa: F401


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    clear_proposal_cache()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_proposal_cache()


def _headers(subject: str, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, role=role)}"}


@pytest.fixture()
def scheduler_headers():
    return _headers("scheduler-1", "scheduler")


@pytest.fixture()
def viewer_headers():
    return _headers("viewer-1", "student")
