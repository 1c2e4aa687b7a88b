from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timegrid import models  # noqa: F401
from timegrid.database import Base, enable_sqlite_foreign_keys, get_db
from timegrid.gateway import Gateway
from timegrid.main import app

DAY = date(2026, 10, 18)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
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
def gateway(db):
    return Gateway(db)


@pytest.fixture
def categories(gateway):
    return {
        "Work": gateway.create_category("Work", "#3B82F6"),
        "Study": gateway.create_category("Study", "#10B981"),
    }


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.grids.clear()
    yield TestClient(app)
    for grid in app.state.grids.values():
        grid.teardown()
    app.state.grids.clear()
    app.dependency_overrides.clear()
