import os

# Keep the module-level engine off disk; tests bind their own sessions
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.schemas.vehicle import VehicleCreate
from app.services import vehicle_service


def _make_session_factory(url: str = "sqlite+pysqlite:///:memory:", **engine_kwargs):
    engine = create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False},
        **engine_kwargs,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def session_factory():
    return _make_session_factory(poolclass=StaticPool)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    from app.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_vehicle(db):
    def _make(**overrides):
        data = {"name": "Test Vehicle", "capacity_kg": 1000, "tyres": 4}
        data.update(overrides)
        return vehicle_service.create_vehicle(db, VehicleCreate(**data))

    return _make


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a real SQLite file, one connection per session."""
    return _make_session_factory(f"sqlite+pysqlite:///{tmp_path / 'fleetlink_test.db'}")
