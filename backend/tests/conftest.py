"""
Test configuration and fixtures for the backend test suite.
"""
import pytest
from datetime import date, datetime, timedelta
from fastapi.testclient import TestClient

from backend.app.db.database import init_db, make_engine, make_session_factory
from backend.app.store import Store
from backend.main import app, get_store


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database with the schema created."""
    db_path = tmp_path / "test.db"
    engine = make_engine(f"sqlite:///{db_path}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return Store(make_session_factory(engine))


@pytest.fixture
def project(store):
    """A project opening on 2025-10-01 with well water."""
    return store.projects.create("Test Wash", use_well_water=True, open_date=date(2025, 10, 1))


@pytest.fixture
def make_task(store, project):
    """Factory creating a task N days long starting at a given date."""
    def _make(name="Task", start=datetime(2025, 9, 1), days=3, project_id=None, **fields):
        payload = {
            "name": name,
            "start_date": start,
            "end_date": start + timedelta(days=days - 1),
        }
        payload.update(fields)
        return store.tasks.create(project_id or project.id, payload)
    return _make


@pytest.fixture
def client(store):
    """Create a test client bound to the temporary store."""
    app.dependency_overrides[get_store] = lambda: store
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
