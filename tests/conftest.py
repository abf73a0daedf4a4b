import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from differ.config import Settings
from differ.database import Database
from differ.diff import Package
from differ.main import create_app
from differ.storage import Storage

from fakes import AUTH


@pytest.fixture
def test_path():
    test_path = tempfile.mkdtemp()
    yield Path(test_path)
    shutil.rmtree(test_path)


@pytest.fixture
def settings(test_path):
    return Settings(
        database_path=test_path / "test.db",
        redis_url=None,
        cache_ttl=None,
        cache_max_entries=16,
    )


@pytest.fixture
def db(settings):
    db = Database(settings.database_path)
    yield db
    db.close()


@pytest.fixture
def storage(db):
    return Storage(db)


@pytest.fixture
def seeded_storage(storage):
    """Storage with image "vanilla" and releases r1 -> r2"""
    storage.add_image("vanilla")
    storage.add_release(
        "vanilla",
        "r1",
        [
            Package(name="a", version="1.0"),
            Package(name="b", version="2.0"),
            Package(name="c", version="3.0"),
        ],
        date=datetime(2023, 1, 1, tzinfo=UTC),
    )
    storage.add_release(
        "vanilla",
        "r2",
        [
            Package(name="a", version="1.0"),
            Package(name="b", version="3.0"),
            Package(name="d", version="1.0"),
        ],
        date=datetime(2023, 2, 1, tzinfo=UTC),
    )
    return storage


@pytest.fixture
def app(settings, seeded_storage):
    """Read-only app, no authorizations exist"""
    yield create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def writable_client(settings, storage):
    storage.add_authorization(*AUTH)
    with TestClient(create_app(settings)) as client:
        yield client
