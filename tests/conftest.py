"""Pytest configuration and shared fixtures."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional
from uuid import UUID

# Point the application at a throwaway database before anything imports it
_TEST_DIR = tempfile.mkdtemp(prefix="custody-tests-")
_TEST_DB_URL = f"sqlite:///{Path(_TEST_DIR) / 'custody_test.db'}"
os.environ["CUSTODY_DATABASE_URL"] = _TEST_DB_URL
os.environ["CUSTODY_LOG_TO_FILE"] = "0"
os.environ.pop("CUSTODY_CONFIG_FILE", None)

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from custody_tracker.repositories.interfaces import RepositoryContainer
from custody_tracker.repositories.memory_impl import (
    MemoryAssetRepository,
    MemoryLocationRepository,
    MemoryMovementRepository,
    MemoryUserRepository,
)


def _project_root() -> Path:
    """Return the repository root path."""
    return Path(__file__).resolve().parents[1]


def _run_alembic_migrations(db_url: str) -> None:
    """Run Alembic migrations programmatically for the test database."""
    root = _project_root()
    alembic_cfg = Config(str(root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session")
def setup_test_env() -> Generator[str, None, None]:
    """Migrate the test database once per session."""
    _run_alembic_migrations(_TEST_DB_URL)
    yield _TEST_DB_URL
    shutil.rmtree(_TEST_DIR, ignore_errors=True)


@pytest.fixture(scope="session")
def test_engine(setup_test_env):
    """Engine with the same SQLite pragmas the application uses."""
    from custody_tracker.db.database import create_database_engine

    engine = create_database_engine(setup_test_env)
    yield engine
    engine.dispose()


@pytest.fixture
def test_db(test_engine) -> Generator[sessionmaker, None, None]:
    """Session factory over the migrated database; tables are emptied afterwards."""
    from custody_tracker.db.models import (
        Asset,
        AssetMovement,
        AssetMovementAnnotation,
        Location,
        User,
    )

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

    yield TestingSessionLocal

    with test_engine.begin() as conn:
        for model in (AssetMovementAnnotation, AssetMovement, Asset, User, Location):
            conn.execute(delete(model))


@pytest.fixture
def db_session(test_db) -> Generator[Session, None, None]:
    """A database session closed after the test."""
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def client(test_db) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override."""
    from custody_tracker.db.database import get_db
    from custody_tracker.main import app

    def override_get_db():
        # Use a fresh session per request in tests
        db = test_db()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# Reference data factories


@pytest.fixture
def make_location(db_session) -> Callable:
    from custody_tracker.db.models import Location

    counter = {"n": 0}

    def _make(name: Optional[str] = None, code: Optional[str] = None) -> Location:
        counter["n"] += 1
        location = Location(
            code=code or f"LOC-{counter['n']:03d}",
            name=name or f"Location {counter['n']}",
        )
        db_session.add(location)
        db_session.commit()
        db_session.refresh(location)
        return location

    return _make


@pytest.fixture
def make_user(db_session) -> Callable:
    from custody_tracker.db.models import User

    def _make(name: str = "Test User") -> User:
        user = User(name=name)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_asset(db_session) -> Callable:
    from custody_tracker.db.models import Asset

    counter = {"n": 0}

    def _make(
        asset_tag: Optional[str] = None,
        serial_number: Optional[str] = None,
        location_id: Optional[UUID] = None,
        custodian_id: Optional[UUID] = None,
    ) -> Asset:
        counter["n"] += 1
        asset = Asset(
            asset_tag=asset_tag or f"TAG-{counter['n']:04d}",
            serial_number=serial_number,
            name=f"Asset {counter['n']}",
            location_id=location_id,
            custodian_id=custodian_id,
        )
        db_session.add(asset)
        db_session.commit()
        db_session.refresh(asset)
        return asset

    return _make


# In-memory repositories


@pytest.fixture
def memory_repos() -> RepositoryContainer:
    """Repository container backed by the in-memory implementations."""
    assets = MemoryAssetRepository()
    return RepositoryContainer(
        asset_repo=assets,
        location_repo=MemoryLocationRepository(),
        user_repo=MemoryUserRepository(),
        movement_repo=MemoryMovementRepository(assets),
    )
