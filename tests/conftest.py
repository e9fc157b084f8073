"""
Pytest fixtures for testing.

Provides:
- In-memory engine with a recording event dispatcher
- SQLite session and a database-backed engine
- Manager built from explicit settings
- Simple user/team objects to use as contexts
"""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from flagkit.backends.database import (
    DatabaseDriver,
    DatabaseGroupMembershipRepository,
    DatabaseGroupRepository,
)
from flagkit.backends.memory import MemoryDriver
from flagkit.config import FeatureSettings
from flagkit.engine import ResolutionEngine
from flagkit.events import EventDispatcher
from flagkit.manager import FeatureManager
from flagkit.models import Base

from .factories import User


TEST_DATABASE_URL = "sqlite:///:memory:"


# ============ Context objects ============


@pytest.fixture
def user() -> User:
    return User(id=1)


@pytest.fixture
def other_user() -> User:
    return User(id=2, name="Other User")


# ============ Engine ============


@pytest.fixture
def events() -> EventDispatcher:
    """Dispatcher that keeps every event."""
    dispatcher = EventDispatcher()
    dispatcher.record()
    return dispatcher


@pytest.fixture
def engine(events: EventDispatcher) -> ResolutionEngine:
    """Engine over in-memory storage."""
    return ResolutionEngine(MemoryDriver(events), events=events, name="array")


# ============ Database ============


@pytest.fixture
def db_engine():
    """Create test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(db_engine) -> Generator[Session, None, None]:
    """
    Create database session with automatic rollback.

    Each test gets a fresh transaction that's rolled back after.
    """
    session_factory = sessionmaker(bind=db_engine, expire_on_commit=False)

    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def db_features(db: Session, events: EventDispatcher) -> ResolutionEngine:
    """Engine over database storage."""
    return ResolutionEngine(
        DatabaseDriver(db, events),
        DatabaseGroupRepository(db),
        DatabaseGroupMembershipRepository(db),
        events=events,
        name="database",
    )


# ============ Manager ============


@pytest.fixture
def settings() -> FeatureSettings:
    return FeatureSettings(
        default_store="array",
        stores={
            "array": {"driver": "array"},
            "database": {"driver": "database"},
            "broken": {"driver": "carrier-pigeon"},
        },
        groups={"beta": ["reports", "exports"]},
    )


@pytest.fixture
def manager(settings: FeatureSettings, db: Session) -> FeatureManager:
    return FeatureManager(settings, session_factory=lambda: db)
