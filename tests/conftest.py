"""Pytest configuration and fixtures"""
import os

# Set test environment before any cartmerge import reads it
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MERGE_LOCK_ENABLED", "false")

import pytest
from sqlalchemy.orm import sessionmaker

from cartmerge.data import models  # noqa: F401
from cartmerge.data.database import Base, build_engine
from cartmerge.repos.cart_repo import SqlCartRepo
from cartmerge.repos.memory_store import MemoryCartStore
from cartmerge.services.lifecycle_service import CartLifecycleManager
from cartmerge.services.merge_service import CartMergeEngine
from tests.helpers import FrozenClock, T0


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, future=True)()
    yield session
    session.close()


@pytest.fixture
def sql_store(db_session):
    return SqlCartRepo(db_session)


@pytest.fixture
def memory_store():
    return MemoryCartStore()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every store-level test runs against both adapters."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def lifecycle(store, clock):
    return CartLifecycleManager(store, clock=clock)


@pytest.fixture
def merge_engine(store, clock, lifecycle):
    return CartMergeEngine(store, lifecycle=lifecycle, clock=clock)
