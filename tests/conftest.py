"""Shared pytest fixtures for all tests."""

import itertools

import pytest

from categories import CategoryStore, Scope
from config import Settings
from context import build_context
from database import init_db, make_engine, make_session_factory
from identity import IdentityResolver, LocalStorage
from tests.helpers import SpyStore


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SpyStore(session_factory)


@pytest.fixture
def clock():
    """Deterministic timestamps, one second apart."""
    counter = itertools.count()
    return lambda: f"2026-10-12T09:00:{next(counter):02d}.000Z"


@pytest.fixture
def category_store(sql_store, clock):
    return CategoryStore(sql_store, clock=clock)


@pytest.fixture
def scope():
    return Scope("test-app", "user-1")


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        app_id="test-app",
        database_url="sqlite://",
        local_storage_path=tmp_path / "local_storage.json",
        log_level="DEBUG",
    )


@pytest.fixture
def context(test_settings, sql_store, clock):
    """Offline context: no auth service, no bank link, in-memory store."""
    ctx = build_context(test_settings, store=sql_store)
    ctx.categories = CategoryStore(sql_store, clock=clock)
    return ctx


@pytest.fixture
def offline_identity(context):
    return IdentityResolver(None, context.storage)
