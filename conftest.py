"""
Shared fixtures for repository tests.
"""

import pytest

from shared.config import reset_config
from shared.test_helpers import InMemoryDocumentStore, ManualClock, RecordingLogger, TestDataFactory
from service_repository.app.caching.adapters import MemoryCacheAdapter
from service_repository.app.context import get_context, reset_context


@pytest.fixture(autouse=True)
def clean_context():
    """Every test starts with default collaborators and zeroed metrics."""
    reset_config()
    context = reset_context()
    yield context
    reset_context()
    reset_config()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory_cache(clock):
    cache = MemoryCacheAdapter(clock=clock)
    get_context().set_cache(cache)
    return cache


@pytest.fixture
def recording_logger():
    sink = RecordingLogger()
    get_context().set_logger(sink)
    return sink


@pytest.fixture
def store():
    document_store = InMemoryDocumentStore({
        "users": TestDataFactory.create_test_users(),
        "orders": TestDataFactory.create_test_orders(),
    })
    get_context().set_store(document_store)
    return document_store
