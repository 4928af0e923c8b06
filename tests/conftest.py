"""
Pytest configuration and shared fixtures for ActionGraph tests.

This module provides common fixtures used across test modules: stores
for both backends, engines built on them, and small sample graphs.
"""

import os
import tempfile

import pytest

from actiongraph.core.config import EngineConfig
from actiongraph.interface.client import ActionGraph
from actiongraph.storage.engine import InMemoryActionStore
from actiongraph.storage.sqlite import SQLiteActionStore


def _remove_sqlite_files(db_path):
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def memory_store():
    """Create an empty in-memory store."""
    store = InMemoryActionStore()
    yield store
    store.close()


@pytest.fixture
def sqlite_store():
    """Create a temporary SQLite store for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    store = SQLiteActionStore(db_path)
    yield store
    store.close()
    _remove_sqlite_files(db_path)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """Run the test once against each backend."""
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sqlite_store")


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def graph(store):
    """An ActionGraph over each backend, mirroring disabled."""
    return ActionGraph(store)


@pytest.fixture
def mirrored_graph(store):
    """An ActionGraph that keeps depends_on(child, parent) for every family edge."""
    return ActionGraph(store, EngineConfig(mirror_family_dependencies=True))


@pytest.fixture
def product_tree(graph):
    """
    A three-level plan:

        Product
        ├── Marketing
        │   ├── Launch Ads
        │   └── Write Copy
        └── Engineering
    """
    product = graph.create_action("Product")
    marketing = graph.create_action("Marketing", parent_id=product.id)
    ads = graph.create_action("Launch Ads", parent_id=marketing.id)
    copy = graph.create_action("Write Copy", parent_id=marketing.id)
    engineering = graph.create_action("Engineering", parent_id=product.id)
    return {
        "product": product,
        "marketing": marketing,
        "ads": ads,
        "copy": copy,
        "engineering": engineering,
    }


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
