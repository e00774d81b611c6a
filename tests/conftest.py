"""
Shared fixtures for the vector engine tests.

Both storage backends are exercised through the parametrized ``storage`` fixture,
so every behavioural test runs once against SQLite and once against NumPy.
"""

import pytest
import pytest_asyncio

import vector_core.config.config_manager as config_module
from vector_core.config.config_manager import ConfigManager
from vector_core.core.embedding_store import EmbeddingStore
from vector_fixtures import make_storage


@pytest.fixture(autouse=True)
def reset_config():
    """Give every test a fresh configuration singleton."""
    ConfigManager._instance = None
    config_module._config_manager = None
    yield
    ConfigManager._instance = None
    config_module._config_manager = None


@pytest.fixture(params=["sqlite", "numpy"])
def backend_name(request):
    return request.param


@pytest_asyncio.fixture
async def storage(backend_name, tmp_path):
    """A connected, provisioned backend."""
    backend = make_storage(backend_name, tmp_path)
    await backend.connect()
    await backend.provision()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def store(storage):
    """An EmbeddingStore over the provisioned backend."""
    yield EmbeddingStore(storage)
