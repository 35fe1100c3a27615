"""Root test conftest: shared fixtures over the in-process backing store."""

import pytest

from src.dolor.core.session.persistence import SessionStore
from src.dolor.infra.config import reset_config_cache
from src.dolor.infra.kv_store import InMemoryKeyValueStore
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def store(kv):
    return SessionStore(kv)


@pytest.fixture(autouse=True)
def _isolate_config_cache():
    """Never let a developer's ~/.dolor/config.yaml leak between tests."""
    reset_config_cache()
    yield
    reset_config_cache()
