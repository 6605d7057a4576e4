import pytest
from fastapi.testclient import TestClient

from main import app
from routes import get_cache, get_store
from views import get_page_cache, get_page_store
from storage.json_store import JsonFileStore
from utils.query_cache import QueryCache
from utils.rate_limit import limiter


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "expensewise.json")


@pytest.fixture
def cache(store):
    query_cache = QueryCache(stale_time=60)
    query_cache.attach(store)
    yield query_cache
    query_cache.detach()


@pytest.fixture
def client(store, cache):
    """TestClient wired to the temporary store; the lifespan is not started."""
    limiter.enabled = False
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_page_store] = lambda: store
    app.dependency_overrides[get_page_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True
