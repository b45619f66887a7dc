"""Pytest configuration for catalog engine tests."""

import pytest

from catalog_engine.cache.catalog_cache import CatalogCache
from catalog_engine.cache.store import InMemoryCacheStore
from catalog_engine.core.config import CatalogConfig
from catalog_engine.core.service import CatalogService
from catalog_engine.data.database import create_catalog_engine, create_session_factory, init_db
from catalog_engine.utils.metrics import CatalogMetrics


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def product_payload(title, price="10.00", status="ACTIVE", **overrides):
    """Minimal valid ProductCreate payload with one variant."""
    payload = {
        "title": title,
        "price": price,
        "status": status,
        "variants": [{"title": "Default", "price": price, "stock": 5}],
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Store: one in-memory SQLite database per test
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    engine = create_catalog_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """Session for manager/repository tests; nothing is committed."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ---------------------------------------------------------------------------
# Cache and service
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return CatalogMetrics()


@pytest.fixture
def cache(clock, metrics):
    return CatalogCache(InMemoryCacheStore(clock=clock), metrics=metrics)


@pytest.fixture
def config():
    return CatalogConfig(database_url="sqlite://", slow_query_threshold_ms=60_000.0)


@pytest.fixture
def service(session_factory, cache, config):
    return CatalogService(session_factory, cache, config)


@pytest.fixture
def make_product(service):
    """Create a product through the service; returns its ProductDetail."""
    def _make(title, **kwargs):
        return service.create_product(product_payload(title, **kwargs))
    return _make


@pytest.fixture
def make_category(service):
    """Create a category through the service; returns its CategorySummary."""
    def _make(name, parent_id=None, **kwargs):
        return service.create_category({"name": name, "parent_id": parent_id, **kwargs})
    return _make
