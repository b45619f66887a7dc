"""
Catalog read cache.

- keys: stable key encoding for cache keys
- store: in-memory and Redis key/value backends
- catalog_cache: namespaced cache with invalidation hooks
"""
from catalog_engine.cache.catalog_cache import CatalogCache, create_catalog_cache
from catalog_engine.cache.keys import make_cache_key, stable_stringify
from catalog_engine.cache.store import CacheStore, InMemoryCacheStore, RedisCacheStore

__all__ = [
    "CatalogCache",
    "create_catalog_cache",
    "make_cache_key",
    "stable_stringify",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
]
