"""
Catalog read cache: product lists, category trees and popular products.

Each namespace is a key prefix in the underlying store. Invalidation clears a
whole namespace (see policy.py for which writes clear which namespaces).
"""

from typing import Any, Optional

from catalog_engine.cache.policy import (
    CATEGORY_TREE_PREFIX,
    DEFAULT_TTL_CATEGORY_TREES,
    DEFAULT_TTL_POPULAR_PRODUCTS,
    DEFAULT_TTL_PRODUCT_LISTS,
    POPULAR_PRODUCTS_PREFIX,
    PRODUCT_LIST_PREFIX,
)
from catalog_engine.cache.store import CacheStore, InMemoryCacheStore, RedisCacheStore
from catalog_engine.utils.logger import get_logger
from catalog_engine.utils.metrics import CatalogMetrics

logger = get_logger("cache.catalog")


class CatalogCache:
    """
    Namespaced TTL cache used by the catalog service.

    Never raises: a failing store is treated as a miss on read and as a no-op
    on write or invalidation.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        ttl_product_lists: int = DEFAULT_TTL_PRODUCT_LISTS,
        ttl_category_trees: int = DEFAULT_TTL_CATEGORY_TREES,
        ttl_popular_products: int = DEFAULT_TTL_POPULAR_PRODUCTS,
        metrics: Optional[CatalogMetrics] = None,
    ):
        self.store = store if store is not None else InMemoryCacheStore()
        self.ttl_product_lists = ttl_product_lists
        self.ttl_category_trees = ttl_category_trees
        self.ttl_popular_products = ttl_popular_products
        self.metrics = metrics or CatalogMetrics()

    #
    # Internal helpers
    #

    @staticmethod
    def _key(prefix: str, key: str) -> str:
        return f"{prefix}:{key}"

    def _get(self, prefix: str, key: str) -> Optional[Any]:
        try:
            value = self.store.get(self._key(prefix, key))
        except Exception as e:
            logger.warning(f"Cache read error for {prefix}:{key}: {e}")
            value = None
        if value is None:
            self.metrics.record_cache_miss(prefix)
        else:
            self.metrics.record_cache_hit(prefix)
        return value

    def _set(self, prefix: str, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            return self.store.set(self._key(prefix, key), value, ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write error for {prefix}:{key}: {e}")
            return False

    def _invalidate(self, prefix: str) -> int:
        self.metrics.record_invalidation(prefix)
        try:
            deleted = self.store.delete_prefix(f"{prefix}:")
        except Exception as e:
            logger.warning(f"Cache invalidation error for {prefix}: {e}")
            return 0
        logger.debug(f"Invalidated {deleted} cache entries under {prefix}")
        return deleted

    #
    # Product lists
    #

    def get_product_list(self, key: str) -> Optional[Any]:
        return self._get(PRODUCT_LIST_PREFIX, key)

    def set_product_list(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        return self._set(PRODUCT_LIST_PREFIX, key, value, ttl_seconds or self.ttl_product_lists)

    def invalidate_product_lists(self) -> int:
        return self._invalidate(PRODUCT_LIST_PREFIX)

    #
    # Category trees
    #

    def get_category_tree(self, key: str) -> Optional[Any]:
        return self._get(CATEGORY_TREE_PREFIX, key)

    def set_category_tree(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        return self._set(CATEGORY_TREE_PREFIX, key, value, ttl_seconds or self.ttl_category_trees)

    def invalidate_category_trees(self) -> int:
        return self._invalidate(CATEGORY_TREE_PREFIX)

    #
    # Popular products
    #

    def get_popular_products(self, key: str) -> Optional[Any]:
        return self._get(POPULAR_PRODUCTS_PREFIX, key)

    def set_popular_products(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        return self._set(POPULAR_PRODUCTS_PREFIX, key, value, ttl_seconds or self.ttl_popular_products)

    def invalidate_popular_products(self) -> int:
        return self._invalidate(POPULAR_PRODUCTS_PREFIX)

    #
    # Lifecycle
    #

    def invalidate_all(self) -> None:
        self.invalidate_product_lists()
        self.invalidate_category_trees()
        self.invalidate_popular_products()

    def shutdown(self) -> None:
        try:
            self.store.close()
        except Exception as e:
            logger.warning(f"Error shutting down cache store: {e}")


def create_catalog_cache(config, metrics: Optional[CatalogMetrics] = None) -> CatalogCache:
    """
    Build a CatalogCache from configuration.

    Uses Redis when ``config.redis_url`` is set, a process-local store otherwise.
    """
    if config.redis_url:
        store: CacheStore = RedisCacheStore.from_url(
            config.redis_url,
            retry_attempts=config.cache_retry_attempts,
            retry_delay_seconds=config.cache_retry_delay_ms / 1000.0,
        )
        logger.info("Catalog cache backed by Redis")
    else:
        store = InMemoryCacheStore()
        logger.info("Catalog cache backed by process-local memory")
    return CatalogCache(
        store,
        ttl_product_lists=config.ttl_product_lists,
        ttl_category_trees=config.ttl_category_trees,
        ttl_popular_products=config.ttl_popular_products,
        metrics=metrics,
    )
