"""
Configuration management for the catalog engine.

Loads settings from a YAML config file, applies environment overrides and
provides typed access.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from catalog_engine.cache.policy import (
    DEFAULT_TTL_CATEGORY_TREES,
    DEFAULT_TTL_POPULAR_PRODUCTS,
    DEFAULT_TTL_PRODUCT_LISTS,
)


def _project_root() -> Path:
    """Return project root (parent of catalog_engine package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


@dataclass
class CatalogConfig:
    """Configuration for the catalog engine."""

    # Storage
    database_url: str = "sqlite:///catalog.db"
    redis_url: Optional[str] = None     # None = process-local in-memory cache

    # Cache TTLs (seconds)
    ttl_product_lists: int = DEFAULT_TTL_PRODUCT_LISTS
    ttl_category_trees: int = DEFAULT_TTL_CATEGORY_TREES
    ttl_popular_products: int = DEFAULT_TTL_POPULAR_PRODUCTS

    # Redis backend behaviour
    cache_retry_attempts: int = 3
    cache_retry_delay_ms: int = 250

    # Catalog reads
    default_category_depth: int = 3
    default_page_size: int = 24
    max_page_size: int = 100
    default_cursor_take: int = 24
    default_popular_limit: int = 12
    max_popular_limit: int = 50
    slow_query_threshold_ms: float = 120.0

    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "CatalogConfig":
        """Load configuration from YAML file, then apply environment overrides."""
        path = config_path or DEFAULT_CONFIG_PATH
        data: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        storage_config = data.get('storage', {})
        cache_config = data.get('cache', {})
        ttl_config = cache_config.get('ttl', {})
        catalog_config = data.get('catalog', {})

        config = cls(
            database_url=storage_config.get('database_url', 'sqlite:///catalog.db'),
            redis_url=storage_config.get('redis_url'),
            ttl_product_lists=ttl_config.get('product_lists', DEFAULT_TTL_PRODUCT_LISTS),
            ttl_category_trees=ttl_config.get('category_trees', DEFAULT_TTL_CATEGORY_TREES),
            ttl_popular_products=ttl_config.get('popular_products', DEFAULT_TTL_POPULAR_PRODUCTS),
            cache_retry_attempts=cache_config.get('retry_attempts', 3),
            cache_retry_delay_ms=cache_config.get('retry_delay_ms', 250),
            default_category_depth=catalog_config.get('default_category_depth', 3),
            default_page_size=catalog_config.get('default_page_size', 24),
            max_page_size=catalog_config.get('max_page_size', 100),
            default_cursor_take=catalog_config.get('default_cursor_take', 24),
            default_popular_limit=catalog_config.get('default_popular_limit', 12),
            max_popular_limit=catalog_config.get('max_popular_limit', 50),
            slow_query_threshold_ms=catalog_config.get('slow_query_threshold_ms', 120.0),
            log_level=data.get('log_level', 'INFO'),
        )
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Override fields from environment variables when they are set."""
        self.database_url = os.getenv("DATABASE_URL") or self.database_url
        self.redis_url = os.getenv("CATALOG_REDIS_URL") or self.redis_url
        self.ttl_product_lists = int(os.getenv("CATALOG_TTL_PRODUCT_LISTS", self.ttl_product_lists))
        self.ttl_category_trees = int(os.getenv("CATALOG_TTL_CATEGORY_TREES", self.ttl_category_trees))
        self.ttl_popular_products = int(os.getenv("CATALOG_TTL_POPULAR_PRODUCTS", self.ttl_popular_products))
        self.log_level = os.getenv("LOG_LEVEL", self.log_level).upper()


# Global config instance
_config: Optional[CatalogConfig] = None


def get_config() -> CatalogConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = CatalogConfig.from_yaml()
    return _config


def set_config(config: CatalogConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
