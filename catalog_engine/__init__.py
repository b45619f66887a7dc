"""
Catalog Engine - storefront catalog core

Keeps a product catalog consistent and fast to read:
- Materialized-path category tree with safe moves
- Product search with offset and cursor pagination
- TTL read cache with namespace invalidation
"""

from catalog_engine.core.config import CatalogConfig, get_config, set_config
from catalog_engine.core.service import CatalogService, create_catalog_service

__all__ = [
    'CatalogService',
    'create_catalog_service',
    'CatalogConfig',
    'get_config',
    'set_config',
]

__version__ = '0.1.0'
