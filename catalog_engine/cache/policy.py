"""
Catalog read-cache policy: what gets cached, for how long, and who invalidates it.

This module documents the caching strategy. It is imported by config.py for
TTL defaults and by catalog_cache.py for namespace prefixes.

Architecture:
  Relational store → source of truth (categories, products, variants)
  Cache            → read-through copy of rendered results (TTL-based expiry)
"""

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Namespace        | Key Pattern                      | TTL     | Filled by
# -----------------+----------------------------------+---------+---------------------------
# Product lists    | catalog:products:{scope}:{hash}  | 60 sec  | search_products / listings
# Category trees   | catalog:categories:{scope}:{hash}| 15 min  | get_category_tree
# Popular products | catalog:popular:{scope}:{hash}   | 5 min   | list_popular_products
#
# Cursor (keyset) pages are never cached: the cursor already pins the window.
#
# ────────────────────────────────────────────────────────────────────────────
# Consistency Expectations
# ────────────────────────────────────────────────────────────────────────────
#
# - Within one process, a write is visible to the next read: every write path
#   invalidates before it returns.
# - Across processes sharing nothing but the store, a read may be stale by up
#   to the namespace TTL. With a shared Redis backend, invalidation is shared.
#
# ────────────────────────────────────────────────────────────────────────────
# Invalidation Rules
# ────────────────────────────────────────────────────────────────────────────
#
# Invalidation clears a whole namespace. There is no reverse index from a
# product or category to the cached pages that contain it.
#
#   create_category                  → category trees
#   update/move/delete category      → category trees, product lists, popular
#   any product or variant write     → product lists, category trees, popular
#                                      (product counts appear in category trees)

PRODUCT_LIST_PREFIX = "catalog:products"
CATEGORY_TREE_PREFIX = "catalog:categories"
POPULAR_PRODUCTS_PREFIX = "catalog:popular"

# Scope names passed to the stable key encoder
SCOPE_PRODUCTS = "products"
SCOPE_PUBLIC_PRODUCTS = "public-products"
SCOPE_CATEGORIES = "categories"
SCOPE_POPULAR = "popular"

# TTL constants (seconds), used by config.py as defaults
DEFAULT_TTL_PRODUCT_LISTS = 60          # 1 minute
DEFAULT_TTL_CATEGORY_TREES = 15 * 60    # 15 minutes
DEFAULT_TTL_POPULAR_PRODUCTS = 5 * 60   # 5 minutes
