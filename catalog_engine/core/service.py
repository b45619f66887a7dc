"""
Catalog service: the in-process entry point for catalog reads and writes.

Reads go through the read cache (stable key -> cached JSON -> schema);
writes run in one store transaction and invalidate the affected cache
namespaces after commit, before returning.
"""
import time
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import sessionmaker

from catalog_engine.cache.catalog_cache import CatalogCache, create_catalog_cache
from catalog_engine.cache.keys import make_cache_key
from catalog_engine.cache.policy import SCOPE_CATEGORIES, SCOPE_POPULAR, SCOPE_PRODUCTS, SCOPE_PUBLIC_PRODUCTS
from catalog_engine.core.config import CatalogConfig, get_config
from catalog_engine.core.errors import NotFoundError, ValidationFailedError
from catalog_engine.data.database import (
    create_catalog_engine,
    create_session_factory,
    init_db,
    read_session,
    transaction,
)
from catalog_engine.data.models import ProductStatus
from catalog_engine.data.product_repository import ProductRepository
from catalog_engine.formatters import format_category, format_product, format_product_detail, format_variant
from catalog_engine.hierarchy.manager import CategoryHierarchyManager
from catalog_engine.schemas import (
    CategoryCreate,
    CategoryDetail,
    CategorySummary,
    CategoryTreeNode,
    CategoryUpdate,
    CursorRequest,
    CursorResult,
    PageRequest,
    PaginatedResult,
    ProductCreate,
    ProductDetail,
    ProductFilter,
    ProductSummary,
    ProductUpdate,
    VariantInput,
    VariantSummary,
    VariantUpdate,
)
from catalog_engine.search.engine import ProductSearchEngine
from catalog_engine.utils.logger import get_logger, set_log_level

logger = get_logger("core.service")

M = TypeVar("M", bound=BaseModel)

ProductPage = PaginatedResult[ProductSummary]
ProductCursorPage = CursorResult[ProductSummary]


def coerce(model: Type[M], value: Any, message: str = "Validation failed.") -> M:
    """Accept a schema instance or a plain mapping; pydantic errors become ValidationFailedError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value if value is not None else {})
    except ValidationError as e:
        raise ValidationFailedError.from_pydantic(e, message) from e


class CatalogService:
    """
    Catalog reads and writes.

    Safe to share between threads: every call opens its own session.
    """

    def __init__(self, session_factory: sessionmaker, cache: CatalogCache, config: Optional[CatalogConfig] = None):
        self.session_factory = session_factory
        self.cache = cache
        self.config = config or get_config()
        self.metrics = cache.metrics

    #
    # Product listings
    #

    def _search_engine(self, session) -> ProductSearchEngine:
        return ProductSearchEngine(session, max_page_size=self.config.max_page_size)

    def _run_search(self, product_filter: ProductFilter, page: PageRequest) -> ProductPage:
        started = time.perf_counter()
        with read_session(self.session_factory) as session:
            result = self._search_engine(session).search(product_filter, page)
        duration_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_latency("product_search", duration_ms)
        if duration_ms > self.config.slow_query_threshold_ms:
            logger.warning(
                f"Catalog product search exceeded slow query threshold: {duration_ms:.2f}ms "
                f"(page={result.meta.page}, page_size={result.meta.page_size}, "
                f"filters={len(product_filter.model_dump(exclude_none=True, exclude_defaults=True))})"
            )
        return result

    def _cached_search(self, scope: str, product_filter: ProductFilter, page: PageRequest, refresh: bool) -> ProductPage:
        key = make_cache_key(scope, {"filter": product_filter, "pagination": page})
        if not refresh:
            cached = self.cache.get_product_list(key)
            if cached is not None:
                return ProductPage.model_validate(cached)

        result = self._run_search(product_filter, page)
        # total_pages == 0 marks an unknown category slug; creating that
        # category only clears category trees, so the empty page is not kept
        if result.meta.total_pages > 0:
            self.cache.set_product_list(key, result.model_dump(mode="json"))
        return result

    def search_products(self, product_filter: Any = None, pagination: Any = None, refresh: bool = False) -> ProductPage:
        """
        Offset-paginated product search, cached under the product-list
        namespace. ``refresh`` bypasses the cached copy and rewrites it.
        """
        product_filter = coerce(ProductFilter, product_filter, "Invalid product filter.")
        page = coerce(PageRequest, pagination, "Invalid pagination.")
        return self._cached_search(SCOPE_PRODUCTS, product_filter, page, refresh)

    def search_products_by_cursor(self, product_filter: Any = None, cursor: Any = None) -> ProductCursorPage:
        """Keyset-paginated product search. Never cached."""
        product_filter = coerce(ProductFilter, product_filter, "Invalid product filter.")
        cursor_request = coerce(
            CursorRequest,
            cursor if cursor is not None else {"take": self.config.default_cursor_take},
            "Invalid cursor.",
        )
        with read_session(self.session_factory) as session:
            return self._search_engine(session).search_by_cursor(product_filter, cursor_request)

    def list_public_products(self, product_filter: Any = None, pagination: Any = None, refresh: bool = False) -> ProductPage:
        """Storefront listing: ACTIVE, non-deleted products only."""
        product_filter = coerce(ProductFilter, product_filter, "Invalid product filter.")
        product_filter = product_filter.model_copy(
            update={"statuses": [ProductStatus.ACTIVE], "include_deleted": False}
        )
        if pagination is None:
            pagination = {"page_size": self.config.default_page_size}
        page = coerce(PageRequest, pagination, "Invalid pagination.")
        return self._cached_search(SCOPE_PUBLIC_PRODUCTS, product_filter, page, refresh)

    def list_popular_products(self, limit: Optional[int] = None, refresh: bool = False) -> List[ProductSummary]:
        limit = self.config.default_popular_limit if limit is None else limit
        limit = min(max(limit, 1), self.config.max_popular_limit)
        key = make_cache_key(SCOPE_POPULAR, {"limit": limit})

        if not refresh:
            cached = self.cache.get_popular_products(key)
            if cached is not None:
                return [ProductSummary.model_validate(item) for item in cached]

        with read_session(self.session_factory) as session:
            products = [format_product(product) for product in ProductRepository(session).list_popular(limit)]
        self.cache.set_popular_products(key, [product.model_dump(mode="json") for product in products])
        return products

    def get_product_detail(self, slug: str) -> ProductDetail:
        """Public product page; counts as one view."""
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            product = repository.find_public_by_slug(slug.strip())
            repository.record_view(product)
            return format_product_detail(product)

    #
    # Category reads
    #

    def get_category_tree(self, max_depth: Optional[int] = None, refresh: bool = False) -> List[CategoryTreeNode]:
        depth = self.config.default_category_depth if max_depth is None else max_depth
        key = make_cache_key(SCOPE_CATEGORIES, {"depth": depth})

        if not refresh:
            cached = self.cache.get_category_tree(key)
            if cached is not None:
                return [CategoryTreeNode.model_validate(node) for node in cached]

        with read_session(self.session_factory) as session:
            tree = CategoryHierarchyManager(session).get_hierarchy(depth)
        self.cache.set_category_tree(key, [node.model_dump(mode="json") for node in tree])
        return tree

    def get_category_breadcrumbs(self, category_id: str) -> List[CategorySummary]:
        with read_session(self.session_factory) as session:
            return [format_category(crumb) for crumb in CategoryHierarchyManager(session).breadcrumbs(category_id)]

    def get_category_detail(self, slug: str, page: int = 1, page_size: Optional[int] = None) -> CategoryDetail:
        """
        Category page: the category, its children, breadcrumbs and its live
        products. Unlike listings, an unknown slug is an error here.
        """
        slug = slug.strip()
        page_request = coerce(
            PageRequest,
            {"page": page, "page_size": page_size or self.config.default_page_size},
            "Invalid pagination.",
        )
        with read_session(self.session_factory) as session:
            manager = CategoryHierarchyManager(session)
            category = manager.find_by_slug(slug)
            if category is None:
                raise NotFoundError("Category not found.", {"slug": slug})
            products = self._search_engine(session).search(
                ProductFilter(category_ids=[category.id], statuses=[ProductStatus.ACTIVE]),
                page_request,
            )
            return CategoryDetail(
                category=format_category(category),
                subcategories=[format_category(child) for child in manager.children(category.id)],
                breadcrumbs=[format_category(crumb) for crumb in manager.breadcrumbs(category.id)],
                products=products,
            )

    #
    # Category writes
    #

    def create_category(self, data: Any) -> CategorySummary:
        data = coerce(CategoryCreate, data, "Invalid category.")
        with transaction(self.session_factory) as session:
            category = CategoryHierarchyManager(session).create_from(data)
            summary = format_category(category)
        self.invalidate_category_trees()
        return summary

    def update_category(self, category_id: str, data: Any) -> CategorySummary:
        data = coerce(CategoryUpdate, data, "Invalid category.")
        with transaction(self.session_factory) as session:
            category = CategoryHierarchyManager(session).update(category_id, data)
            summary = format_category(category)
        self._invalidate_after_category_change()
        return summary

    def move_category(self, category_id: str, new_parent_id: Optional[str]) -> CategorySummary:
        with transaction(self.session_factory) as session:
            category = CategoryHierarchyManager(session).move(category_id, new_parent_id)
            summary = format_category(category)
        self._invalidate_after_category_change()
        return summary

    def delete_category(self, category_id: str) -> None:
        with transaction(self.session_factory) as session:
            CategoryHierarchyManager(session).delete(category_id)
        self._invalidate_after_category_change()

    def _invalidate_after_category_change(self) -> None:
        self.invalidate_category_trees()
        self.invalidate_product_lists()
        self.invalidate_popular_products()

    #
    # Product writes
    #

    def create_product(self, data: Any) -> ProductDetail:
        data = coerce(ProductCreate, data, "Invalid product.")
        with transaction(self.session_factory) as session:
            detail = format_product_detail(ProductRepository(session).create(data))
        self._invalidate_after_product_change()
        return detail

    def update_product(self, product_id: str, data: Any) -> ProductDetail:
        data = coerce(ProductUpdate, data, "Invalid product.")
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            product = repository.apply_update(repository.get(product_id), data)
            detail = format_product_detail(product)
        self._invalidate_after_product_change()
        return detail

    def archive_product(self, product_id: str) -> None:
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            repository.archive(repository.get(product_id))
        self._invalidate_after_product_change()

    def add_variant(self, product_id: str, data: Any) -> VariantSummary:
        data = coerce(VariantInput, data, "Invalid variant.")
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            product = repository.get(product_id)
            summary = format_variant(repository.add_variant(product, data), product.currency)
        self._invalidate_after_product_change()
        return summary

    def update_variant(self, product_id: str, variant_id: str, data: Any) -> VariantSummary:
        data = coerce(VariantUpdate, data, "Invalid variant.")
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            product = repository.get(product_id)
            summary = format_variant(repository.update_variant(product, variant_id, data), product.currency)
        self._invalidate_after_product_change()
        return summary

    def delete_variant(self, product_id: str, variant_id: str) -> None:
        with transaction(self.session_factory) as session:
            repository = ProductRepository(session)
            repository.delete_variant(repository.get(product_id), variant_id)
        self._invalidate_after_product_change()

    def _invalidate_after_product_change(self) -> None:
        self.invalidate_product_lists()
        self.invalidate_category_trees()
        self.invalidate_popular_products()

    #
    # Invalidation hooks (also used by write paths outside this service)
    #

    def invalidate_product_lists(self) -> int:
        return self.cache.invalidate_product_lists()

    def invalidate_category_trees(self) -> int:
        return self.cache.invalidate_category_trees()

    def invalidate_popular_products(self) -> int:
        return self.cache.invalidate_popular_products()

    def shutdown(self) -> None:
        self.cache.shutdown()


def create_catalog_service(config: Optional[CatalogConfig] = None) -> CatalogService:
    """Wire engine, schema, cache and service from configuration."""
    config = config or get_config()
    set_log_level(config.log_level)
    engine = create_catalog_engine(config.database_url)
    init_db(engine)
    cache = create_catalog_cache(config)
    logger.info(f"Catalog service ready (store={engine.url.get_backend_name()})")
    return CatalogService(create_session_factory(engine), cache, config)
