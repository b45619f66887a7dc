"""
Product search: filter composition plus offset or keyset (cursor) pagination.

Ordering
--------
Default ("relevance" or no sort): status rank (ACTIVE, DRAFT, ARCHIVED),
then newest first. Every ordering ends with ``id`` ascending, so pages are
deterministic and a row id is enough to resume a cursor walk.
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from catalog_engine.core.errors import ValidationFailedError
from catalog_engine.data.models import STATUS_SORT_RANK, Category, Product
from catalog_engine.formatters import format_product
from catalog_engine.schemas import (
    CursorRequest,
    CursorResult,
    PageRequest,
    PaginatedResult,
    PaginationMeta,
    ProductFilter,
    ProductSort,
    ProductSummary,
)
from catalog_engine.search.filters import build_product_conditions
from catalog_engine.utils.logger import get_logger

logger = get_logger("search.engine")

DEFAULT_MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class SortKey:
    """One ordering column: SQL expression, direction, and the same value read from a loaded row."""
    expression: Any
    descending: bool
    value_of: Callable[[Product], Any]

    def order_by(self):
        return self.expression.desc() if self.descending else self.expression.asc()


STATUS_RANK = case(
    {status.value: rank for status, rank in STATUS_SORT_RANK.items()},
    value=Product.status,
    else_=len(STATUS_SORT_RANK),
)

_ID = SortKey(Product.id, False, lambda p: p.id)
_STATUS = SortKey(STATUS_RANK, False, lambda p: STATUS_SORT_RANK.get(p.status, len(STATUS_SORT_RANK)))
_CREATED_DESC = SortKey(Product.created_at, True, lambda p: p.created_at)
_CREATED_ASC = SortKey(Product.created_at, False, lambda p: p.created_at)
_PRICE_ASC = SortKey(Product.price, False, lambda p: p.price)
_PRICE_DESC = SortKey(Product.price, True, lambda p: p.price)
_TITLE_ASC = SortKey(Product.title, False, lambda p: p.title)
_TITLE_DESC = SortKey(Product.title, True, lambda p: p.title)

SORT_KEYS = {
    ProductSort.RELEVANCE: [_STATUS, _CREATED_DESC, _ID],
    ProductSort.NEWEST: [_CREATED_DESC, _ID],
    ProductSort.OLDEST: [_CREATED_ASC, _ID],
    ProductSort.PRICE_ASC: [_PRICE_ASC, _ID],
    ProductSort.PRICE_DESC: [_PRICE_DESC, _ID],
    ProductSort.TITLE_ASC: [_TITLE_ASC, _ID],
    ProductSort.TITLE_DESC: [_TITLE_DESC, _ID],
}


def sort_keys_for(sort: Optional[ProductSort]) -> List[SortKey]:
    return SORT_KEYS[sort or ProductSort.RELEVANCE]


def keyset_predicate(keys: List[SortKey], anchor: Product):
    """
    Rows strictly after ``anchor`` in the given ordering:
    (k1 > v1) OR (k1 = v1 AND k2 > v2) OR ...
    """
    branches = []
    for index, key in enumerate(keys):
        value = key.value_of(anchor)
        ties = [keys[i].expression == keys[i].value_of(anchor) for i in range(index)]
        step = key.expression < value if key.descending else key.expression > value
        branches.append(and_(*ties, step))
    return or_(*branches)


def empty_page(page: int, page_size: int) -> PaginatedResult[ProductSummary]:
    """Result for a listing whose category slug does not resolve."""
    return PaginatedResult[ProductSummary](
        items=[],
        meta=PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=0,
            total_pages=0,
            has_next_page=False,
            has_previous_page=page > 1,
        ),
    )


class ProductSearchEngine:
    """
    Runs product searches inside a caller-owned session.
    """

    def __init__(self, session: Session, max_page_size: int = DEFAULT_MAX_PAGE_SIZE):
        self.session = session
        self.max_page_size = max_page_size

    def _resolve_category_slug(self, product_filter: ProductFilter) -> Optional[ProductFilter]:
        """
        Merge a category slug into ``category_ids``.

        Returns None when the slug does not match any category.
        """
        if not product_filter.category_slug:
            return product_filter
        category_id = self.session.scalar(
            select(Category.id).where(Category.slug == product_filter.category_slug)
        )
        if category_id is None:
            logger.debug(f"Unknown category slug '{product_filter.category_slug}', returning empty result")
            return None
        category_ids = list(dict.fromkeys([*(product_filter.category_ids or []), category_id]))
        return product_filter.model_copy(update={"category_ids": category_ids, "category_slug": None})

    def search(self, product_filter: ProductFilter, page_request: PageRequest) -> PaginatedResult[ProductSummary]:
        """Offset pagination with totals."""
        page = page_request.page
        page_size = min(page_request.page_size, self.max_page_size)

        resolved = self._resolve_category_slug(product_filter)
        if resolved is None:
            return empty_page(page, page_size)

        conditions = build_product_conditions(resolved)
        total_items = self.session.scalar(
            select(func.count()).select_from(Product).where(*conditions)
        ) or 0

        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(*(key.order_by() for key in sort_keys_for(resolved.sort)))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        products = self.session.scalars(stmt).all()

        total_pages = max(math.ceil(total_items / page_size), 1)
        return PaginatedResult[ProductSummary](
            items=[format_product(product) for product in products],
            meta=PaginationMeta(
                page=page,
                page_size=page_size,
                total_items=total_items,
                total_pages=total_pages,
                has_next_page=page < total_pages,
                has_previous_page=page > 1,
            ),
        )

    def search_by_cursor(self, product_filter: ProductFilter, cursor_request: CursorRequest) -> CursorResult[ProductSummary]:
        """
        Keyset pagination. Fetches one row past the page to detect more
        results; ``next_cursor`` is the id of the last row of this page.
        """
        take = min(cursor_request.take, self.max_page_size)

        resolved = self._resolve_category_slug(product_filter)
        if resolved is None:
            return CursorResult[ProductSummary](items=[], next_cursor=None, has_more=False)

        keys = sort_keys_for(resolved.sort)
        conditions = build_product_conditions(resolved)

        if cursor_request.cursor:
            anchor = self.session.get(Product, cursor_request.cursor)
            if anchor is None:
                raise ValidationFailedError(
                    "Invalid pagination cursor.",
                    issues=[{"path": "cursor", "message": "Cursor does not reference a product."}],
                )
            conditions.append(keyset_predicate(keys, anchor))

        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(*(key.order_by() for key in keys))
            .limit(take + 1)
        )
        rows = self.session.scalars(stmt).all()

        has_more = len(rows) > take
        items = rows[:take]
        next_cursor = items[-1].id if has_more and items else None
        return CursorResult[ProductSummary](
            items=[format_product(product) for product in items],
            next_cursor=next_cursor,
            has_more=has_more,
        )
