"""
Pydantic v2 schemas for catalog inputs and results.

Input schemas use extra="forbid" to reject unknown fields. Results are plain
models so they can be cached as JSON (``model_dump(mode="json")``) and
rebuilt with ``model_validate`` on a cache hit.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from catalog_engine.data.models import InventoryPolicy, ProductStatus

T = TypeVar("T")

# Attribute filter value: exact text, any-of texts, or exact number
AttributeFilterValue = Union[str, List[str], float]


class ProductSort(str, Enum):
    RELEVANCE = "relevance"
    NEWEST = "newest"
    OLDEST = "oldest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"


#
# Search inputs
#

class ProductFilter(BaseModel):
    """
    Product search filter. Every field is optional; absent fields add no
    condition.
    """
    model_config = ConfigDict(extra="forbid")

    term: Optional[str] = Field(None, description="Substring of title/slug, or an exact keyword")
    statuses: Optional[List[ProductStatus]] = None
    category_ids: Optional[List[str]] = None
    primary_category_id: Optional[str] = Field(None, description="Takes precedence over category_ids")
    category_slug: Optional[str] = Field(None, description="Resolved to a category id before searching")
    collection_ids: Optional[List[str]] = None
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    attributes: Optional[Dict[str, AttributeFilterValue]] = None
    include_deleted: bool = False
    sort: Optional[ProductSort] = None

    @field_validator("term", "category_slug", "primary_category_id")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _check_price_range(self) -> "ProductFilter":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not be greater than max_price")
        return self


class PageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page: int = Field(1, ge=1)
    page_size: int = Field(24, ge=1)


class CursorRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cursor: Optional[str] = Field(None, description="Id of the last item of the previous page")
    take: int = Field(24, ge=1)


#
# Results
#

class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class PaginatedResult(BaseModel, Generic[T]):
    items: List[T]
    meta: PaginationMeta


class CursorResult(BaseModel, Generic[T]):
    items: List[T]
    next_cursor: Optional[str] = None
    has_more: bool = False


class Money(BaseModel):
    amount: Decimal
    currency: str = "TRY"


class CategorySummary(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    level: int
    path: str
    display_order: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class CategoryTreeNode(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    level: int
    path: str
    display_order: Optional[int] = None
    product_count: int = 0
    children: List["CategoryTreeNode"] = Field(default_factory=list)


class VariantSummary(BaseModel):
    id: str
    title: str
    sku: str
    price: Money
    compare_at_price: Optional[Money] = None
    stock: int
    is_primary: bool
    in_stock: bool
    attributes: Optional[Dict[str, Any]] = None


class ProductSummary(BaseModel):
    id: str
    title: str
    slug: str
    summary: Optional[str] = None
    status: ProductStatus
    price: Money
    compare_at_price: Optional[Money] = None
    inventory_policy: InventoryPolicy
    search_keywords: List[str] = Field(default_factory=list)
    attributes: Optional[Dict[str, Any]] = None
    primary_category_id: Optional[str] = None
    category_ids: List[str] = Field(default_factory=list)
    collection_ids: List[str] = Field(default_factory=list)
    primary_variant: Optional[VariantSummary] = None
    view_count: int = 0
    created_at: datetime
    updated_at: datetime


class ProductDetail(ProductSummary):
    description: Optional[str] = None
    variants: List[VariantSummary] = Field(default_factory=list)
    categories: List[CategorySummary] = Field(default_factory=list)


class CategoryDetail(BaseModel):
    category: CategorySummary
    subcategories: List[CategorySummary]
    breadcrumbs: List[CategorySummary]
    products: PaginatedResult[ProductSummary]


#
# Write inputs
#

class CategoryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, description="Slug source; defaults to the name")
    parent_id: Optional[str] = None
    description: Optional[str] = None
    display_order: Optional[int] = None


class CategoryUpdate(BaseModel):
    """
    Partial category update. ``parent_id`` is applied only when explicitly
    provided; an explicit ``None`` turns the category into a root.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = None
    parent_id: Optional[str] = None
    description: Optional[str] = None
    display_order: Optional[int] = None

    @property
    def reparents(self) -> bool:
        return "parent_id" in self.model_fields_set


class VariantInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1)
    sku: Optional[str] = Field(None, description="Defaults to '<product-slug>-<n>'")
    price: Decimal = Field(..., ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    stock: int = Field(0, ge=0)
    is_primary: Optional[bool] = None
    attributes: Optional[Dict[str, Any]] = None


class VariantUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1)
    sku: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    is_primary: Optional[bool] = None
    attributes: Optional[Dict[str, Any]] = None


class ProductCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, description="Slug source; defaults to the title")
    summary: Optional[str] = None
    description: Optional[str] = None
    status: ProductStatus = ProductStatus.DRAFT
    price: Decimal = Field(..., ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("TRY", min_length=3, max_length=3)
    inventory_policy: InventoryPolicy = InventoryPolicy.TRACK
    search_keywords: List[str] = Field(default_factory=list)
    attributes: Optional[Dict[str, Any]] = None
    category_ids: List[str] = Field(default_factory=list, description="First id is the primary category")
    collection_ids: List[str] = Field(default_factory=list)
    variants: List[VariantInput] = Field(..., min_length=1)


class ProductUpdate(BaseModel):
    """
    Partial product update. ``compare_at_price`` and ``attributes`` may be
    cleared with an explicit ``None``; ``category_ids`` replaces all
    memberships when given.
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProductStatus] = None
    price: Optional[Decimal] = Field(None, ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    inventory_policy: Optional[InventoryPolicy] = None
    search_keywords: Optional[List[str]] = None
    attributes: Optional[Dict[str, Any]] = None
    category_ids: Optional[List[str]] = None
    collection_ids: Optional[List[str]] = None
