"""
SQLAlchemy database models.
These are the authoritative source of truth for catalog data.

The store is authoritative for:
- Categories (materialized-path tree)
- Products, their keywords and attribute index rows
- Variants (price overrides, stock, primary flag)
- Category and collection memberships
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from catalog_engine.data.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; stored the same way on SQLite and Postgres."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProductStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


# Listing order: live products first, then drafts, then archived
STATUS_SORT_RANK = {
    ProductStatus.ACTIVE: 0,
    ProductStatus.DRAFT: 1,
    ProductStatus.ARCHIVED: 2,
}


class InventoryPolicy(str, enum.Enum):
    TRACK = "TRACK"
    CONTINUE = "CONTINUE"
    DENY = "DENY"


class Category(Base):
    """
    Category tree node.

    ``path`` holds the slugs of all ancestors and the node itself
    (``/home/lighting``); ``level`` is the number of segments minus one.
    """
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    level = Column(Integer, nullable=False, default=0)
    path = Column(Text, nullable=False, index=True)
    display_order = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product_links = relationship(
        "ProductCategory", back_populates="category", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, path='{self.path}')>"


class Collection(Base):
    """Curated product grouping (seasonal edits, bundles)."""
    __tablename__ = "collections"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    product_links = relationship(
        "ProductCollection", back_populates="collection", cascade="all, delete-orphan"
    )


class Product(Base):
    """Product catalog entry."""
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_listing", "status", "created_at", "id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    summary = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    status = Column(Enum(ProductStatus, native_enum=False, length=16), nullable=False, default=ProductStatus.DRAFT)
    price = Column(Numeric(12, 2), nullable=False)
    compare_at_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="TRY")
    inventory_policy = Column(
        Enum(InventoryPolicy, native_enum=False, length=16), nullable=False, default=InventoryPolicy.TRACK
    )
    attributes = Column(JSON, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    keywords = relationship("ProductKeyword", cascade="all, delete-orphan", lazy="selectin")
    attribute_values = relationship("ProductAttributeValue", cascade="all, delete-orphan")
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.created_at",
        lazy="selectin",
    )
    category_links = relationship(
        "ProductCategory", back_populates="product", cascade="all, delete-orphan", lazy="selectin"
    )
    collection_links = relationship(
        "ProductCollection", back_populates="product", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def search_keywords(self):
        return sorted(row.keyword for row in self.keywords)

    @property
    def primary_variant(self):
        for variant in self.variants:
            if variant.is_primary:
                return variant
        return None

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, slug='{self.slug}', status={self.status})>"


class ProductKeyword(Base):
    """One lowercase search token of a product."""
    __tablename__ = "product_keywords"

    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    keyword = Column(String(120), primary_key=True, index=True)


class ProductAttributeValue(Base):
    """
    Index row for faceted attribute filtering.

    Derived from ``Product.attributes``: a string becomes one row with
    ``value_text``, a list of strings one row per element, a number one row
    with ``value_number``.
    """
    __tablename__ = "product_attribute_values"
    __table_args__ = (
        Index("ix_attribute_lookup_text", "name", "value_text"),
        Index("ix_attribute_lookup_number", "name", "value_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    value_text = Column(String(255), nullable=True)
    value_number = Column(Float, nullable=True)


class ProductVariant(Base):
    """Purchasable variant of a product; exactly one per product is primary."""
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    sku = Column(String(120), nullable=False, unique=True)
    price = Column(Numeric(12, 2), nullable=False)
    compare_at_price = Column(Numeric(12, 2), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)
    attributes = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="variants")


class ProductCategory(Base):
    __tablename__ = "product_categories"

    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True, index=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)

    product = relationship("Product", back_populates="category_links")
    category = relationship("Category", back_populates="product_links", lazy="joined")


class ProductCollection(Base):
    __tablename__ = "product_collections"
    __table_args__ = (UniqueConstraint("product_id", "collection_id"),)

    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    collection_id = Column(String(36), ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True, index=True)

    product = relationship("Product", back_populates="collection_links")
    collection = relationship("Collection", back_populates="product_links")
