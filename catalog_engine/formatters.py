"""
Map ORM rows to result schemas.
"""
from decimal import Decimal
from typing import Optional

from catalog_engine.data.models import Category, Product, ProductVariant
from catalog_engine.schemas import (
    CategorySummary,
    CategoryTreeNode,
    Money,
    ProductDetail,
    ProductSummary,
    VariantSummary,
)


def _money(amount: Optional[Decimal], currency: str) -> Optional[Money]:
    if amount is None:
        return None
    return Money(amount=Decimal(str(amount)), currency=currency)


def format_category(category: Category) -> CategorySummary:
    return CategorySummary(
        id=category.id,
        name=category.name,
        slug=category.slug,
        description=category.description,
        parent_id=category.parent_id,
        level=category.level,
        path=category.path,
        display_order=category.display_order,
        created_at=category.created_at,
        updated_at=category.updated_at,
    )


def format_category_node(category: Category, product_count: int = 0) -> CategoryTreeNode:
    return CategoryTreeNode(
        id=category.id,
        name=category.name,
        slug=category.slug,
        description=category.description,
        parent_id=category.parent_id,
        level=category.level,
        path=category.path,
        display_order=category.display_order,
        product_count=product_count,
    )


def format_variant(variant: ProductVariant, currency: str) -> VariantSummary:
    return VariantSummary(
        id=variant.id,
        title=variant.title,
        sku=variant.sku,
        price=_money(variant.price, currency),
        compare_at_price=_money(variant.compare_at_price, currency),
        stock=variant.stock,
        is_primary=variant.is_primary,
        in_stock=variant.stock > 0,
        attributes=variant.attributes,
    )


def _summary_fields(product: Product) -> dict:
    primary_link = next((link for link in product.category_links if link.is_primary), None)
    primary_variant = product.primary_variant
    return dict(
        id=product.id,
        title=product.title,
        slug=product.slug,
        summary=product.summary,
        status=product.status,
        price=_money(product.price, product.currency),
        compare_at_price=_money(product.compare_at_price, product.currency),
        inventory_policy=product.inventory_policy,
        search_keywords=product.search_keywords,
        attributes=product.attributes,
        primary_category_id=primary_link.category_id if primary_link else None,
        category_ids=sorted(link.category_id for link in product.category_links),
        collection_ids=sorted(link.collection_id for link in product.collection_links),
        primary_variant=format_variant(primary_variant, product.currency) if primary_variant else None,
        view_count=product.view_count or 0,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def format_product(product: Product) -> ProductSummary:
    """Summary used in listings, search results and popular products."""
    return ProductSummary(**_summary_fields(product))


def format_product_detail(product: Product) -> ProductDetail:
    """Full product view: all variants plus the categories it belongs to."""
    return ProductDetail(
        **_summary_fields(product),
        description=product.description,
        variants=[format_variant(variant, product.currency) for variant in product.variants],
        categories=[format_category(link.category) for link in product.category_links],
    )
