"""
Product persistence: products, variants, memberships, and the derived
keyword and attribute index rows used by search.

All methods work inside a caller-owned session; the caller commits.
"""
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from catalog_engine.core.errors import ConflictError, NotFoundError, ValidationFailedError
from catalog_engine.data.models import (
    Category,
    Collection,
    InventoryPolicy,
    Product,
    ProductAttributeValue,
    ProductCategory,
    ProductCollection,
    ProductKeyword,
    ProductStatus,
    ProductVariant,
    utcnow,
)
from catalog_engine.schemas import ProductCreate, ProductUpdate, VariantInput, VariantUpdate
from catalog_engine.slugs import SlugAllocator
from catalog_engine.utils.logger import get_logger

logger = get_logger("data.products")

_TOKEN_SPLIT = re.compile(r"[^\w]+", re.UNICODE)
MIN_KEYWORD_LENGTH = 2
MAX_KEYWORD_LENGTH = 120


def derive_search_keywords(title: str, summary: Optional[str], explicit: Iterable[str] = ()) -> List[str]:
    """
    Lowercase keyword set for a product: explicit keywords as given, plus the
    individual words of the title and summary.
    """
    keywords = set()
    for keyword in explicit:
        cleaned = keyword.strip().lower()
        if cleaned:
            keywords.add(cleaned[:MAX_KEYWORD_LENGTH])
    for text in (title, summary or ""):
        for token in _TOKEN_SPLIT.split(text.lower()):
            if len(token) >= MIN_KEYWORD_LENGTH:
                keywords.add(token[:MAX_KEYWORD_LENGTH])
    return sorted(keywords)


def attribute_index_rows(attributes: Optional[Dict[str, Any]]) -> List[ProductAttributeValue]:
    """
    Index rows for faceted filtering. Strings and numbers give one row,
    lists give one row per string or number element; other values are not
    filterable and are skipped.
    """
    rows: List[ProductAttributeValue] = []
    for name, value in sorted((attributes or {}).items()):
        values = value if isinstance(value, list) else [value]
        for item in values:
            if isinstance(item, bool):
                continue
            if isinstance(item, str):
                rows.append(ProductAttributeValue(name=name, value_text=item))
            elif isinstance(item, (int, float, Decimal)):
                rows.append(ProductAttributeValue(name=name, value_number=float(item)))
    return rows


class ProductRepository:
    """Product reads and writes for one session."""

    def __init__(self, session: Session):
        self.session = session
        self.slugs = SlugAllocator(Product)

    #
    # Reads
    #

    def get(self, product_id: str, include_deleted: bool = False) -> Product:
        product = self.session.get(Product, product_id)
        if product is None or (product.deleted_at is not None and not include_deleted):
            raise NotFoundError("Product not found.", {"id": product_id})
        return product

    def find_by_slug(self, slug: str) -> Optional[Product]:
        return self.session.scalar(select(Product).where(Product.slug == slug))

    def find_public_by_slug(self, slug: str) -> Product:
        """ACTIVE, non-deleted product by slug."""
        product = self.find_by_slug(slug)
        if product is None or product.deleted_at is not None or product.status != ProductStatus.ACTIVE:
            raise NotFoundError("Product not found.", {"slug": slug})
        return product

    def list_popular(self, limit: int) -> List[Product]:
        stmt = (
            select(Product)
            .where(Product.status == ProductStatus.ACTIVE, Product.deleted_at.is_(None))
            .order_by(Product.view_count.desc(), Product.created_at.desc(), Product.id.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def record_view(self, product: Product) -> None:
        """Increment the popularity counter in SQL so concurrent views are not lost."""
        self.session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(view_count=Product.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(product, ["view_count"])

    #
    # Derived rows
    #

    def sync_keywords(self, product: Product, keywords: List[str]) -> None:
        wanted = set(keywords)
        for row in list(product.keywords):
            if row.keyword not in wanted:
                product.keywords.remove(row)
        present = {row.keyword for row in product.keywords}
        for keyword in sorted(wanted - present):
            product.keywords.append(ProductKeyword(keyword=keyword))

    def sync_attribute_index(self, product: Product) -> None:
        product.attribute_values = attribute_index_rows(product.attributes)

    def _require_categories(self, category_ids: List[str]) -> None:
        if not category_ids:
            return
        found = set(self.session.scalars(select(Category.id).where(Category.id.in_(category_ids))))
        missing = [category_id for category_id in category_ids if category_id not in found]
        if missing:
            raise ValidationFailedError(
                "Unknown category.",
                issues=[{"path": "category_ids", "message": f"Category {category_id} does not exist."} for category_id in missing],
            )

    def _require_collections(self, collection_ids: List[str]) -> None:
        if not collection_ids:
            return
        found = set(self.session.scalars(select(Collection.id).where(Collection.id.in_(collection_ids))))
        missing = [collection_id for collection_id in collection_ids if collection_id not in found]
        if missing:
            raise ValidationFailedError(
                "Unknown collection.",
                issues=[{"path": "collection_ids", "message": f"Collection {collection_id} does not exist."} for collection_id in missing],
            )

    def _set_categories(self, product: Product, category_ids: List[str]) -> None:
        category_ids = list(dict.fromkeys(category_ids))
        self._require_categories(category_ids)
        if product.category_links:
            product.category_links.clear()
            self.session.flush()
        for index, category_id in enumerate(category_ids):
            product.category_links.append(ProductCategory(category_id=category_id, is_primary=index == 0))

    def _set_collections(self, product: Product, collection_ids: List[str]) -> None:
        collection_ids = list(dict.fromkeys(collection_ids))
        self._require_collections(collection_ids)
        if product.collection_links:
            product.collection_links.clear()
            self.session.flush()
        for collection_id in collection_ids:
            product.collection_links.append(ProductCollection(collection_id=collection_id))

    def _sku_taken(self, sku: str, ignore_id: Optional[str] = None) -> bool:
        stmt = select(ProductVariant.id).where(ProductVariant.sku == sku)
        if ignore_id is not None:
            stmt = stmt.where(ProductVariant.id != ignore_id)
        return self.session.scalar(stmt) is not None

    #
    # Product writes
    #

    def create(self, data: ProductCreate) -> Product:
        slug = self.slugs.allocate(self.session, data.slug or data.title)

        product = Product(
            title=data.title,
            slug=slug,
            summary=data.summary,
            description=data.description,
            status=data.status,
            price=data.price,
            compare_at_price=data.compare_at_price,
            currency=data.currency,
            inventory_policy=data.inventory_policy,
            attributes=data.attributes,
            view_count=0,
        )
        self.session.add(product)

        seen_skus = set()
        primary_index = next((i for i, v in enumerate(data.variants) if v.is_primary), 0)
        for index, variant_input in enumerate(data.variants):
            sku = (variant_input.sku or f"{slug}-{index + 1}").strip()
            if sku in seen_skus:
                raise ValidationFailedError(
                    "Duplicate variant SKU detected.",
                    issues=[{"path": f"variants.{index}.sku", "message": "Each variant must have a unique SKU."}],
                )
            seen_skus.add(sku)
            if self._sku_taken(sku):
                raise ConflictError("Variant SKU already exists.", {"sku": sku})
            product.variants.append(self._build_variant(variant_input, sku, is_primary=index == primary_index))

        self._set_categories(product, data.category_ids)
        self._set_collections(product, data.collection_ids)
        self.sync_keywords(product, derive_search_keywords(data.title, data.summary, data.search_keywords))
        self.sync_attribute_index(product)
        self.session.flush()

        logger.info(f"Created product {product.id} ({slug})")
        return product

    def apply_update(self, product: Product, changes: ProductUpdate) -> Product:
        provided = changes.model_fields_set
        previously_derived = set(derive_search_keywords(product.title, product.summary))

        if changes.slug:
            product.slug = self.slugs.allocate(self.session, changes.slug, ignore_id=product.id)
        elif changes.title and changes.title != product.title:
            product.slug = self.slugs.allocate(self.session, changes.title, ignore_id=product.id)

        for field in ("title", "status", "price", "currency", "inventory_policy"):
            value = getattr(changes, field)
            if value is not None:
                setattr(product, field, value)
        for field in ("summary", "description", "compare_at_price", "attributes"):
            if field in provided:
                setattr(product, field, getattr(changes, field))

        if changes.search_keywords is not None or "title" in provided or "summary" in provided:
            if changes.search_keywords is not None:
                explicit = changes.search_keywords
            else:
                # Keep hand-picked keywords, drop words of the old title/summary
                explicit = [k for k in product.search_keywords if k not in previously_derived]
            self.sync_keywords(product, derive_search_keywords(product.title, product.summary, explicit))
        if "attributes" in provided:
            self.sync_attribute_index(product)
        if changes.category_ids is not None:
            self._set_categories(product, changes.category_ids)
        if changes.collection_ids is not None:
            self._set_collections(product, changes.collection_ids)

        product.updated_at = utcnow()
        self.session.flush()
        logger.info(f"Updated product {product.id} ({product.slug})")
        return product

    def archive(self, product: Product) -> Product:
        """Archive and soft-delete: no longer listed, no longer sellable."""
        product.status = ProductStatus.ARCHIVED
        product.inventory_policy = InventoryPolicy.DENY
        product.deleted_at = utcnow()
        for variant in product.variants:
            variant.stock = 0
        self.session.flush()
        logger.info(f"Archived product {product.id} ({product.slug})")
        return product

    #
    # Variant writes
    #

    @staticmethod
    def _build_variant(data: VariantInput, sku: str, is_primary: bool) -> ProductVariant:
        return ProductVariant(
            title=data.title,
            sku=sku,
            price=data.price,
            compare_at_price=data.compare_at_price,
            stock=data.stock,
            is_primary=is_primary,
            attributes=data.attributes,
        )

    def get_variant(self, product: Product, variant_id: str) -> ProductVariant:
        for variant in product.variants:
            if variant.id == variant_id:
                return variant
        raise NotFoundError("Variant not found.", {"product_id": product.id, "variant_id": variant_id})

    def add_variant(self, product: Product, data: VariantInput) -> ProductVariant:
        sku = (data.sku or f"{product.slug}-{len(product.variants) + 1}").strip()
        if self._sku_taken(sku):
            raise ConflictError("Variant SKU already exists.", {"sku": sku})

        if data.is_primary is None:
            is_primary = not any(variant.is_primary for variant in product.variants)
        else:
            is_primary = data.is_primary
        if not is_primary and not product.variants:
            is_primary = True

        variant = self._build_variant(data, sku, is_primary)
        if is_primary:
            for other in product.variants:
                other.is_primary = False
        product.variants.append(variant)
        self.session.flush()
        logger.info(f"Added variant {variant.sku} to product {product.id}")
        return variant

    def update_variant(self, product: Product, variant_id: str, changes: VariantUpdate) -> ProductVariant:
        variant = self.get_variant(product, variant_id)
        provided = changes.model_fields_set

        if changes.sku and changes.sku != variant.sku and self._sku_taken(changes.sku, ignore_id=variant.id):
            raise ConflictError("Variant SKU already exists.", {"sku": changes.sku})

        becomes_primary = changes.is_primary is True and not variant.is_primary
        removes_primary = variant.is_primary and changes.is_primary is False

        replacement = None
        if removes_primary:
            others = sorted(
                (other for other in product.variants if other.id != variant.id),
                key=lambda other: other.created_at,
            )
            if not others:
                raise ValidationFailedError(
                    "At least one primary variant is required.",
                    issues=[{"path": "is_primary", "message": "Cannot unset primary on the only variant."}],
                )
            replacement = others[0]

        for field in ("title", "sku", "price", "stock"):
            value = getattr(changes, field)
            if value is not None:
                setattr(variant, field, value)
        for field in ("compare_at_price", "attributes"):
            if field in provided:
                setattr(variant, field, getattr(changes, field))

        if becomes_primary:
            for other in product.variants:
                other.is_primary = other.id == variant.id
        elif replacement is not None:
            variant.is_primary = False
            replacement.is_primary = True

        variant.updated_at = utcnow()
        self.session.flush()
        return variant

    def delete_variant(self, product: Product, variant_id: str) -> None:
        variant = self.get_variant(product, variant_id)
        if variant.is_primary:
            raise ConflictError("Primary variant cannot be deleted.", {"variant_id": variant_id})
        product.variants.remove(variant)
        self.session.flush()
        logger.info(f"Deleted variant {variant.sku} from product {product.id}")
