"""
Product filter composition.

Turns a ProductFilter into a list of SQLAlchemy boolean clauses over
``Product``. Clauses are AND-ed by the caller; a filter field that is absent
or empty contributes no clause.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import or_, select

from catalog_engine.core.errors import ValidationFailedError
from catalog_engine.data.models import (
    Product,
    ProductAttributeValue,
    ProductCategory,
    ProductCollection,
    ProductKeyword,
)
from catalog_engine.schemas import ProductFilter

ATTRIBUTE_TEXT = "text"
ATTRIBUTE_ANY_OF = "any_of"
ATTRIBUTE_NUMBER = "number"


@dataclass(frozen=True)
class AttributeValue:
    """
    Attribute filter value, tagged by ``kind``:

    - text:   exact text match (``text``)
    - any_of: text is one of ``options``
    - number: exact numeric match (``number``)
    """
    kind: str
    text: Optional[str] = None
    options: Tuple[str, ...] = ()
    number: Optional[float] = None

    @classmethod
    def parse(cls, name: str, raw: Any) -> "AttributeValue":
        if isinstance(raw, bool):
            raise ValidationFailedError(
                "Unsupported attribute filter value.",
                issues=[{"path": f"attributes.{name}", "message": "Expected text, a list of texts or a number."}],
            )
        if isinstance(raw, str):
            return cls(ATTRIBUTE_TEXT, text=raw)
        if isinstance(raw, (int, float, Decimal)):
            return cls(ATTRIBUTE_NUMBER, number=float(raw))
        if isinstance(raw, (list, tuple)) and all(isinstance(item, str) for item in raw):
            return cls(ATTRIBUTE_ANY_OF, options=tuple(raw))
        raise ValidationFailedError(
            "Unsupported attribute filter value.",
            issues=[{"path": f"attributes.{name}", "message": "Expected text, a list of texts or a number."}],
        )


def attribute_clause(name: str, value: AttributeValue):
    """EXISTS clause: the product has an index row for ``name`` matching ``value``."""
    row = ProductAttributeValue
    if value.kind == ATTRIBUTE_TEXT:
        match = row.value_text == value.text
    elif value.kind == ATTRIBUTE_ANY_OF:
        match = row.value_text.in_(value.options)
    elif value.kind == ATTRIBUTE_NUMBER:
        match = row.value_number == value.number
    else:
        raise ValueError(f"Unknown attribute value kind: {value.kind}")
    return (
        select(row.id)
        .where(row.product_id == Product.id, row.name == name, match)
        .exists()
    )


def _category_membership(category_ids: Sequence[str], primary_only: bool = False):
    stmt = select(ProductCategory.product_id).where(
        ProductCategory.product_id == Product.id,
        ProductCategory.category_id.in_(list(category_ids)),
    )
    if primary_only:
        stmt = stmt.where(ProductCategory.is_primary.is_(True))
    return stmt.exists()


def build_product_conditions(product_filter: ProductFilter) -> List[Any]:
    """
    Build the WHERE clauses for a product search.

    ``category_slug`` is not handled here: the search engine resolves it to
    an id and merges it into ``category_ids`` first.
    """
    conditions: List[Any] = []

    if not product_filter.include_deleted:
        conditions.append(Product.deleted_at.is_(None))

    term = (product_filter.term or "").strip()
    if term:
        keyword_match = (
            select(ProductKeyword.product_id)
            .where(ProductKeyword.product_id == Product.id, ProductKeyword.keyword == term.lower())
            .exists()
        )
        conditions.append(
            or_(
                Product.title.icontains(term, autoescape=True),
                Product.slug.icontains(term, autoescape=True),
                keyword_match,
            )
        )

    statuses = product_filter.statuses or []
    if len(statuses) == 1:
        conditions.append(Product.status == statuses[0])
    elif len(statuses) > 1:
        conditions.append(Product.status.in_(statuses))

    if product_filter.primary_category_id:
        conditions.append(_category_membership([product_filter.primary_category_id], primary_only=True))
    elif product_filter.category_ids:
        conditions.append(_category_membership(product_filter.category_ids))

    if product_filter.collection_ids:
        conditions.append(
            select(ProductCollection.product_id)
            .where(
                ProductCollection.product_id == Product.id,
                ProductCollection.collection_id.in_(product_filter.collection_ids),
            )
            .exists()
        )

    if product_filter.min_price is not None:
        conditions.append(Product.price >= product_filter.min_price)
    if product_filter.max_price is not None:
        conditions.append(Product.price <= product_filter.max_price)

    for name, raw in sorted((product_filter.attributes or {}).items()):
        conditions.append(attribute_clause(name, AttributeValue.parse(name, raw)))

    return conditions
