"""
Category tree maintenance over materialized paths.

Every category stores ``path`` (slugs from the root down to itself, e.g.
``/home/lighting``) and ``level`` (0 for roots). Writes keep, for every node:

    path  == parent.path + "/" + slug   (or "/" + slug for a root)
    level == number of path segments - 1

Moving or renaming a node rewrites its whole subtree in the same
transaction.
"""
import re
from collections import deque
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from catalog_engine.core.errors import ConflictError, NotFoundError, ValidationFailedError
from catalog_engine.data.models import Category, Product, ProductCategory, ProductStatus, utcnow
from catalog_engine.formatters import format_category_node
from catalog_engine.schemas import CategoryCreate, CategoryTreeNode, CategoryUpdate
from catalog_engine.slugs import SlugAllocator
from catalog_engine.utils.logger import get_logger

logger = get_logger("hierarchy.manager")

PATH_SEPARATORS = re.compile(r"[/:>|]")

# Tree order: level, then display order (unset last), then name
CATEGORY_ORDER = (
    Category.level.asc(),
    Category.display_order.is_(None).asc(),
    Category.display_order.asc(),
    Category.name.asc(),
)


def build_path(parent: Optional[Category], slug: str) -> str:
    if parent is None:
        return f"/{slug}"
    return f"{parent.path.rstrip('/')}/{slug}"


def path_segments(path: str) -> List[str]:
    return [segment.strip() for segment in PATH_SEPARATORS.split(path or "") if segment.strip()]


def limit_depth(nodes: List[CategoryTreeNode], depth: int) -> List[CategoryTreeNode]:
    """Copy of the forest with at most ``depth`` levels (0 -> empty)."""
    if depth <= 0:
        return []
    return [
        node.model_copy(update={"children": limit_depth(node.children, depth - 1)})
        for node in nodes
    ]


class CategoryHierarchyManager:
    """
    Category reads and writes bound to one session.

    The caller owns the transaction: writes flush but never commit.
    """

    def __init__(self, session: Session):
        self.session = session
        self.slugs = SlugAllocator(Category)

    #
    # Lookups
    #

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found.", {"id": category_id})
        return category

    def find_by_slug(self, slug: str) -> Optional[Category]:
        return self.session.scalar(select(Category).where(Category.slug == slug))

    def children(self, category_id: str) -> List[Category]:
        stmt = select(Category).where(Category.parent_id == category_id).order_by(*CATEGORY_ORDER)
        return list(self.session.scalars(stmt).all())

    def _require_parent(self, parent_id: str) -> Category:
        parent = self.session.get(Category, parent_id)
        if parent is None:
            raise ValidationFailedError(
                "Parent category not found.",
                issues=[{"path": "parent_id", "message": "Parent category does not exist."}],
            )
        return parent

    #
    # Writes
    #

    def create(
        self,
        name: str,
        parent_id: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        display_order: Optional[int] = None,
    ) -> Category:
        parent = self._require_parent(parent_id) if parent_id else None
        allocated = self.slugs.allocate(self.session, slug or name)

        category = Category(
            name=name,
            slug=allocated,
            description=description,
            parent_id=parent.id if parent else None,
            level=parent.level + 1 if parent else 0,
            path=build_path(parent, allocated),
            display_order=display_order,
        )
        self.session.add(category)
        self.session.flush()
        logger.info(f"Created category {category.id} at {category.path}")
        return category

    def create_from(self, data: CategoryCreate) -> Category:
        return self.create(
            name=data.name,
            parent_id=data.parent_id,
            slug=data.slug,
            description=data.description,
            display_order=data.display_order,
        )

    def move(self, category_id: str, new_parent_id: Optional[str]) -> Category:
        """Reparent a category (``None`` makes it a root) and rewrite its subtree."""
        return self.update(category_id, CategoryUpdate(parent_id=new_parent_id))

    def update(self, category_id: str, changes: CategoryUpdate) -> Category:
        """
        Apply a partial update. A new name re-derives the slug unless an
        explicit slug is given; a new slug or parent rewrites the subtree.

        Raises:
            NotFoundError: unknown category
            ValidationFailedError: unknown parent, self-parenting, or a
                parent inside the category's own subtree
        """
        category = self.get(category_id)

        parent: Optional[Category]
        if changes.reparents:
            parent = self._resolve_new_parent(category, changes.parent_id)
        else:
            parent = self.session.get(Category, category.parent_id) if category.parent_id else None

        if changes.slug:
            slug = self.slugs.allocate(self.session, changes.slug, ignore_id=category.id)
        elif changes.name and changes.name != category.name:
            slug = self.slugs.allocate(self.session, changes.name, ignore_id=category.id)
        else:
            slug = category.slug

        if changes.name is not None:
            category.name = changes.name
        provided = changes.model_fields_set
        if "description" in provided:
            category.description = changes.description
        if "display_order" in provided:
            category.display_order = changes.display_order

        category.slug = slug
        category.parent_id = parent.id if parent else None
        category.level = parent.level + 1 if parent else 0
        category.path = build_path(parent, slug)
        category.updated_at = utcnow()
        self.session.flush()

        rewritten = self._rewrite_descendants(category)
        logger.info(f"Updated category {category.id} at {category.path} ({rewritten} descendants rewritten)")
        return category

    def _resolve_new_parent(self, category: Category, parent_id: Optional[str]) -> Optional[Category]:
        if parent_id is None:
            return None
        if parent_id == category.id:
            raise ValidationFailedError(
                "Category cannot be its own parent.",
                issues=[{"path": "parent_id", "message": "Category cannot be its own parent."}],
            )
        parent = self._require_parent(parent_id)
        if parent.path.startswith(category.path + "/"):
            raise ValidationFailedError(
                "Category cannot be moved under its own descendant.",
                issues=[{"path": "parent_id", "message": "Parent is a descendant of this category."}],
            )
        return parent

    def _rewrite_descendants(self, root: Category) -> int:
        """
        Recompute path and level below ``root``, breadth first. Each level is
        flushed before the next one is loaded. Re-running on a consistent
        subtree changes nothing.
        """
        rewritten = 0
        frontier = deque([(root.id, root.path, root.level)])
        while frontier:
            next_frontier = deque()
            parent_paths = {node_id: (path, level) for node_id, path, level in frontier}
            children = self.session.scalars(
                select(Category).where(Category.parent_id.in_(list(parent_paths)))
            ).all()
            for child in children:
                parent_path, parent_level = parent_paths[child.parent_id]
                new_path = f"{parent_path.rstrip('/')}/{child.slug}"
                new_level = parent_level + 1
                if child.path != new_path or child.level != new_level:
                    child.path = new_path
                    child.level = new_level
                    child.updated_at = utcnow()
                    rewritten += 1
                next_frontier.append((child.id, new_path, new_level))
            self.session.flush()
            frontier = next_frontier
        return rewritten

    def delete(self, category_id: str) -> None:
        """
        Raises:
            NotFoundError: unknown category
            ConflictError: the category has children or live products
        """
        category = self.get(category_id)

        child_count = self.session.scalar(
            select(func.count()).select_from(Category).where(Category.parent_id == category.id)
        )
        if child_count:
            raise ConflictError("Category has child categories and cannot be deleted.", {"id": category_id})

        product_usage = self.session.scalar(
            select(func.count())
            .select_from(ProductCategory)
            .join(Product, Product.id == ProductCategory.product_id)
            .where(
                ProductCategory.category_id == category.id,
                Product.status == ProductStatus.ACTIVE,
                Product.deleted_at.is_(None),
            )
        )
        if product_usage:
            raise ConflictError("Category contains active products and cannot be deleted.", {"id": category_id})

        self.session.delete(category)
        self.session.flush()
        logger.info(f"Deleted category {category_id} ({category.path})")

    #
    # Tree reads
    #

    def product_counts(self) -> Dict[str, int]:
        """Live (ACTIVE, non-deleted) product count per category, one grouped query."""
        stmt = (
            select(ProductCategory.category_id, func.count(ProductCategory.product_id))
            .join(Product, Product.id == ProductCategory.product_id)
            .where(Product.status == ProductStatus.ACTIVE, Product.deleted_at.is_(None))
            .group_by(ProductCategory.category_id)
        )
        return {category_id: count for category_id, count in self.session.execute(stmt)}

    def get_hierarchy(self, max_depth: Optional[int] = None) -> List[CategoryTreeNode]:
        """
        Whole tree as nested nodes with product counts, cut to ``max_depth``
        levels when given.
        """
        categories = self.session.scalars(select(Category).order_by(*CATEGORY_ORDER)).all()
        counts = self.product_counts()

        nodes: Dict[str, CategoryTreeNode] = {
            category.id: format_category_node(category, counts.get(category.id, 0))
            for category in categories
        }
        roots: List[CategoryTreeNode] = []
        for category in categories:
            node = nodes[category.id]
            parent = nodes.get(category.parent_id) if category.parent_id else None
            if parent is not None:
                parent.children.append(node)
            else:
                roots.append(node)

        if max_depth is None:
            return roots
        return limit_depth(roots, max_depth)

    def breadcrumbs(self, category_id: str) -> List[Category]:
        """Ancestors of a category and the category itself, root first."""
        category = self.get(category_id)
        segments = path_segments(category.path)
        if category.id not in segments:
            segments.append(category.id)
        stmt = (
            select(Category)
            .where(or_(Category.id.in_(segments), Category.slug.in_(segments)))
            .order_by(*CATEGORY_ORDER)
        )
        return list(self.session.scalars(stmt).all())

    def snapshot(self) -> List[Dict[str, Any]]:
        """Flat (id, parent_id, slug, path, level) rows, for consistency checks."""
        rows = self.session.execute(
            select(Category.id, Category.parent_id, Category.slug, Category.path, Category.level)
        )
        return [dict(row._mapping) for row in rows]
