"""
Tests for the category hierarchy manager.

Checks that materialized paths stay consistent after every kind of write, cycle
rejection, delete guards, tree rendering and breadcrumbs.
"""

import pytest

from catalog_engine.core.errors import ConflictError, NotFoundError, ValidationFailedError
from catalog_engine.data.models import ProductStatus
from catalog_engine.data.product_repository import ProductRepository
from catalog_engine.hierarchy.manager import CategoryHierarchyManager, limit_depth, path_segments
from catalog_engine.schemas import CategoryUpdate, ProductCreate


def assert_paths_consistent(manager):
    """Every row satisfies path == parent.path + '/' + slug and level == segments - 1."""
    rows = {row["id"]: row for row in manager.snapshot()}
    for row in rows.values():
        if row["parent_id"] is None:
            assert row["path"] == f"/{row['slug']}"
        else:
            assert row["path"] == f"{rows[row['parent_id']]['path']}/{row['slug']}"
        assert row["level"] == len(path_segments(row["path"])) - 1


@pytest.fixture
def manager(session):
    return CategoryHierarchyManager(session)


@pytest.fixture
def tree(manager):
    """
    /home
    /home/lighting
    /home/lighting/lamps
    /garden
    """
    home = manager.create("Home")
    lighting = manager.create("Lighting", parent_id=home.id)
    lamps = manager.create("Lamps", parent_id=lighting.id)
    garden = manager.create("Garden")
    return {"home": home, "lighting": lighting, "lamps": lamps, "garden": garden}


class TestCreate:

    def test_root_and_child_paths(self, manager, tree):
        assert tree["home"].path == "/home"
        assert tree["home"].level == 0
        assert tree["lamps"].path == "/home/lighting/lamps"
        assert tree["lamps"].level == 2
        assert_paths_consistent(manager)

    def test_unknown_parent_is_rejected(self, manager):
        with pytest.raises(ValidationFailedError):
            manager.create("Orphan", parent_id="missing")

    def test_explicit_slug_source(self, manager):
        category = manager.create("Outdoor Living", slug="Outdoor")
        assert category.slug == "outdoor"


class TestMove:

    def test_move_rewrites_subtree(self, manager, tree):
        moved = manager.move(tree["lighting"].id, tree["garden"].id)

        assert moved.path == "/garden/lighting"
        assert moved.level == 1
        assert manager.get(tree["lamps"].id).path == "/garden/lighting/lamps"
        assert manager.get(tree["lamps"].id).level == 2
        assert_paths_consistent(manager)

    def test_move_to_root(self, manager, tree):
        manager.move(tree["lighting"].id, None)

        assert manager.get(tree["lighting"].id).path == "/lighting"
        assert manager.get(tree["lamps"].id).path == "/lighting/lamps"
        assert manager.get(tree["lamps"].id).level == 1
        assert_paths_consistent(manager)

    def test_self_parent_is_rejected(self, manager, tree):
        with pytest.raises(ValidationFailedError):
            manager.move(tree["home"].id, tree["home"].id)

    def test_move_under_descendant_is_rejected(self, manager, tree):
        with pytest.raises(ValidationFailedError):
            manager.move(tree["home"].id, tree["lamps"].id)
        assert manager.get(tree["home"].id).path == "/home"
        assert_paths_consistent(manager)

    def test_sibling_with_shared_prefix_is_not_a_descendant(self, manager, tree):
        home_office = manager.create("Home Office")
        assert home_office.path == "/home-office"
        moved = manager.move(tree["home"].id, home_office.id)
        assert moved.path == "/home-office/home"
        assert_paths_consistent(manager)

    def test_unknown_category_and_parent(self, manager, tree):
        with pytest.raises(NotFoundError):
            manager.move("missing", tree["home"].id)
        with pytest.raises(ValidationFailedError):
            manager.move(tree["home"].id, "missing")

    def test_repeated_move_is_idempotent(self, manager, tree):
        manager.move(tree["lighting"].id, tree["garden"].id)
        before = sorted((row["id"], row["path"], row["level"]) for row in manager.snapshot())
        manager.move(tree["lighting"].id, tree["garden"].id)
        after = sorted((row["id"], row["path"], row["level"]) for row in manager.snapshot())
        assert before == after


class TestUpdate:

    def test_rename_rederives_slug_and_descendant_paths(self, manager, tree):
        manager.update(tree["lighting"].id, CategoryUpdate(name="Lights"))

        assert manager.get(tree["lighting"].id).slug == "lights"
        assert manager.get(tree["lamps"].id).path == "/home/lights/lamps"
        assert_paths_consistent(manager)

    def test_update_without_parent_keeps_parent(self, manager, tree):
        updated = manager.update(tree["lamps"].id, CategoryUpdate(description="Table and floor lamps"))

        assert updated.parent_id == tree["lighting"].id
        assert updated.description == "Table and floor lamps"
        assert updated.path == "/home/lighting/lamps"

    def test_explicit_null_parent_makes_root(self, manager, tree):
        updated = manager.update(tree["lamps"].id, CategoryUpdate(parent_id=None))
        assert updated.parent_id is None
        assert updated.path == "/lamps"


class TestDelete:

    def test_delete_leaf(self, manager, tree):
        manager.delete(tree["garden"].id)
        with pytest.raises(NotFoundError):
            manager.get(tree["garden"].id)

    def test_delete_with_children_conflicts(self, manager, tree):
        with pytest.raises(ConflictError):
            manager.delete(tree["home"].id)

    def test_delete_with_active_product_conflicts(self, session, manager, tree):
        ProductRepository(session).create(ProductCreate(
            title="Aurora Lamp",
            price="49.90",
            status=ProductStatus.ACTIVE,
            category_ids=[tree["lamps"].id],
            variants=[{"title": "Default", "price": "49.90"}],
        ))
        with pytest.raises(ConflictError):
            manager.delete(tree["lamps"].id)

    def test_delete_with_only_draft_products_succeeds(self, session, manager, tree):
        ProductRepository(session).create(ProductCreate(
            title="Prototype Lamp",
            price="49.90",
            status=ProductStatus.DRAFT,
            category_ids=[tree["lamps"].id],
            variants=[{"title": "Default", "price": "49.90"}],
        ))
        manager.delete(tree["lamps"].id)
        assert manager.children(tree["lighting"].id) == []

    def test_delete_unknown(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete("missing")


class TestTreeReads:

    def test_hierarchy_nesting_and_order(self, manager, tree):
        roots = manager.get_hierarchy()

        assert [node.slug for node in roots] == ["garden", "home"]
        home = roots[1]
        assert [child.slug for child in home.children] == ["lighting"]
        assert [child.slug for child in home.children[0].children] == ["lamps"]

    def test_display_order_before_name_and_unset_last(self, manager):
        manager.create("Zeta", display_order=1)
        manager.create("Alpha")
        manager.create("Beta", display_order=2)
        assert [node.name for node in manager.get_hierarchy()] == ["Zeta", "Beta", "Alpha"]

    def test_depth_limit(self, manager, tree):
        assert manager.get_hierarchy(0) == []
        roots = manager.get_hierarchy(1)
        assert all(node.children == [] for node in roots)
        two = manager.get_hierarchy(2)
        home = next(node for node in two if node.slug == "home")
        assert home.children[0].children == []

    def test_limit_depth_does_not_mutate_input(self, manager, tree):
        full = manager.get_hierarchy()
        limit_depth(full, 1)
        home = next(node for node in full if node.slug == "home")
        assert home.children[0].slug == "lighting"

    def test_product_counts_only_live_products(self, session, manager, tree):
        repository = ProductRepository(session)
        for title, status in [("Aurora", ProductStatus.ACTIVE), ("Nova", ProductStatus.ACTIVE), ("Draft", ProductStatus.DRAFT)]:
            repository.create(ProductCreate(
                title=title,
                price="10",
                status=status,
                category_ids=[tree["lamps"].id],
                variants=[{"title": "Default", "price": "10"}],
            ))
        archived = repository.create(ProductCreate(
            title="Old",
            price="10",
            status=ProductStatus.ACTIVE,
            category_ids=[tree["lamps"].id],
            variants=[{"title": "Default", "price": "10"}],
        ))
        repository.archive(archived)

        assert manager.product_counts() == {tree["lamps"].id: 2}
        roots = manager.get_hierarchy()
        lamps = roots[1].children[0].children[0]
        assert lamps.product_count == 2
        assert roots[0].product_count == 0

    def test_breadcrumbs_root_first(self, manager, tree):
        crumbs = manager.breadcrumbs(tree["lamps"].id)
        assert [crumb.slug for crumb in crumbs] == ["home", "lighting", "lamps"]

    def test_breadcrumbs_follow_moves(self, manager, tree):
        manager.move(tree["lighting"].id, tree["garden"].id)
        crumbs = manager.breadcrumbs(tree["lamps"].id)
        assert [crumb.slug for crumb in crumbs] == ["garden", "lighting", "lamps"]

    def test_breadcrumbs_unknown_category(self, manager):
        with pytest.raises(NotFoundError):
            manager.breadcrumbs("missing")

    def test_children_and_find_by_slug(self, manager, tree):
        assert [child.slug for child in manager.children(tree["home"].id)] == ["lighting"]
        assert manager.find_by_slug("lamps").id == tree["lamps"].id
        assert manager.find_by_slug("nope") is None


def test_path_segments_accepts_alternate_separators():
    assert path_segments("/home/lighting") == ["home", "lighting"]
    assert path_segments("home > lighting|lamps:desk") == ["home", "lighting", "lamps", "desk"]
