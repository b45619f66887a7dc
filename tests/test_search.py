"""
Tests for product search: filter composition, ordering and both pagination
strategies.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from catalog_engine.core.errors import ValidationFailedError
from catalog_engine.data.models import Collection, Product, ProductStatus
from catalog_engine.search.engine import ProductSearchEngine
from catalog_engine.search.filters import (
    ATTRIBUTE_ANY_OF,
    ATTRIBUTE_NUMBER,
    ATTRIBUTE_TEXT,
    AttributeValue,
    build_product_conditions,
)
from catalog_engine.schemas import CursorRequest, PageRequest, ProductFilter


def slugs(result):
    return [item.slug for item in result.items]


@pytest.fixture
def catalog(make_category, make_product):
    lighting = make_category("Lighting")
    garden = make_category("Garden")
    aurora = make_product(
        "Aurora Lamp",
        price="49.90",
        category_ids=[lighting.id],
        attributes={"color": "amber", "materials": ["glass", "brass"], "wattage": 40},
        search_keywords=["Nordic"],
    )
    nova = make_product(
        "Nova Pendant",
        price="120.00",
        category_ids=[garden.id, lighting.id],
        attributes={"color": "white", "wattage": 60},
    )
    draft = make_product("Draft Sconce", price="15.00", status="DRAFT", category_ids=[lighting.id])
    archived = make_product("Old Lantern", price="30.00", status="ARCHIVED", category_ids=[garden.id])
    return {
        "lighting": lighting,
        "garden": garden,
        "aurora": aurora,
        "nova": nova,
        "draft": draft,
        "archived": archived,
    }


class TestAttributeValue:

    def test_tagged_kinds(self):
        assert AttributeValue.parse("color", "amber").kind == ATTRIBUTE_TEXT
        assert AttributeValue.parse("materials", ["glass"]).options == ("glass",)
        assert AttributeValue.parse("materials", ["glass"]).kind == ATTRIBUTE_ANY_OF
        assert AttributeValue.parse("wattage", 40).number == 40.0
        assert AttributeValue.parse("wattage", 40).kind == ATTRIBUTE_NUMBER

    @pytest.mark.parametrize("raw", [True, {"nested": 1}, [1, 2]])
    def test_unsupported_values(self, raw):
        with pytest.raises(ValidationFailedError):
            AttributeValue.parse("bad", raw)


class TestConditions:

    def test_empty_filter_only_excludes_deleted(self):
        assert len(build_product_conditions(ProductFilter())) == 1
        assert build_product_conditions(ProductFilter(include_deleted=True)) == []

    def test_each_dimension_adds_one_clause(self):
        product_filter = ProductFilter(
            term="lamp",
            statuses=[ProductStatus.ACTIVE, ProductStatus.DRAFT],
            category_ids=["c1"],
            collection_ids=["k1"],
            min_price=Decimal("1"),
            max_price=Decimal("2"),
            attributes={"color": "amber", "wattage": 40},
        )
        assert len(build_product_conditions(product_filter)) == 9

    def test_blank_term_and_empty_lists_are_omitted(self):
        product_filter = ProductFilter(term="   ", statuses=[], category_ids=[], collection_ids=[])
        assert len(build_product_conditions(product_filter)) == 1

    def test_inverted_price_range_is_rejected(self, service):
        with pytest.raises(ValidationFailedError) as exc_info:
            service.search_products({"min_price": "10", "max_price": "5"})
        assert exc_info.value.code == "VALIDATION_ERROR"


class TestFilters:

    def test_term_matches_title_case_insensitively(self, service, catalog):
        assert slugs(service.search_products({"term": "LAMP"})) == ["aurora-lamp"]

    def test_term_matches_keyword_exactly(self, service, catalog):
        assert slugs(service.search_products({"term": "Nordic"})) == ["aurora-lamp"]
        assert slugs(service.search_products({"term": "nord"})) == []

    def test_single_and_multiple_statuses(self, service, catalog):
        assert slugs(service.search_products({"statuses": ["DRAFT"]})) == ["draft-sconce"]
        result = service.search_products({"statuses": ["DRAFT", "ARCHIVED"]})
        assert set(slugs(result)) == {"draft-sconce", "old-lantern"}

    def test_category_membership(self, service, catalog):
        result = service.search_products({"category_ids": [catalog["garden"].id]})
        assert set(slugs(result)) == {"nova-pendant", "old-lantern"}

    def test_primary_category_takes_precedence(self, service, catalog):
        result = service.search_products({
            "primary_category_id": catalog["lighting"].id,
            "category_ids": [catalog["garden"].id],
        })
        assert set(slugs(result)) == {"aurora-lamp", "draft-sconce"}

    def test_collection_membership(self, service, session_factory, catalog):
        with session_factory() as session:
            collection = Collection(name="Autumn Edit", slug="autumn-edit")
            session.add(collection)
            session.commit()
            collection_id = collection.id
        service.update_product(catalog["nova"].id, {"collection_ids": [collection_id]})

        result = service.search_products({"collection_ids": [collection_id]})
        assert slugs(result) == ["nova-pendant"]

    def test_price_bounds_are_inclusive_and_independent(self, service, catalog):
        assert set(slugs(service.search_products({"min_price": "49.90"}))) == {"aurora-lamp", "nova-pendant"}
        assert set(slugs(service.search_products({"max_price": "30.00"}))) == {"draft-sconce", "old-lantern"}
        assert slugs(service.search_products({"min_price": "40", "max_price": "50"})) == ["aurora-lamp"]

    def test_attribute_text_list_and_number(self, service, catalog):
        assert slugs(service.search_products({"attributes": {"color": "amber"}})) == ["aurora-lamp"]
        assert slugs(service.search_products({"attributes": {"materials": "brass"}})) == ["aurora-lamp"]
        result = service.search_products({"attributes": {"color": ["amber", "white"]}})
        assert set(slugs(result)) == {"aurora-lamp", "nova-pendant"}
        assert slugs(service.search_products({"attributes": {"wattage": 60}})) == ["nova-pendant"]

    def test_attribute_keys_are_anded(self, service, catalog):
        result = service.search_products({"attributes": {"color": "amber", "wattage": 60}})
        assert result.items == []

    def test_deleted_products_hidden_unless_requested(self, service, catalog):
        service.archive_product(catalog["aurora"].id)
        assert "aurora-lamp" not in slugs(service.search_products())
        assert "aurora-lamp" in slugs(service.search_products({"include_deleted": True}))


class TestOrdering:

    def test_default_order_puts_active_first(self, service, catalog):
        result = service.search_products()
        statuses = [item.status for item in result.items]
        assert statuses == [ProductStatus.ACTIVE, ProductStatus.ACTIVE, ProductStatus.DRAFT, ProductStatus.ARCHIVED]
        # Newest first among equals
        assert slugs(result)[:2] == ["nova-pendant", "aurora-lamp"]

    def test_price_sorts(self, service, catalog):
        asc = slugs(service.search_products({"sort": "price_asc"}))
        assert asc == ["draft-sconce", "old-lantern", "aurora-lamp", "nova-pendant"]
        assert slugs(service.search_products({"sort": "price_desc"})) == list(reversed(asc))

    def test_title_and_age_sorts(self, service, catalog):
        assert slugs(service.search_products({"sort": "title_asc"}))[0] == "aurora-lamp"
        assert slugs(service.search_products({"sort": "oldest"}))[0] == "aurora-lamp"
        assert slugs(service.search_products({"sort": "newest"}))[0] == "old-lantern"


class TestOffsetPagination:

    def test_meta(self, service, catalog):
        result = service.search_products(None, {"page": 2, "page_size": 3})
        assert len(result.items) == 1
        assert result.meta.model_dump() == {
            "page": 2,
            "page_size": 3,
            "total_items": 4,
            "total_pages": 2,
            "has_next_page": False,
            "has_previous_page": True,
        }

    def test_no_matches_still_reports_one_page(self, service, catalog):
        result = service.search_products({"term": "does-not-exist"})
        assert result.meta.total_items == 0
        assert result.meta.total_pages == 1
        assert result.meta.has_next_page is False

    def test_page_size_is_capped(self, service, config, catalog):
        config.max_page_size = 2
        result = service.search_products(None, {"page_size": 50})
        assert result.meta.page_size == 2
        assert len(result.items) == 2

    def test_unknown_category_slug_returns_empty_page(self, service, catalog):
        result = service.search_products({"category_slug": "nope"}, {"page": 3, "page_size": 10})
        assert result.items == []
        assert result.meta.model_dump() == {
            "page": 3,
            "page_size": 10,
            "total_items": 0,
            "total_pages": 0,
            "has_next_page": False,
            "has_previous_page": True,
        }

    def test_category_slug_merges_into_category_ids(self, service, catalog):
        result = service.search_products({"category_slug": "garden", "statuses": ["ACTIVE"]})
        assert slugs(result) == ["nova-pendant"]


class TestCursorPagination:

    def test_cursor_boundary(self, service, make_product):
        for title in ("One", "Two", "Three"):
            make_product(title)

        first = service.search_products_by_cursor(None, {"take": 2})
        assert len(first.items) == 2
        assert first.has_more is True
        assert first.next_cursor == first.items[1].id

        second = service.search_products_by_cursor(None, {"take": 2, "cursor": first.next_cursor})
        assert len(second.items) == 1
        assert second.has_more is False
        assert second.next_cursor is None

        seen = [item.id for item in first.items + second.items]
        assert len(set(seen)) == 3

    @pytest.mark.parametrize("sort", ["relevance", "price_asc", "price_desc", "title_desc", "oldest"])
    def test_cursor_walk_matches_offset_order(self, service, catalog, sort):
        expected = slugs(service.search_products({"sort": sort}))

        walked, cursor = [], None
        while True:
            page = service.search_products_by_cursor({"sort": sort}, {"take": 1, "cursor": cursor})
            walked.extend(slugs(page))
            if not page.has_more:
                break
            cursor = page.next_cursor
        assert walked == expected

    def test_unknown_cursor_is_rejected(self, service, catalog):
        with pytest.raises(ValidationFailedError):
            service.search_products_by_cursor(None, {"take": 2, "cursor": "missing"})

    def test_unknown_category_slug_returns_no_items(self, service, catalog):
        result = service.search_products_by_cursor({"category_slug": "nope"}, {"take": 5})
        assert result.items == []
        assert result.has_more is False
        assert result.next_cursor is None


def test_engine_works_on_a_plain_session(session_factory, make_product):
    make_product("Solo Lamp")
    with session_factory() as session:
        engine = ProductSearchEngine(session)
        result = engine.search(ProductFilter(), PageRequest(page_size=5))
        assert slugs(result) == ["solo-lamp"]
        cursor_result = engine.search_by_cursor(ProductFilter(), CursorRequest(take=5))
        assert cursor_result.has_more is False
        assert session.scalar(select(Product.slug)) == "solo-lamp"
