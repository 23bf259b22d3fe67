"""
Unit tests for filter shaping.

Tests:
- Flat relation filters are rewritten to the nested id shape
- Rewriting is idempotent
- Relations implied by a filter
- Compilation to SQL clauses
"""

import pytest

from crudkit.core.errors import ApiError
from crudkit.crud.filters import (
    compile_where,
    get_relations_from_where,
    is_operator_expression,
    merge_relations,
    purify_where,
    relation_names,
)
from crudkit.models import Category, Product, User


def to_sql(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


class TestPurifyWhere:
    """Tests for the flat -> nested rewrite"""

    def test_relation_scalar_becomes_nested_id(self):
        assert purify_where({"category": 3}, ["category", "owner"]) == {"category": {"id": 3}}

    def test_non_relation_values_unchanged(self):
        where = {"title": "Dune", "price": 12.5}
        assert purify_where(where, ["category"]) == where

    def test_mixed_filter(self):
        result = purify_where({"category": 1, "owner": 2, "title": "x"}, ["category", "owner"])
        assert result == {"category": {"id": 1}, "owner": {"id": 2}, "title": "x"}

    def test_nested_and_operator_values_untouched(self):
        where = {"category": {"id": [1, 2]}, "owner": {"in": [4, 5]}}
        assert purify_where(where, ["category", "owner"]) == where

    def test_idempotent(self):
        once = purify_where({"category": 3, "owner": {"gte": 2}, "slug": "a"}, ["category", "owner"])
        twice = purify_where(once, ["category", "owner"])
        assert once == twice

    def test_does_not_mutate_input(self):
        where = {"category": 3}
        purify_where(where, ["category"])
        assert where == {"category": 3}


class TestRelationsFromWhere:
    """Tests for the relation resolver"""

    def test_only_relation_keys(self):
        assert get_relations_from_where({"slug": 1, "title": "x"}, ["slug"]) == {"slug": True}

    def test_no_relations(self):
        assert get_relations_from_where({"title": "x"}, ["category"]) == {}

    def test_model_metadata(self):
        assert set(relation_names(Product)) == {"category", "owner"}
        assert relation_names(Category) == ["products"]

    def test_merge_keeps_explicit_relations(self):
        merged = merge_relations({"category": True}, ["owner", "category"])
        assert merged == ["category", "owner"]

    def test_merge_ignores_disabled_entries(self):
        assert merge_relations({"category": False, "owner": True}, None) == ["owner"]


class TestCompileWhere:
    """Tests for filter -> SQL compilation"""

    def test_scalar_equality(self):
        (clause,) = compile_where(Product, {"title": "Dune"})
        assert to_sql(clause) == "products.title = 'Dune'"

    def test_list_becomes_in(self):
        (clause,) = compile_where(Product, {"id": [1, 2]})
        assert to_sql(clause) == "products.id IN (1, 2)"

    def test_none_becomes_is_null(self):
        (clause,) = compile_where(Product, {"owner_id": None})
        assert to_sql(clause) == "products.owner_id IS NULL"

    def test_operator_expression(self):
        (clause,) = compile_where(Product, {"price": {"gte": 10, "lt": 20}})
        sql = to_sql(clause)
        assert "products.price >= 10" in sql
        assert "products.price < 20" in sql

    def test_many_to_one_relation_uses_exists(self):
        (clause,) = compile_where(Product, purify_where({"category": 3}, relation_names(Product)))
        sql = to_sql(clause)
        assert "EXISTS" in sql
        assert "categories.id = 3" in sql

    def test_relation_nested_columns(self):
        (clause,) = compile_where(Product, {"category": {"slug": "books"}})
        assert "categories.slug = 'books'" in to_sql(clause)

    def test_one_to_many_relation(self):
        (clause,) = compile_where(Category, {"products": {"id": [1, 2]}})
        sql = to_sql(clause)
        assert "EXISTS" in sql
        assert "products.id IN (1, 2)" in sql

    def test_operator_on_relation_targets_related_id(self):
        (clause,) = compile_where(Product, {"owner": {"in": [1, 2]}})
        assert "users.id IN (1, 2)" in to_sql(clause)

    def test_unknown_field_is_bad_request(self):
        with pytest.raises(ApiError) as exc_info:
            compile_where(User, {"nickname": "x"})
        assert exc_info.value.code == 400
        assert "nickname" in exc_info.value.message

    def test_unknown_operator_is_bad_request(self):
        with pytest.raises(ApiError) as exc_info:
            compile_where(Product, {"price": {"around": 10}})
        assert exc_info.value.code == 400

    def test_operator_detection(self):
        assert is_operator_expression({"gte": 1})
        assert not is_operator_expression({"id": 1})
        assert not is_operator_expression({})
