"""
Tests for peek: existence checks across relation references.
"""

import asyncio

import pytest

from crudkit import crud
from crudkit.crud import registry
from crudkit.crud.base import CRUDOptions, gather_all
from crudkit.models import Category, Product, User


class TestRegistry:
    """Tests for the entity registry"""

    def test_known_relations(self):
        assert registry.resolve("category") is Category
        assert registry.resolve("owner") is User
        assert registry.resolve("product") is Product

    def test_unknown_property_is_not_a_relation(self):
        assert registry.resolve("title") is None

    def test_register_alias(self, monkeypatch):
        monkeypatch.setattr(registry, "_RELATIONS", dict(registry._RELATIONS))
        registry.register("seller", User)
        assert registry.resolve("seller") is User


class TestPeek:
    """Tests for the three reference shapes and the result contract"""

    @pytest.mark.asyncio
    async def test_id_list_drops_missing_rows(self, db_session, catalog):
        ids = [catalog["products"][0].id, catalog["products"][1].id]
        result = await crud.product.peek(db_session, {"product": {"id": ids + [999]}})

        assert result.is_peek_success is True
        assert sorted(row.id for row in result.object_data["product"]) == sorted(ids)
        assert len(result.data) == 2

    @pytest.mark.asyncio
    async def test_id_list_all_missing(self, db_session, catalog):
        result = await crud.product.peek(db_session, {"product": {"id": [998, 999]}})

        assert result.is_peek_success is False
        assert result.data == []
        assert result.object_data["product"] == []

    @pytest.mark.asyncio
    async def test_flat_relation_ids(self, db_session, catalog):
        result = await crud.product.peek(
            db_session, {"category": catalog["games"].id, "owner": catalog["alice"].id}
        )

        assert result.is_peek_success is True
        assert result.object_data["category"].slug == "games"
        assert result.object_data["owner"].email == "alice@example.com"
        assert len(result.data) == 2

    @pytest.mark.asyncio
    async def test_nested_single_id_missing(self, db_session, catalog):
        result = await crud.product.peek(db_session, {"category": {"id": 999}})

        assert result.is_peek_success is False
        assert result.object_data == {"category": None}

    @pytest.mark.asyncio
    async def test_own_id(self, db_session, catalog):
        chess = catalog["products"][3]
        result = await crud.product.peek(db_session, {"id": chess.id})

        assert result.is_peek_success is True
        assert result.object_data["id"].title == "Chess Set"

    @pytest.mark.asyncio
    async def test_non_relation_keys_are_ignored(self, db_session, catalog):
        result = await crud.product.peek(db_session, {"title": "Dune"})

        assert result.is_peek_success is False
        assert result.object_data == {}

    @pytest.mark.asyncio
    async def test_fetch_error_runs_fallback_and_propagates(self, db_session, catalog, monkeypatch):
        calls = []

        def broken_resolve(name):
            raise RuntimeError("registry unavailable")

        monkeypatch.setattr(registry, "resolve", broken_resolve)

        with pytest.raises(RuntimeError):
            await crud.product.peek(
                db_session,
                {"category": catalog["books"].id},
                CRUDOptions(fallback=lambda: calls.append("fallback")),
            )
        assert calls == ["fallback"]


class TestGatherAll:
    """Tests for the concurrent fan-out helper"""

    @pytest.mark.asyncio
    async def test_siblings_finish_before_error(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.05)
            finished.append("slow")
            return "slow"

        async def broken():
            raise RuntimeError("lookup failed")

        with pytest.raises(RuntimeError, match="lookup failed"):
            await gather_all(broken(), slow())
        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_results_keep_order(self):
        async def value(v):
            return v

        assert await gather_all(value(1), value(2)) == [1, 2]
