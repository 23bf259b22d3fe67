"""
Tests for the error taxonomy and the centralized translators.
"""

import json

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.requests import Request

from crudkit.core import errors
from crudkit.core.config import settings
from crudkit.core.errors import ApiError, duplicate_field_error


def make_request() -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/v1/products/",
        "headers": [],
        "query_string": b"",
        "server": ("test", 80),
        "scheme": "http",
        "root_path": "",
    })


class FakePgError(Exception):
    sqlstate = "23505"


class TestApiError:
    """Tests for the error taxonomy"""

    @pytest.mark.parametrize("factory, code", [
        (ApiError.bad_request, 400),
        (ApiError.unauthorized, 401),
        (ApiError.forbidden, 403),
        (ApiError.not_found, 404),
        (ApiError.conflict, 409),
        (ApiError.unprocessable, 422),
        (ApiError.server_error, 500),
        (ApiError.duplicate_field, 400),
        (ApiError.validation_error, 400),
    ])
    def test_factories(self, factory, code):
        error = factory("boom")
        assert error.to_dict() == {"code": code, "message": "boom", "status": "Failed"}
        assert error.status_code == code


class TestDuplicateField:
    """Tests for uniqueness violation parsing"""

    def test_sqlite_message(self):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: users.full_name"))
        assert duplicate_field_error(error).message == "Full Name already exists."

    def test_postgres_message(self):
        orig = FakePgError(
            'duplicate key value violates unique constraint "ix_categories_slug"\n'
            "DETAIL:  Key (slug)=(books) already exists."
        )
        error = IntegrityError("INSERT", {}, orig)
        duplicate = duplicate_field_error(error)
        assert duplicate.code == 400
        assert duplicate.message == "Slug of books already exists."

    def test_other_integrity_errors(self):
        error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: products.title"))
        assert duplicate_field_error(error) is None


class TestTranslators:
    """Tests for masking database errors outside development"""

    @pytest.mark.asyncio
    async def test_database_error_in_development(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "dev")
        error = OperationalError("SELECT", {}, Exception("no such table: products"))

        response = await errors.database_error_handler(make_request(), error)

        assert response.status_code == 500
        assert json.loads(response.body)["message"] == "Query Failed Error"

    @pytest.mark.asyncio
    async def test_database_error_masked_in_production(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "prod")
        error = OperationalError("SELECT", {}, Exception("no such table: products"))

        response = await errors.database_error_handler(make_request(), error)

        body = json.loads(response.body)
        assert body == {"code": 500, "message": errors.GENERIC_SERVER_MESSAGE, "status": "Failed"}
        assert "products" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_non_unique_integrity_error_is_masked(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "prod")
        error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: products.title"))

        response = await errors.integrity_error_handler(make_request(), error)

        assert response.status_code == 500
        assert json.loads(response.body)["message"] == errors.GENERIC_SERVER_MESSAGE

    @pytest.mark.asyncio
    async def test_unhandled_error_masked_in_production(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "prod")

        response = await errors.unhandled_error_handler(make_request(), ValueError("secret detail"))

        assert response.status_code == 500
        assert "secret detail" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_bad_filter_over_http(self, client, catalog):
        response = await client.get("/api/v1/products/", params={"include": ["category", "ghost"]})

        assert response.status_code == 400
        assert response.json()["status"] == "Failed"
        assert "ghost" in response.json()["message"]


class TestRoutingErrors:
    """Tests for errors raised by the router itself"""

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/v1/nowhere")

        assert response.status_code == 404
        assert response.json() == {"code": 404, "message": "Not Found", "status": "Failed"}

    @pytest.mark.asyncio
    async def test_wrong_method_keeps_allow_header(self, client, catalog):
        response = await client.post(f"/api/v1/products/{catalog['products'][0].id}")

        assert response.status_code == 405
        assert response.json()["status"] == "Failed"
        assert response.json()["message"] == "Method Not Allowed"
        assert "GET" in response.headers["allow"]
