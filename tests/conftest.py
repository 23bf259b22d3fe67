"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown (one SQLite file per test)
- Async HTTP client bound to the FastAPI app
- A small seeded catalog
"""

import os

# Point the application engine at SQLite before anything imports it
os.environ.setdefault("DATABASE_URI", "sqlite+aiosqlite:///./test_crudkit.db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crudkit.core.database import Base, get_db
from crudkit.core.security import get_password_hash
from crudkit.models import Category, Product, User
from main import app


@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    Fresh database file per test. A file (not :memory:) so that peek's
    concurrent sessions see the same data.
    """
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    TestingSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with TestingSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session):
    """
    Async test client with overridden database dependency.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def catalog(db_session):
    """
    Seed two categories, one user and four products.

    Returns a dict of the created rows.
    """
    alice = User(email="alice@example.com", full_name="Alice", password=get_password_hash("Sup3rSecret!"))
    books = Category(name="Books", slug="books")
    games = Category(name="Games", slug="games")
    db_session.add_all([alice, books, games])
    await db_session.flush()

    products = [
        Product(title="Dune", price=12.5, stock=3, category_id=books.id, owner_id=alice.id),
        Product(title="Neuromancer", price=9.0, stock=0, category_id=books.id, owner_id=alice.id),
        Product(title="Foundation", price=15.0, stock=7, category_id=books.id),
        Product(title="Chess Set", price=40.0, stock=2, category_id=games.id),
    ]
    db_session.add_all(products)
    await db_session.commit()

    return {"alice": alice, "books": books, "games": games, "products": products}


@pytest.fixture
def sample_user_data():
    """Sample registration payload"""
    return {
        "email": "bob@example.com",
        "password": "plain-password",
        "full_name": "Bob",
    }
