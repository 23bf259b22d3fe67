from typing import Any, AsyncGenerator, Dict

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from crudkit.core.config import settings


class SerializableModel:
    """
    Mixin giving every model a JSON-friendly ``to_dict``.

    Only attributes that are already loaded are read, so serializing never
    triggers lazy loading on an async session.
    """

    # Columns never exposed in responses (e.g. password hashes)
    __hidden_fields__: tuple = ()

    def to_dict(self, include_relations: bool = True) -> Dict[str, Any]:
        state = inspect(self)
        unloaded = state.unloaded
        data: Dict[str, Any] = {}

        for column in state.mapper.column_attrs:
            if column.key in unloaded or column.key in self.__hidden_fields__:
                continue
            data[column.key] = getattr(self, column.key)

        if not include_relations:
            return data

        # Relations are serialized one level deep to avoid back-reference cycles
        for relation in state.mapper.relationships:
            if relation.key in unloaded:
                continue
            value = getattr(self, relation.key)
            if value is None:
                data[relation.key] = None
            elif relation.uselist:
                data[relation.key] = [item.to_dict(include_relations=False) for item in value]
            else:
                data[relation.key] = value.to_dict(include_relations=False)
        return data


# Create async SQLAlchemy engine
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using them
)

# Create session factory
SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create Base class for models
Base = declarative_base(cls=SerializableModel)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.
    Used in FastAPI endpoints with Depends(get_db)
    """
    async with SessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database.

    Imports the models so they register on ``Base.metadata`` and creates any
    missing tables.
    """
    from crudkit import models  # noqa: F401  Import models to register them

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of pooled connections on shutdown."""
    await engine.dispose()
