"""
Generic CRUD operations shared by every entity.

A ``CRUDBase`` is bound to one model and holds no request state: each
operation receives the request's ``AsyncSession`` explicitly and answers
with a success envelope (``JSONResponse``) or raises. Raised errors are
translated by the handlers in :mod:`crudkit.core.errors`.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, inspect, select, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from crudkit.core import responses
from crudkit.core.database import Base
from crudkit.core.errors import ApiError
from crudkit.core.pagination import build_meta, compute_skip_take, resolve_page_and_take
from crudkit.core.security import get_password_hash
from crudkit.crud import registry
from crudkit.crud.filters import (
    Relations,
    compile_where,
    get_relations_from_where,
    merge_relations,
    purify_where,
    relation_names,
)

ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)

# CRUDOptions.response keys that shape the HTTP response, not the envelope body
SEND_RESPONSE_ARGS = ("status_code", "content_type", "with_cookie", "token", "cookie_options", "clear_cookie")


@dataclass
class CRUDOptions:
    """
    Per-call options.

    * ``fallback``: sync or async callable run before an error propagates
      (e.g. to delete an uploaded file).
    * ``response``: overrides merged into the success envelope body
      (``description``, ``toast``, ``results``, ``meta``, ``status``,
      ``cookie``). Keys in ``SEND_RESPONSE_ARGS`` go to ``send_response``.
    """
    fallback: Optional[Callable[[], Any]] = None
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PeekResult:
    is_peek_success: bool
    data: List[Any]
    object_data: Dict[str, Any]


@dataclass
class ExistsResult:
    is_exists: bool
    data: Optional[Any]


async def run_fallback(options: Optional[CRUDOptions]) -> None:
    if options is None or options.fallback is None:
        return
    result = options.fallback()
    if asyncio.iscoroutine(result):
        await result


async def gather_all(*aws) -> list:
    """
    Await every awaitable, then raise the first failure if any.

    Every awaitable has finished by the time the error propagates.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def _as_dict(
obj_in: Union[BaseModel, Mapping], exclude_unset: bool = False) -> Dict[str, Any]:
    if isinstance(obj_in, BaseModel):
        return obj_in.model_dump(exclude_unset=exclude_unset)
    return dict(obj_in)


def _hash_password(values: Dict[str, Any]) -> Dict[str, Any]:
    if values.get("password"):
        values["password"] = get_password_hash(values["password"])
    return values


def _accumulate(object_data: Dict[str, Any], property_name: str, row: Any) -> None:
    if property_name in object_data:
        existing = object_data[property_name]
        existing = existing if isinstance(existing, list) else [existing]
        object_data[property_name] = existing + [row]
    else:
        object_data[property_name] = row


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType], name: Optional[str] = None):
        """CRUD object with default methods to Create, Read, Update and Delete (CRUD).

        **Parameters**
        * `model`: A SQLAlchemy model class
        * `name`: Human readable entity name used in response messages
        """
        self.model = model
        self.name = name or model.__name__

    # ------------------------------------------------------------------
    # Query shaping
    # ------------------------------------------------------------------

    @property
    def relation_names(self) -> List[str]:
        return relation_names(self.model)

    def purify_where(self, where: Mapping) -> Dict[str, Any]:
        """Allow {"category": 1} as well as {"category": {"id": 1}}."""
        return purify_where(where, self.relation_names)

    def get_relations_from_where(self, where: Mapping) -> Dict[str, bool]:
        return get_relations_from_where(where, self.relation_names)

    def query(self) -> Select:
        """Just a query object for the model."""
        return select(self.model)

    def where_clauses(self, where: Optional[Mapping]) -> list:
        return compile_where(self.model, self.purify_where(where or {}))

    def loader_options(self, relations: Sequence[str]) -> list:
        known = self.relation_names
        unknown = [name for name in relations if name not in known]
        if unknown:
            raise ApiError.bad_request(f"Unknown relation(s) for {self.name}: {', '.join(unknown)}.")
        return [selectinload(getattr(self.model, name)) for name in relations]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def emit_success(
        self,
        data: Any,
        *,
        description: str,
        toast: str,
        status: int = 200,
        meta: Optional[Dict[str, Any]] = None,
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        envelope: Dict[str, Any] = dict(options.response) if options is not None else {}
        response_kwargs = {key: envelope.pop(key) for key in SEND_RESPONSE_ARGS if key in envelope}
        return responses.emit_success(
            data,
            self.name,
            description=envelope.pop("description", description),
            toast=envelope.pop("toast", toast),
            status=response_kwargs.pop("status_code", status),
            meta=envelope.pop("meta", meta),
            envelope=envelope,
            **response_kwargs,
        )

    async def _on_error(self, db: AsyncSession, operation: str, exc: Exception, options: Optional[CRUDOptions]) -> None:
        logger.error(f"{self.name} {operation} failed: {exc!r}", exc_info=exc)
        await db.rollback()
        await run_fallback(options)

    async def commit_refresh(self, db: AsyncSession, obj: ModelType) -> ModelType:
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
        return obj

    async def count_q(self, db: AsyncSession, query: Select) -> int:
        q = select(func.count()).select_from(query.subquery())
        result = await db.execute(q)
        return result.scalar_one()

    async def find_and_count(
        self,
        db: AsyncSession,
        query: Select,
        *,
        skip: int,
        take: int,
        loader_options: Sequence[Any] = (),
        order_by: Optional[Any] = None,
    ) -> tuple:
        total = await self.count_q(db, query)
        if order_by is None:
            order_by = [self.model.id]
        elif not isinstance(order_by, (list, tuple)):
            order_by = [order_by]
        stmt = query.options(*loader_options).order_by(*order_by).offset(skip).limit(take)
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def find(
        self,
        db: AsyncSession,
        where: Optional[Mapping] = None,
        relations: Optional[Relations] = None,
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """
        Paginated lookup with a flat or nested filter.

        ``where`` may carry ``page`` and ``take``. Relations referenced by the
        filter are loaded along with any explicitly requested ``relations``.

        Raises:
            ApiError 404: If nothing matches
        """
        try:
            where = dict(where or {})
            page, take = resolve_page_and_take(where.pop("page", None), where.pop("take", None))
            skip, take = compute_skip_take(page, take)

            # {"category": {"id": 1}} -> {"category": True}, only for relations
            added_relations = self.get_relations_from_where(where)
            loads = self.loader_options(merge_relations(added_relations, relations))

            query = self.query().where(*self.where_clauses(where))
            data, total_records = await self.find_and_count(
                db, query, skip=skip, take=take, loader_options=loads
            )
        except Exception as e:
            await self._on_error(db, "find", e, options)
            raise

        if not data:
            raise ApiError.not_found(f"{self.name} not found.")

        meta = build_meta(page, take, total_records)
        return self.emit_success(
            data,
            description=f"{self.name} fetched Successfully",
            toast=f"{self.name} fetched Successfully",
            meta=meta if len(data) > 1 else None,
            options=options,
        )

    async def get_all(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Sequence[Any]] = None,
        loader_options: Optional[Sequence[Any]] = None,
        order_by: Optional[Any] = None,
        page: Optional[int] = None,
        take: Optional[int] = None,
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """Paginated listing over raw SQLAlchemy clauses, no filter normalization."""
        try:
            page, take = resolve_page_and_take(page, take)
            skip, take = compute_skip_take(page, take)
            query = self.query().where(*(filters or []))
            data, total_records = await self.find_and_count(
                db,
                query,
                skip=skip,
                take=take,
                loader_options=loader_options or (),
                order_by=order_by,
            )
        except Exception as e:
            await self._on_error(db, "get_all", e, options)
            raise

        return self.emit_success(
            data,
            description=f"{self.name}s fetched Successfully",
            toast=f"{self.name}s fetch Successfully",
            meta=build_meta(page, take, total_records),
            options=options,
        )

    async def peek(
        self,
        db: AsyncSession,
        where: Mapping,
        options: Optional[CRUDOptions] = None,
    ) -> PeekResult:
        """
        Check that every entity referenced by ``where`` exists.

        Handles ``{"product": {"id": [1, 2]}}``, ``{"product": {"id": 1}}``,
        ``{"product": 1}`` and ``{"id": 1}``. Every lookup runs concurrently in
        its own short-lived session, since one ``AsyncSession`` cannot run
        statements concurrently. Keys that are neither ``id`` nor a registered
        relation are ignored.
        """
        purified = self.purify_where(where)
        object_data: Dict[str, Any] = {}

        async def fetch(model, identifier):
            async with AsyncSession(bind=db.bind, expire_on_commit=False) as session:
                return await session.get(model, identifier)

        async def peek_property(property_name: str, value: Any):
            model = self.model if property_name == "id" else registry.resolve(property_name)
            if model is None:
                return None

            nested_id = value.get("id") if isinstance(value, Mapping) else None
            # {"product": {"id": [1, 2, 3]}}
            if isinstance(nested_id, (list, tuple, set)) and nested_id:
                rows = await gather_all(*(fetch(model, item) for item in nested_id))
                found = [row for row in rows if row is not None]
                existing = object_data.get(property_name, [])
                existing = existing if isinstance(existing, list) else [existing]
                object_data[property_name] = existing + found
                return found
            # {"product": {"id": 1}}
            if nested_id and not isinstance(nested_id, (list, tuple, set)):
                row = await fetch(model, nested_id)
                _accumulate(object_data, property_name, row)
                return row
            # {"id": 1}
            if isinstance(value, int) and not isinstance(value, bool):
                row = await fetch(model, value)
                _accumulate(object_data, property_name, row)
                return row
            return None

        try:
            results = await gather_all(
                *(peek_property(name, value) for name, value in purified.items())
            )
        except Exception as e:
            logger.error(f"{self.name} peek failed: {e!r}")
            await run_fallback(options)
            raise

        data: List[Any] = []
        for result in results:
            if isinstance(result, list):
                data.extend(result)
            elif result is not None:
                data.append(result)

        return PeekResult(is_peek_success=bool(data), data=data, object_data=object_data)

    async def is_exists(self, db: AsyncSession, where: Mapping) -> ExistsResult:
        """Single lookup: does one row match ``where``? Relations in the filter are loaded."""
        relations = self.get_relations_from_where(where)
        stmt = (
            self.query()
            .where(*self.where_clauses(where))
            .options(*self.loader_options(merge_relations(relations)))
            .limit(1)
        )
        result = await db.execute(stmt)
        row = result.scalars().first()
        return ExistsResult(is_exists=row is not None, data=row)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create(
        self,
        db: AsyncSession,
        obj_in: Union[BaseModel, Mapping],
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """Create a row. A ``password`` field is stored as a bcrypt hash."""
        try:
            values = _hash_password(_as_dict(obj_in))
            db_obj = self.model(**values)
            await self.commit_refresh(db, db_obj)
        except Exception as e:
            await self._on_error(db, "create", e, options)
            raise

        logger.info(f"Created {self.name} {db_obj.id}")
        return self.emit_success(
            db_obj,
            description=f"{self.name} created Successfully.",
            toast=f"{self.name} was created Successfully.",
            status=201,
            options=options,
        )

    async def update(
        self,
        db: AsyncSession,
        criteria: Mapping,
        obj_in: Union[BaseModel, Mapping],
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """
        Apply a partial update to the rows matching ``criteria``.

        Primary keys are captured before updating and the row is re-read by
        primary key, so updating a field used in ``criteria`` still returns it.

        Raises:
            ApiError 404: If nothing matches
        """
        try:
            values = _hash_password(_as_dict(obj_in, exclude_unset=True))
            columns = {column.key for column in inspect(self.model).column_attrs}
            unknown = [key for key in values if key not in columns]
            if unknown:
                raise ApiError.bad_request(f"Unknown field(s) for {self.name}: {', '.join(unknown)}.")

            id_query = select(self.model.id).where(*self.where_clauses(criteria))
            ids = list((await db.execute(id_query)).scalars().all())

            updated = None
            if ids:
                if values:
                    await db.execute(
                        sql_update(self.model).where(self.model.id.in_(ids)).values(**values)
                    )
                    await db.commit()
                refetch = (
                    self.query()
                    .where(self.model.id == ids[0])
                    .execution_options(populate_existing=True)
                )
                updated = (await db.execute(refetch)).scalars().first()
        except Exception as e:
            await self._on_error(db, "update", e, options)
            raise

        if not ids:
            raise ApiError.not_found(f"{self.name} not found.")

        logger.info(f"Updated {self.name} ids={ids}")
        return self.emit_success(
            updated,
            description=f"{self.name} updated Successfully.",
            toast=f"{self.name} was updated Successfully.",
            options=options,
        )

    async def delete(
        self,
        db: AsyncSession,
        criteria: Mapping,
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """
        Delete the first row matching ``criteria`` and return its prior data.

        Raises:
            ApiError 404: If nothing matches
        """
        try:
            stmt = self.query().where(*self.where_clauses(criteria)).limit(1)
            db_obj = (await db.execute(stmt)).scalars().first()
            snapshot = db_obj.to_dict() if db_obj is not None else None
            if db_obj is not None:
                await db.delete(db_obj)
                await db.commit()
        except Exception as e:
            await self._on_error(db, "delete", e, options)
            raise

        if db_obj is None:
            raise ApiError.not_found(f"{self.name} not found.")

        logger.info(f"Deleted {self.name} {snapshot.get('id')}")
        return self.emit_success(
            snapshot,
            description=f"{self.name} delete Successfully.",
            toast=f"{self.name} delete Successfully.",
            options=options,
        )

    async def delete_all(
        self,
        db: AsyncSession,
        where: Optional[Mapping] = None,
        options: Optional[CRUDOptions] = None,
    ) -> JSONResponse:
        """
        Delete every row matching ``where``, one at a time.

        All deletions share the session transaction and are committed once,
        so a failure part way leaves nothing deleted.
        """
        try:
            stmt = self.query().where(*self.where_clauses(where))
            rows = list((await db.execute(stmt)).scalars().all())
            for row in rows:
                await db.delete(row)
            await db.commit()
        except Exception as e:
            await self._on_error(db, "delete_all", e, options)
            raise

        logger.info(f"Deleted {len(rows)} {self.name} rows")
        return self.emit_success(
            [],
            description="Deletion Successful",
            toast="Deletion Successful",
            options=options,
        )
