from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crudkit import crud
from crudkit.core.database import get_db
from crudkit.schemas.category import CategoryCreateRequest, CategoryUpdateRequest

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.post("/", status_code=201)
async def create_category(request: CategoryCreateRequest, db: AsyncSession = Depends(get_db)):
    return await crud.category.create(db, request)


@router.get("/")
async def list_categories(
    name: Optional[str] = None,
    slug: Optional[str] = None,
    include: Optional[List[str]] = Query(None, description="Relations to load, e.g. products"),
    page: Optional[int] = Query(None, ge=1),
    take: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    List categories.

    `name` matches case-insensitively on a substring, `slug` exactly.
    """
    where = {"page": page, "take": take}
    if name:
        where["name"] = {"ilike": f"%{name}%"}
    if slug:
        where["slug"] = slug
    return await crud.category.find(db, where, relations=include)


@router.get("/{category_id}")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    """Retrieve a category with its products."""
    return await crud.category.find(db, {"id": category_id}, relations=["products"])


@router.patch("/{category_id}")
async def update_category(
    category_id: int,
    request: CategoryUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    return await crud.category.update(db, {"id": category_id}, request)


@router.delete("/{category_id}")
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a category. Its products are deleted with it."""
    return await crud.category.delete(db, {"id": category_id})


@router.delete("/")
async def delete_categories(name: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Delete every category (or those whose name contains `name`) in one transaction."""
    where = {"name": {"ilike": f"%{name}%"}} if name else None
    return await crud.category.delete_all(db, where)
