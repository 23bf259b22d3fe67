import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crudkit import crud
from crudkit.core.database import get_db
from crudkit.core.responses import emit_success
from crudkit.models.product import Product
from crudkit.schemas.product import ProductCreateRequest, ProductUpdateRequest

router = APIRouter(prefix="/products", tags=["Products"])
logger = logging.getLogger(__name__)


@router.post("/", status_code=201)
async def create_product(request: ProductCreateRequest, db: AsyncSession = Depends(get_db)):
    """
    Create a product.

    The category (and owner, when given) must exist; otherwise 404.
    """
    await crud.product.ensure_references(
        db, category_id=request.category_id, owner_id=request.owner_id
    )
    return await crud.product.create(db, request)


@router.get("/")
async def list_products(
    category: Optional[int] = None,
    owner: Optional[int] = None,
    title: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    include: Optional[List[str]] = Query(None, description="Relations to load: category, owner"),
    page: Optional[int] = Query(None, ge=1),
    take: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    List products with flat filters.

    `category` and `owner` take ids and load the matching relation;
    `title` is a case-insensitive substring match.
    """
    where = {"page": page, "take": take}
    if category is not None:
        where["category"] = category
    if owner is not None:
        where["owner"] = owner
    if title:
        where["title"] = {"ilike": f"%{title}%"}

    price = {}
    if min_price is not None:
        price["gte"] = min_price
    if max_price is not None:
        price["lte"] = max_price
    if price:
        where["price"] = price

    return await crud.product.find(db, where, relations=include)


@router.get("/all")
async def list_all_products(
    in_stock: bool = False,
    page: Optional[int] = Query(None, ge=1),
    take: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Plain listing, always paginated, ordered by id, with categories loaded."""
    filters = [Product.stock > 0] if in_stock else []
    return await crud.product.get_all(
        db,
        filters=filters,
        loader_options=[selectinload(Product.category)],
        order_by=Product.id,
        page=page,
        take=take,
    )


@router.get("/exists")
async def products_exist(ids: List[int] = Query(...), db: AsyncSession = Depends(get_db)):
    """Report which of the given product ids exist."""
    result = await crud.product.peek(db, {"product": {"id": ids}})
    found = sorted(row.id for row in result.data)
    missing = [product_id for product_id in ids if product_id not in found]
    return emit_success(
        {"is_peek_success": result.is_peek_success, "found": found, "missing": missing},
        "Product",
        description="Products checked Successfully",
        toast="Products checked Successfully",
    )


@router.get("/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """Retrieve a product with its category and owner."""
    return await crud.product.find(db, {"id": product_id}, relations=["category", "owner"])


@router.patch("/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Partial update. A new category or owner must exist."""
    await crud.product.ensure_references(
        db, category_id=request.category_id, owner_id=request.owner_id
    )
    return await crud.product.update(db, {"id": product_id}, request)


@router.delete("/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.product.delete(db, {"id": product_id})
