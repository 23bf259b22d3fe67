import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crudkit import crud
from crudkit.core.database import get_db
from crudkit.core.errors import ApiError
from crudkit.core.responses import emit_success, send_response, serialize
from crudkit.core.security import create_access_token
from crudkit.schemas.user import UserCreateRequest, UserLoginRequest, UserUpdateRequest

router = APIRouter(prefix="/users", tags=["Users"])
logger = logging.getLogger(__name__)


@router.post("/", status_code=201)
async def create_user(request: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a user. The password is stored as a bcrypt hash and never returned.

    A duplicate email answers 400 "Email ... already exists.".
    """
    return await crud.user.create(db, request)


@router.get("/")
async def list_users(
    email: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: Optional[int] = Query(None, ge=1),
    take: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List users, optionally filtered by email or active flag."""
    where = {"email": email, "is_active": is_active}
    where = {key: value for key, value in where.items() if value is not None}
    return await crud.user.find(db, {**where, "page": page, "take": take})


@router.get("/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.user.find(db, {"id": user_id})


@router.patch("/{user_id}")
async def update_user(user_id: int, request: UserUpdateRequest, db: AsyncSession = Depends(get_db)):
    """Partial update. A new password is re-hashed."""
    return await crud.user.update(db, {"id": user_id}, request)


@router.delete("/{user_id}")
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.user.delete(db, {"id": user_id})


@router.post("/login")
async def login(request: UserLoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Check credentials and hand out a signed token in a cookie.

    Raises:
        ApiError 401: If the email is unknown, the account inactive or the password wrong
    """
    user = await crud.user.authenticate(db, email=request.email, password=request.password)
    if user is None:
        raise ApiError.unauthorized("Invalid email or password.")

    token = create_access_token({"sub": str(user.id)})
    logger.info(f"User {user.id} logged in")
    return send_response(
        data={
            "description": "Logged in Successfully",
            "results": serialize(user),
            "toast": "Welcome back!",
        },
        with_cookie=True,
        token=token,
    )


@router.post("/logout")
async def logout():
    return emit_success(
        None,
        "User",
        description="Logged out Successfully",
        toast="Logged out Successfully",
        clear_cookie=True,
    )
