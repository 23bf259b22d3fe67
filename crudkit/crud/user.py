from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crudkit.core.security import verify_password
from crudkit.crud.base import CRUDBase
from crudkit.models.user import User


class CRUDUser(CRUDBase[User]):
    """
    CRUD for :any:`Users model<crudkit.models.user.User>`.

    Passwords are hashed by the base ``create``/``update``.
    """

    async def authenticate(self, db: AsyncSession, *, email: str, password: str) -> Optional[User]:
        """Return the active user owning ``email`` if ``password`` matches its hash."""
        found = await self.is_exists(db, {"email": email})
        user = found.data
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password):
            return None
        return user


user = CRUDUser(User, name="User")
