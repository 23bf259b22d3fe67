from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crudkit.core.errors import ApiError
from crudkit.crud.base import CRUDBase, CRUDOptions
from crudkit.models.product import Product


class CRUDProduct(CRUDBase[Product]):
    """CRUD for :any:`Products model<crudkit.models.product.Product>`."""

    async def ensure_references(
        self,
        db: AsyncSession,
        *,
        category_id: Optional[int] = None,
        owner_id: Optional[int] = None,
        options: Optional[CRUDOptions] = None,
    ) -> Dict[str, Any]:
        """
        Peek the category and owner a product points to.

        Raises:
            ApiError 404: If any referenced row does not exist
        """
        where = {}
        if category_id is not None:
            where["category"] = category_id
        if owner_id is not None:
            where["owner"] = owner_id
        if not where:
            return {}

        result = await self.peek(db, where, options)
        missing = [name for name in where if result.object_data.get(name) is None]
        if missing:
            raise ApiError.not_found(f"{', '.join(name.title() for name in missing)} not found.")
        return result.object_data


product = CRUDProduct(Product, name="Product")
