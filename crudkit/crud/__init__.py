"""
Create Read Update Delete methods.

Every CRUD object inherits from :any:`CRUDBase`, bound to one model. It gets
filter normalization (``{"category": 1}`` or ``{"category": {"id": 1}}``),
pagination, existence checks (``peek``, ``is_exists``) and the success /
error response contract without code repetition.
"""

from .category import category
from .product import product
from .user import user

__all__ = ["category", "product", "user"]
