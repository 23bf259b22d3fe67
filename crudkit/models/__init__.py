"""
Database models package.
"""

from crudkit.models.user import User
from crudkit.models.category import Category
from crudkit.models.product import Product

__all__ = ["User", "Category", "Product"]
