"""
Entity registry: relation-property name -> mapped entity class.

``peek`` uses it to find which table a nested filter key points at. This
table must be updated whenever a new relation property is introduced.
"""

from typing import Dict, Optional, Type

from crudkit.core.database import Base
from crudkit.models import Category, Product, User

_RELATIONS: Dict[str, Type[Base]] = {
    "category": Category,
    "owner": User,
    "user": User,
    "product": Product,
    "products": Product,
}


def resolve(property_name: str) -> Optional[Type[Base]]:
    """Return the entity a relation property points to, or None if it is not a relation."""
    return _RELATIONS.get(property_name)


def register(property_name: str, model: Type[Base]) -> None:
    _RELATIONS[property_name] = model
