from crudkit.crud.base import CRUDBase
from crudkit.models.category import Category

category = CRUDBase(Category, name="Category")
