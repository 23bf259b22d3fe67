"""
Request schemas for the catalog API.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class CategoryCreateRequest(BaseModel):
    """Schema for creating a category"""
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    """Schema for a partial category update"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None

    @field_validator('name', 'slug')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('may be omitted but cannot be null')
        return v
