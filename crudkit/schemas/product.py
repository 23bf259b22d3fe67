from pydantic import BaseModel, Field, field_validator
from typing import Optional


class ProductCreateRequest(BaseModel):
    """Schema for creating a product"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category_id: int
    owner_id: Optional[int] = None


class ProductUpdateRequest(BaseModel):
    """Schema for a partial product update"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[int] = None
    owner_id: Optional[int] = None

    @field_validator('title', 'price', 'stock', 'category_id')
    @classmethod
    def reject_null(cls, v):
        """These columns may be left out but not cleared."""
        if v is None:
            raise ValueError('may be omitted but cannot be null')
        return v
