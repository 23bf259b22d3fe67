from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from crudkit.core.database import Base


class Category(Base):
    """Product category, addressed by a unique slug."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    products = relationship("Product", back_populates="category", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Category(id={self.id}, slug='{self.slug}')>"
