"""Category model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from ferremas.database import Base, BigIntPK


class Category(Base):
    """Product Category."""

    __tablename__ = 'categories'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    description = Column(String(500), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
