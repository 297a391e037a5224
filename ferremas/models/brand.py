"""Brand model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from ferremas.database import Base, BigIntPK


class Brand(Base):
    """Product brand (marca)."""

    __tablename__ = 'brands'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    country_of_origin = Column(String(80), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'country_of_origin': self.country_of_origin,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Brand(id={self.id}, name='{self.name}')>"
