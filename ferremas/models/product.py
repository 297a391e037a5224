"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ferremas.database import Base, BigIntPK


class Product(Base):
    """Product model."""

    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    category_id = Column(BigInteger, ForeignKey('categories.id'), nullable=True)
    brand_id = Column(BigInteger, ForeignKey('brands.id'), nullable=True)
    model = Column(String(120), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship('Category', foreign_keys=[category_id])
    brand = relationship('Brand', foreign_keys=[brand_id])

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'description': self.description,
            'price': float(self.price) if self.price is not None else None,
            'category_id': self.category_id,
            'category_name': self.category.name if self.category else None,
            'brand_id': self.brand_id,
            'brand_name': self.brand.name if self.brand else None,
            'model': self.model,
            'stock': self.stock,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', code='{self.code}')>"
