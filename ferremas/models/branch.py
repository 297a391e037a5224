"""Branch model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from ferremas.database import Base, BigIntPK


class Branch(Base):
    """Branch (sucursal) where orders are picked up or dispatched from."""

    __tablename__ = 'branches'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Branch(id={self.id}, name='{self.name}')>"
