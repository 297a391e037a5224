"""Order Line Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from ferremas.database import Base, BigIntPK


class OrderLineItem(Base):
    """Order line (detalle de pedido). Unit price is a snapshot of the catalog."""

    __tablename__ = 'order_line_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_line_items_quantity_positive'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_subtotal = Column(Numeric(12, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price),
            'line_subtotal': float(self.line_subtotal),
        }

    def __repr__(self):
        return f"<OrderLineItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
