"""Order model."""
import enum

from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from ferremas.database import Base, BigIntPK, utcnow


class OrderStatus(str, enum.Enum):
    """Order status enum."""
    PENDING = 'pending'
    APPROVED = 'approved'
    PREPARING = 'preparing'
    READY = 'ready'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self):
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class DeliveryType(str, enum.Enum):
    """How the customer receives the order."""
    PICKUP = 'pickup'
    HOME_DELIVERY = 'home_delivery'


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    """Order (pedido). Line items are immutable once created."""

    __tablename__ = 'orders'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)
    customer_id = Column(BigInteger, ForeignKey('users.id'), nullable=False, index=True)
    seller_id = Column(BigInteger, ForeignKey('users.id'), nullable=True)
    branch_id = Column(BigInteger, ForeignKey('branches.id'), nullable=False, index=True)
    status = Column(
        Enum(OrderStatus, name='order_status', values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    delivery_type = Column(
        Enum(DeliveryType, name='delivery_type', values_callable=_enum_values),
        nullable=False,
        default=DeliveryType.PICKUP,
    )
    delivery_address = Column(String(255), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='CLP')
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    approved_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    # Optimistic lock: UPDATE ... WHERE version = :expected
    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    # Relationships
    customer = relationship('User', foreign_keys=[customer_id])
    seller = relationship('User', foreign_keys=[seller_id])
    branch = relationship('Branch')
    items = relationship(
        'OrderLineItem',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderLineItem.id',
    )
    payments = relationship('Payment', back_populates='order', order_by='Payment.id')

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'customer_id': self.customer_id,
            'seller_id': self.seller_id,
            'branch_id': self.branch_id,
            'status': self.status.value,
            'delivery_type': self.delivery_type.value,
            'delivery_address': self.delivery_address,
            'subtotal': float(self.subtotal),
            'discount': float(self.discount),
            'tax': float(self.tax),
            'total': float(self.total),
            'currency': self.currency,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'delivered_at': self.delivered_at.isoformat() if self.delivered_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number}, status={self.status.value})>"
