"""Payment model."""
import enum

from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from ferremas.database import Base, BigIntPK, utcnow


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    DEBIT = 'debit'
    CREDIT = 'credit'
    BANK_TRANSFER = 'bank_transfer'
    GATEWAY_CHECKOUT = 'gateway_checkout'


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Payment(Base):
    """
    Payment attempt for an order.

    Several payments may reference one order (retries); only the
    reconciliation service moves a payment out of ``pending``.
    """

    __tablename__ = 'payments'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=False, index=True)
    payment_method = Column(
        Enum(PaymentMethod, name='payment_method', values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(PaymentStatus, name='payment_status', values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='CLP')

    # Gateway preference id (null until the gateway answers)
    external_reference = Column(String(100), nullable=True, index=True)
    # Our token, sent to the gateway as its external_reference
    internal_reference = Column(String(100), nullable=True, unique=True)
    checkout_url = Column(String(500), nullable=True)

    # Learned from notifications / lookups
    gateway_payment_id = Column(String(100), nullable=True, index=True)
    gateway_status = Column(String(40), nullable=True)
    gateway_updated_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    approved_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    # Relationships
    order = relationship('Order', back_populates='payments')

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'payment_method': self.payment_method.value,
            'status': self.status.value,
            'amount': float(self.amount),
            'currency': self.currency,
            'external_reference': self.external_reference,
            'internal_reference': self.internal_reference,
            'checkout_url': self.checkout_url,
            'gateway_payment_id': self.gateway_payment_id,
            'gateway_status': self.gateway_status,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
        }

    def __repr__(self):
        return f"<Payment(id={self.id}, order_id={self.order_id}, status={self.status.value}, amount={self.amount})>"
